from __future__ import annotations

import re
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Callable, Protocol, Sequence

from .exceptions import ExternalServiceError
from .models import ElementDescriptor
from .page_query import ElementSnapshot

DEFAULT_TIMEOUT_SEC = 5.0
MAX_CONTEXT_ELEMENTS = 20
CONTEXT_SELECTOR = "button, a, input, select, textarea, [role], [data-testid]"

_PREFIXED_LINE = re.compile(r"^\s*(?:css|selector)\s*:\s*(.+?)\s*$", re.IGNORECASE)
_CODE_FENCE = re.compile(r"^```[A-Za-z0-9_-]*\s*|\s*```$")
_CONTEXT_ATTRIBUTES = ("data-testid", "name", "role", "aria-label", "type", "placeholder", "title", "href")


class CompletionService(Protocol):
    def is_configured(self) -> bool:
        ...

    def complete(self, prompt: str) -> str:
        ...


class CallableCompletionService:
    """Adapts any ``prompt -> text`` callable, e.g. a thin wrapper around an LLM client."""

    def __init__(self, func: Callable[[str], str] | None) -> None:
        self._func = func

    def is_configured(self) -> bool:
        return self._func is not None

    def complete(self, prompt: str) -> str:
        if self._func is None:
            raise ExternalServiceError("completion service is not configured")
        return str(self._func(prompt))


def describe_element(descriptor: ElementDescriptor) -> str:
    parts = [f"<{descriptor.tag or '*'}"]
    if descriptor.id:
        parts.append(f' id="{descriptor.id}"')
    if descriptor.classes:
        parts.append(f' class="{" ".join(descriptor.classes)}"')
    for attr in _CONTEXT_ATTRIBUTES:
        value = descriptor.attr(attr)
        if value:
            parts.append(f' {attr}="{value}"')
    parts.append(">")
    if descriptor.text:
        parts.append(descriptor.text[:80])
    return "".join(parts)


def build_healing_prompt(
    original_selector: str,
    descriptor: ElementDescriptor | None,
    context: Sequence[ElementSnapshot],
    *,
    max_elements: int = MAX_CONTEXT_ELEMENTS,
) -> str:
    lines = [
        "A UI test selector no longer matches the page.",
        f"Broken selector: {original_selector}",
    ]
    if descriptor is not None:
        lines.append(f"Original element: {describe_element(descriptor)}")
    lines.append("Candidate elements on the current page:")
    for index, snapshot in enumerate(context[: max(0, max_elements)], start=1):
        lines.append(f"{index}. {describe_element(snapshot.to_descriptor())}")
    lines.append("Reply with a single CSS selector for the element, prefixed with 'css:'.")
    return "\n".join(lines)


def extract_selector(response: str | None) -> str | None:
    """Pull one selector out of a completion response.

    The first ``css:``/``selector:`` line wins. Without one the whole
    trimmed response is the selector. Multi-line unprefixed replies are
    rejected.
    """
    text = (response or "").strip()
    if not text:
        return None

    for line in text.splitlines():
        match = _PREFIXED_LINE.match(line)
        if match:
            return _clean(match.group(1))

    text = _CODE_FENCE.sub("", text).strip()
    if not text or "\n" in text:
        return None
    return _clean(text)


def complete_with_timeout(service: CompletionService, prompt: str, timeout_sec: float = DEFAULT_TIMEOUT_SEC) -> str:
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="locatorheal-completion")
    try:
        future = executor.submit(service.complete, prompt)
        try:
            return future.result(timeout=max(0.0, float(timeout_sec)))
        except FutureTimeoutError as exc:
            future.cancel()
            raise ExternalServiceError(f"completion service timed out after {timeout_sec:.1f}s") from exc
        except ExternalServiceError:
            raise
        except Exception as exc:
            raise ExternalServiceError(f"completion service failed: {exc}") from exc
    finally:
        executor.shutdown(wait=False)


def _clean(value: str) -> str | None:
    cleaned = value.strip().strip("`").strip()
    if len(cleaned) >= 2 and cleaned[0] == cleaned[-1] and cleaned[0] in {"'", '"'}:
        cleaned = cleaned[1:-1].strip()
    return cleaned or None
