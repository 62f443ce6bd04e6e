from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from .models import (
    AncestorSummary,
    ElementDescriptor,
    GenerationResult,
    LocatorCandidate,
    ResolutionOutcome,
    ScoredCandidate,
)
from .page_query import PageQuery, ResolutionCache, resolve_selector
from .scoring import composite_score, rank_candidates, score_candidate
from .selector_rules import (
    SEMANTIC_TAGS,
    STABLE_ATTR_PRIORITY,
    TEST_ATTR_PRIORITY,
    count_positional_predicates,
    css_attribute,
    escape_css_identifier,
    is_blocked_root_id,
    is_css_safe_identifier,
    is_generated_class,
    is_generic_value,
    looks_generated_id,
    normalize_space,
    normalize_tag,
    xpath_literal,
)

GENERATION_STRATEGIES = (
    "test-attribute",
    "unique-id",
    "stable-attribute",
    "semantic-combination",
    "stable-class",
    "absolute-path",
    "text-content",
    "positional",
    "fallback",
)

MAX_ALTERNATIVES = 4
LAST_RESORT_CONFIDENCE = 0.05

TEXT_MIN_LENGTH = 3
TEXT_MAX_LENGTH = 100
SEMANTIC_TEXT_LIMIT = 50
POSITIONAL_PARENT_LIMIT = 3
MAX_ABSOLUTE_PATH_PREDICATES = 2

_TEXT_COMBINATION_TAGS = frozenset({"a", "button", "span"})
_ANCHOR_ATTRIBUTES = TEST_ATTR_PRIORITY + ("name", "aria-label")


@dataclass(slots=True)
class CandidateFactory:
    """Builds locator options per strategy from the descriptor alone.

    Each strategy returns its options in preference order. An empty list
    means the strategy does not apply to this element.
    """

    descriptor: ElementDescriptor

    @property
    def tag(self) -> str:
        return normalize_tag(self.descriptor.tag)

    @property
    def tag_prefix(self) -> str:
        return "" if self.tag == "*" else self.tag

    def options(self, strategy: str) -> list[LocatorCandidate]:
        builders: dict[str, Callable[[], list[LocatorCandidate]]] = {
            "test-attribute": self._test_attribute,
            "unique-id": self._unique_id,
            "stable-attribute": self._stable_attribute,
            "semantic-combination": self._semantic_combination,
            "stable-class": self._stable_class,
            "absolute-path": self._absolute_path,
            "text-content": self._text_content,
            "positional": self._positional,
            "fallback": self._fallback,
        }
        builder = builders.get(strategy)
        if builder is None:
            raise KeyError(f"Unknown generation strategy: {strategy}")
        return builder()

    def _test_attribute(self) -> list[LocatorCandidate]:
        options: list[LocatorCandidate] = []
        for attr in TEST_ATTR_PRIORITY:
            value = self.descriptor.attr(attr)
            if not value:
                continue
            options.append(
                LocatorCandidate(
                    strategy="test-attribute",
                    query_kind="CSS",
                    selector=css_attribute(attr, value),
                    base_reliability=95,
                    attributes_used=(attr,),
                )
            )
        return options

    def _unique_id(self) -> list[LocatorCandidate]:
        id_value = self.descriptor.id
        if not id_value or looks_generated_id(id_value) or is_blocked_root_id(id_value):
            return []
        selector = f"#{id_value}" if is_css_safe_identifier(id_value) else css_attribute("id", id_value)
        return [
            LocatorCandidate(
                strategy="unique-id",
                query_kind="CSS",
                selector=selector,
                base_reliability=90,
                attributes_used=("id",),
            )
        ]

    def _stable_attribute(self) -> list[LocatorCandidate]:
        options: list[LocatorCandidate] = []
        for attr in STABLE_ATTR_PRIORITY:
            value = self.descriptor.attr(attr)
            if not value or is_generic_value(value):
                continue
            options.append(
                LocatorCandidate(
                    strategy="stable-attribute",
                    query_kind="CSS",
                    selector=f"{self.tag_prefix}{css_attribute(attr, value)}",
                    base_reliability=85,
                    attributes_used=(attr,),
                )
            )
        return options

    def _semantic_combination(self) -> list[LocatorCandidate]:
        tag = self.tag
        role = self.descriptor.attr("role")
        aria_label = self.descriptor.attr("aria-label")
        if tag not in SEMANTIC_TAGS and not role:
            return []

        text = ""
        if tag in _TEXT_COMBINATION_TAGS:
            text = normalize_space(self.descriptor.text, limit=SEMANTIC_TEXT_LIMIT)
        if not (role or aria_label or text):
            return []

        used = tuple(attr for attr, value in (("role", role), ("aria-label", aria_label)) if value)
        options: list[LocatorCandidate] = []
        if text:
            xpath = f"//{tag}"
            if role:
                xpath += f"[@role={xpath_literal(role)}]"
            if aria_label:
                xpath += f"[@aria-label={xpath_literal(aria_label)}]"
            xpath += f"[contains(normalize-space(), {xpath_literal(text)})]"
            options.append(
                LocatorCandidate(
                    strategy="semantic-combination",
                    query_kind="XPath",
                    selector=xpath,
                    base_reliability=80,
                    attributes_used=used,
                )
            )
        if role or aria_label:
            css = tag
            if role:
                css += css_attribute("role", role)
            if aria_label:
                css += css_attribute("aria-label", aria_label)
            options.append(
                LocatorCandidate(
                    strategy="semantic-combination",
                    query_kind="CSS",
                    selector=css,
                    base_reliability=75,
                    attributes_used=used,
                )
            )
        return options

    def _stable_class(self) -> list[LocatorCandidate]:
        classes = self.descriptor.classes
        stable = [name for name in classes if not is_generated_class(name)]
        if not stable:
            return []
        base = 75 if len(stable) == len(classes) else 70
        return [
            LocatorCandidate(
                strategy="stable-class",
                query_kind="CSS",
                selector=f"{self.tag_prefix}.{escape_css_identifier(stable[0])}",
                base_reliability=base,
            )
        ]

    def _absolute_path(self) -> list[LocatorCandidate]:
        descriptor = self.descriptor
        if not descriptor.ancestors or not descriptor.ancestor_chain_complete:
            return []

        steps = [_path_step(node.tag, node.nth_of_type, node.of_type_count) for node in reversed(descriptor.ancestors)]
        steps.append(_path_step(descriptor.tag, descriptor.nth_of_type, descriptor.of_type_count))
        if any(step is None for step in steps):
            return []

        xpath = "/" + "/".join(step for step in steps if step)
        positional = count_positional_predicates(xpath)
        if positional > MAX_ABSOLUTE_PATH_PREDICATES:
            return []
        return [
            LocatorCandidate(
                strategy="absolute-path",
                query_kind="XPath",
                selector=xpath,
                base_reliability=70 - 5 * positional,
            )
        ]

    def _text_content(self) -> list[LocatorCandidate]:
        text = normalize_space(self.descriptor.text)
        if not (TEXT_MIN_LENGTH <= len(text) <= TEXT_MAX_LENGTH):
            return []
        literal = xpath_literal(text)
        return [
            LocatorCandidate(
                strategy="text-content",
                query_kind="XPath",
                selector=f"//{self.tag}[normalize-space()={literal}]",
                base_reliability=65,
            ),
            LocatorCandidate(
                strategy="text-content",
                query_kind="XPath",
                selector=f"//{self.tag}[contains(normalize-space(), {literal})]",
                base_reliability=55,
            ),
        ]

    def _positional(self) -> list[LocatorCandidate]:
        descriptor = self.descriptor
        chain = descriptor.ancestors[:POSITIONAL_PARENT_LIMIT]
        if not chain:
            return []

        base = 40
        used: tuple[str, ...] = ()
        parent_path: str | None = None
        for index, node in enumerate(chain):
            anchor = _stable_anchor(node)
            if anchor is None:
                continue
            expression, attr = anchor
            middle = [_path_step(item.tag, item.nth_of_type, item.of_type_count) for item in reversed(chain[:index])]
            if any(step is None for step in middle):
                break
            parent_path = expression + "".join(f"/{step}" for step in middle)
            base = 50
            used = (attr,)
            break

        if parent_path is None:
            steps = [_path_step(item.tag, item.nth_of_type, item.of_type_count) for item in reversed(chain)]
            if any(step is None for step in steps):
                return []
            parent_path = "//" + "/".join(step for step in steps if step)

        return [
            LocatorCandidate(
                strategy="positional",
                query_kind="XPath",
                selector=f"{parent_path}/{self.tag}[{descriptor.nth_of_type}]",
                base_reliability=base,
                attributes_used=used,
            )
        ]

    def _fallback(self) -> list[LocatorCandidate]:
        options: list[LocatorCandidate] = []
        if self.descriptor.classes:
            class_chain = "".join(f".{escape_css_identifier(name)}" for name in self.descriptor.classes)
            options.append(
                LocatorCandidate(
                    strategy="fallback",
                    query_kind="CSS",
                    selector=f"{self.tag_prefix}{class_chain}",
                    base_reliability=30,
                )
            )
        options.append(LocatorCandidate(strategy="fallback", query_kind="CSS", selector=self.tag, base_reliability=20))
        return options


def generate_locators(
    descriptor: ElementDescriptor,
    page: PageQuery,
    *,
    cache: ResolutionCache | None = None,
    max_alternatives: int = MAX_ALTERNATIVES,
) -> GenerationResult:
    """Rank locator candidates for ``descriptor`` against ``page``.

    Never returns an empty result: when no strategy yields a usable
    candidate, the primary is a bare tag-name locator with near-zero
    confidence.
    """
    pass_cache = cache if cache is not None else ResolutionCache()
    factory = CandidateFactory(descriptor)

    scored: list[ScoredCandidate] = []
    for order, strategy in enumerate(GENERATION_STRATEGIES):
        chosen = _choose_option(factory.options(strategy), page, descriptor, pass_cache)
        if chosen is None:
            continue
        candidate, outcome = chosen
        scored.append(
            score_candidate(candidate, descriptor, outcome, order=order, is_fallback=strategy == "fallback")
        )

    ranked = rank_candidates(scored)
    ordered = sorted(ranked, key=lambda item: (not _is_acceptable(item), -item.composite_score, item.order))

    primary = ordered[0] if ordered and _is_acceptable(ordered[0]) else None
    if primary is None:
        primary = next((item for item in ordered if item.is_fallback), None)
    if primary is None:
        primary = _last_resort(descriptor, page, pass_cache)

    cap = max(0, int(max_alternatives))
    alternatives = tuple(item for item in ordered if item is not primary)[:cap]
    return GenerationResult(primary=primary, alternatives=alternatives, all=tuple(ranked))


def _choose_option(
    options: list[LocatorCandidate],
    page: PageQuery,
    descriptor: ElementDescriptor,
    cache: ResolutionCache,
) -> tuple[LocatorCandidate, ResolutionOutcome] | None:
    first_valid: tuple[LocatorCandidate, ResolutionOutcome] | None = None
    for candidate in options:
        outcome = resolve_selector(page, candidate.selector, candidate.query_kind, descriptor=descriptor, cache=cache)
        if not outcome.valid:
            continue
        if outcome.is_unique and outcome.points_to_original_target is not False:
            return candidate, outcome
        if first_valid is None:
            first_valid = (candidate, outcome)
    return first_valid


def _is_acceptable(item: ScoredCandidate) -> bool:
    return item.is_unique and item.outcome.points_to_original_target is not False


def _last_resort(descriptor: ElementDescriptor, page: PageQuery, cache: ResolutionCache) -> ScoredCandidate:
    tag = normalize_tag(descriptor.tag)
    candidate = LocatorCandidate(strategy="fallback", query_kind="CSS", selector=tag, base_reliability=10)
    outcome = resolve_selector(page, tag, "CSS", cache=cache)
    return ScoredCandidate(
        candidate=candidate,
        confidence=LAST_RESORT_CONFIDENCE,
        composite_score=composite_score(candidate, LAST_RESORT_CONFIDENCE),
        outcome=outcome,
        order=len(GENERATION_STRATEGIES) - 1,
        is_fallback=True,
    )


def _path_step(tag: str, nth_of_type: int, of_type_count: int) -> str | None:
    name = normalize_tag(tag)
    if name == "*":
        return None
    if of_type_count > 1:
        return f"{name}[{nth_of_type}]"
    return name


def _stable_anchor(node: AncestorSummary) -> tuple[str, str] | None:
    if node.id and not looks_generated_id(node.id) and not is_blocked_root_id(node.id):
        return f"//*[@id={xpath_literal(node.id)}]", "id"
    for attr in _ANCHOR_ATTRIBUTES:
        value = (node.attributes.get(attr) or "").strip()
        if value:
            return f"//*[@{attr}={xpath_literal(value)}]", attr
    return None
