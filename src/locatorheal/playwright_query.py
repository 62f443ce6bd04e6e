from __future__ import annotations

from typing import TYPE_CHECKING

from playwright.sync_api import Error as PlaywrightError

from .exceptions import SelectorSyntaxError
from .models import ElementDescriptor, QueryKind
from .page_query import ANCESTOR_LIMIT, ElementSnapshot, snapshot_from_payload

if TYPE_CHECKING:
    from playwright.sync_api import Locator, Page

_MISSING_BROWSER_ERROR_HINTS = (
    "executable doesn't exist",
    "executable does not exist",
    "download new browsers",
    "playwright install",
    "could not find browser",
    "failed to launch chromium because executable",
)

_SNAPSHOT_SCRIPT = """
(el, limit) => {
  const keep = ['id', 'name', 'role', 'aria-label', 'data-testid', 'data-test', 'data-cy', 'data-qa'];
  const position = (node) => {
    const parent = node.parentElement;
    if (!parent) return [1, 1];
    const same = Array.from(parent.children).filter((child) => child.tagName === node.tagName);
    return [same.indexOf(node) + 1, same.length];
  };

  const attrs = {};
  for (const attr of el.attributes) {
    attrs[attr.name] = attr.value;
  }

  const ancestors = [];
  let depth = 0;
  let current = el.parentElement;
  while (current) {
    depth += 1;
    if (ancestors.length < limit) {
      const [nth, total] = position(current);
      const kept = {};
      for (const name of keep) {
        const value = current.getAttribute(name);
        if (value) kept[name] = value;
      }
      ancestors.push({
        tag: current.tagName.toLowerCase(),
        id: current.id || null,
        classes: Array.from(current.classList || []),
        nthOfType: nth,
        ofTypeCount: total,
        attributes: kept,
      });
    }
    current = current.parentElement;
  }

  const [nth, total] = position(el);
  const text = (el.innerText || el.textContent || '').trim().replace(/\\s+/g, ' ').slice(0, 200);
  return {
    tag: el.tagName.toLowerCase(),
    id: el.id || null,
    className: typeof el.className === 'string' ? el.className : (el.getAttribute('class') || ''),
    attributes: attrs,
    text,
    ancestors,
    nthOfType: nth,
    ofTypeCount: total,
    depth,
  };
}
"""


def is_missing_browser_error(exc: Exception) -> bool:
    message = str(exc).lower()
    return any(hint in message for hint in _MISSING_BROWSER_ERROR_HINTS)


class PlaywrightPageQuery:
    """Page query over a live playwright sync ``Page``.

    Text queries use ``get_by_text(exact=True)``. Any playwright error
    raised while parsing or running a selector is reported as a
    ``SelectorSyntaxError``.
    """

    def __init__(self, page: Page, *, ancestor_limit: int = ANCESTOR_LIMIT) -> None:
        self.page = page
        self._ancestor_limit = max(0, int(ancestor_limit))

    @property
    def url(self) -> str:
        return str(self.page.url or "")

    def count(self, selector: str, query_kind: QueryKind = "CSS") -> int:
        locator = self._locator(selector, query_kind)
        try:
            return int(locator.count())
        except PlaywrightError as exc:
            raise SelectorSyntaxError(selector, query_kind, exc.message) from exc

    def query(self, selector: str, query_kind: QueryKind = "CSS") -> list[ElementSnapshot]:
        locator = self._locator(selector, query_kind)
        try:
            handles = locator.element_handles()
            payloads = [handle.evaluate(_SNAPSHOT_SCRIPT, self._ancestor_limit) for handle in handles]
        except PlaywrightError as exc:
            raise SelectorSyntaxError(selector, query_kind, exc.message) from exc
        return [snapshot_from_payload(payload) for payload in payloads if isinstance(payload, dict)]

    def describe(self, selector: str, query_kind: QueryKind = "CSS") -> ElementDescriptor:
        matches = self.query(selector, query_kind)
        if len(matches) != 1:
            raise LookupError(f"{query_kind} selector {selector!r} matched {len(matches)} elements, expected 1")
        return matches[0].to_descriptor()

    def _locator(self, selector: str, query_kind: QueryKind) -> Locator:
        text = selector.strip()
        if not text:
            raise SelectorSyntaxError(selector, query_kind, "empty selector")
        if query_kind == "Text":
            return self.page.get_by_text(text, exact=True)
        engine = "xpath" if query_kind == "XPath" else "css"
        return self.page.locator(f"{engine}={text}")
