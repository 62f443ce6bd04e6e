from __future__ import annotations

from pathlib import Path
import threading

from cssselect import SelectorError
from lxml import etree, html

from .exceptions import SelectorSyntaxError
from .models import AncestorSummary, ElementDescriptor, QueryKind
from .page_query import ANCESTOR_ATTRIBUTES, ANCESTOR_LIMIT, ElementSnapshot
from .selector_rules import normalize_classes, normalize_space

# Innermost element whose normalized text equals the query text.
_TEXT_MATCH_XPATH = "//body//*[normalize-space()=$text][not(.//*[normalize-space()=$text])]"


class HtmlSnapshotPage:
    """Page query over a static HTML document.

    CSS goes through cssselect, XPath through lxml. Both engines' syntax
    errors surface as ``SelectorSyntaxError``.
    """

    def __init__(self, markup: str, url: str = "", *, ancestor_limit: int = ANCESTOR_LIMIT) -> None:
        self.url = url
        self._root = html.document_fromstring(markup)
        self._ancestor_limit = max(0, int(ancestor_limit))
        # lxml trees are shared by concurrent healers.
        self._lock = threading.Lock()

    @classmethod
    def from_file(cls, path: Path | str, url: str = "") -> HtmlSnapshotPage:
        source = Path(path)
        markup = source.read_text(encoding="utf-8")
        return cls(markup, url=url or source.resolve().as_uri())

    def count(self, selector: str, query_kind: QueryKind = "CSS") -> int:
        with self._lock:
            return len(self._select(selector, query_kind))

    def query(self, selector: str, query_kind: QueryKind = "CSS") -> list[ElementSnapshot]:
        with self._lock:
            return [snapshot_element(node, self._ancestor_limit) for node in self._select(selector, query_kind)]

    def describe(self, selector: str, query_kind: QueryKind = "CSS") -> ElementDescriptor:
        matches = self.query(selector, query_kind)
        if len(matches) != 1:
            raise LookupError(f"{query_kind} selector {selector!r} matched {len(matches)} elements, expected 1")
        return matches[0].to_descriptor()

    def _select(self, selector: str, query_kind: QueryKind) -> list[html.HtmlElement]:
        text = selector.strip()
        if not text:
            raise SelectorSyntaxError(selector, query_kind, "empty selector")

        try:
            if query_kind == "CSS":
                nodes = self._root.cssselect(text)
            elif query_kind == "XPath":
                nodes = self._root.xpath(text)
            else:
                nodes = self._root.xpath(_TEXT_MATCH_XPATH, text=normalize_space(text))
        except SelectorError as exc:
            raise SelectorSyntaxError(selector, query_kind, str(exc)) from exc
        except (etree.XPathError, ValueError) as exc:
            raise SelectorSyntaxError(selector, query_kind, str(exc)) from exc

        if not isinstance(nodes, list):
            return []
        return [node for node in nodes if isinstance(node, etree._Element) and isinstance(node.tag, str)]


def snapshot_element(element: etree._Element, ancestor_limit: int = ANCESTOR_LIMIT) -> ElementSnapshot:
    attributes = {str(key).lower(): str(value) for key, value in element.attrib.items()}

    ancestors: list[AncestorSummary] = []
    depth = 0
    for ancestor in element.iterancestors():
        depth += 1
        if len(ancestors) < ancestor_limit:
            ancestors.append(_summarize_ancestor(ancestor))

    nth, total = _position_of_type(element)
    return ElementSnapshot(
        tag=str(element.tag).lower(),
        id=attributes.get("id") or None,
        class_string=attributes.get("class", ""),
        attributes=attributes,
        text=normalize_space(element.text_content(), limit=200) or None,
        ancestors=tuple(ancestors),
        nth_of_type=nth,
        of_type_count=total,
        depth=depth,
    )


def _summarize_ancestor(element: etree._Element) -> AncestorSummary:
    nth, total = _position_of_type(element)
    kept = {name: str(element.get(name)) for name in ANCESTOR_ATTRIBUTES if element.get(name)}
    return AncestorSummary(
        tag=str(element.tag),
        id=element.get("id") or None,
        classes=tuple(normalize_classes(element.get("class"))),
        nth_of_type=nth,
        of_type_count=total,
        attributes=kept,
    )


def _position_of_type(element: etree._Element) -> tuple[int, int]:
    parent = element.getparent()
    if parent is None:
        return 1, 1
    same_tag = [child for child in parent if child.tag == element.tag]
    return same_tag.index(element) + 1, len(same_tag)
