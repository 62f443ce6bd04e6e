from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Protocol, Sequence

from .exceptions import SelectorSyntaxError
from .models import AncestorSummary, ElementDescriptor, QueryKind, ResolutionOutcome
from .selector_rules import normalize_classes, normalize_space

ANCESTOR_LIMIT = 14

ANCESTOR_ATTRIBUTES = (
    "id",
    "name",
    "role",
    "aria-label",
    "data-testid",
    "data-test",
    "data-cy",
    "data-qa",
)


@dataclass(frozen=True, slots=True)
class ElementSnapshot:
    tag: str
    id: str | None
    class_string: str
    attributes: Mapping[str, str]
    text: str | None
    ancestors: tuple[AncestorSummary, ...] = ()
    nth_of_type: int = 1
    of_type_count: int = 1
    depth: int = 0

    def to_descriptor(self) -> ElementDescriptor:
        return ElementDescriptor(
            tag=self.tag,
            id=self.id,
            classes=tuple(normalize_classes(self.class_string)),
            name=self.attributes.get("name"),
            type=self.attributes.get("type"),
            text=self.text,
            attributes=dict(self.attributes),
            ancestors=self.ancestors,
            nth_of_type=self.nth_of_type,
            of_type_count=self.of_type_count,
            depth=self.depth,
        )


class PageQuery(Protocol):
    def count(self, selector: str, query_kind: QueryKind) -> int:
        ...

    def query(self, selector: str, query_kind: QueryKind) -> Sequence[ElementSnapshot]:
        ...


class ResolutionCache:
    """Match counts memoized for a single generation or healing pass.

    Keys are (selector text, query kind, target tag). A cache must not be
    reused once the page it was filled from has changed.
    """

    _INVALID = -1

    def __init__(self) -> None:
        self._counts: dict[tuple[str, str, str], int] = {}

    def __len__(self) -> int:
        return len(self._counts)

    def count(self, page: PageQuery, selector: str, query_kind: QueryKind, tag: str = "") -> int:
        key = (selector, query_kind, tag)
        cached = self._counts.get(key)
        if cached is None:
            try:
                cached = max(0, int(page.count(selector, query_kind)))
            except SelectorSyntaxError:
                cached = self._INVALID
            self._counts[key] = cached
        if cached == self._INVALID:
            raise SelectorSyntaxError(selector, query_kind, "cached")
        return cached


def resolve_selector(
    page: PageQuery,
    selector: str,
    query_kind: QueryKind,
    *,
    descriptor: ElementDescriptor | None = None,
    cache: ResolutionCache | None = None,
) -> ResolutionOutcome:
    tag = descriptor.tag if descriptor else ""
    try:
        if cache is not None:
            matched = cache.count(page, selector, query_kind, tag)
        else:
            matched = max(0, int(page.count(selector, query_kind)))
    except SelectorSyntaxError:
        return ResolutionOutcome(matched_count=0, is_unique=False, valid=False)

    points_to_target: bool | None = None
    if descriptor is not None and matched == 1:
        try:
            matches = page.query(selector, query_kind)
        except SelectorSyntaxError:
            matches = []
        if matches:
            points_to_target = matches_descriptor(matches[0], descriptor)

    return ResolutionOutcome(
        matched_count=matched,
        is_unique=matched == 1,
        points_to_original_target=points_to_target,
    )


def matches_descriptor(snapshot: ElementSnapshot, descriptor: ElementDescriptor) -> bool:
    if not descriptor.tag or snapshot.tag != descriptor.tag:
        return False

    comparisons: tuple[tuple[str | None, str | None], ...] = (
        (descriptor.id, snapshot.id),
        (descriptor.text, snapshot.text),
        (descriptor.attr("aria-label"), snapshot.attributes.get("aria-label")),
        (descriptor.attr("placeholder"), snapshot.attributes.get("placeholder")),
        (descriptor.name, snapshot.attributes.get("name")),
    )
    checks: list[bool] = []
    for expected, actual in comparisons:
        wanted = normalize_space(expected)
        if not wanted:
            continue
        checks.append(normalize_space(actual) == wanted)

    if not checks:
        return True
    return any(checks)


def ancestor_from_payload(payload: Mapping[str, Any]) -> AncestorSummary:
    attributes = payload.get("attributes") or {}
    return AncestorSummary(
        tag=str(payload.get("tag", "") or ""),
        id=payload.get("id") or None,
        classes=tuple(normalize_classes(payload.get("classes") or payload.get("class"))),
        nth_of_type=payload.get("nthOfType", 1),
        of_type_count=payload.get("ofTypeCount", 1),
        attributes={str(key): str(value) for key, value in dict(attributes).items() if key in ANCESTOR_ATTRIBUTES},
    )


def snapshot_from_payload(payload: Mapping[str, Any]) -> ElementSnapshot:
    attributes = {str(key).lower(): str(value) for key, value in dict(payload.get("attributes") or {}).items()}
    ancestors = tuple(
        ancestor_from_payload(item) for item in payload.get("ancestors") or [] if isinstance(item, Mapping)
    )
    depth = payload.get("depth")
    return ElementSnapshot(
        tag=str(payload.get("tag", "") or "").lower(),
        id=payload.get("id") or attributes.get("id") or None,
        class_string=str(payload.get("className") or attributes.get("class") or ""),
        attributes=attributes,
        text=normalize_space(payload.get("text"), limit=200) or None,
        ancestors=ancestors,
        nth_of_type=int(payload.get("nthOfType", 1) or 1),
        of_type_count=int(payload.get("ofTypeCount", 1) or 1),
        depth=int(depth) if isinstance(depth, int) else len(ancestors),
    )
