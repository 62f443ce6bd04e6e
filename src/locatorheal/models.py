from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Literal, Mapping

from .selector_rules import normalize_classes, normalize_space

QueryKind = Literal["CSS", "XPath", "Text"]

_QUERY_KIND_ALIASES: dict[str, QueryKind] = {
    "css": "CSS",
    "xpath": "XPath",
    "text": "Text",
    "text-match": "Text",
}

DESCRIPTOR_TEXT_LIMIT = 200


def normalize_query_kind(value: Any) -> QueryKind:
    key = str(value or "").strip().lower()
    return _QUERY_KIND_ALIASES.get(key, "CSS")


def _frozen_attributes(raw: Mapping[str, Any] | None) -> Mapping[str, str]:
    items = dict(raw or {})
    return MappingProxyType({str(key).lower(): str(value) for key, value in items.items() if value is not None})


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _positive_int(value: Any, default: int = 1) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number >= 1 else default


@dataclass(frozen=True, slots=True)
class AncestorSummary:
    tag: str
    id: str | None = None
    classes: tuple[str, ...] = ()
    nth_of_type: int = 1
    of_type_count: int = 1
    attributes: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "tag", (self.tag or "").strip().lower())
        object.__setattr__(self, "id", _optional_str(self.id))
        object.__setattr__(self, "classes", tuple(normalize_classes(self.classes)))
        object.__setattr__(self, "nth_of_type", _positive_int(self.nth_of_type))
        object.__setattr__(self, "of_type_count", max(_positive_int(self.of_type_count), self.nth_of_type))
        object.__setattr__(self, "attributes", _frozen_attributes(self.attributes))

    def to_dict(self) -> dict[str, Any]:
        return {
            "tag": self.tag,
            "id": self.id,
            "classes": list(self.classes),
            "nthOfType": self.nth_of_type,
            "ofTypeCount": self.of_type_count,
            "attributes": dict(self.attributes),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> AncestorSummary:
        return cls(
            tag=str(payload.get("tag", "") or ""),
            id=payload.get("id"),
            classes=tuple(normalize_classes(payload.get("classes") or payload.get("class"))),
            nth_of_type=payload.get("nthOfType", payload.get("nth_of_type", 1)),
            of_type_count=payload.get("ofTypeCount", payload.get("of_type_count", 1)),
            attributes=dict(payload.get("attributes") or {}),
        )


@dataclass(frozen=True, slots=True)
class ElementDescriptor:
    """Snapshot of a target element at the moment it was recorded.

    ``ancestors`` is ordered nearest parent first. ``depth`` is the total
    ancestor count, which can exceed ``len(ancestors)`` when capture was
    bounded.
    """

    tag: str
    id: str | None = None
    classes: tuple[str, ...] = ()
    name: str | None = None
    type: str | None = None
    text: str | None = None
    attributes: Mapping[str, str] = field(default_factory=dict)
    ancestors: tuple[AncestorSummary, ...] = ()
    nth_of_type: int = 1
    of_type_count: int = 1
    depth: int | None = None

    def __post_init__(self) -> None:
        attributes = _frozen_attributes(self.attributes)
        object.__setattr__(self, "attributes", attributes)
        object.__setattr__(self, "tag", (self.tag or "").strip().lower())
        object.__setattr__(self, "id", _optional_str(self.id) or _optional_str(attributes.get("id")))
        object.__setattr__(self, "name", _optional_str(self.name) or _optional_str(attributes.get("name")))
        object.__setattr__(self, "type", _optional_str(self.type) or _optional_str(attributes.get("type")))
        classes = normalize_classes(self.classes) or normalize_classes(attributes.get("class"))
        object.__setattr__(self, "classes", tuple(classes))
        object.__setattr__(self, "text", normalize_space(self.text, limit=DESCRIPTOR_TEXT_LIMIT) or None)
        object.__setattr__(self, "ancestors", tuple(self.ancestors))
        object.__setattr__(self, "nth_of_type", _positive_int(self.nth_of_type))
        object.__setattr__(self, "of_type_count", max(_positive_int(self.of_type_count), self.nth_of_type))
        depth = self.depth if isinstance(self.depth, int) and self.depth >= 0 else len(self.ancestors)
        object.__setattr__(self, "depth", max(depth, len(self.ancestors)))

    def attr(self, key: str) -> str | None:
        name = key.lower()
        if name == "id" and self.id:
            return self.id
        if name == "name" and self.name:
            return self.name
        if name == "type" and self.type:
            return self.type
        if name == "class" and self.classes:
            return " ".join(self.classes)
        return _optional_str(self.attributes.get(name))

    @property
    def ancestor_chain_complete(self) -> bool:
        return len(self.ancestors) == self.depth

    def signature(self) -> str:
        keys = ("id", "name", "data-testid", "data-test", "data-qa", "aria-label", "type")
        pieces = [f"tag={self.tag}"]
        for key in keys:
            value = self.attr(key)
            if value:
                pieces.append(f"{key}={value}")
        return "|".join(pieces)

    def to_dict(self) -> dict[str, Any]:
        return {
            "tag": self.tag,
            "id": self.id,
            "classes": list(self.classes),
            "name": self.name,
            "type": self.type,
            "text": self.text,
            "attributes": dict(self.attributes),
            "ancestors": [item.to_dict() for item in self.ancestors],
            "nthOfType": self.nth_of_type,
            "ofTypeCount": self.of_type_count,
            "depth": self.depth,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> ElementDescriptor:
        ancestors = tuple(
            AncestorSummary.from_dict(item) for item in payload.get("ancestors") or [] if isinstance(item, Mapping)
        )
        depth = payload.get("depth")
        return cls(
            tag=str(payload.get("tag") or payload.get("tagName") or ""),
            id=payload.get("id"),
            classes=tuple(normalize_classes(payload.get("classes") or payload.get("className"))),
            name=payload.get("name"),
            type=payload.get("type"),
            text=payload.get("text") or payload.get("textContent"),
            attributes=dict(payload.get("attributes") or {}),
            ancestors=ancestors,
            nth_of_type=payload.get("nthOfType", payload.get("nth_of_type", 1)),
            of_type_count=payload.get("ofTypeCount", payload.get("of_type_count", 1)),
            depth=depth if isinstance(depth, int) else None,
        )


@dataclass(frozen=True, slots=True)
class LocatorCandidate:
    strategy: str
    query_kind: QueryKind
    selector: str
    base_reliability: int
    attributes_used: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class ResolutionOutcome:
    matched_count: int
    is_unique: bool
    points_to_original_target: bool | None = None
    valid: bool = True


@dataclass(frozen=True, slots=True)
class ScoredCandidate:
    candidate: LocatorCandidate
    confidence: float
    composite_score: float
    outcome: ResolutionOutcome
    order: int = 0
    is_fallback: bool = False

    @property
    def strategy(self) -> str:
        return self.candidate.strategy

    @property
    def selector(self) -> str:
        return self.candidate.selector

    @property
    def query_kind(self) -> QueryKind:
        return self.candidate.query_kind

    @property
    def matched_count(self) -> int:
        return self.outcome.matched_count

    @property
    def is_unique(self) -> bool:
        return self.outcome.is_unique

    def to_dict(self) -> dict[str, Any]:
        return {
            "strategy": self.strategy,
            "queryKind": self.query_kind,
            "selector": self.selector,
            "baseReliability": self.candidate.base_reliability,
            "attributesUsed": list(self.candidate.attributes_used),
            "confidence": self.confidence,
            "compositeScore": self.composite_score,
            "matchedCount": self.matched_count,
            "isUnique": self.is_unique,
            "isFallback": self.is_fallback,
        }


@dataclass(frozen=True, slots=True)
class GenerationResult:
    primary: ScoredCandidate
    alternatives: tuple[ScoredCandidate, ...]
    all: tuple[ScoredCandidate, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "primary": self.primary.to_dict(),
            "alternatives": [item.to_dict() for item in self.alternatives],
            "all": [item.to_dict() for item in self.all],
        }


@dataclass(frozen=True, slots=True)
class HealingRecord:
    timestamp: str
    original_selector: str
    healed_selector: str
    strategy: str
    confidence: float
    page_url: str = ""

    @classmethod
    def create(
        cls,
        original_selector: str,
        healed_selector: str,
        strategy: str,
        confidence: float,
        page_url: str = "",
    ) -> HealingRecord:
        return cls(
            timestamp=datetime.now(timezone.utc).isoformat(),
            original_selector=original_selector,
            healed_selector=healed_selector,
            strategy=strategy,
            confidence=float(confidence),
            page_url=page_url,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "originalSelector": self.original_selector,
            "healedSelector": self.healed_selector,
            "strategyName": self.strategy,
            "confidence": self.confidence,
            "pageURL": self.page_url,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> HealingRecord:
        strategy = payload.get("strategyName", payload.get("strategy"))
        if not strategy:
            raise ValueError("healing record without strategy")
        return cls(
            timestamp=str(payload.get("timestamp", "")),
            original_selector=str(payload["originalSelector"]),
            healed_selector=str(payload["healedSelector"]),
            strategy=str(strategy),
            confidence=float(payload["confidence"]),
            page_url=str(payload.get("pageURL", payload.get("url", "")) or ""),
        )


@dataclass(frozen=True, slots=True)
class HealingStats:
    total: int
    per_strategy: Mapping[str, int]
    average_confidence: float


@dataclass(frozen=True, slots=True)
class ElementRef:
    selector: str
    query_kind: QueryKind = "CSS"
    descriptor: ElementDescriptor | None = None
    is_healed: bool = False
    healed_by: str | None = None
    confidence: float | None = None

    def to_emitted(self) -> dict[str, Any]:
        return {
            "selector": self.selector,
            "queryKind": self.query_kind,
            "isHealed": self.is_healed,
            "healedBy": self.healed_by,
            "confidence": self.confidence,
        }


@dataclass(frozen=True, slots=True)
class RecordedAction:
    action_type: str
    element: ElementRef
    fields: Mapping[str, Any] = field(default_factory=dict)
    page_url: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))

    def with_healed_selector(
        self,
        selector: str,
        query_kind: QueryKind,
        healed_by: str,
        confidence: float,
    ) -> RecordedAction:
        element = replace(
            self.element,
            selector=selector,
            query_kind=query_kind,
            is_healed=True,
            healed_by=healed_by,
            confidence=confidence,
        )
        return replace(self, element=element)

    def to_emitted(self) -> dict[str, Any]:
        payload = dict(self.fields)
        payload["type"] = self.action_type
        if self.page_url:
            payload["url"] = self.page_url
        payload["element"] = self.element.to_emitted()
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> RecordedAction:
        element_payload = payload.get("element")
        if not isinstance(element_payload, Mapping):
            raise ValueError("recorded action has no element")
        selector = str(element_payload.get("selector") or "").strip()
        if not selector:
            raise ValueError("recorded action has an empty selector")

        descriptor_payload = element_payload.get("descriptor")
        descriptor = ElementDescriptor.from_dict(descriptor_payload) if isinstance(descriptor_payload, Mapping) else None
        confidence = element_payload.get("confidence")
        element = ElementRef(
            selector=selector,
            query_kind=normalize_query_kind(element_payload.get("queryKind")),
            descriptor=descriptor,
            is_healed=bool(element_payload.get("isHealed", False)),
            healed_by=element_payload.get("healedBy"),
            confidence=float(confidence) if isinstance(confidence, (int, float)) else None,
        )
        fields = {key: value for key, value in payload.items() if key not in {"type", "element", "url"}}
        return cls(
            action_type=str(payload.get("type") or "action"),
            element=element,
            fields=fields,
            page_url=str(payload.get("url") or ""),
        )


@dataclass(frozen=True, slots=True)
class HealedAction:
    action: RecordedAction
    original_selector: str
    strategy: str
    confidence: float
    record: HealingRecord

    @property
    def ok(self) -> bool:
        return True

    @property
    def selector(self) -> str:
        return self.action.element.selector


@dataclass(frozen=True, slots=True)
class HealingFailure:
    original_selector: str
    descriptor: ElementDescriptor | None
    attempted: tuple[str, ...]
    skipped: tuple[str, ...] = ()
    reason: str = "exhausted"

    @property
    def ok(self) -> bool:
        return False


HealingResult = HealedAction | HealingFailure
