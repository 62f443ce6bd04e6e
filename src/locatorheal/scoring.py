from __future__ import annotations

import re
from typing import Iterable, Mapping

from .models import ElementDescriptor, LocatorCandidate, QueryKind, ResolutionOutcome, ScoredCandidate
from .selector_rules import (
    SEMANTIC_TAGS,
    STABLE_ATTR_PRIORITY,
    STABLE_ATTRIBUTES,
    TEST_ATTR_PRIORITY,
    count_positional_predicates,
    looks_like_xpath,
    referenced_attributes,
    strip_quoted,
)

DEFAULT_ATTRIBUTE_WEIGHTS: dict[str, float] = {
    "data-testid": 1.0,
    "id": 0.9,
    "name": 0.8,
    "role": 0.8,
    "aria-label": 0.7,
    "href": 0.7,
    "alt": 0.6,
    "type": 0.6,
    "placeholder": 0.5,
    "title": 0.5,
    "class": 0.3,
}

STABLE_ATTRIBUTE_BONUS = 0.05
LONG_SELECTOR_LIMIT = 100
LONG_SELECTOR_PENALTY = 0.10
SEMANTIC_TAG_BONUS = 0.05
DEPTH_PENALTY_START = 10
DEPTH_PENALTY_STEP = 0.02

RELIABILITY_WEIGHT = 0.6
CONFIDENCE_WEIGHT = 0.4

PARTIAL_MATCH_PENALTY = 15
POSITIONAL_PENALTY = 10

_PARTIAL_CSS_OPERATOR = re.compile(r"\[[^\]=]*[*^$~|]=")
_PARTIAL_XPATH_FUNCTION = re.compile(r"(contains|starts-with)\(\s*@")
_TEXT_EQUALS = re.compile(r"(normalize-space\(\s*\.?\s*\)|text\(\))\s*=")
_TEXT_CONTAINS = re.compile(r"contains\(\s*(normalize-space\(\s*\.?\s*\)|text\(\)|\.)\s*,")
_CSS_CLASS = re.compile(r"(?<!\\)\.-?[A-Za-z_]")
_BARE_TAG = re.compile(r"^(//)?[a-z][a-z0-9-]*$")


def compute_confidence(candidate: LocatorCandidate, descriptor: ElementDescriptor) -> float:
    confidence = candidate.base_reliability / 100.0

    stable_refs = {attr for attr in candidate.attributes_used if attr in STABLE_ATTRIBUTES}
    confidence += STABLE_ATTRIBUTE_BONUS * len(stable_refs)

    if len(candidate.selector) > LONG_SELECTOR_LIMIT:
        confidence -= LONG_SELECTOR_PENALTY
    if descriptor.tag in SEMANTIC_TAGS:
        confidence += SEMANTIC_TAG_BONUS

    depth = descriptor.depth or 0
    confidence -= DEPTH_PENALTY_STEP * max(0, depth - DEPTH_PENALTY_START)

    return round(max(0.0, min(1.0, confidence)), 4)


def composite_score(candidate: LocatorCandidate, confidence: float) -> float:
    return round(RELIABILITY_WEIGHT * (candidate.base_reliability / 100.0) + CONFIDENCE_WEIGHT * confidence, 4)


def score_candidate(
    candidate: LocatorCandidate,
    descriptor: ElementDescriptor,
    outcome: ResolutionOutcome,
    *,
    order: int = 0,
    is_fallback: bool = False,
) -> ScoredCandidate:
    confidence = compute_confidence(candidate, descriptor)
    return ScoredCandidate(
        candidate=candidate,
        confidence=confidence,
        composite_score=composite_score(candidate, confidence),
        outcome=outcome,
        order=order,
        is_fallback=is_fallback,
    )


def rank_candidates(candidates: Iterable[ScoredCandidate]) -> list[ScoredCandidate]:
    return sorted(candidates, key=lambda item: (-item.composite_score, item.order))


def infer_base_reliability(selector: str, query_kind: QueryKind) -> int:
    """Estimate how durable a free-form selector is from its shape alone."""
    text = selector.strip()
    if not text:
        return 0
    if query_kind == "Text":
        return 65

    bare = strip_quoted(text)
    lowered = bare.lower()
    attrs = referenced_attributes(text)
    partial = bool(_PARTIAL_CSS_OPERATOR.search(bare) or _PARTIAL_XPATH_FUNCTION.search(lowered))
    positional = count_positional_predicates(bare) > 0
    attribute_based = True

    if any(attr in TEST_ATTR_PRIORITY for attr in attrs):
        base = 95
    elif "id" in attrs:
        base = 90
    elif any(attr in STABLE_ATTR_PRIORITY or attr in {"aria-labelledby", "href"} for attr in attrs):
        base = 85
    elif _TEXT_EQUALS.search(lowered):
        base = 65
        attribute_based = False
    elif _TEXT_CONTAINS.search(lowered):
        base = 55
        attribute_based = False
    elif "class" in attrs or (not looks_like_xpath(bare) and _CSS_CLASS.search(bare)):
        base = 70
        # Class tokens are always matched by containment.
        partial = False
    elif positional:
        return 45
    elif _BARE_TAG.match(lowered):
        return 20
    else:
        return 50

    if partial and attribute_based:
        base -= PARTIAL_MATCH_PENALTY
    if positional:
        base -= POSITIONAL_PENALTY
    return base


def infer_candidate(strategy: str, selector: str, query_kind: QueryKind) -> LocatorCandidate:
    return LocatorCandidate(
        strategy=strategy,
        query_kind=query_kind,
        selector=selector,
        base_reliability=infer_base_reliability(selector, query_kind),
        attributes_used=referenced_attributes(selector) if query_kind != "Text" else (),
    )


def attribute_profile_similarity(
    original: ElementDescriptor,
    current: ElementDescriptor,
    weights: Mapping[str, float] | None = None,
) -> float:
    """Weighted share of the original element's attributes the current one still carries."""
    table = weights or DEFAULT_ATTRIBUTE_WEIGHTS
    total = 0.0
    matched = 0.0
    for attr, weight in table.items():
        expected = original.attr(attr)
        if not expected:
            continue
        total += weight
        actual = current.attr(attr)
        if not actual:
            continue
        if attr == "class":
            expected_classes = set(expected.split())
            overlap = expected_classes & set(actual.split())
            matched += weight * (len(overlap) / len(expected_classes))
        elif actual == expected:
            matched += weight
    if total <= 0:
        return 0.0
    return round(matched / total, 4)
