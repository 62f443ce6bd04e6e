from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from itertools import combinations
from typing import Callable

from .completion import CONTEXT_SELECTOR, CompletionService, build_healing_prompt, complete_with_timeout, extract_selector
from .exceptions import SelectorSyntaxError
from .locator_generator import generate_locators
from .models import ElementDescriptor, LocatorCandidate, QueryKind
from .page_query import ElementSnapshot, PageQuery, ResolutionCache
from .scoring import attribute_profile_similarity, infer_candidate
from .selector_rules import (
    css_attribute,
    is_generated_class,
    looks_like_xpath,
    normalize_space,
    normalize_tag,
    xpath_literal,
)
from .settings import HealingSettings

logger = logging.getLogger(__name__)

HEALING_STRATEGIES = (
    "exact-match",
    "partial-text",
    "semantic-similarity",
    "visual-similarity",
    "structural-similarity",
)

PARTIAL_TEXT_MIN_LENGTH = 3
PARTIAL_TEXT_PREFIX = 10
PARTIAL_VALUE_PREFIX = 8
STRUCTURAL_MATCH_LIMIT = 3

_LABEL_ATTRIBUTES = ("aria-label", "title", "placeholder")
_VISUAL_ATTRIBUTES = ("data-testid", "id", "role", "type")

_SIMPLE_CSS_ID = re.compile(r"^(?P<tag>[a-z][a-z0-9-]*)?#(?P<value>[A-Za-z_][A-Za-z0-9_-]*)$", re.IGNORECASE)
_SIMPLE_CSS_CLASS = re.compile(r"^(?P<tag>[a-z][a-z0-9-]*)?\.(?P<value>-?[A-Za-z_][A-Za-z0-9_-]*)$", re.IGNORECASE)
_CSS_ID_ATTRIBUTE = re.compile(r"""^(?P<tag>[a-z][a-z0-9-]*)?\[\s*id\s*=\s*["'](?P<value>[^"']+)["']\s*\]$""", re.IGNORECASE)
_XPATH_ID = re.compile(r"""^//(?P<tag>[a-z][a-z0-9-]*|\*)\[\s*@id\s*=\s*["'](?P<value>[^"']+)["']\s*\]$""", re.IGNORECASE)
_CSS_POSITIONAL_PSEUDO = re.compile(r":(?:nth-child|nth-of-type|nth-last-child|nth-last-of-type)\([^)]*\)|:(?:first|last)-(?:child|of-type)")


@dataclass(slots=True)
class HealingContext:
    """Everything one healing attempt needs, scoped to that attempt."""

    original_selector: str
    query_kind: QueryKind
    descriptor: ElementDescriptor | None
    page: PageQuery
    settings: HealingSettings
    completion: CompletionService | None = None
    cache: ResolutionCache = field(default_factory=ResolutionCache)

    @property
    def tag(self) -> str:
        if self.descriptor is None:
            return "*"
        return normalize_tag(self.descriptor.tag)

    @property
    def tag_prefix(self) -> str:
        return "" if self.tag == "*" else self.tag

    def safe_query(self, selector: str, query_kind: QueryKind) -> list[ElementSnapshot]:
        try:
            return list(self.page.query(selector, query_kind))
        except SelectorSyntaxError:
            return []


def semantic_available(context: HealingContext) -> bool:
    service = context.completion
    return bool(context.settings.enable_semantic_healing and service is not None and service.is_configured())


def exact_match_candidates(context: HealingContext) -> list[LocatorCandidate]:
    original = context.original_selector.strip()
    if not original:
        return []

    variants: list[tuple[str, QueryKind]] = [(original, context.query_kind)]
    if context.query_kind == "CSS":
        id_match = _SIMPLE_CSS_ID.match(original) or _CSS_ID_ATTRIBUTE.match(original)
        if id_match:
            value = id_match.group("value")
            variants.append((css_attribute("id", value), "CSS"))
            variants.append((f"//*[@id={xpath_literal(value)}]", "XPath"))
        class_match = _SIMPLE_CSS_CLASS.match(original)
        if class_match:
            tag = (class_match.group("tag") or "*").lower()
            value = class_match.group("value")
            variants.append((f"//{tag}[contains(@class, {xpath_literal(value)})]", "XPath"))
    elif context.query_kind == "XPath":
        xpath_match = _XPATH_ID.match(original)
        if xpath_match:
            variants.append((css_attribute("id", xpath_match.group("value")), "CSS"))

    return _unique_candidates("exact-match", variants)


def partial_text_candidates(context: HealingContext) -> list[LocatorCandidate]:
    descriptor = context.descriptor
    if descriptor is None:
        return []

    text = normalize_space(descriptor.text)
    if len(text) < PARTIAL_TEXT_MIN_LENGTH:
        text = next(
            (normalize_space(descriptor.attr(attr)) for attr in _LABEL_ATTRIBUTES if descriptor.attr(attr)),
            "",
        )
    if len(text) < PARTIAL_TEXT_MIN_LENGTH:
        return []

    tag = context.tag
    literal = xpath_literal(text)
    variants: list[tuple[str, QueryKind]] = [(css_attribute(attr, text), "CSS") for attr in _LABEL_ATTRIBUTES]
    variants.append((f"//{tag}[normalize-space()={literal}]", "XPath"))
    variants.extend((css_attribute(attr, text, "*="), "CSS") for attr in _LABEL_ATTRIBUTES)
    variants.append((f"//{tag}[contains(normalize-space(), {literal})]", "XPath"))

    prefix = text[:PARTIAL_TEXT_PREFIX].strip()
    if len(prefix) >= PARTIAL_TEXT_MIN_LENGTH and prefix != text:
        short = xpath_literal(prefix)
        variants.append(
            (f"//{tag}[contains(normalize-space(), {short})][not(.//*[contains(normalize-space(), {short})])]", "XPath")
        )
    return _unique_candidates("partial-text", variants)


def semantic_similarity_candidates(context: HealingContext) -> list[LocatorCandidate]:
    """Ask the completion service for a selector.

    Raises ``ExternalServiceError`` when the service errors or times out.
    """
    if not semantic_available(context) or context.completion is None:
        return []

    limit = context.settings.max_context_elements
    page_context = context.safe_query(CONTEXT_SELECTOR, "CSS")[:limit]
    prompt = build_healing_prompt(context.original_selector, context.descriptor, page_context, max_elements=limit)
    response = complete_with_timeout(context.completion, prompt, context.settings.completion_timeout_sec)
    selector = extract_selector(response)
    if not selector:
        logger.debug("Completion response held no selector: %r", response[:120])
        return []

    query_kind: QueryKind = "XPath" if looks_like_xpath(selector) else "CSS"
    return [infer_candidate("semantic-similarity", selector, query_kind)]


def visual_similarity_candidates(context: HealingContext) -> list[LocatorCandidate]:
    descriptor = context.descriptor
    if descriptor is None:
        return []

    pairs: list[tuple[str, str]] = []
    for attr in _VISUAL_ATTRIBUTES:
        value = descriptor.attr(attr)
        if value:
            pairs.append((attr, value))
    for class_name in descriptor.classes:
        if not is_generated_class(class_name):
            pairs.append(("class", class_name))
    if not pairs:
        return []

    prefix = context.tag_prefix
    variants: list[tuple[str, QueryKind]] = []
    for attr, value in pairs:
        variants.append((f"{prefix}{_visual_clause(attr, value)}", "CSS"))
    for (first_attr, first_value), (second_attr, second_value) in combinations(pairs, 2):
        clauses = _visual_clause(first_attr, first_value) + _visual_clause(second_attr, second_value)
        variants.append((f"{prefix}{clauses}", "CSS"))
    for attr, value in pairs:
        fragment = value[:PARTIAL_VALUE_PREFIX]
        if len(fragment) >= PARTIAL_TEXT_MIN_LENGTH:
            variants.append((f"{prefix}{css_attribute(attr, fragment, '*=')}", "CSS"))
    return _unique_candidates("visual-similarity", variants)


def structural_similarity_candidates(context: HealingContext) -> list[LocatorCandidate]:
    """Look for the element under the original selector's parent patterns.

    Elements found there are accepted when their weighted attribute
    profile still resembles the original; the selector offered for them
    is the generator's primary locator.
    """
    descriptor = context.descriptor
    if descriptor is None:
        return []

    settings = context.settings
    matches: list[tuple[float, int, ElementSnapshot]] = []
    seen: set[tuple] = set()
    for selector, query_kind in structural_search_selectors(context.original_selector, context.query_kind, context.tag):
        for snapshot in context.safe_query(selector, query_kind)[: settings.max_structural_elements]:
            key = _snapshot_key(snapshot)
            if key in seen:
                continue
            seen.add(key)
            similarity = attribute_profile_similarity(descriptor, snapshot.to_descriptor(), settings.attribute_weights)
            if similarity >= settings.profile_match_threshold:
                matches.append((similarity, len(matches), snapshot))
        if len(seen) >= settings.max_structural_elements:
            break

    matches.sort(key=lambda item: (-item[0], item[1]))
    candidates: list[LocatorCandidate] = []
    for similarity, _, snapshot in matches[:STRUCTURAL_MATCH_LIMIT]:
        result = generate_locators(snapshot.to_descriptor(), context.page, cache=context.cache, max_alternatives=0)
        primary = result.primary
        if primary.is_fallback or not primary.is_unique:
            continue
        logger.debug("Structural match %.2f offers %s", similarity, primary.selector)
        candidates.append(infer_candidate("structural-similarity", primary.selector, primary.query_kind))
    return _dedupe(candidates)


def structural_search_selectors(selector: str, query_kind: QueryKind, tag: str) -> list[tuple[str, QueryKind]]:
    text = selector.strip()
    searches: list[tuple[str, QueryKind]] = []
    if query_kind == "XPath":
        for parent in xpath_parent_patterns(text):
            searches.append((f"{parent}//{tag}", "XPath"))
    elif query_kind == "CSS":
        relaxed = _CSS_POSITIONAL_PSEUDO.sub("", text).strip()
        if relaxed and relaxed != text:
            searches.append((relaxed, "CSS"))
        for parent in css_parent_patterns(text):
            searches.append((parent if tag == "*" else f"{parent} {tag}", "CSS"))
    searches.append((tag, "CSS"))

    unique: list[tuple[str, QueryKind]] = []
    for item in searches:
        if item not in unique:
            unique.append(item)
    return unique


def css_parent_patterns(selector: str) -> list[str]:
    """Prefixes of a CSS selector with trailing compound selectors removed, longest first."""
    boundaries = _top_level_positions(selector, lambda char: char.isspace() or char in ">+~")
    patterns: list[str] = []
    for index in reversed(boundaries):
        prefix = selector[:index].rstrip(" \t\r\n>+~")
        if prefix and prefix not in patterns:
            patterns.append(prefix)
    return patterns


def xpath_parent_patterns(selector: str) -> list[str]:
    boundaries = _top_level_positions(selector, lambda char: char == "/")
    patterns: list[str] = []
    for index in reversed(boundaries):
        prefix = selector[:index].rstrip("/")
        if prefix and prefix not in {"(", "."} and prefix not in patterns:
            patterns.append(prefix)
    return patterns


def strategy_builders() -> dict[str, Callable[[HealingContext], list[LocatorCandidate]]]:
    return {
        "exact-match": exact_match_candidates,
        "partial-text": partial_text_candidates,
        "semantic-similarity": semantic_similarity_candidates,
        "visual-similarity": visual_similarity_candidates,
        "structural-similarity": structural_similarity_candidates,
    }


def _visual_clause(attr: str, value: str) -> str:
    if attr == "class":
        return css_attribute("class", value, "~=")
    return css_attribute(attr, value)


def _top_level_positions(selector: str, is_boundary: Callable[[str], bool]) -> list[int]:
    positions: list[int] = []
    depth = 0
    quote: str | None = None
    previous = ""
    for index, char in enumerate(selector):
        if quote:
            if char == quote and previous != "\\":
                quote = None
        elif char in ("'", '"'):
            quote = char
        elif char in "[(":
            depth += 1
        elif char in "])":
            depth = max(0, depth - 1)
        elif depth == 0 and is_boundary(char):
            positions.append(index)
        previous = char
    return positions


def _snapshot_key(snapshot: ElementSnapshot) -> tuple:
    return (
        snapshot.tag,
        snapshot.id,
        snapshot.class_string,
        snapshot.text,
        snapshot.nth_of_type,
        snapshot.depth,
        tuple(sorted(snapshot.attributes.items())),
        tuple((item.tag, item.nth_of_type) for item in snapshot.ancestors),
    )


def _unique_candidates(strategy: str, variants: list[tuple[str, QueryKind]]) -> list[LocatorCandidate]:
    return _dedupe([infer_candidate(strategy, selector, query_kind) for selector, query_kind in variants if selector])


def _dedupe(candidates: list[LocatorCandidate]) -> list[LocatorCandidate]:
    seen: set[tuple[str, str]] = set()
    unique: list[LocatorCandidate] = []
    for candidate in candidates:
        key = (candidate.selector, candidate.query_kind)
        if key in seen:
            continue
        seen.add(key)
        unique.append(candidate)
    return unique
