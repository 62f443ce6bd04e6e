from __future__ import annotations

import re
from math import log2
from typing import Sequence

ROOT_ID_BLOCKLIST = {"__next", "root", "app", "__nuxt", "gatsby-focus-wrapper"}
ROOT_ID_BLOCKLIST_LOWER = {item.lower() for item in ROOT_ID_BLOCKLIST}

TEST_ATTR_PRIORITY = (
    "data-testid",
    "data-test",
    "data-cy",
    "data-qa",
)

STABLE_ATTR_PRIORITY = (
    "name",
    "aria-label",
    "role",
    "type",
    "placeholder",
    "title",
    "alt",
)

# Attributes that count towards the stable-attribute confidence bonus.
STABLE_ATTRIBUTES = frozenset(
    TEST_ATTR_PRIORITY
    + STABLE_ATTR_PRIORITY
    + ("id", "data-id", "aria-labelledby", "href", "for")
)

SEMANTIC_TAGS = frozenset(
    {
        "button",
        "input",
        "select",
        "textarea",
        "a",
        "form",
        "nav",
        "header",
        "footer",
        "main",
        "section",
        "article",
    }
)

GENERIC_VALUES = frozenset({"true", "false", "1", "0", "submit", "button", "text", "click"})

_UUID_PATTERN = re.compile(r"^[a-f0-9]{8}-?[a-f0-9]{4}-?[a-f0-9]{4}-?[a-f0-9]{4}-?[a-f0-9]{12}$", re.IGNORECASE)
_HEX_PATTERN = re.compile(r"^[a-f0-9]{8,}$", re.IGNORECASE)
_TIMESTAMP_PATTERN = re.compile(r"\d{10,}")
_SEPARATORS = re.compile(r"[-_:.]")

_GENERATED_ID_PATTERNS = (
    re.compile(r"^:r[0-9a-z]+:$", re.IGNORECASE),
    re.compile(r"(^|[-_:])(j_idt|jdt_|ember|react-select-|mui-)\d+", re.IGNORECASE),
    re.compile(r"^headlessui-.*-\d+$", re.IGNORECASE),
    re.compile(r"^[0-9]+$"),
)

_GENERATED_CLASS_PATTERNS = (
    re.compile(r"^[a-f0-9]{8,}$", re.IGNORECASE),
    re.compile(r"^css-[a-z0-9_-]+$", re.IGNORECASE),
    re.compile(r"^jss\d+$", re.IGNORECASE),
    re.compile(r"^sc-[a-z0-9]+$", re.IGNORECASE),
    re.compile(r"^_[A-Za-z0-9]"),
    re.compile(r"__(?=[A-Za-z0-9-]*\d)[A-Za-z0-9-]{5,}$"),
    re.compile(r"\d{3,}"),
)

_CSS_SAFE_IDENT_PATTERN = re.compile(r"^-?[A-Za-z_][A-Za-z0-9_-]*$")
_TAG_PATTERN = re.compile(r"^[a-z][a-z0-9-]*$")

_CSS_ATTR_REFERENCE = re.compile(r"\[\s*([A-Za-z_][A-Za-z0-9_:.-]*)\s*(?:[~|^$*]?=|\])")
_XPATH_ATTR_REFERENCE = re.compile(r"@([A-Za-z_][A-Za-z0-9_:.-]*)")
_CSS_ID_REFERENCE = re.compile(r"#(?:[A-Za-z0-9_-]|\\.)")
_QUOTED_LITERAL = re.compile(r"\"(?:\\.|[^\"\\])*\"|'[^']*'")
_XPATH_POSITIONAL = re.compile(r"\[\s*\d+\s*\]")


def normalize_space(value: str | None, limit: int = 200) -> str:
    if not value:
        return ""
    compact = re.sub(r"\s+", " ", str(value)).strip()
    return compact[:limit] if compact else ""


def normalize_classes(raw: Sequence[str] | str | None) -> list[str]:
    if not raw:
        return []
    if isinstance(raw, str):
        items = raw.split()
    else:
        items = [item for item in raw if isinstance(item, str)]

    seen: set[str] = set()
    normalized: list[str] = []
    for item in items:
        clean = item.strip()
        if not clean or clean in seen:
            continue
        seen.add(clean)
        normalized.append(clean)
    return normalized


def normalize_tag(value: str | None) -> str:
    tag = (value or "").strip().lower()
    if _TAG_PATTERN.match(tag):
        return tag
    return "*"


def shannon_entropy(value: str) -> float:
    text = value.strip()
    if not text:
        return 0.0
    total = len(text)
    frequencies: dict[str, int] = {}
    for char in text:
        frequencies[char] = frequencies.get(char, 0) + 1

    entropy = 0.0
    for count in frequencies.values():
        probability = count / total
        entropy -= probability * log2(probability)
    return entropy


def digit_ratio(value: str) -> float:
    text = value.strip()
    if not text:
        return 0.0
    digits = sum(1 for char in text if char.isdigit())
    return digits / len(text)


def is_blocked_root_id(id_value: str) -> bool:
    return id_value.strip().lower() in ROOT_ID_BLOCKLIST_LOWER


def looks_generated_id(id_value: str) -> bool:
    """True for ids that a framework or build step most likely minted.

    Covers hex hashes, UUIDs, timestamp-like digit runs and long
    separator-free tokens that mix letters and digits.
    """
    value = id_value.strip()
    if not value:
        return True
    if _UUID_PATTERN.match(value):
        return True
    if _HEX_PATTERN.match(value) and any(char.isdigit() for char in value):
        return True
    if _TIMESTAMP_PATTERN.search(value):
        return True
    if any(pattern.search(value) for pattern in _GENERATED_ID_PATTERNS):
        return True
    if len(value) >= 8 and not _SEPARATORS.search(value):
        has_alpha = any(char.isalpha() for char in value)
        if has_alpha and digit_ratio(value) > 0.3:
            return True
        if has_alpha and any(char.isdigit() for char in value) and shannon_entropy(value) >= 3.5:
            return True
    return False


def is_generated_class(class_name: str) -> bool:
    value = class_name.strip()
    if not value:
        return True
    if any(pattern.search(value) for pattern in _GENERATED_CLASS_PATTERNS):
        return True
    return len(value) > 18 and digit_ratio(value) > 0.2


def is_generic_value(value: str) -> bool:
    return value.strip().lower() in GENERIC_VALUES


def is_css_safe_identifier(value: str) -> bool:
    return bool(_CSS_SAFE_IDENT_PATTERN.fullmatch(value.strip()))


def escape_css_string(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\a ")


def escape_css_identifier(value: str) -> str:
    escaped: list[str] = []
    for index, char in enumerate(value):
        if char.isascii() and (char.isalnum() or char in ("-", "_")):
            if index == 0 and char.isdigit():
                escaped.append(f"\\{ord(char):x} ")
            else:
                escaped.append(char)
        else:
            escaped.append(f"\\{ord(char):x} ")
    return "".join(escaped)


def xpath_literal(value: str) -> str:
    if "'" not in value:
        return f"'{value}'"
    if '"' not in value:
        return f'"{value}"'
    pieces = value.split("'")
    quoted = [f"'{piece}'" for piece in pieces]
    return "concat(" + ", \"'\", ".join(quoted) + ")"


def css_attribute(attr: str, value: str, operator: str = "=") -> str:
    return f'[{attr}{operator}"{escape_css_string(value)}"]'


def count_positional_predicates(selector: str) -> int:
    lowered = selector.lower()
    return len(_XPATH_POSITIONAL.findall(lowered)) + lowered.count("nth-of-type") + lowered.count("nth-child")


def strip_quoted(selector: str) -> str:
    return _QUOTED_LITERAL.sub('""', selector)


def referenced_attributes(selector: str) -> tuple[str, ...]:
    """Attribute names a selector constrains on, in first-seen order."""
    bare = strip_quoted(selector)
    names: list[str] = []
    for pattern in (_CSS_ATTR_REFERENCE, _XPATH_ATTR_REFERENCE):
        for match in pattern.finditer(bare):
            name = match.group(1).lower()
            if name not in names:
                names.append(name)
    if not looks_like_xpath(bare) and _CSS_ID_REFERENCE.search(bare) and "id" not in names:
        names.append("id")
    return tuple(names)


def looks_like_xpath(selector: str) -> bool:
    text = selector.lstrip()
    return text.startswith(("/", "(/", "./", "(./"))
