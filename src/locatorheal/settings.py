from __future__ import annotations

from dataclasses import asdict, dataclass, field
import json
import os
from pathlib import Path
import tempfile
from typing import Any, Mapping

from .scoring import DEFAULT_ATTRIBUTE_WEIGHTS

CONFIG_DIR = Path.home() / ".locatorheal"
CONFIG_PATH = CONFIG_DIR / "config.json"


@dataclass(slots=True)
class HealingSettings:
    confidence_threshold: float = 0.7
    profile_match_threshold: float = 0.5
    attribute_weights: dict[str, float] = field(default_factory=lambda: dict(DEFAULT_ATTRIBUTE_WEIGHTS))
    history_limit: int = 100
    min_history_for_ranking: int = 5
    completion_timeout_sec: float = 5.0
    enable_semantic_healing: bool = True
    max_alternatives: int = 4
    max_context_elements: int = 20
    max_structural_elements: int = 50

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> HealingSettings:
        defaults = cls()
        return cls(
            confidence_threshold=_unit_float(payload.get("confidence_threshold"), defaults.confidence_threshold),
            profile_match_threshold=_unit_float(
                payload.get("profile_match_threshold"), defaults.profile_match_threshold
            ),
            attribute_weights=_weights(payload.get("attribute_weights"), defaults.attribute_weights),
            history_limit=_positive(payload.get("history_limit"), defaults.history_limit),
            min_history_for_ranking=_positive(payload.get("min_history_for_ranking"), defaults.min_history_for_ranking),
            completion_timeout_sec=_positive_float(
                payload.get("completion_timeout_sec"), defaults.completion_timeout_sec
            ),
            enable_semantic_healing=_flag(payload.get("enable_semantic_healing"), defaults.enable_semantic_healing),
            max_alternatives=_positive(payload.get("max_alternatives"), defaults.max_alternatives, minimum=0),
            max_context_elements=_positive(payload.get("max_context_elements"), defaults.max_context_elements),
            max_structural_elements=_positive(payload.get("max_structural_elements"), defaults.max_structural_elements),
        )


def load_settings(config_path: Path | None = None) -> HealingSettings:
    path = config_path or CONFIG_PATH
    if not path.exists() or not path.is_file():
        return HealingSettings()

    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError, TypeError, UnicodeDecodeError):
        return HealingSettings()

    if not isinstance(payload, dict):
        return HealingSettings()
    return HealingSettings.from_dict(payload)


def save_settings(settings: HealingSettings, config_path: Path | None = None) -> tuple[bool, str | None]:
    """Atomically write ``settings`` as JSON."""
    path = config_path or CONFIG_PATH
    payload = json.dumps(asdict(settings), indent=2, sort_keys=True)
    temp_name = ""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            "w", encoding="utf-8", dir=path.parent, prefix=f".{path.name}.", suffix=".tmp", delete=False
        ) as handle:
            temp_name = handle.name
            handle.write(payload)
        os.replace(temp_name, path)
    except OSError as exc:
        if temp_name:
            Path(temp_name).unlink(missing_ok=True)
        return False, f"Could not save settings to {path}: {exc}"
    return True, None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _unit_float(value: Any, default: float) -> float:
    if not _is_number(value) or not 0.0 <= float(value) <= 1.0:
        return default
    return float(value)


def _positive_float(value: Any, default: float) -> float:
    if not _is_number(value) or float(value) <= 0:
        return default
    return float(value)


def _positive(value: Any, default: int, minimum: int = 1) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or value < minimum:
        return default
    return value


def _flag(value: Any, default: bool) -> bool:
    return value if isinstance(value, bool) else default


def _weights(value: Any, default: dict[str, float]) -> dict[str, float]:
    if not isinstance(value, dict):
        return dict(default)
    weights = {str(key).lower(): float(weight) for key, weight in value.items() if _is_number(weight) and weight >= 0}
    return weights or dict(default)
