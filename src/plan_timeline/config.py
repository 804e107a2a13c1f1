from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields, replace
from typing import Any

import yaml

logger = logging.getLogger(__name__)


class ConfigValidationError(Exception):
    """Raised when a timeline style file has unknown keys or bad values."""


@dataclass(frozen=True)
class TimelineColors:
    bar_fill: str = "blue"
    bar_stroke: str = "navy"
    concurrent: str = "#00cc00"
    sequential: str = "#cc0000"
    text: str = "black"


@dataclass(frozen=True)
class TimelineConfig:
    """Fixed presentation constants of the timeline chart, in pixels unless noted."""

    width: float = 1000.0
    bar_height: float = 20.0
    margin_x: float = 20.0
    min_bar_width: float = 2.0
    curve_offset: float = 40.0
    child_nudge: float = 4.0
    label_offset: float = 20.0
    font_size: float = 10.0  # points
    connector_width: float = 3.0
    colors: TimelineColors = field(default_factory=TimelineColors)


# Offsets and margins may be zero; sizes may not.
_NON_NEGATIVE_KEYS = frozenset({"margin_x", "curve_offset", "child_nudge", "label_offset"})


@dataclass(frozen=True)
class _Path:
    """Helper to produce readable YAML path strings like colors.concurrent."""

    parts: tuple[str, ...] = ()

    def child(self, segment: str) -> "_Path":
        return _Path(self.parts + (segment,))

    def __str__(self) -> str:  # pragma: no cover - trivial
        return ".".join(self.parts) if self.parts else "root"


def load_config(path: str) -> TimelineConfig:
    """Load a TimelineConfig from a YAML file; missing keys keep their defaults."""

    with open(path, "r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh)

    config = parse_config(raw)
    logger.debug("loaded timeline config from %s", path)
    return config


def parse_config(data: Any) -> TimelineConfig:
    path = _Path()
    if data is None:
        return TimelineConfig()
    if not isinstance(data, dict):
        raise ConfigValidationError(f"{path}: expected mapping at top level")

    numeric = {f.name for f in fields(TimelineConfig) if f.name != "colors"}
    _assert_allowed_keys(data, numeric | {"colors"}, path)

    values: dict[str, Any] = {}
    for key in sorted(numeric & data.keys()):
        values[key] = _require_number(data[key], path.child(key))

    if "colors" in data:
        values["colors"] = _parse_colors(data["colors"], path.child("colors"))

    return TimelineConfig(**values)


def with_overrides(config: TimelineConfig, **overrides: Any) -> TimelineConfig:
    """Return a copy of `config` with every non-None override applied."""
    changes = {key: value for key, value in overrides.items() if value is not None}
    for key, value in changes.items():
        _require_number(value, _Path((key,)))
    return replace(config, **changes)


def _parse_colors(data: Any, path: _Path) -> TimelineColors:
    if not isinstance(data, dict):
        raise ConfigValidationError(f"{path}: expected mapping for colors")
    allowed = {f.name for f in fields(TimelineColors)}
    _assert_allowed_keys(data, allowed, path)
    values: dict[str, str] = {}
    for key, value in data.items():
        if not isinstance(value, str) or not value.strip():
            raise ConfigValidationError(f"{path.child(key)}: expected non-empty colour string")
        values[key] = value
    return TimelineColors(**values)


def _assert_allowed_keys(data: dict[str, Any], allowed: set[str], path: _Path) -> None:
    extras = sorted(set(data.keys()) - allowed)
    if extras:
        raise ConfigValidationError(f"{path}: unexpected fields {extras}")


def _require_number(value: Any, path: _Path) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigValidationError(f"{path}: expected number")
    if path.parts[-1] in _NON_NEGATIVE_KEYS:
        if value < 0:
            raise ConfigValidationError(f"{path}: expected non-negative number, got {value}")
    elif value <= 0:
        raise ConfigValidationError(f"{path}: expected positive number, got {value}")
    return float(value)
