"""Configuration for the uPose tracking pipeline.

Settings are grouped per pipeline stage:
- MapSettings: foreground / skin / edge field construction.
- ExtractorSettings: speckle suppression and minimum region size.
- TrackerSettings: role assignment gating and candidate limits.
- OptimizerSettings: local search budget, step radius and outline rendering.
- HeatmapSettings: Gaussian prior widths for the heatmap proposer.
- DriverSettings: proposer mode, activation gating and random seed.

Every value can be overridden with an environment variable named
``UPOSE_<SECTION>_<FIELD>`` (e.g. ``UPOSE_TRACKER_MIN_CANDIDATES=4``) or through
a TOML/JSON file loaded with :func:`load_config_from_file`. Environment
variables take precedence over file values.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import os
import tomllib
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping

from upose.env import get_env, truthy


def _configure_logger() -> logging.Logger:
    logger = logging.getLogger("upose")
    level_name = get_env("LOG_LEVEL") or os.getenv("LOG_LEVEL")
    if level_name:
        level = getattr(logging, level_name.upper(), logging.INFO)
        logger.setLevel(level)
    return logger


UPOSE_LOGGER = _configure_logger()
logger = UPOSE_LOGGER

FIELD_MODES = ("binary", "probability")
PROPOSER_MODES = ("local-search", "heatmap")


@dataclass(frozen=True)
class MapSettings:
    """Foreground, skin and edge field construction."""

    foreground_mode: str = "binary"
    foreground_threshold: float = 30.0
    foreground_scale: float = 6.0
    skin_mode: str = "binary"
    skin_red: float = 0.6
    skin_green: float = -0.3
    skin_blue: float = -0.3
    skin_lower: float = 2.0
    skin_upper: float = 255.0
    skin_center: float = 13.0
    skin_spread: float = 8.0
    edge_blur: int = 3
    canny_low: float = 32.0
    canny_high: float = 64.0


@dataclass(frozen=True)
class ExtractorSettings:
    blur_size: int = 9
    threshold: float = 0.5
    min_extent: int = 3


@dataclass(frozen=True)
class TrackerSettings:
    min_candidates: int = 3
    max_candidates: int = 3
    extent_weight: float = 1.0
    sentinel_divisor: float = 64.0
    refine_hands: bool = False


@dataclass(frozen=True)
class OptimizerSettings:
    iterations: int = 200
    step_radius: float = 15.0
    stroke_width: int = 5
    overlap_weight: float = 1.0


@dataclass(frozen=True)
class HeatmapSettings:
    sigma_spatial: float = 25.0
    sigma_anatomical: float = 40.0


@dataclass(frozen=True)
class DriverSettings:
    mode: str = "local-search"
    require_activation: bool = True
    activation_threshold: float = 0.5
    random_seed: int | None = None


@dataclass(frozen=True)
class PoseSettings:
    """All tunable constants of the pipeline, grouped per stage."""

    maps: MapSettings = field(default_factory=MapSettings)
    extractor: ExtractorSettings = field(default_factory=ExtractorSettings)
    tracker: TrackerSettings = field(default_factory=TrackerSettings)
    optimizer: OptimizerSettings = field(default_factory=OptimizerSettings)
    heatmap: HeatmapSettings = field(default_factory=HeatmapSettings)
    driver: DriverSettings = field(default_factory=DriverSettings)


_SECTIONS: Dict[str, type] = {
    "maps": MapSettings,
    "extractor": ExtractorSettings,
    "tracker": TrackerSettings,
    "optimizer": OptimizerSettings,
    "heatmap": HeatmapSettings,
    "driver": DriverSettings,
}


def _coerce_value(raw: Any, default: Any) -> Any:
    """Convert ``raw`` to the type of ``default``; fall back to ``default`` on failure."""
    if isinstance(raw, str):
        raw = raw.strip()
    try:
        if isinstance(default, bool):
            if isinstance(raw, str):
                return truthy(raw, default=default)
            return bool(raw)
        if isinstance(default, int):
            return int(raw)
        if isinstance(default, float):
            return float(raw)
        if default is None:
            if raw is None or (isinstance(raw, str) and raw.lower() in {"", "none", "null"}):
                return None
            return int(raw)
        return str(raw)
    except (TypeError, ValueError):
        logger.warning("Ignoring invalid config value %r (keeping %r)", raw, default)
        return default


def _env_key(section: str, name: str) -> str:
    return f"{section}_{name}".upper()


def _build_section(section: str, overrides: Mapping[str, Any] | None = None) -> Any:
    cls = _SECTIONS[section]
    base = cls()
    values: Dict[str, Any] = {}
    overrides = overrides or {}
    for spec in dataclasses.fields(cls):
        default = getattr(base, spec.name)
        value = default
        if spec.name in overrides:
            value = _coerce_value(overrides[spec.name], default)
        raw_env = get_env(_env_key(section, spec.name))
        if raw_env is not None:
            value = _coerce_value(raw_env, default)
        values[spec.name] = value
    return cls(**values)


def load_settings(overrides: Mapping[str, Mapping[str, Any]] | None = None) -> PoseSettings:
    """Build settings from defaults, optional ``overrides`` and ``UPOSE_*`` env vars.

    ``overrides`` maps a section name (``"tracker"``, ``"optimizer"``...) to a
    mapping of field values. Unknown sections are ignored with a warning.
    """
    overrides = dict(overrides or {})
    for unknown in sorted(set(overrides) - set(_SECTIONS)):
        logger.warning("Unknown config section %r ignored", unknown)
    sections = {
        name: _build_section(name, overrides.get(name) if isinstance(overrides.get(name), Mapping) else None)
        for name in _SECTIONS
    }
    return PoseSettings(**sections)


def load_config_from_file(config_path: str | Path) -> PoseSettings:
    """Load settings from TOML or JSON and apply env var overrides.

    Env vars take precedence over file values. Supports either a root-level
    mapping or an ``[upose]`` table/object in the config file.
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config not found: {path}")
    if not path.is_file():
        raise ValueError(f"Expected a config file, but got a directory: {path}")

    suffix = path.suffix.lower()
    if suffix == ".toml":
        with path.open("rb") as handle:
            raw_config = tomllib.load(handle)
    elif suffix == ".json":
        with path.open("r", encoding="utf-8") as handle:
            raw_config = json.load(handle)
    else:
        raise ValueError(f"Unsupported config format for {path}; expected .toml or .json.")

    config_body = raw_config.get("upose", raw_config) if isinstance(raw_config, dict) else raw_config
    if not isinstance(config_body, dict):
        raise ValueError("Invalid config structure; expected a dict or an [upose] section.")
    return load_settings(config_body)


def resolve_settings(config_path: str | Path | None = None) -> PoseSettings:
    """Settings from ``config_path``, else ``UPOSE_CONFIG``, else defaults + env."""
    candidate = config_path or get_env("CONFIG")
    if candidate:
        return load_config_from_file(Path(candidate).expanduser())
    return load_settings()


def _warn(message: str) -> None:
    warnings.warn(message, RuntimeWarning, stacklevel=3)
    logger.warning(message)


def validate_settings(settings: PoseSettings) -> list[str]:
    """Emit warnings for suspicious settings and return the messages."""
    problems: list[str] = []

    def check(condition: bool, message: str) -> None:
        if not condition:
            problems.append(message)
            _warn(message)

    maps = settings.maps
    check(maps.foreground_mode in FIELD_MODES, f"maps.foreground_mode={maps.foreground_mode!r} not in {FIELD_MODES}")
    check(maps.skin_mode in FIELD_MODES, f"maps.skin_mode={maps.skin_mode!r} not in {FIELD_MODES}")
    check(maps.foreground_scale > 0, f"maps.foreground_scale={maps.foreground_scale} must be positive")
    check(maps.skin_spread > 0, f"maps.skin_spread={maps.skin_spread} must be positive")
    check(maps.skin_lower <= maps.skin_upper, "maps.skin_lower must not exceed maps.skin_upper")
    check(maps.edge_blur > 0, f"maps.edge_blur={maps.edge_blur} must be positive")

    extractor = settings.extractor
    check(extractor.blur_size > 0, f"extractor.blur_size={extractor.blur_size} must be positive")
    check(0.0 < extractor.threshold < 1.0, f"extractor.threshold={extractor.threshold} is outside (0,1)")

    tracker = settings.tracker
    check(tracker.min_candidates >= 1, "tracker.min_candidates must be at least 1")
    check(
        tracker.max_candidates >= tracker.min_candidates,
        "tracker.max_candidates must be >= tracker.min_candidates",
    )
    check(tracker.sentinel_divisor > 0, "tracker.sentinel_divisor must be positive")

    optimizer = settings.optimizer
    check(optimizer.iterations >= 0, "optimizer.iterations must be non-negative")
    check(optimizer.step_radius > 0, "optimizer.step_radius must be positive")
    check(optimizer.stroke_width >= 1, "optimizer.stroke_width must be at least 1")

    heatmap = settings.heatmap
    check(heatmap.sigma_spatial > 0 and heatmap.sigma_anatomical > 0, "heatmap sigmas must be positive")

    driver = settings.driver
    check(driver.mode in PROPOSER_MODES, f"driver.mode={driver.mode!r} not in {PROPOSER_MODES}")
    return problems


def as_dict(settings: PoseSettings) -> Dict[str, Dict[str, Any]]:
    return dataclasses.asdict(settings)


def print_config(settings: PoseSettings | None = None) -> None:
    """Print configuration values for debugging purposes."""
    settings = settings or load_settings()
    print("uPose configuration:")
    for section, values in as_dict(settings).items():
        print(f"  [{section}]")
        for name, value in values.items():
            print(f"    {name} = {value}")


__all__ = [
    "UPOSE_LOGGER",
    "MapSettings",
    "ExtractorSettings",
    "TrackerSettings",
    "OptimizerSettings",
    "HeatmapSettings",
    "DriverSettings",
    "PoseSettings",
    "load_settings",
    "load_config_from_file",
    "resolve_settings",
    "validate_settings",
    "as_dict",
    "print_config",
]
