"""Configuration structures shared by the coach packages.

Values originate from `config.yaml` (preferred) and fall back to defaults that
match the timings the coach loop was tuned with. Durations inside the coach
loop are expressed in milliseconds; HTTP timeouts are expressed in seconds
because that is what `requests` expects.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Tuple

import yaml


@dataclass(slots=True)
class ScreenMetrics:
    """Physical display size in pixels plus the px-per-dp density factor."""

    width_px: int
    height_px: int
    density: float = 1.0

    def dp(self, value: float) -> int:
        """Convert density-independent pixels to physical pixels."""

        return int(round(value * self.density))


@dataclass(slots=True)
class CaptureConfig:
    """Frame source parameters."""

    interval_s: float = 0.1
    monitor: int = 1
    min_capture_width: int = 360
    screen: Optional[ScreenMetrics] = None  # If None, the monitor size is used


@dataclass(slots=True)
class CoachConfig:
    """Loop controller timings and overlay limits."""

    min_analyze_gap_ms: int = 350
    api_cooldown_ms: int = 900
    no_lock_retry_ms: int = 6000
    locating_hold_ms: int = 2500
    change_threshold: int = 900_000
    ring_min_dp: float = 44.0
    ring_max_dp: float = 140.0
    max_box_width: float = 0.55
    max_box_height: float = 0.35
    status_max_chars: int = 80
    instruction_label_chars: int = 60
    worker_threads: int = 2
    preferences_path: Path = Path("prefs.yaml")
    web_enabled: bool = False
    web_host: str = "127.0.0.1"
    web_port: int = 5000

    def __post_init__(self) -> None:
        if self.ring_min_dp > self.ring_max_dp:
            raise ValueError(
                f"ring_min_dp ({self.ring_min_dp}) must not exceed ring_max_dp ({self.ring_max_dp})"
            )


@dataclass(slots=True)
class PlannerConfig:
    """Remote step planner (chat completions) settings."""

    endpoint: str = "https://api.openai.com/v1/chat/completions"
    model: str = "gpt-4o-mini"
    max_tokens: int = 80
    connect_timeout_s: float = 20.0
    read_timeout_s: float = 30.0


@dataclass(slots=True)
class LocatorConfig:
    """Remote visual locator (generateContent) settings."""

    endpoint_base: str = "https://generativelanguage.googleapis.com/v1beta/models"
    default_model: str = "gemini-2.0-flash"
    max_output_tokens: int = 120
    temperature: float = 0.0
    connect_timeout_s: float = 20.0
    read_timeout_s: float = 30.0
    backoff_default_s: float = 30.0
    backoff_min_s: float = 2.0


@dataclass(slots=True)
class VisionConfig:
    """Top-level vision configuration blob."""

    jpeg_quality: int = 70
    planner: PlannerConfig = field(default_factory=PlannerConfig)
    locator: LocatorConfig = field(default_factory=LocatorConfig)


def load_configs(path: Optional[Path] = None) -> Tuple[CaptureConfig, CoachConfig, VisionConfig]:
    """Load capture, coach, and vision configuration from YAML, falling back to defaults."""

    cfg_path = path or Path("config.yaml")
    capture_cfg = CaptureConfig()
    coach_cfg = CoachConfig()
    vision_cfg = VisionConfig()

    if not cfg_path.exists():
        return capture_cfg, coach_cfg, vision_cfg

    with cfg_path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}

    _apply_capture_config(capture_cfg, raw.get("capture", {}))
    _apply_coach_config(coach_cfg, raw.get("coach", {}))
    _apply_vision_config(vision_cfg, raw.get("vision", {}))

    # Re-run validation now that overrides are applied.
    coach_cfg.__post_init__()

    return capture_cfg, coach_cfg, vision_cfg


def _apply_capture_config(config: CaptureConfig, data: Dict) -> None:
    if not data:
        return

    if "interval_s" in data:
        config.interval_s = float(data["interval_s"])

    if "monitor" in data:
        config.monitor = int(data["monitor"])

    if "min_capture_width" in data:
        config.min_capture_width = int(data["min_capture_width"])

    screen_data = data.get("screen")
    if screen_data and isinstance(screen_data, dict):
        # Only override the detected display if both dimensions are present
        if all(key in screen_data for key in ("width", "height")):
            config.screen = ScreenMetrics(
                width_px=int(screen_data["width"]),
                height_px=int(screen_data["height"]),
                density=float(screen_data.get("density", 1.0)),
            )


_COACH_INT_KEYS = (
    "min_analyze_gap_ms",
    "api_cooldown_ms",
    "no_lock_retry_ms",
    "locating_hold_ms",
    "change_threshold",
    "status_max_chars",
    "instruction_label_chars",
    "worker_threads",
    "web_port",
)
_COACH_FLOAT_KEYS = ("ring_min_dp", "ring_max_dp", "max_box_width", "max_box_height")


def _apply_coach_config(config: CoachConfig, data: Dict) -> None:
    if not data:
        return

    for key in _COACH_INT_KEYS:
        if key in data:
            setattr(config, key, int(data[key]))

    for key in _COACH_FLOAT_KEYS:
        if key in data:
            setattr(config, key, float(data[key]))

    if data.get("preferences_path"):
        config.preferences_path = Path(str(data["preferences_path"]))

    if "web_enabled" in data:
        config.web_enabled = bool(data["web_enabled"])

    if data.get("web_host"):
        config.web_host = str(data["web_host"])


def _apply_vision_config(config: VisionConfig, data: Dict) -> None:
    if not data:
        return

    if "jpeg_quality" in data:
        config.jpeg_quality = int(data["jpeg_quality"])

    planner_data = data.get("planner") or {}
    if planner_data:
        planner = config.planner
        if "endpoint" in planner_data:
            planner.endpoint = str(planner_data["endpoint"])
        if "model" in planner_data:
            planner.model = str(planner_data["model"])
        if "max_tokens" in planner_data:
            planner.max_tokens = int(planner_data["max_tokens"])
        if "connect_timeout_s" in planner_data:
            planner.connect_timeout_s = float(planner_data["connect_timeout_s"])
        if "read_timeout_s" in planner_data:
            planner.read_timeout_s = float(planner_data["read_timeout_s"])

    locator_data = data.get("locator") or {}
    if locator_data:
        locator = config.locator
        if "endpoint_base" in locator_data:
            locator.endpoint_base = str(locator_data["endpoint_base"]).rstrip("/")
        if "default_model" in locator_data:
            locator.default_model = str(locator_data["default_model"])
        if "max_output_tokens" in locator_data:
            locator.max_output_tokens = int(locator_data["max_output_tokens"])
        if "temperature" in locator_data:
            locator.temperature = float(locator_data["temperature"])
        if "connect_timeout_s" in locator_data:
            locator.connect_timeout_s = float(locator_data["connect_timeout_s"])
        if "read_timeout_s" in locator_data:
            locator.read_timeout_s = float(locator_data["read_timeout_s"])

        backoff = locator_data.get("backoff") or {}
        if "default_s" in backoff:
            locator.backoff_default_s = float(backoff["default_s"])
        if "min_s" in backoff:
            locator.backoff_min_s = float(backoff["min_s"])


__all__ = [
    "ScreenMetrics",
    "CaptureConfig",
    "CoachConfig",
    "PlannerConfig",
    "LocatorConfig",
    "VisionConfig",
    "load_configs",
]
