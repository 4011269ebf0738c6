"""Read-only key/value preference store used by the coach pipeline."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional

import yaml

Logger = logging.Logger

PREF_OPENAI_API_KEY = "openai_api_key"
PREF_GEMINI_API_KEY = "gemini_api_key"
PREF_GEMINI_MODEL = "gemini_model"
PREF_COACH_SELECTED_DEVICE = "coach_selected_device"
PREF_COACH_EXPECTED_APP_NAME = "coach_expected_app_name"
PREF_COACH_EXPECTED_APP_QUERY = "coach_expected_app_query"

DEFAULT_GEMINI_MODEL = "gemini-2.0-flash"

# Environment fallbacks for the API keys when the preferences file omits them.
_ENV_FALLBACKS = {
    PREF_OPENAI_API_KEY: "OPENAI_API_KEY",
    PREF_GEMINI_API_KEY: "GEMINI_API_KEY",
}


@dataclass(frozen=True, slots=True)
class CoachContext:
    """What the user is trying to set up; fixed for the lifetime of a session."""

    selected_device: str = ""
    expected_app_name: str = ""
    expected_app_query: str = ""


class Preferences:
    """Immutable view over string preferences."""

    def __init__(self, values: Optional[Mapping[str, object]] = None) -> None:
        self._values: Dict[str, str] = {
            str(key): "" if value is None else str(value) for key, value in (values or {}).items()
        }

    def get(self, key: str, default: str = "") -> str:
        value = self._values.get(key)
        if value is None:
            return default.strip()
        return value.strip()

    def openai_api_key(self) -> str:
        return self.get(PREF_OPENAI_API_KEY)

    def gemini_api_key(self) -> str:
        return self.get(PREF_GEMINI_API_KEY)

    def gemini_model(self) -> str:
        return self.get(PREF_GEMINI_MODEL) or DEFAULT_GEMINI_MODEL

    def coach_context(self) -> CoachContext:
        return CoachContext(
            selected_device=self.get(PREF_COACH_SELECTED_DEVICE),
            expected_app_name=self.get(PREF_COACH_EXPECTED_APP_NAME),
            expected_app_query=self.get(PREF_COACH_EXPECTED_APP_QUERY),
        )


def load_preferences(
    path: Optional[Path] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
    logger: Optional[Logger] = None,
) -> Preferences:
    """Load preferences from a YAML mapping, filling API keys from the environment."""

    log = logger or logging.getLogger(__name__)
    env = os.environ if environ is None else environ
    prefs_path = path or Path("prefs.yaml")

    values: Dict[str, object] = {}
    if prefs_path.exists():
        with prefs_path.open("r", encoding="utf-8") as handle:
            raw = yaml.safe_load(handle) or {}
        if not isinstance(raw, dict):
            raise ValueError(f"Preferences file {prefs_path} must contain a mapping")
        values.update(raw)
    else:
        log.debug("Preferences file %s not found; using environment only", prefs_path)

    for key, env_name in _ENV_FALLBACKS.items():
        if not str(values.get(key) or "").strip() and env.get(env_name):
            values[key] = env[env_name]

    return Preferences(values)


__all__ = [
    "CoachContext",
    "Preferences",
    "load_preferences",
    "DEFAULT_GEMINI_MODEL",
    "PREF_OPENAI_API_KEY",
    "PREF_GEMINI_API_KEY",
    "PREF_GEMINI_MODEL",
    "PREF_COACH_SELECTED_DEVICE",
    "PREF_COACH_EXPECTED_APP_NAME",
    "PREF_COACH_EXPECTED_APP_QUERY",
]
