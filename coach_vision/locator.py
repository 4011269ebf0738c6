"""Visual locator: asks a generateContent vision model for the box of an instruction's target.

The locator returns a box normalised to the image size. Quota and rate-limit
errors put this instance into a backoff window during which calls return
None without touching the network.
"""
from __future__ import annotations

import json
import logging
import re
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import requests
from PIL import Image

from coach_os.config import LocatorConfig

from .imaging import encode_jpeg_base64
from .prompts import build_locator_prompt

Logger = logging.Logger

RATE_LIMIT_STATUS = "RESOURCE_EXHAUSTED"
_RETRY_IN = re.compile(r"retry in\s+([0-9]+(?:\.[0-9]+)?)\s*s", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class LocatedBox:
    """Normalised box: (x, y) is the top-left corner, (w, h) the span."""

    x: float
    y: float
    w: float
    h: float
    matched_text: str = ""

    def is_empty(self) -> bool:
        return self.x == 0.0 and self.y == 0.0 and self.w == 0.0 and self.h == 0.0


def parse_retry_after_seconds(message: str) -> Optional[float]:
    """Extract the server hint from messages like "Please retry in 9.24s."."""

    match = _RETRY_IN.search(message or "")
    if match is None:
        return None
    try:
        return float(match.group(1))
    except ValueError:
        return None


def extract_first_json_object(text: str) -> Optional[str]:
    """Return the first balanced {...} block in `text`, ignoring braces inside strings."""

    start = text.find("{")
    while start >= 0:
        depth = 0
        in_string = False
        escaped = False
        for idx in range(start, len(text)):
            char = text[idx]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    candidate = text[start : idx + 1]
                    try:
                        json.loads(candidate)
                    except json.JSONDecodeError:
                        break
                    return candidate
        start = text.find("{", start + 1)
    return None


class TargetLocator:
    """Client for the locator endpoint with process-local rate-limit backoff."""

    def __init__(
        self,
        config: Optional[LocatorConfig] = None,
        *,
        jpeg_quality: int = 70,
        clock: Callable[[], float] = time.monotonic,
        logger: Optional[Logger] = None,
    ) -> None:
        self._config = config or LocatorConfig()
        self._jpeg_quality = jpeg_quality
        self._clock = clock
        self._logger = logger or logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._backoff_until: float = 0.0

    @property
    def backoff_remaining_s(self) -> float:
        with self._lock:
            return max(0.0, self._backoff_until - self._clock())

    def in_backoff(self) -> bool:
        return self.backoff_remaining_s > 0.0

    def locate(
        self,
        frame: Image.Image,
        instruction: str,
        api_key: str,
        model: Optional[str] = None,
    ) -> Optional[LocatedBox]:
        """Return the box for `instruction` on `frame`, or None if not found."""

        remaining = self.backoff_remaining_s
        if remaining > 0.0:
            self._logger.warning("Locator backoff active; skipping call for %.0fms", remaining * 1000)
            return None

        model_id = (model or "").strip() or self._config.default_model
        url = f"{self._config.endpoint_base}/{model_id}:generateContent"
        request_body = self._build_request(frame, instruction)

        self._logger.info("Calling locator model %s", model_id)
        try:
            response = requests.post(
                url,
                params={"key": api_key},
                headers={"Content-Type": "application/json"},
                json=request_body,
                timeout=(self._config.connect_timeout_s, self._config.read_timeout_s),
            )
            raw = response.text
            status_code = response.status_code
        except requests.RequestException as exc:
            self._logger.warning("Locator request failed: %s", exc)
            return None

        self._logger.debug("Locator raw response: %s", raw[:2000])
        return self.parse_response(raw, status_code=status_code)

    def parse_response(self, raw: str, *, status_code: int = 200) -> Optional[LocatedBox]:
        """Map a raw response body to a box, engaging backoff on rate limits."""

        try:
            payload = json.loads(raw)
        except (TypeError, json.JSONDecodeError):
            payload = None

        error = payload.get("error") if isinstance(payload, dict) else None
        if isinstance(error, dict):
            if self._is_rate_limited(error):
                self._engage_backoff(str(error.get("message") or ""))
            else:
                self._logger.warning("Locator error response: %s", error.get("message"))
            return None

        if status_code == 429:
            self._engage_backoff("")
            return None

        if not isinstance(payload, dict):
            return None

        text = self._extract_model_text(payload)
        if text is None:
            return None

        json_text = extract_first_json_object(text)
        if json_text is None:
            self._logger.debug("Locator text had no JSON object: %s", text[:200])
            return None

        try:
            data = json.loads(json_text)
            box = LocatedBox(
                x=float(data["x"]),
                y=float(data["y"]),
                w=float(data["w"]),
                h=float(data["h"]),
                matched_text=str(data.get("matched_text") or "").strip(),
            )
        except (KeyError, TypeError, ValueError, AttributeError):
            return None

        if box.is_empty():
            return None
        return box

    def reset_backoff(self) -> None:
        with self._lock:
            self._backoff_until = 0.0

    def _is_rate_limited(self, error: Dict[str, Any]) -> bool:
        code = error.get("code")
        try:
            numeric = int(code)
        except (TypeError, ValueError):
            numeric = -1
        return numeric == 429 or str(error.get("status") or "") == RATE_LIMIT_STATUS

    def _engage_backoff(self, message: str) -> None:
        retry_s = parse_retry_after_seconds(message)
        if retry_s is None:
            backoff_s = self._config.backoff_default_s
        else:
            backoff_s = max(retry_s, self._config.backoff_min_s)
        with self._lock:
            self._backoff_until = self._clock() + backoff_s
        self._logger.warning("Locator quota/rate-limit hit; backing off for %.0fms", backoff_s * 1000)

    def _extract_model_text(self, payload: Dict[str, Any]) -> Optional[str]:
        try:
            text = payload["candidates"][0]["content"]["parts"][0].get("text")
        except (KeyError, IndexError, TypeError, AttributeError):
            return None
        return text if isinstance(text, str) else None

    def _build_request(self, frame: Image.Image, instruction: str) -> Dict[str, Any]:
        image_b64 = encode_jpeg_base64(frame, self._jpeg_quality)
        return {
            "contents": [
                {
                    "role": "user",
                    "parts": [
                        {"text": build_locator_prompt(instruction)},
                        {"inline_data": {"mime_type": "image/jpeg", "data": image_b64}},
                    ],
                }
            ],
            "generationConfig": {
                "temperature": self._config.temperature,
                "maxOutputTokens": self._config.max_output_tokens,
            },
        }


__all__ = [
    "LocatedBox",
    "TargetLocator",
    "extract_first_json_object",
    "parse_retry_after_seconds",
]
