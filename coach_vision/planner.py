"""Step planner: asks a chat-completions vision model what the user should tap next."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

import requests
from PIL import Image

from coach_os.config import PlannerConfig
from coach_os.preferences import CoachContext

from .imaging import encode_jpeg_base64
from .prompts import PLANNER_SYSTEM_PROMPT, build_planner_user_prompt

Logger = logging.Logger

INSUFFICIENT_QUOTA = "insufficient_quota"


@dataclass(frozen=True, slots=True)
class PlanOk:
    instruction: str


@dataclass(frozen=True, slots=True)
class PlanInsufficientQuota:
    """The planner account has no quota left."""


@dataclass(frozen=True, slots=True)
class PlanError:
    detail: str


PlanResult = Union[PlanOk, PlanInsufficientQuota, PlanError]


class StepPlanner:
    """Client for the planner endpoint. Never raises on network or parse failures."""

    def __init__(
        self,
        config: Optional[PlannerConfig] = None,
        *,
        jpeg_quality: int = 70,
        logger: Optional[Logger] = None,
    ) -> None:
        self._config = config or PlannerConfig()
        self._jpeg_quality = jpeg_quality
        self._logger = logger or logging.getLogger(__name__)

    def plan(self, frame: Image.Image, context: CoachContext, api_key: str) -> PlanResult:
        """Return the next tap instruction for `frame`."""

        request_body = self._build_request(frame, context)
        headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

        self._logger.info("Calling planner model %s", self._config.model)
        try:
            response = requests.post(
                self._config.endpoint,
                headers=headers,
                json=request_body,
                timeout=(self._config.connect_timeout_s, self._config.read_timeout_s),
            )
            raw = response.text
        except requests.RequestException as exc:
            self._logger.warning("Planner request failed: %s", exc)
            return PlanError("network_failed")

        self._logger.debug("Planner raw response: %s", raw[:1200])
        return self.parse_response(raw)

    def parse_response(self, raw: str) -> PlanResult:
        """Map a raw response body to a tagged planner result."""

        try:
            payload = json.loads(raw)
        except (TypeError, json.JSONDecodeError):
            return PlanError("parse_failed")
        if not isinstance(payload, dict):
            return PlanError("parse_failed")

        error = payload.get("error")
        if isinstance(error, dict):
            code = str(error.get("code") or "")
            err_type = str(error.get("type") or "")
            message = str(error.get("message") or "unknown_error")
            if code == INSUFFICIENT_QUOTA or err_type == INSUFFICIENT_QUOTA:
                return PlanInsufficientQuota()
            return PlanError(f"{code}:{err_type}:{message}")

        try:
            content = payload["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            return PlanError("parse_failed")
        if not isinstance(content, str):
            return PlanError("parse_failed")

        instruction = content.strip()
        if not instruction:
            return PlanError("empty_instruction")
        return PlanOk(instruction)

    def _build_request(self, frame: Image.Image, context: CoachContext) -> Dict[str, Any]:
        image_b64 = encode_jpeg_base64(frame, self._jpeg_quality)
        return {
            "model": self._config.model,
            "messages": [
                {"role": "system", "content": PLANNER_SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": build_planner_user_prompt(context)},
                        {
                            "type": "image_url",
                            "image_url": {"url": f"data:image/jpeg;base64,{image_b64}"},
                        },
                    ],
                },
            ],
            # chat/completions caps output with max_tokens
            "max_tokens": self._config.max_tokens,
        }


__all__ = ["PlanError", "PlanInsufficientQuota", "PlanOk", "PlanResult", "StepPlanner"]
