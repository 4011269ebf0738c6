"""Checks that the locator boxed the control the planner asked for."""
from __future__ import annotations

import re

_TAP_PREFIX = "tap "
_STRIP_CHARS = "\"'.!?"
_MAX_KEYWORD_CHARS = 32
_WHITESPACE = re.compile(r"\s+")


def instruction_keyword(instruction: str) -> str:
    """Extract the label an instruction refers to.

    "Tap Continue" -> "Continue"; 'Tap "Get Started".' -> "Started" (the last
    token wins when the label has several words); "Open" -> "Open".
    """

    text = instruction.strip()
    if text.lower().startswith(_TAP_PREFIX):
        text = text[len(_TAP_PREFIX):].strip()
    text = text.strip(_STRIP_CHARS)
    parts = [part for part in _WHITESPACE.split(text) if part]
    if not parts:
        return ""
    return parts[-1][:_MAX_KEYWORD_CHARS].strip()


def matches_instruction(instruction: str, matched_text: str) -> bool:
    """True when `matched_text` contains the instruction keyword (case-insensitive).

    Instructions without a usable keyword are accepted as-is.
    """

    keyword = instruction_keyword(instruction)
    if not keyword:
        return True
    return keyword.lower() in matched_text.lower()


__all__ = ["instruction_keyword", "matches_instruction"]
