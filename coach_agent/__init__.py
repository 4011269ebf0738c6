"""Coach pipeline orchestration: phases, state bus, loop controller, and sessions."""
from __future__ import annotations

from typing import TYPE_CHECKING

from .phases import PhaseKind, PipelinePhase
from .state_bus import CoachSnapshot, StateBus

if TYPE_CHECKING:  # pragma: no cover - import typing aid only
    from .controller import LoopController
    from .session import CoachSession

__all__ = [
    "CoachSession",
    "CoachSnapshot",
    "LoopController",
    "PhaseKind",
    "PipelinePhase",
    "StateBus",
]


def __getattr__(name: str):
    if name == "LoopController":
        from .controller import LoopController

        return LoopController
    if name == "CoachSession":
        from .session import CoachSession

        return CoachSession
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
