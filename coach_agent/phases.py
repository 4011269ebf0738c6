"""Coach lifecycle phases published on the state bus."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class PhaseKind(str, Enum):
    IDLE = "idle"
    REQUESTING_CAPTURE = "requesting_capture"
    STARTING = "starting"
    SCANNING = "scanning"
    CANDIDATE = "candidate"
    LOCKED = "locked"
    LOST = "lost"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class PipelinePhase:
    """A phase plus its label (Candidate/Locked) or detail (Error)."""

    kind: PhaseKind
    detail: str = ""

    @classmethod
    def idle(cls) -> "PipelinePhase":
        return cls(PhaseKind.IDLE)

    @classmethod
    def requesting_capture(cls) -> "PipelinePhase":
        return cls(PhaseKind.REQUESTING_CAPTURE)

    @classmethod
    def starting(cls) -> "PipelinePhase":
        return cls(PhaseKind.STARTING)

    @classmethod
    def scanning(cls) -> "PipelinePhase":
        return cls(PhaseKind.SCANNING)

    @classmethod
    def candidate(cls, label: str) -> "PipelinePhase":
        return cls(PhaseKind.CANDIDATE, label)

    @classmethod
    def locked(cls, label: str) -> "PipelinePhase":
        return cls(PhaseKind.LOCKED, label)

    @classmethod
    def lost(cls) -> "PipelinePhase":
        return cls(PhaseKind.LOST)

    @classmethod
    def error(cls, detail: str) -> "PipelinePhase":
        return cls(PhaseKind.ERROR, detail)

    @property
    def message(self) -> str:
        """User-facing sentence for this phase."""

        kind = self.kind
        if kind is PhaseKind.IDLE:
            return "Coach mode is idle."
        if kind is PhaseKind.REQUESTING_CAPTURE:
            return "Requesting screen capture permission…"
        if kind is PhaseKind.STARTING:
            return "Starting screen capture…"
        if kind is PhaseKind.SCANNING:
            return "Scanning the screen for the next setup step…"
        if kind is PhaseKind.CANDIDATE:
            return f'Found "{self.detail}". Verifying…'
        if kind is PhaseKind.LOCKED:
            return f'Tap "{self.detail}" to continue.'
        if kind is PhaseKind.LOST:
            return "Lost the target. Rescanning…"
        return f"Coach error: {self.detail}"


__all__ = ["PhaseKind", "PipelinePhase"]
