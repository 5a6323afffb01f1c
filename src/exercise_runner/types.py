"""Shared types for exercise-runner.

Defines the resolved entry point and the tagged outcome of a supervised run.
"""

from __future__ import annotations

import signal
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

__all__ = [
    "EntryPoint",
    "TerminationReason",
    "NormalExit",
    "SignalExit",
    "SpawnError",
    "KillRequested",
    "Interrupted",
    "FatalUncaught",
    "OrchestrationFailed",
]


@dataclass(frozen=True)
class EntryPoint:
    """A runnable exercise implementation.

    Attributes:
        exercise_id: Identifier the user asked for
        directory: Candidate directory, used as the child's cwd
        entry_file: Absolute path to the entry script inside directory
    """

    exercise_id: str
    directory: Path
    entry_file: Path


def _signal_name(signum: int) -> str:
    try:
        return signal.Signals(signum).name
    except ValueError:
        return str(signum)


class TerminationReason(ABC):
    """Why a supervised run ended. Drives the final process exit code."""

    @property
    @abstractmethod
    def exit_code(self) -> int:
        """Process exit code for this outcome."""


@dataclass(frozen=True)
class NormalExit(TerminationReason):
    """Child exited on its own with a numeric code."""

    code: int

    @property
    def exit_code(self) -> int:
        return self.code


@dataclass(frozen=True)
class SignalExit(TerminationReason):
    """Child was terminated by a signal and has no exit code."""

    signum: int

    @property
    def signal_name(self) -> str:
        return _signal_name(self.signum)

    @property
    def exit_code(self) -> int:
        return 0


@dataclass(frozen=True)
class SpawnError(TerminationReason):
    """The child process could not be created."""

    error: BaseException

    @property
    def exit_code(self) -> int:
        return 1


@dataclass(frozen=True)
class KillRequested(TerminationReason):
    """The user pressed a kill gesture."""

    @property
    def exit_code(self) -> int:
        return 0


@dataclass(frozen=True)
class Interrupted(TerminationReason):
    """The supervisor received SIGINT, SIGTERM or SIGHUP."""

    signum: int

    @property
    def signal_name(self) -> str:
        return _signal_name(self.signum)

    @property
    def exit_code(self) -> int:
        return 0


@dataclass(frozen=True)
class FatalUncaught(TerminationReason):
    """An exception escaped into the event loop exception handler."""

    error: BaseException | None

    @property
    def exit_code(self) -> int:
        return 0


@dataclass(frozen=True)
class OrchestrationFailed(TerminationReason):
    """The supervisor itself raised while orchestrating the run."""

    error: BaseException

    @property
    def exit_code(self) -> int:
        return 1
