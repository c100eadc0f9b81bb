"""
Exceptions raised by the supervisor.

Validation and not-found conditions reach the caller synchronously. Inspection
failures are raised by the inspector backends and swallowed by the tree walker
and port prober; only failures concerning the root of a kill request escape.
"""
from typing import List, Optional, Tuple


class RunstackError(Exception):
    """Base class for all supervisor errors."""


class ValidationRejected(RunstackError):
    """A command, argument, path or PID was refused before any OS call."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Validation rejected: {reason}")
        self.reason = reason


class NotFound(RunstackError):
    """The target process or path does not exist."""

    def __init__(self, target: str) -> None:
        super().__init__(f"Not found: {target}")
        self.target = target


class SpawnFailed(RunstackError):
    """Every shell candidate failed to launch the command."""

    def __init__(self, command: str, attempts: List[Tuple[str, str]]) -> None:
        tried = "; ".join(f"{shell}: {error}" for shell, error in attempts) or "no shell candidates"
        super().__init__(f"Failed to spawn '{command}' ({tried})")
        self.command = command
        self.attempts = attempts


class ExternalToolFailed(RunstackError):
    """An inspection utility could not be run or produced no usable output."""

    def __init__(self, tool: str, detail: Optional[str] = None) -> None:
        message = f"Inspection tool '{tool}' failed"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.tool = tool


class KillFailed(RunstackError):
    """The root of a kill request could not be terminated or verified."""

    def __init__(self, pid: int, detail: Optional[str] = None) -> None:
        message = f"Failed to kill process with PID {pid}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.pid = pid
