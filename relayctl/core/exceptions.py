"""Exception hierarchy for the relay control plane."""

from __future__ import annotations

from collections.abc import Sequence


class RelayError(Exception):
    """Base exception for all control-plane errors."""


class ValidationError(RelayError):
    """Input or configuration failed validation.

    ``messages`` holds every diagnostic line verbatim so callers can surface
    the specific failure to the operator.
    """

    def __init__(self, messages: Sequence[str] | str) -> None:
        if isinstance(messages, str):
            messages = [messages]
        self.messages: list[str] = list(messages)
        super().__init__("; ".join(self.messages) or "validation failed")


class NotFoundError(RelayError):
    """Unknown map key, queue id, alert, rule or config version."""


class ConflictError(RelayError):
    """The requested change conflicts with current state (e.g. duplicate key)."""


class InjectionRejectedError(RelayError):
    """A queue id failed format validation before any process was spawned."""


class ConfigIOError(RelayError, OSError):
    """Filesystem failure while mutating a managed file.

    The atomic write guarantee means the original file is untouched.
    """


class ExternalToolError(RelayError):
    """An external tool (check, reload, postmap, queue tools) exited non-zero."""

    def __init__(
        self,
        command: Sequence[str],
        output: str,
        returncode: int | None = None,
    ) -> None:
        self.command = list(command)
        self.output = output.strip()
        self.returncode = returncode
        super().__init__(self.output or f"{self.command[0]} failed")
