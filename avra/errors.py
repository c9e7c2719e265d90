"""Error taxonomy for command processing.

Every error raised by a command handler derives from :class:`AvraError`.  The
command engine converts them into failure outcomes so nothing propagates past
``CommandEngine.process``.
"""

from __future__ import annotations

from typing import Any


class AvraError(Exception):
    """Base class for recoverable game errors."""

    kind = "error"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details: dict[str, Any] = dict(details)


class ValidationError(AvraError):
    """Bad or missing arguments, or an unknown command."""

    kind = "validation"


class RateLimitError(AvraError):
    """A command arrived inside the rate-limit window."""

    kind = "rate_limit"


class PreconditionError(AvraError):
    """The game state does not allow the action (cooldown, balance, ...)."""

    kind = "precondition"


__all__ = ["AvraError", "PreconditionError", "RateLimitError", "ValidationError"]
