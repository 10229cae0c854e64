"""Explicit cancellation and deadline handle for remote calls."""

import time
from dataclasses import dataclass, field
from typing import Optional

from infrakit.common.errors import DeadlineExceededError, OperationCancelledError


@dataclass
class CallContext:
    """Cancellation and deadline state threaded through every remote call.

    The retry helpers call ``check()`` before each attempt, so a cancelled
    context stops further network calls instead of continuing to retry.

    Attributes:
        deadline: ``time.monotonic()`` value after which no attempt starts,
            or None for no deadline.
    """

    deadline: Optional[float] = None
    _cancelled: bool = field(default=False, repr=False)
    _reason: str = field(default="", repr=False)

    @classmethod
    def background(cls) -> "CallContext":
        """A context that is never cancelled and has no deadline."""
        return cls()

    @classmethod
    def with_timeout(cls, seconds: float) -> "CallContext":
        """A context whose deadline is ``seconds`` from now."""
        return cls(deadline=time.monotonic() + seconds)

    def cancel(self, reason: str = "cancelled") -> None:
        self._cancelled = True
        self._reason = reason

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None without a deadline."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def check(self, description: str = "") -> None:
        """Raise if the context is cancelled or past its deadline.

        Raises:
            OperationCancelledError: If ``cancel()`` was called.
            DeadlineExceededError: If the deadline has passed.
        """
        if self._cancelled:
            raise OperationCancelledError(f"{description}: {self._reason}")
        if self.deadline is not None and time.monotonic() >= self.deadline:
            raise DeadlineExceededError(f"{description}: deadline exceeded")
