from __future__ import annotations

from dataclasses import dataclass, field
import time
from threading import Event
from typing import Optional

from services.errors import DeadlineExceeded, OperationCancelled


@dataclass
class OperationContext:
    """Deadline and cancellation signal shared by one caller's operations.

    Stores and the identity manager call ``raise_if_done`` on entry and before
    each blocking call so a cancelled caller never gets a partial mutation.
    """

    deadline: Optional[float] = None
    cancelled: Event = field(default_factory=Event)

    @classmethod
    def background(cls) -> "OperationContext":
        return cls()

    @classmethod
    def with_timeout(cls, seconds: float) -> "OperationContext":
        return cls(deadline=time.monotonic() + seconds)

    def cancel(self) -> None:
        self.cancelled.set()

    def raise_if_done(self) -> None:
        if self.cancelled.is_set():
            raise OperationCancelled()
        if self.deadline is not None and time.monotonic() >= self.deadline:
            raise DeadlineExceeded()
