"""Clock port — wall-clock time and sleeping, injectable so tests control time."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime:
        """Current time as a timezone-aware datetime."""
        ...

    async def sleep(self, seconds: float) -> None: ...
