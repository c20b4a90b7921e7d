"""Time source for the orchestration engines."""

from abc import ABC, abstractmethod
from datetime import datetime

from src.core.entities.movement import utc_now


class IClock(ABC):
    """Supplies the current time."""

    @abstractmethod
    def now(self) -> datetime:
        """Current aware UTC time."""
        pass


class SystemClock(IClock):
    """Wall-clock time."""

    def now(self) -> datetime:
        return utc_now()
