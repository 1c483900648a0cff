from abc import ABC, abstractmethod

from ..entities import Notification


class NotificationRepository(ABC):
    """Outbound port for the append-only notification log."""

    @abstractmethod
    async def add(self, notification: Notification) -> None:
        """Insert a notification. Becomes visible on commit."""
        ...
