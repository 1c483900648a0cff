"""
Outbound port for Post persistence.

This port defines the interface for reading posts and writing their
publish status. Implementations live in the infrastructure layer.
"""

from abc import ABC, abstractmethod
from datetime import datetime

from ..entities import Post


class PostRepository(ABC):
    """
    Outbound port for Post persistence.

    This abstraction allows the application layer to work with posts
    without knowing about the underlying storage mechanism.
    """

    @abstractmethod
    async def get_by_id(self, post_id: str) -> Post | None:
        """
        Retrieve a post and its media by ID.

        Args:
            post_id: ID of the post

        Returns:
            Post if found, None otherwise
        """
        ...

    @abstractmethod
    async def list_due(self, now: datetime, limit: int) -> list[str]:
        """
        List IDs of SCHEDULED posts whose scheduled time has passed.

        Args:
            now: Reference time
            limit: Maximum number of IDs to return

        Returns:
            Post IDs, oldest schedule first
        """
        ...

    @abstractmethod
    async def save_status(self, post: Post) -> None:
        """
        Persist status, url, published_at and failure_detail of a post.

        Raises:
            InvalidStatusTransition: If the stored post is already terminal
        """
        ...
