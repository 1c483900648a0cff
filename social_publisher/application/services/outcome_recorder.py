"""
Application service that records the terminal outcome of a publish attempt.

The Post status write and the Notification insert share one unit of work,
so neither is ever visible without the other.
"""

from collections.abc import Callable
from copy import copy
from typing import Any

import structlog

from ...domain.entities import Notification, NotificationType, Post
from ...domain.ports import NotificationRepository, PostRepository, UnitOfWork

logger = structlog.get_logger()


class OutcomeRecorder:
    """Writes PUBLISHED/FAILED transitions together with their notification."""

    def __init__(
        self,
        posts: PostRepository,
        notifications: NotificationRepository,
        unit_of_work: UnitOfWork,
    ) -> None:
        self._posts = posts
        self._notifications = notifications
        self._uow = unit_of_work

    async def record_success(
        self,
        post: Post,
        external_id: str,
        external_url: str,
        extra: dict[str, Any] | None = None,
    ) -> Notification:
        """
        Mark the post PUBLISHED and notify its author.

        Args:
            post: Post that was published
            external_id: Platform ID of the created post
            external_url: Public URL of the created post
            extra: Additional notification metadata

        Returns:
            The notification that was written
        """
        metadata: dict[str, Any] = {
            "postId": post.id,
            "platform": post.platform.value,
            "postUrl": external_url,
            "externalId": external_id,
        }
        if post.failure_detail and post.failure_detail.get("partialFailure"):
            metadata["partialFailure"] = True
            metadata["failureDetail"] = post.failure_detail
        if extra:
            metadata.update(extra)

        notification = Notification.create(
            user_id=post.user_id,
            type=NotificationType.POST_PUBLISHED,
            title="Post Published",
            message=f"Your post has been successfully published on {post.platform.display_name}",
            metadata=metadata,
        )

        await self._write(post, lambda: post.mark_published(external_url), notification)

        logger.info(
            "Post marked as published",
            post_id=post.id,
            platform=post.platform.value,
            external_id=external_id,
        )
        return notification

    async def record_failure(self, post: Post, error: Any, stage: str) -> Notification:
        """
        Mark the post FAILED and notify its author.

        Args:
            post: Post whose attempt failed
            error: Raw error detail, preserved for operators
            stage: Pipeline stage that failed

        Returns:
            The notification that was written
        """
        summary = _summarize(error)
        error = error if error is not None else "Unknown error"

        notification = Notification.create(
            user_id=post.user_id,
            type=NotificationType.POST_FAILED,
            title="Post Failed",
            message=f"Failed to publish your post on {post.platform.display_name}: {summary}",
            metadata={
                "postId": post.id,
                "platform": post.platform.value,
                "stage": stage,
                "error": error,
            },
        )

        await self._write(post, lambda: post.mark_failed({"stage": stage, "error": error}), notification)

        logger.error(
            "Post marked as failed",
            post_id=post.id,
            platform=post.platform.value,
            stage=stage,
            error=summary,
        )
        return notification

    async def _write(
        self,
        post: Post,
        transition: Callable[[], None],
        notification: Notification,
    ) -> None:
        previous = copy(post)
        try:
            async with self._uow:
                transition()
                await self._posts.save_status(post)
                await self._notifications.add(notification)
                await self._uow.commit()
        except Exception:
            # Rolled back in storage, so roll back the in-memory entity too
            post.status = previous.status
            post.url = previous.url
            post.published_at = previous.published_at
            post.failure_detail = previous.failure_detail
            post.updated_at = previous.updated_at
            raise


def _summarize(error: Any) -> str:
    """One-line message for the notification body."""
    if isinstance(error, dict):
        return str(error.get("message") or error.get("error") or "Unknown error")
    if error:
        return str(error)
    return "Unknown error"
