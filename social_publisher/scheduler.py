import asyncio
from collections.abc import Callable
from datetime import UTC, datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from .application.services import PublishService
from .domain.errors import InvalidStatusTransition, PublishError
from .domain.ports import PostRepository
from .infrastructure.persistence import PostgresPostRepository

logger = structlog.get_logger()


class DuePostScheduler:
    """
    Polls for due posts and publishes them concurrently.

    Each post gets its own pipeline and database session. Pipelines share
    the adapters, cipher, idempotency service and refresh locks captured
    by ``pipeline_factory``.
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        pipeline_factory: Callable[[AsyncSession], PublishService],
        batch_size: int = 100,
        max_concurrency: int = 10,
        posts_factory: Callable[[AsyncSession], PostRepository] = PostgresPostRepository,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._session_factory = session_factory
        self._pipeline_factory = pipeline_factory
        self._batch_size = batch_size
        self._max_concurrency = max_concurrency
        self._posts_factory = posts_factory
        self._clock = clock

    async def process_due_posts(self) -> int:
        """Publish every SCHEDULED post whose time has passed. Returns the number published."""
        now = self._clock()
        logger.info("Checking for due posts", timestamp=now.isoformat())

        async with self._session_factory() as session:
            post_ids = await self._posts_factory(session).list_due(now, self._batch_size)

        if not post_ids:
            logger.debug("No due posts found")
            return 0

        semaphore = asyncio.Semaphore(self._max_concurrency)
        results = await asyncio.gather(*(self._publish_one(post_id, semaphore) for post_id in post_ids))

        published = sum(1 for ok in results if ok)
        logger.info(
            "Processed due posts",
            due=len(post_ids),
            published=published,
            failed=len(post_ids) - published,
        )
        return published

    async def _publish_one(self, post_id: str, semaphore: asyncio.Semaphore) -> bool:
        async with semaphore:
            async with self._session_factory() as session:
                pipeline = self._pipeline_factory(session)
                try:
                    outcome = await pipeline.publish_by_id(post_id)
                except (PublishError, InvalidStatusTransition) as e:
                    # Already recorded on the post by the pipeline
                    logger.warning("Post not published", post_id=post_id, error=str(e))
                    return False
                except Exception:
                    logger.exception("Publish pipeline crashed", post_id=post_id)
                    return False
                return outcome is not None
