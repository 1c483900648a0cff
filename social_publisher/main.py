import asyncio
import signal
from collections.abc import Callable

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy.ext.asyncio import AsyncSession

from .application.services import (
    AccountResolver,
    OutcomeRecorder,
    PublishService,
    RefreshLocks,
    TokenStore,
)
from .config import Settings, settings
from .domain.entities import Platform
from .domain.ports import IdempotencyPort, PublishAdapter, TokenCipher
from .infrastructure.adapters import PublishAdapterFactory
from .infrastructure.crypto import AesGcmTokenCipher
from .infrastructure.idempotency import InMemoryIdempotencyService
from .infrastructure.logging import configure_logging
from .infrastructure.persistence import (
    Database,
    PostgresNotificationRepository,
    PostgresPostRepository,
    PostgresSocialAccountRepository,
    SqlAlchemyUnitOfWork,
)
from .scheduler import DuePostScheduler

# Configure enterprise logging
configure_logging(settings.service_name)

logger = structlog.get_logger()


def build_pipeline_factory(
    adapters: dict[Platform, PublishAdapter],
    cipher: TokenCipher,
    idempotency: IdempotencyPort,
    locks: RefreshLocks,
    config: Settings,
) -> Callable[[AsyncSession], PublishService]:
    """Wire a PublishService around one session (Composition Root)."""

    def factory(session: AsyncSession) -> PublishService:
        uow = SqlAlchemyUnitOfWork(session)
        posts = PostgresPostRepository(session)
        accounts = PostgresSocialAccountRepository(session)
        recorder = OutcomeRecorder(posts, PostgresNotificationRepository(session), uow)

        return PublishService(
            adapters=adapters,
            resolver=AccountResolver(accounts, recorder),
            token_store=TokenStore(accounts, cipher, uow, locks),
            recorder=recorder,
            idempotency=idempotency,
            posts=posts,
            strict_media_platforms=config.strict_media_platforms,
        )

    return factory


async def poll_job(due_posts: DuePostScheduler) -> None:
    """Job that runs on schedule to publish due posts."""
    try:
        await due_posts.process_due_posts()
    except Exception as e:
        logger.warning("Poll job failed, will retry next interval", error=str(e))


async def main() -> None:
    """Main entry point for the publisher service."""
    logger.info("Starting publisher", service=settings.service_name)

    database = Database(settings.database_url, pool_size=settings.max_concurrent_publishes)
    adapters = PublishAdapterFactory(settings).create_all()
    due_posts = DuePostScheduler(
        session_factory=database.session,
        pipeline_factory=build_pipeline_factory(
            adapters=adapters,
            cipher=AesGcmTokenCipher(settings.token_encryption_key, settings.token_cipher_aad),
            idempotency=InMemoryIdempotencyService(),
            locks=RefreshLocks(),
            config=settings,
        ),
        batch_size=settings.batch_size,
        max_concurrency=settings.max_concurrent_publishes,
    )

    # Set up APScheduler
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        poll_job,
        "interval",
        seconds=settings.poll_interval_seconds,
        args=[due_posts],
        id="publish_due_posts",
        max_instances=1,  # Prevent overlapping runs
    )

    # Handle shutdown signals
    stopped = asyncio.Event()
    loop = asyncio.get_running_loop()

    def shutdown() -> None:
        scheduler.shutdown(wait=False)
        stopped.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, shutdown)

    scheduler.start()
    logger.info(
        "Publisher started",
        poll_interval=settings.poll_interval_seconds,
        platforms=sorted(p.value for p in adapters),
    )

    # Run initial poll immediately
    await poll_job(due_posts)

    try:
        await stopped.wait()
    finally:
        await database.close()
        logger.info("Publisher shutdown complete")


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
