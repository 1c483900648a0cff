"""
Application service that runs one publish pipeline per Post.

    resolve -> validate -> materialize token -> media transfer -> publish -> record

Stages run sequentially. Every terminal error is recorded exactly once
(Post FAILED + notification) and then re-raised to the caller.
"""

from collections.abc import Iterable, Mapping

import structlog
from structlog.contextvars import bound_contextvars

from ...domain.entities import NotificationType, Platform, Post
from ...domain.errors import (
    InvalidStatusTransition,
    MediaTransferFailed,
    PublishError,
    UnsupportedPlatform,
)
from ...domain.ports import (
    AssetReference,
    IdempotencyPort,
    MediaFailurePolicy,
    PostRepository,
    PublishAdapter,
    PublishOutcome,
    ResolvedAccount,
)
from ...infrastructure.logging import Timer, sanitize_for_logging, set_correlation_id
from .account_resolver import AccountResolver
from .outcome_recorder import OutcomeRecorder
from .token_store import TokenStore

logger = structlog.get_logger()


class PublishService:
    """
    Publishes Posts through the adapter registered for their platform.

    Adapters, the token store's refresh locks and the idempotency service
    are shared between concurrent pipelines. Repositories and the unit of
    work behind the resolver/recorder belong to this pipeline only.
    """

    def __init__(
        self,
        adapters: Mapping[Platform, PublishAdapter],
        resolver: AccountResolver,
        token_store: TokenStore,
        recorder: OutcomeRecorder,
        idempotency: IdempotencyPort,
        posts: PostRepository | None = None,
        strict_media_platforms: Iterable[str] = (),
    ) -> None:
        """
        Initialize the pipeline.

        Args:
            adapters: Publish adapter per platform
            resolver: Shared account resolution
            token_store: Token decryption and refresh
            recorder: PUBLISHED/FAILED bookkeeping
            idempotency: In-flight and success-recording guard
            posts: Needed only by publish_by_id
            strict_media_platforms: Platforms where a media failure fails the post
        """
        self._adapters = adapters
        self._resolver = resolver
        self._token_store = token_store
        self._recorder = recorder
        self._idempotency = idempotency
        self._posts = posts
        self._strict_media = {name.upper() for name in strict_media_platforms}

    async def publish_by_id(self, post_id: str) -> PublishOutcome | None:
        """Load a post with its media and publish it."""
        if self._posts is None:
            raise RuntimeError("PublishService was built without a PostRepository")

        post = await self._posts.get_by_id(post_id)
        if post is None:
            logger.error("Post not found", post_id=post_id)
            return None
        return await self.publish(post)

    async def publish(self, post: Post) -> PublishOutcome | None:
        """
        Run the full pipeline for one post.

        Args:
            post: Post in DRAFTED or SCHEDULED status

        Returns:
            The platform outcome, or None if another pipeline already
            holds this post

        Raises:
            InvalidStatusTransition: If the post is already PUBLISHED or FAILED
            PublishError: Any terminal pipeline error, after it was recorded
        """
        if post.status.is_terminal:
            raise InvalidStatusTransition(f"Post {post.id} is already {post.status.value}")

        guard_key = self._idempotency.generate_key(post.id, [post.platform.value])
        existing = self._idempotency.check_and_lock(guard_key)
        if existing is not None:
            logger.info(
                "Skipping post, pipeline already ran or is running",
                post_id=post.id,
                platform=post.platform.value,
                status=existing.status,
            )
            return None

        set_correlation_id(post.id)
        with bound_contextvars(post_id=post.id, platform=post.platform.value):
            try:
                with Timer() as timer:
                    outcome = await self._run(post)
            except PublishError as e:
                self._idempotency.mark_failed(guard_key, str(e))
                logger.error("Publish failed", stage=e.stage, error=str(e))
                if not e.recorded:
                    await self._recorder.record_failure(post, e.detail, e.stage)
                    e.recorded = True
                raise
            except InvalidStatusTransition as e:
                # Another writer already finished this post
                self._idempotency.mark_failed(guard_key, str(e))
                logger.warning("Post was finalized concurrently", error=str(e))
                raise
            except Exception as e:
                self._idempotency.mark_failed(guard_key, str(e))
                logger.exception("Unexpected publish failure", stage=PublishError.stage)
                await self._recorder.record_failure(
                    post, str(e) or type(e).__name__, PublishError.stage
                )
                raise

            self._idempotency.mark_completed(
                guard_key,
                {"external_id": outcome.external_id, "external_url": outcome.external_url},
            )
            logger.info(
                "Post published",
                external_id=sanitize_for_logging(outcome.external_id, 40),
                partial_failure=bool(post.failure_detail),
                duration_ms=timer.duration_ms,
            )
            return outcome

    async def _run(self, post: Post) -> PublishOutcome:
        adapter = self._adapter_for(post.platform)

        resolved = await adapter.resolve_account(post, self._resolver)
        adapter.validate(post)

        access_token = await self._token_store.materialize(resolved.holder, adapter)

        asset = await self._transfer_media(post, adapter, access_token, resolved)
        outcome = await adapter.publish(post, access_token, resolved, asset)

        await self._record_success_once(post, outcome)
        return outcome

    def _adapter_for(self, platform: Platform) -> PublishAdapter:
        adapter = self._adapters.get(platform)
        if adapter is None:
            raise UnsupportedPlatform(f"Publishing to {platform.display_name} is not supported")
        return adapter

    def _media_policy(self, adapter: PublishAdapter) -> MediaFailurePolicy:
        if adapter.platform.value in self._strict_media:
            return MediaFailurePolicy.FAIL
        return adapter.media_failure_policy

    async def _transfer_media(
        self,
        post: Post,
        adapter: PublishAdapter,
        access_token: str,
        resolved: ResolvedAccount,
    ) -> AssetReference | None:
        media = post.primary_media
        if media is None:
            return None

        if len(post.media) > 1:
            logger.debug("Only the first media item is published", ignored=len(post.media) - 1)

        try:
            return await adapter.upload_media(media, access_token, resolved)
        except MediaTransferFailed as e:
            if self._media_policy(adapter) is MediaFailurePolicy.FAIL:
                raise
            logger.warning("Media transfer failed, publishing text only", error=str(e))
            post.record_partial_failure({"stage": e.stage, "error": e.detail})
            return None

    async def _record_success_once(self, post: Post, outcome: PublishOutcome) -> None:
        key = self._idempotency.generate_key(
            post.id, [NotificationType.POST_PUBLISHED.value, outcome.external_id]
        )
        if self._idempotency.check_and_lock(key) is not None:
            logger.info("Success already recorded", external_id=outcome.external_id)
            return

        try:
            await self._recorder.record_success(post, outcome.external_id, outcome.external_url)
        except Exception:
            self._idempotency.release_lock(key)
            raise
        self._idempotency.mark_completed(key, {"external_url": outcome.external_url})
