"""
Application service for engagement analytics of published posts.
"""

from collections.abc import Mapping

import structlog

from ...domain.entities import CredentialHolder, Platform, Post, PostStatus, SocialAccount, SocialAccountPage
from ...domain.errors import UnsupportedPlatform
from ...domain.ports import AccountLookup, PostAnalytics, PublishAdapter
from .token_store import TokenStore

logger = structlog.get_logger()


class AnalyticsService:
    """
    Fetches analytics through the post's platform adapter.

    Reading analytics never touches the post's status, so account
    misses are raised without failure bookkeeping.

    The polling service does not use it. It is a library entry point for
    callers that report on published posts, built from the same adapter
    map as the pipeline::

        adapters = PublishAdapterFactory(settings).create_all()
        analytics = await AnalyticsService(adapters, resolver, token_store).fetch(post)
    """

    def __init__(
        self,
        adapters: Mapping[Platform, PublishAdapter],
        resolver: AccountLookup,
        token_store: TokenStore,
    ) -> None:
        self._adapters = adapters
        self._resolver = _ReadOnlyLookup(resolver)
        self._token_store = token_store

    async def fetch(self, post: Post) -> PostAnalytics:
        """
        Fetch analytics for a published post.

        Raises:
            ValueError: If the post has not been published
            UnsupportedPlatform: If no adapter handles the platform
            NotImplementedError: If the adapter has no analytics
        """
        if post.status is not PostStatus.PUBLISHED or not post.url:
            raise ValueError(f"Post {post.id} has not been published")

        adapter = self._adapters.get(post.platform)
        if adapter is None:
            raise UnsupportedPlatform(f"Publishing to {post.platform.display_name} is not supported")

        resolved = await adapter.resolve_account(post, self._resolver)
        access_token = await self._token_store.materialize(resolved.holder, adapter)

        analytics = await adapter.fetch_analytics(post, access_token, resolved)
        logger.info("Fetched post analytics", post_id=post.id, platform=post.platform.value)
        return analytics


class _ReadOnlyLookup(AccountLookup):
    """Delegates to a resolver with failure recording switched off."""

    def __init__(self, inner: AccountLookup) -> None:
        self._inner = inner

    async def resolve(
        self,
        post: Post,
        platform: Platform,
        record_failure: bool = True,
    ) -> CredentialHolder:
        return await self._inner.resolve(post, platform, record_failure=False)

    async def active_pages(
        self, account: SocialAccount, platform: Platform
    ) -> list[SocialAccountPage]:
        return await self._inner.active_pages(account, platform)

    async def brand_name(self, brand_id: str) -> str | None:
        return await self._inner.brand_name(brand_id)
