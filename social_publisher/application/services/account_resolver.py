"""
Application service that finds the connected account a post publishes through.

Shared by every platform adapter.
"""

import structlog

from ...domain.entities import (
    CredentialHolder,
    LinkedAccount,
    Platform,
    Post,
    SocialAccount,
    SocialAccountPage,
)
from ...domain.errors import NoConnectedAccount
from ...domain.ports import AccountLookup, SocialAccountRepository
from .outcome_recorder import OutcomeRecorder

logger = structlog.get_logger()


class AccountResolver(AccountLookup):
    """
    Resolves a SocialAccount or SocialAccountPage for a post.

    Accounts: linked to the post's brand AND connected either by the
    posting user or by another member of the same brand. Pages: active,
    of the right platform, and owned by an account linked to the brand.

    A miss is recorded (Post FAILED + notification) before
    NoConnectedAccount is raised, so callers never repeat that bookkeeping.
    """

    def __init__(
        self,
        accounts: SocialAccountRepository,
        recorder: OutcomeRecorder,
    ) -> None:
        self._accounts = accounts
        self._recorder = recorder

    async def resolve(
        self,
        post: Post,
        platform: Platform,
        record_failure: bool = True,
    ) -> CredentialHolder:
        """
        Resolve the credential holder for a post.

        Args:
            post: Post being published
            platform: Platform of the adapter asking
            record_failure: False for read-only callers (analytics)

        Raises:
            NoConnectedAccount: If nothing eligible exists
        """
        if not post.brand_id or not post.user_id:
            return await self._miss(post, platform, "Post has no brand or author", record_failure)

        linked = await self._accounts.list_brand_accounts(platform, post.brand_id)

        if post.social_account_page_id:
            page = await self._resolve_page(post, platform, linked)
            if page is None:
                return await self._miss(
                    post,
                    platform,
                    f"No active {platform.display_name} page connected for this brand",
                    record_failure,
                )
            return page

        account = await self._resolve_account(post, linked)
        if account is None:
            return await self._miss(
                post,
                platform,
                f"No connected {platform.display_name} account for this brand",
                record_failure,
            )
        return account

    async def active_pages(
        self, account: SocialAccount, platform: Platform
    ) -> list[SocialAccountPage]:
        return await self._accounts.list_active_pages(account.id, platform)

    async def brand_name(self, brand_id: str) -> str | None:
        return await self._accounts.get_brand_name(brand_id)

    async def _resolve_account(
        self, post: Post, linked: list[LinkedAccount]
    ) -> SocialAccount | None:
        # Case 1: the posting user connected the account
        for candidate in linked:
            if post.user_id in candidate.connected_by:
                logger.debug("Resolved account connected by author", account_id=candidate.account.id)
                return candidate.account

        # Case 2: a teammate on the same brand connected it
        members = await self._accounts.list_brand_member_ids(post.brand_id)
        if post.user_id not in members:
            return None

        for candidate in linked:
            if candidate.connected_by & members:
                logger.debug("Resolved account shared by brand member", account_id=candidate.account.id)
                return candidate.account

        return None

    async def _resolve_page(
        self,
        post: Post,
        platform: Platform,
        linked: list[LinkedAccount],
    ) -> SocialAccountPage | None:
        page = await self._accounts.get_page(post.social_account_page_id)
        if page is None or page.platform != platform or not page.is_active:
            return None

        brand_account_ids = {candidate.account.id for candidate in linked}
        if page.social_account_id not in brand_account_ids:
            logger.warning(
                "Page is not linked to the post's brand",
                page_id=page.id,
                brand_id=post.brand_id,
            )
            return None

        return page

    async def _miss(
        self,
        post: Post,
        platform: Platform,
        reason: str,
        record_failure: bool,
    ) -> CredentialHolder:
        logger.warning(
            "No connected account",
            post_id=post.id,
            platform=platform.value,
            stage=NoConnectedAccount.stage,
            reason=reason,
        )
        if record_failure:
            await self._recorder.record_failure(post, reason, NoConnectedAccount.stage)
        raise NoConnectedAccount(reason, recorded=record_failure)
