"""
Application service that turns a stored credential into a live access token.

Tokens are encrypted at rest and decrypted on read. An expired token is
refreshed at most once per materialize call; refreshes of one credential
holder are serialized in-process and guarded by a token_version
compare-and-swap in storage.
"""

import asyncio
from collections import defaultdict
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import structlog

from ...domain.entities import CredentialHolder, SocialAccount, SocialAccountPage
from ...domain.errors import TokenExpired, TokenRefreshFailed
from ...domain.ports import PublishAdapter, SocialAccountRepository, TokenCipher, UnitOfWork

logger = structlog.get_logger()


def is_token_expired(expires_at: datetime | None, now: datetime | None = None) -> bool:
    """True when the expiry is unknown or not in the future. No grace window."""
    if expires_at is None:
        return True
    now = now or datetime.now(UTC)
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=UTC)
    return expires_at <= now


class RefreshLocks:
    """
    One asyncio.Lock per credential holder.

    Shared by every pipeline in the process.
    """

    def __init__(self) -> None:
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def for_holder(self, holder: CredentialHolder) -> asyncio.Lock:
        return self._locks[_holder_key(holder)]


class TokenStore:
    """Materializes decrypted, unexpired access tokens."""

    def __init__(
        self,
        accounts: SocialAccountRepository,
        cipher: TokenCipher,
        unit_of_work: UnitOfWork,
        locks: RefreshLocks,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._accounts = accounts
        self._cipher = cipher
        self._uow = unit_of_work
        self._locks = locks
        self._clock = clock

    async def materialize(self, holder: CredentialHolder, adapter: PublishAdapter) -> str:
        """
        Return a live access token for the holder.

        Args:
            holder: SocialAccount or SocialAccountPage
            adapter: Adapter whose token endpoint performs refreshes

        Raises:
            TokenExpired: Expired with no refresh token
            TokenRefreshFailed: Refresh round-trip or persistence failed
        """
        if not is_token_expired(holder.token_expires_at, self._clock()):
            return self._cipher.decrypt(holder.access_token)

        async with self._locks.for_holder(holder):
            current = await self._reload(holder) or holder

            # Another pipeline refreshed while this one waited for the lock
            if not is_token_expired(current.token_expires_at, self._clock()):
                _sync_tokens(holder, current)
                logger.debug("Using token refreshed concurrently", holder=_holder_key(holder))
                return self._cipher.decrypt(current.access_token)

            if not current.refresh_token:
                logger.warning("Token expired without refresh token", holder=_holder_key(holder))
                raise TokenExpired(
                    f"{holder.platform.display_name} token is expired and cannot be refreshed"
                )

            return await self._refresh(holder, current, adapter)

    async def _refresh(
        self,
        holder: CredentialHolder,
        current: CredentialHolder,
        adapter: PublishAdapter,
    ) -> str:
        refresh_token = self._cipher.decrypt(current.refresh_token)

        logger.info("Refreshing expired token", holder=_holder_key(holder))
        grant = await adapter.refresh_access_token(refresh_token)

        expires_at = self._clock() + timedelta(seconds=grant.expires_in)
        encrypted_access = self._cipher.encrypt(grant.access_token)
        encrypted_refresh = self._cipher.encrypt(grant.refresh_token) if grant.refresh_token else None

        async with self._uow:
            if isinstance(holder, SocialAccountPage):
                swapped = await self._accounts.update_page_tokens(
                    holder.id, encrypted_access, encrypted_refresh, expires_at, current.token_version
                )
            else:
                swapped = await self._accounts.update_account_tokens(
                    holder.id, encrypted_access, encrypted_refresh, expires_at, current.token_version
                )
            await self._uow.commit()

        if not swapped:
            # Another process persisted its refresh first; its token wins
            winner = await self._reload(holder)
            if winner is not None and not is_token_expired(winner.token_expires_at, self._clock()):
                logger.info("Lost refresh race, using stored token", holder=_holder_key(holder))
                _sync_tokens(holder, winner)
                return self._cipher.decrypt(winner.access_token)
            raise TokenRefreshFailed("Refreshed token could not be persisted")

        holder.access_token = encrypted_access
        if encrypted_refresh:
            holder.refresh_token = encrypted_refresh
        holder.token_expires_at = expires_at
        holder.token_version = current.token_version + 1

        logger.info("Token refreshed", holder=_holder_key(holder), expires_at=expires_at.isoformat())
        return grant.access_token

    async def _reload(self, holder: CredentialHolder) -> CredentialHolder | None:
        if isinstance(holder, SocialAccountPage):
            return await self._accounts.get_page(holder.id)
        return await self._accounts.get_account(holder.id)


def _holder_key(holder: CredentialHolder) -> str:
    kind = "page" if isinstance(holder, SocialAccountPage) else "account"
    return f"{kind}:{holder.id}"


def _sync_tokens(target: SocialAccount | SocialAccountPage, source: CredentialHolder) -> None:
    target.access_token = source.access_token
    target.refresh_token = source.refresh_token
    target.token_expires_at = source.token_expires_at
    target.token_version = source.token_version
