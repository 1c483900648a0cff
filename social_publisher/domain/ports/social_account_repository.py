"""
Outbound port for connected social accounts and pages.
"""

from abc import ABC, abstractmethod
from datetime import datetime

from ..entities import LinkedAccount, Platform, SocialAccount, SocialAccountPage


class SocialAccountRepository(ABC):
    """
    Outbound port for SocialAccount / SocialAccountPage storage.

    Token columns are always read and written encrypted.
    """

    @abstractmethod
    async def list_brand_accounts(self, platform: Platform, brand_id: str) -> list[LinkedAccount]:
        """
        List accounts of a platform linked to a brand.

        Returns:
            Each account with the IDs of the users who connected it
        """
        ...

    @abstractmethod
    async def list_brand_member_ids(self, brand_id: str) -> set[str]:
        """Return IDs of users that are members of the brand."""
        ...

    @abstractmethod
    async def get_account(self, account_id: str) -> SocialAccount | None: ...

    @abstractmethod
    async def get_page(self, page_id: str) -> SocialAccountPage | None: ...

    @abstractmethod
    async def list_active_pages(self, account_id: str, platform: Platform) -> list[SocialAccountPage]:
        """Return active pages under an account, newest first."""
        ...

    @abstractmethod
    async def get_brand_name(self, brand_id: str) -> str | None: ...

    @abstractmethod
    async def update_account_tokens(
        self,
        account_id: str,
        access_token: str,
        refresh_token: str | None,
        expires_at: datetime,
        expected_version: int,
    ) -> bool:
        """
        Persist refreshed (encrypted) tokens with a compare-and-swap.

        Args:
            account_id: Account to update
            access_token: Encrypted access token
            refresh_token: Encrypted refresh token, None keeps the stored one
            expires_at: New expiry
            expected_version: token_version read before refreshing

        Returns:
            False if another writer bumped token_version first
        """
        ...

    @abstractmethod
    async def update_page_tokens(
        self,
        page_id: str,
        access_token: str,
        refresh_token: str | None,
        expires_at: datetime,
        expected_version: int,
    ) -> bool:
        """Page counterpart of update_account_tokens."""
        ...
