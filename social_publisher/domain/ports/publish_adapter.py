"""
Outbound port for per-platform publishing.

Each platform implements the same contract: resolve credentials,
validate, optional media transfer, publish. Account resolution and
outcome recording are shared and live in the application layer.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..entities import (
    CredentialHolder,
    Media,
    MediaKind,
    Platform,
    Post,
    SocialAccount,
    SocialAccountPage,
)


class MediaFailurePolicy(str, Enum):
    """What to do when a media transfer fails after validation passed."""

    DEGRADE = "degrade"  # publish text-only, flag partialFailure
    FAIL = "fail"


@dataclass
class ResolvedAccount:
    """Credential holder plus the platform-specific author identity."""

    holder: CredentialHolder
    author_identity: str
    target: str | None = None  # subreddit, board id...


@dataclass(frozen=True)
class AssetReference:
    """Platform-native reference produced by a media transfer."""

    kind: MediaKind
    content_type: str
    reference: str | None = None  # e.g. urn:li:digitalmediaAsset:...
    hosted_url: str | None = None  # set when no bytes were transferred


@dataclass
class PublishOutcome:
    external_id: str
    external_url: str
    raw: dict[str, Any] | None = None


@dataclass
class TokenGrant:
    """Result of a refresh_token round-trip."""

    access_token: str
    expires_in: int
    refresh_token: str | None = None


@dataclass
class PostAnalytics:
    likes: int | None = None
    comments: int | None = None
    shares: int | None = None
    impressions: int | None = None
    clicks: int | None = None


class AccountLookup(ABC):
    """
    Shared account resolution, handed to adapters.

    Implemented by the application-layer AccountResolver.
    """

    @abstractmethod
    async def resolve(
        self,
        post: Post,
        platform: Platform,
        record_failure: bool = True,
    ) -> CredentialHolder: ...

    @abstractmethod
    async def active_pages(
        self, account: SocialAccount, platform: Platform
    ) -> list[SocialAccountPage]: ...

    @abstractmethod
    async def brand_name(self, brand_id: str) -> str | None: ...


class PublishAdapter(ABC):
    """
    Outbound port for publishing to one social platform.

    Adapters are stateless apart from configuration and are shared by
    concurrent pipelines.
    """

    media_failure_policy: MediaFailurePolicy = MediaFailurePolicy.DEGRADE

    @property
    @abstractmethod
    def platform(self) -> Platform:
        """Return the platform this adapter handles."""
        ...

    @abstractmethod
    async def resolve_account(self, post: Post, resolver: AccountLookup) -> ResolvedAccount:
        """
        Find the credential holder for a post.

        Raises:
            NoConnectedAccount: Already recorded by the resolver
        """
        ...

    def validate(self, post: Post) -> None:
        """
        Check platform constraints before any network call.

        Raises:
            MediaValidationFailed: If the post cannot be published here
        """
        return None

    @abstractmethod
    async def refresh_access_token(self, refresh_token: str) -> TokenGrant:
        """
        Exchange a refresh token at the platform token endpoint.

        Raises:
            TokenRefreshFailed: On any failure
        """
        ...

    @abstractmethod
    async def upload_media(
        self,
        media: Media,
        access_token: str,
        resolved: ResolvedAccount,
    ) -> AssetReference:
        """
        Move a media asset into the platform.

        Raises:
            MediaTransferFailed: On network or platform error
        """
        ...

    @abstractmethod
    async def publish(
        self,
        post: Post,
        access_token: str,
        resolved: ResolvedAccount,
        asset: AssetReference | None,
    ) -> PublishOutcome:
        """
        Submit the post.

        Raises:
            PlatformRejected: With the normalized platform error
        """
        ...

    async def fetch_analytics(
        self,
        post: Post,
        access_token: str,
        resolved: ResolvedAccount,
    ) -> PostAnalytics:
        raise NotImplementedError(f"No analytics for {self.platform.value}")
