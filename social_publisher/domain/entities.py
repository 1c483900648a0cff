from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from .errors import InvalidStatusTransition


class Platform(str, Enum):
    """Social platforms a Post can target."""

    LINKEDIN = "LINKEDIN"
    REDDIT = "REDDIT"
    PINTEREST = "PINTEREST"
    FACEBOOK = "FACEBOOK"
    INSTAGRAM = "INSTAGRAM"
    TWITTER = "TWITTER"
    TIKTOK = "TIKTOK"
    YOUTUBE = "YOUTUBE"

    @property
    def display_name(self) -> str:
        if self is Platform.LINKEDIN:
            return "LinkedIn"
        if self is Platform.TIKTOK:
            return "TikTok"
        if self is Platform.YOUTUBE:
            return "YouTube"
        return self.value.capitalize()


class PostStatus(str, Enum):
    DRAFTED = "DRAFTED"
    SCHEDULED = "SCHEDULED"
    PUBLISHED = "PUBLISHED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (PostStatus.PUBLISHED, PostStatus.FAILED)


class MediaKind(str, Enum):
    IMAGE = "IMAGE"
    VIDEO = "VIDEO"


class NotificationType(str, Enum):
    POST_PUBLISHED = "POST_PUBLISHED"
    POST_FAILED = "POST_FAILED"


@dataclass
class Media:
    """File attached to a Post. Read-only for the publishing pipeline."""

    id: str
    post_id: str
    url: str
    type: str | None = None  # stored MIME-ish field: IMAGE, VIDEO, image/png...


@dataclass
class Post:
    """Post aggregate root, one platform per Post."""

    id: str
    user_id: str
    brand_id: str
    content: str
    platform: Platform
    status: PostStatus
    created_at: datetime
    updated_at: datetime
    social_account_page_id: str | None = None
    url: str | None = None
    failure_detail: dict[str, Any] | None = None
    scheduled_at: datetime | None = None
    published_at: datetime | None = None
    media: list[Media] = field(default_factory=list)

    @property
    def primary_media(self) -> Media | None:
        """Only the first attachment is ever transferred."""
        return self.media[0] if self.media else None

    def mark_published(self, url: str) -> None:
        """Move the post to PUBLISHED for the current attempt."""
        self._ensure_open(PostStatus.PUBLISHED)
        now = datetime.now(UTC)
        self.status = PostStatus.PUBLISHED
        self.url = url
        self.published_at = now
        self.updated_at = now

    def mark_failed(self, detail: dict[str, Any]) -> None:
        """Move the post to FAILED for the current attempt."""
        self._ensure_open(PostStatus.FAILED)
        self.status = PostStatus.FAILED
        self.failure_detail = detail
        self.updated_at = datetime.now(UTC)

    def record_partial_failure(self, detail: dict[str, Any]) -> None:
        """Keep a degraded-but-published attempt visible on the row."""
        self.failure_detail = {"partialFailure": True, **detail}
        self.updated_at = datetime.now(UTC)

    def _ensure_open(self, target: PostStatus) -> None:
        if self.status.is_terminal:
            raise InvalidStatusTransition(
                f"Cannot move post {self.id} from {self.status.value} to {target.value}"
            )


@dataclass
class SocialAccount:
    """Connected third-party identity with encrypted OAuth credentials."""

    id: str
    platform: Platform
    platform_user_id: str
    access_token: str
    platform_username: str | None = None
    refresh_token: str | None = None
    token_expires_at: datetime | None = None
    token_version: int = 0


@dataclass
class SocialAccountPage:
    """Page, board, subreddit or organization under a SocialAccount."""

    id: str
    social_account_id: str
    platform: Platform
    page_id: str
    name: str
    access_token: str
    refresh_token: str | None = None
    token_expires_at: datetime | None = None
    is_active: bool = True
    token_version: int = 0


# Anything that owns its own OAuth credential.
CredentialHolder = SocialAccount | SocialAccountPage


@dataclass
class LinkedAccount:
    """A brand-linked SocialAccount and the users who connected it."""

    account: SocialAccount
    connected_by: set[str] = field(default_factory=set)


@dataclass
class Notification:
    """Append-only outcome record shown to the user."""

    id: str
    user_id: str
    type: NotificationType
    title: str
    message: str
    metadata: dict[str, Any]
    read: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def create(
        cls,
        user_id: str,
        type: NotificationType,
        title: str,
        message: str,
        metadata: dict[str, Any],
    ) -> "Notification":
        """Factory method to create a new notification."""
        return cls(
            id=str(uuid4()),
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            metadata=metadata,
        )
