from datetime import UTC, datetime
from typing import Any, overload

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from ...domain.entities import (
    Media,
    Notification,
    Platform,
    Post,
    PostStatus,
    SocialAccount,
    SocialAccountPage,
)


def _naive_utc(dt: datetime | None) -> datetime | None:
    """Strip timezone info for storage in TIMESTAMP WITHOUT TIME ZONE columns."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(UTC)
    return dt.replace(tzinfo=None)


@overload
def _aware_utc(dt: datetime) -> datetime: ...


@overload
def _aware_utc(dt: None) -> None: ...


@overload
def _aware_utc(dt: datetime | None) -> datetime | None: ...


def _aware_utc(dt: datetime | None) -> datetime | None:
    """Attach UTC timezone to naive datetimes read from the database."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


class Base(DeclarativeBase):
    pass


class BrandModel(Base):
    __tablename__ = "brands"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)


class UserBrandModel(Base):
    """Brand membership."""

    __tablename__ = "user_brands"

    user_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    brand_id: Mapped[str] = mapped_column(String(255), ForeignKey("brands.id"), primary_key=True)


class PostModel(Base):
    """SQLAlchemy model for Post entity."""

    __tablename__ = "posts"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    brand_id: Mapped[str] = mapped_column(String(255), ForeignKey("brands.id"), nullable=False, index=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    platform: Mapped[str] = mapped_column(String(50), nullable=False)
    social_account_page_id: Mapped[str | None] = mapped_column(
        String(255), ForeignKey("social_account_pages.id")
    )
    status: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    url: Mapped[str | None] = mapped_column(String(2048))
    failure_detail: Mapped[dict[str, Any] | None] = mapped_column(JSONB)
    scheduled_at: Mapped[datetime | None] = mapped_column(DateTime, index=True)
    published_at: Mapped[datetime | None] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    media: Mapped[list["MediaModel"]] = relationship(
        back_populates="post",
        order_by="MediaModel.created_at",
    )

    def to_entity(self) -> Post:
        """Convert ORM model to domain entity."""
        return Post(
            id=self.id,
            user_id=self.user_id,
            brand_id=self.brand_id,
            content=self.content,
            platform=Platform(self.platform),
            status=PostStatus(self.status),
            created_at=_aware_utc(self.created_at),
            updated_at=_aware_utc(self.updated_at),
            social_account_page_id=self.social_account_page_id,
            url=self.url,
            failure_detail=self.failure_detail,
            scheduled_at=_aware_utc(self.scheduled_at),
            published_at=_aware_utc(self.published_at),
            media=[m.to_entity() for m in self.media],
        )


class MediaModel(Base):
    __tablename__ = "media"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    post_id: Mapped[str] = mapped_column(String(255), ForeignKey("posts.id"), nullable=False, index=True)
    url: Mapped[str] = mapped_column(String(2048), nullable=False)
    type: Mapped[str | None] = mapped_column(String(100))
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    post: Mapped["PostModel"] = relationship(back_populates="media")

    def to_entity(self) -> Media:
        return Media(id=self.id, post_id=self.post_id, url=self.url, type=self.type)


class SocialAccountModel(Base):
    """Connected platform identity. Token columns hold encrypted envelopes."""

    __tablename__ = "social_accounts"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    platform: Mapped[str] = mapped_column(String(50), nullable=False)
    platform_user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    platform_username: Mapped[str | None] = mapped_column(String(255))
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token: Mapped[str | None] = mapped_column(Text)
    token_expires_at: Mapped[datetime | None] = mapped_column(DateTime)
    token_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    def to_entity(self) -> SocialAccount:
        return SocialAccount(
            id=self.id,
            platform=Platform(self.platform),
            platform_user_id=self.platform_user_id,
            platform_username=self.platform_username,
            access_token=self.access_token,
            refresh_token=self.refresh_token,
            token_expires_at=_aware_utc(self.token_expires_at),
            token_version=self.token_version,
        )


class BrandSocialAccountModel(Base):
    __tablename__ = "brand_social_accounts"

    brand_id: Mapped[str] = mapped_column(String(255), ForeignKey("brands.id"), primary_key=True)
    social_account_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("social_accounts.id"), primary_key=True
    )


class UserSocialAccountModel(Base):
    """Which users connected which account."""

    __tablename__ = "user_social_accounts"

    user_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    social_account_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("social_accounts.id"), primary_key=True
    )


class SocialAccountPageModel(Base):
    __tablename__ = "social_account_pages"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    social_account_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("social_accounts.id"), nullable=False, index=True
    )
    platform: Mapped[str] = mapped_column(String(50), nullable=False)
    page_id: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token: Mapped[str | None] = mapped_column(Text)
    token_expires_at: Mapped[datetime | None] = mapped_column(DateTime)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    token_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    def to_entity(self) -> SocialAccountPage:
        return SocialAccountPage(
            id=self.id,
            social_account_id=self.social_account_id,
            platform=Platform(self.platform),
            page_id=self.page_id,
            name=self.name,
            access_token=self.access_token,
            refresh_token=self.refresh_token,
            token_expires_at=_aware_utc(self.token_expires_at),
            is_active=self.is_active,
            token_version=self.token_version,
        )


class NotificationModel(Base):
    """SQLAlchemy model for Notification entity."""

    __tablename__ = "notifications"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    # "metadata" is reserved on declarative classes
    metadata_: Mapped[dict[str, Any]] = mapped_column("metadata", JSONB, nullable=False)
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    @classmethod
    def from_entity(cls, notification: Notification) -> "NotificationModel":
        """Convert domain entity to ORM model."""
        return cls(
            id=notification.id,
            user_id=notification.user_id,
            type=notification.type.value,
            title=notification.title,
            message=notification.message,
            metadata_=notification.metadata,
            read=notification.read,
            created_at=_naive_utc(notification.created_at),
        )
