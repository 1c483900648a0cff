from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ...domain.entities import (
    LinkedAccount,
    Notification,
    Platform,
    Post,
    PostStatus,
    SocialAccount,
    SocialAccountPage,
)
from ...domain.errors import InvalidStatusTransition
from ...domain.ports import NotificationRepository, PostRepository, SocialAccountRepository
from .models import (
    BrandModel,
    BrandSocialAccountModel,
    NotificationModel,
    PostModel,
    SocialAccountModel,
    SocialAccountPageModel,
    UserBrandModel,
    UserSocialAccountModel,
    _naive_utc,
)

OPEN_STATUSES = (PostStatus.DRAFTED.value, PostStatus.SCHEDULED.value)


class PostgresPostRepository(PostRepository):
    """PostgreSQL implementation of PostRepository."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, post_id: str) -> Post | None:
        """Retrieve a post with its media."""
        stmt = (
            select(PostModel)
            .where(PostModel.id == post_id)
            .options(selectinload(PostModel.media))
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return model.to_entity() if model else None

    async def list_due(self, now: datetime, limit: int) -> list[str]:
        """IDs of scheduled posts whose time has come, oldest first."""
        stmt = (
            select(PostModel.id)
            .where(
                PostModel.status == PostStatus.SCHEDULED.value,
                PostModel.scheduled_at <= _naive_utc(now),
            )
            .order_by(PostModel.scheduled_at)
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars())

    async def save_status(self, post: Post) -> None:
        """Write the outcome columns, only while the stored row is still open."""
        stmt = (
            update(PostModel)
            .where(PostModel.id == post.id, PostModel.status.in_(OPEN_STATUSES))
            .values(
                status=post.status.value,
                url=post.url,
                published_at=_naive_utc(post.published_at),
                failure_detail=post.failure_detail,
                updated_at=_naive_utc(post.updated_at),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            raise InvalidStatusTransition(f"Post {post.id} is missing or already finalized")


class PostgresSocialAccountRepository(SocialAccountRepository):
    """PostgreSQL implementation of SocialAccountRepository."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def list_brand_accounts(self, platform: Platform, brand_id: str) -> list[LinkedAccount]:
        stmt = (
            select(SocialAccountModel)
            .join(
                BrandSocialAccountModel,
                BrandSocialAccountModel.social_account_id == SocialAccountModel.id,
            )
            .where(
                BrandSocialAccountModel.brand_id == brand_id,
                SocialAccountModel.platform == platform.value,
            )
            .order_by(SocialAccountModel.created_at)
        )
        result = await self._session.execute(stmt)
        accounts = [model.to_entity() for model in result.scalars()]
        if not accounts:
            return []

        connections = await self._session.execute(
            select(UserSocialAccountModel.social_account_id, UserSocialAccountModel.user_id).where(
                UserSocialAccountModel.social_account_id.in_([a.id for a in accounts])
            )
        )
        connected_by: dict[str, set[str]] = {a.id: set() for a in accounts}
        for account_id, user_id in connections:
            connected_by[account_id].add(user_id)

        return [LinkedAccount(account=a, connected_by=connected_by[a.id]) for a in accounts]

    async def list_brand_member_ids(self, brand_id: str) -> set[str]:
        result = await self._session.execute(
            select(UserBrandModel.user_id).where(UserBrandModel.brand_id == brand_id)
        )
        return set(result.scalars())

    async def get_account(self, account_id: str) -> SocialAccount | None:
        # populate_existing so a re-read sees tokens another session refreshed
        stmt = (
            select(SocialAccountModel)
            .where(SocialAccountModel.id == account_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return model.to_entity() if model else None

    async def get_page(self, page_id: str) -> SocialAccountPage | None:
        stmt = (
            select(SocialAccountPageModel)
            .where(SocialAccountPageModel.id == page_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return model.to_entity() if model else None

    async def list_active_pages(self, account_id: str, platform: Platform) -> list[SocialAccountPage]:
        stmt = (
            select(SocialAccountPageModel)
            .where(
                SocialAccountPageModel.social_account_id == account_id,
                SocialAccountPageModel.platform == platform.value,
                SocialAccountPageModel.is_active.is_(True),
            )
            .order_by(SocialAccountPageModel.created_at.desc())
        )
        result = await self._session.execute(stmt)
        return [model.to_entity() for model in result.scalars()]

    async def get_brand_name(self, brand_id: str) -> str | None:
        result = await self._session.execute(select(BrandModel.name).where(BrandModel.id == brand_id))
        return result.scalar_one_or_none()

    async def update_account_tokens(
        self,
        account_id: str,
        access_token: str,
        refresh_token: str | None,
        expires_at: datetime,
        expected_version: int,
    ) -> bool:
        values = _token_values(SocialAccountModel, access_token, refresh_token, expires_at)
        stmt = (
            update(SocialAccountModel)
            .where(
                SocialAccountModel.id == account_id,
                SocialAccountModel.token_version == expected_version,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def update_page_tokens(
        self,
        page_id: str,
        access_token: str,
        refresh_token: str | None,
        expires_at: datetime,
        expected_version: int,
    ) -> bool:
        values = _token_values(SocialAccountPageModel, access_token, refresh_token, expires_at)
        stmt = (
            update(SocialAccountPageModel)
            .where(
                SocialAccountPageModel.id == page_id,
                SocialAccountPageModel.token_version == expected_version,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1


class PostgresNotificationRepository(NotificationRepository):
    """PostgreSQL implementation of NotificationRepository."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, notification: Notification) -> None:
        self._session.add(NotificationModel.from_entity(notification))
        await self._session.flush()


def _token_values(
    model: type[SocialAccountModel] | type[SocialAccountPageModel],
    access_token: str,
    refresh_token: str | None,
    expires_at: datetime,
) -> dict:
    values = {
        "access_token": access_token,
        "token_expires_at": _naive_utc(expires_at),
        "token_version": model.token_version + 1,
    }
    # A grant without a rotated refresh token keeps the stored one
    if refresh_token is not None:
        values["refresh_token"] = refresh_token
    return values
