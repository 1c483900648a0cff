from typing import Any

import httpx
import structlog

from ..domain.entities import CredentialHolder, Media, MediaKind, Platform, Post, SocialAccountPage
from ..domain.errors import MediaValidationFailed, PlatformRejected
from ..domain.ports import (
    AccountLookup,
    AssetReference,
    MediaFailurePolicy,
    PublishOutcome,
    ResolvedAccount,
    TokenGrant,
)
from .base import BasePublishAdapter, normalize_platform_error, parse_json_body, truncate_title
from .media import content_type_for, infer_media_kind

logger = structlog.get_logger()

TITLE_LIMIT = 100


class PinterestAdapter(BasePublishAdapter):
    """
    Pinterest v5 pins adapter.

    Pins reference the hosted media URL directly, so nothing is uploaded.
    A pin cannot exist without media, which makes media failures fatal.
    """

    PIN_URL = "https://www.pinterest.com/pin"

    media_failure_policy = MediaFailurePolicy.FAIL

    def __init__(
        self,
        app_id: str,
        app_secret: str,
        api_base: str = "https://api.pinterest.com/v5",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(timeout=timeout, transport=transport)
        self._app_id = app_id
        self._app_secret = app_secret
        self._api_base = api_base.rstrip("/")

    @property
    def platform(self) -> Platform:
        return Platform.PINTEREST

    def author_identity(self, holder: CredentialHolder) -> str:
        if isinstance(holder, SocialAccountPage):
            return holder.name
        return holder.platform_username or holder.platform_user_id

    async def resolve_account(self, post: Post, resolver: AccountLookup) -> ResolvedAccount:
        holder = await resolver.resolve(post, self.platform)

        if isinstance(holder, SocialAccountPage):
            board_id = holder.page_id
        else:
            boards = await resolver.active_pages(holder, self.platform)
            # None defers to the account's first board at publish time
            board_id = boards[0].page_id if boards else None

        return ResolvedAccount(holder=holder, author_identity=self.author_identity(holder), target=board_id)

    def validate(self, post: Post) -> None:
        if post.primary_media is None:
            raise MediaValidationFailed("Pinterest requires at least one image or video")

    async def refresh_access_token(self, refresh_token: str) -> TokenGrant:
        return await self._request_token(
            f"{self._api_base}/oauth/token",
            data={"grant_type": "refresh_token", "refresh_token": refresh_token},
            auth=(self._app_id, self._app_secret),
        )

    async def upload_media(
        self,
        media: Media,
        access_token: str,
        resolved: ResolvedAccount,
    ) -> AssetReference:
        return AssetReference(
            kind=infer_media_kind(media),
            content_type=content_type_for(media),
            hosted_url=media.url,
        )

    async def publish(
        self,
        post: Post,
        access_token: str,
        resolved: ResolvedAccount,
        asset: AssetReference | None,
    ) -> PublishOutcome:
        """Create a pin on the target board."""
        if asset is None or not asset.hosted_url:
            raise MediaValidationFailed("Pinterest requires at least one image or video")

        board_id = resolved.target
        if not board_id:
            boards = await self.list_boards(access_token)
            if not boards:
                raise PlatformRejected("No Pinterest boards found. Please create a board first.")
            board_id = boards[0]["id"]

        body = {
            "board_id": board_id,
            "title": truncate_title(post.content, TITLE_LIMIT),
            "description": post.content,
            "media_source": {
                "source_type": "video_url" if asset.kind is MediaKind.VIDEO else "image_url",
                "url": asset.hosted_url,
                "content_type": asset.content_type,
            },
        }

        logger.info("Creating Pinterest pin", board_id=board_id, media_kind=asset.kind.value)

        try:
            async with self._client() as client:
                response = await client.post(
                    f"{self._api_base}/pins",
                    headers={"Authorization": f"Bearer {access_token}"},
                    json=body,
                )
        except httpx.HTTPError as e:
            message = f"Pinterest request failed: {type(e).__name__}"
            raise PlatformRejected(message, detail={"message": message, "status": None, "raw": None}) from e

        data = parse_json_body(response)
        if response.is_error or not data.get("id"):
            error = normalize_platform_error(data, response.status_code)
            raise PlatformRejected(f"Pinterest API error: {error['message']}", detail=error)

        pin_id = str(data["id"])
        logger.info("Pinterest pin created", external_id=pin_id)
        return PublishOutcome(
            external_id=pin_id,
            external_url=f"{self.PIN_URL}/{pin_id}/",
            raw=data,
        )

    async def list_boards(self, access_token: str) -> list[dict[str, Any]]:
        """Boards owned by the token's account."""
        try:
            async with self._client() as client:
                response = await client.get(
                    f"{self._api_base}/boards",
                    headers={"Authorization": f"Bearer {access_token}"},
                )
        except httpx.HTTPError as e:
            message = f"Pinterest request failed: {type(e).__name__}"
            raise PlatformRejected(message, detail={"message": message, "status": None, "raw": None}) from e

        data = parse_json_body(response)
        if response.is_error:
            error = normalize_platform_error(data, response.status_code)
            raise PlatformRejected(f"Failed to fetch boards: {error['message']}", detail=error)
        return data.get("items") or []
