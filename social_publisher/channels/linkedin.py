import re
from urllib.parse import quote

import httpx
import structlog

from ..domain.entities import CredentialHolder, Media, MediaKind, Platform, Post, SocialAccountPage
from ..domain.errors import MediaTransferFailed, MediaValidationFailed, PlatformRejected
from ..domain.ports import AssetReference, PostAnalytics, PublishOutcome, ResolvedAccount, TokenGrant
from ..infrastructure.logging import sanitize_for_logging
from .base import BasePublishAdapter, normalize_platform_error, parse_json_body
from .media import content_type_for, file_extension, infer_media_kind

logger = structlog.get_logger()

UPLOAD_MECHANISM = "com.linkedin.digitalmedia.uploading.MediaUploadHttpRequest"

RECIPES = {
    MediaKind.IMAGE: "urn:li:digitalmediaRecipe:feedshare-image",
    MediaKind.VIDEO: "urn:li:digitalmediaRecipe:feedshare-video",
}

POST_URN_PATTERN = re.compile(r"urn:li:(?:share|ugcPost):\d+")


class LinkedInAdapter(BasePublishAdapter):
    """
    LinkedIn UGC Posts API adapter for member and organization posts.

    Media goes through the two-phase asset protocol: register an upload,
    PUT the bytes to the returned URL, then reference the asset URN.
    """

    BASE_URL = "https://api.linkedin.com/v2"
    TOKEN_URL = "https://www.linkedin.com/oauth/v2/accessToken"
    FEED_URL = "https://www.linkedin.com/feed/update"

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        api_version: str = "202402",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(timeout=timeout, transport=transport)
        self._client_id = client_id
        self._client_secret = client_secret
        self._api_version = api_version

    @property
    def platform(self) -> Platform:
        return Platform.LINKEDIN

    def author_identity(self, holder: CredentialHolder) -> str:
        if isinstance(holder, SocialAccountPage):
            return f"urn:li:organization:{holder.page_id}"
        return f"urn:li:person:{holder.platform_user_id}"

    def _headers(self, access_token: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {access_token}",
            "X-Restli-Protocol-Version": "2.0.0",
            "LinkedIn-Version": self._api_version,
        }

    def validate(self, post: Post) -> None:
        media = post.primary_media
        if media is None or infer_media_kind(media) is not MediaKind.VIDEO:
            return
        if file_extension(media.url) != "mp4" and content_type_for(media) != "video/mp4":
            raise MediaValidationFailed(
                "LinkedIn only accepts MP4 video",
                detail={"message": "LinkedIn only accepts MP4 video", "mediaId": media.id, "url": media.url},
            )

    async def refresh_access_token(self, refresh_token: str) -> TokenGrant:
        return await self._request_token(
            self.TOKEN_URL,
            data={
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "client_id": self._client_id,
                "client_secret": self._client_secret,
            },
        )

    async def upload_media(
        self,
        media: Media,
        access_token: str,
        resolved: ResolvedAccount,
    ) -> AssetReference:
        """Register an upload, PUT the bytes, return the asset URN."""
        kind = infer_media_kind(media)
        step = "download"

        try:
            async with self._client() as client:
                # App storage URLs may redirect to the object store
                source = await client.get(media.url, follow_redirects=True)
                source.raise_for_status()
                payload = source.content
                content_type = _original_content_type(source) or content_type_for(media)

                step = "register"
                register = await client.post(
                    f"{self.BASE_URL}/assets?action=registerUpload",
                    headers=self._headers(access_token),
                    json={
                        "registerUploadRequest": {
                            "recipes": [RECIPES[kind]],
                            "owner": resolved.author_identity,
                            "serviceRelationships": [
                                {
                                    "relationshipType": "OWNER",
                                    "identifier": "urn:li:userGeneratedContent",
                                }
                            ],
                        }
                    },
                )
                register.raise_for_status()
                value = register.json()["value"]
                upload_url = value["uploadMechanism"][UPLOAD_MECHANISM]["uploadUrl"]
                asset = value["asset"]

                step = "upload"
                logger.info(
                    "Uploading media to LinkedIn",
                    asset=sanitize_for_logging(asset, 32),
                    upload_url=sanitize_for_logging(upload_url, 40),
                    size=len(payload),
                )
                upload = await client.put(
                    upload_url,
                    headers={
                        "Authorization": f"Bearer {access_token}",
                        "Content-Type": content_type,
                        "Content-Length": str(len(payload)),
                    },
                    content=payload,
                )
                upload.raise_for_status()

        except httpx.HTTPStatusError as e:
            raise MediaTransferFailed(
                f"LinkedIn media {step} failed: HTTP {e.response.status_code}",
                detail={"step": step, "status": e.response.status_code, "mediaId": media.id},
            ) from e
        except (httpx.HTTPError, KeyError, TypeError, ValueError) as e:
            raise MediaTransferFailed(
                f"LinkedIn media {step} failed: {type(e).__name__}",
                detail={"step": step, "error": str(e), "mediaId": media.id},
            ) from e

        return AssetReference(kind=kind, content_type=content_type, reference=asset)

    async def publish(
        self,
        post: Post,
        access_token: str,
        resolved: ResolvedAccount,
        asset: AssetReference | None,
    ) -> PublishOutcome:
        """Create a UGC post."""
        share_content: dict = {
            "shareCommentary": {"text": post.content},
            "shareMediaCategory": "NONE",
        }

        if asset is not None and asset.reference:
            label = "Post video" if asset.kind is MediaKind.VIDEO else "Post image"
            share_content.update(
                {
                    "shareMediaCategory": asset.kind.value,
                    "media": [
                        {
                            "status": "READY",
                            "description": {"text": label},
                            "media": asset.reference,
                            "title": {"text": label},
                        }
                    ],
                }
            )

        body = {
            "author": resolved.author_identity,
            "lifecycleState": "PUBLISHED",
            "specificContent": {"com.linkedin.ugc.ShareContent": share_content},
            "visibility": {"com.linkedin.ugc.MemberNetworkVisibility": "PUBLIC"},
        }

        try:
            async with self._client() as client:
                response = await client.post(
                    f"{self.BASE_URL}/ugcPosts",
                    headers=self._headers(access_token),
                    json=body,
                )
        except httpx.HTTPError as e:
            message = f"LinkedIn request failed: {type(e).__name__}"
            raise PlatformRejected(message, detail={"message": message, "status": None, "raw": None}) from e

        data = parse_json_body(response)
        if response.is_error:
            error = normalize_platform_error(data, response.status_code)
            raise PlatformRejected(f"LinkedIn API error: {error['message']}", detail=error)

        post_id = data.get("id") or response.headers.get("x-restli-id")
        if not post_id:
            error = normalize_platform_error(data, response.status_code)
            error["message"] = "LinkedIn response did not include a post id"
            raise PlatformRejected(error["message"], detail=error)

        logger.info("LinkedIn post created", external_id=post_id)
        return PublishOutcome(
            external_id=post_id,
            external_url=f"{self.FEED_URL}/{post_id}",
            raw=data,
        )

    async def fetch_analytics(
        self,
        post: Post,
        access_token: str,
        resolved: ResolvedAccount,
    ) -> PostAnalytics:
        """Share statistics plus social action summaries for a published post."""
        match = POST_URN_PATTERN.search(post.url or "")
        if not match:
            raise ValueError("Post URL does not contain a LinkedIn share or ugcPost URN")
        urn = match.group(0)
        headers = self._headers(access_token)

        async with self._client() as client:
            if urn.startswith("urn:li:share:"):
                shares = await client.get(
                    f"{self.BASE_URL}/shares/{quote(urn, safe='')}",
                    params={"projection": "(owner,ugcPost)"},
                    headers=headers,
                )
                ugc_urn = self._checked(shares, "Shares").get("ugcPost")
                if not ugc_urn:
                    raise PlatformRejected("Could not find ugcPost URN for this share")
            else:
                ugc_urn = urn

            stats = await client.get(
                f"{self.BASE_URL}/organizationalEntityShareStatistics",
                params={
                    "q": "organizationalEntity",
                    "organizationalEntity": resolved.author_identity,
                    "shares": ugc_urn,
                },
                headers=headers,
            )
            elements = self._checked(stats, "Analytics").get("elements") or []
            totals = elements[0].get("totalShareStatistics") if elements else None

            actions = await client.get(
                f"{self.BASE_URL}/socialActions/{quote(ugc_urn, safe='')}",
                headers=headers,
            )
            social = self._checked(actions, "Social actions")

        if not totals:
            raise PlatformRejected("No analytics data found for this post")

        likes = (social.get("likesSummary") or {}).get("totalLikes")
        comments = (social.get("commentsSummary") or {}).get("aggregatedTotalComments")

        return PostAnalytics(
            likes=likes if likes is not None else totals.get("likeCount"),
            comments=comments if comments is not None else totals.get("commentCount"),
            shares=totals.get("shareCount"),
            impressions=totals.get("impressionCount"),
            clicks=totals.get("clickCount"),
        )

    def _checked(self, response: httpx.Response, label: str) -> dict:
        data = parse_json_body(response)
        if response.is_error:
            error = normalize_platform_error(data, response.status_code)
            raise PlatformRejected(f"LinkedIn {label} API failed: {error['message']}", detail=error)
        return data


def _original_content_type(response: httpx.Response) -> str | None:
    content_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
    if content_type.startswith(("image/", "video/")):
        return content_type
    return None
