import re
from typing import Any

import httpx
import structlog

from ..domain.entities import CredentialHolder, Media, Platform, Post, SocialAccountPage
from ..domain.errors import NoConnectedAccount, PlatformRejected
from ..domain.ports import (
    AccountLookup,
    AssetReference,
    PublishOutcome,
    ResolvedAccount,
    TokenGrant,
)
from .base import BasePublishAdapter, normalize_platform_error, parse_json_body, truncate_title
from .media import content_type_for, infer_media_kind

logger = structlog.get_logger()

TITLE_LIMIT = 300
URL_PATTERN = re.compile(r"https?://[^\s]+")


class RedditAdapter(BasePublishAdapter):
    """
    Reddit submit API adapter.

    Reddit cannot ingest binary media through the submit endpoint, so
    attached media becomes a link post to the already-hosted file.
    """

    BASE_URL = "https://oauth.reddit.com"
    TOKEN_URL = "https://www.reddit.com/api/v1/access_token"
    PUBLIC_URL = "https://reddit.com"

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        user_agent: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(timeout=timeout, transport=transport)
        self._client_id = client_id
        self._client_secret = client_secret
        self._user_agent = user_agent

    @property
    def platform(self) -> Platform:
        return Platform.REDDIT

    def author_identity(self, holder: CredentialHolder) -> str:
        if isinstance(holder, SocialAccountPage):
            return holder.name
        return holder.platform_username or holder.platform_user_id

    def _headers(self, access_token: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {access_token}",
            "User-Agent": self._user_agent,
        }

    async def resolve_account(self, post: Post, resolver: AccountLookup) -> ResolvedAccount:
        holder = await resolver.resolve(post, self.platform)
        target = await self._target_subreddit(post, holder, resolver)
        if not target:
            raise NoConnectedAccount("No target subreddit specified and no fallback available")
        return ResolvedAccount(holder=holder, author_identity=self.author_identity(holder), target=target)

    async def _target_subreddit(
        self,
        post: Post,
        holder: CredentialHolder,
        resolver: AccountLookup,
    ) -> str | None:
        if isinstance(holder, SocialAccountPage):
            return _subreddit_name(holder.name)

        pages = await resolver.active_pages(holder, self.platform)
        if pages:
            logger.debug("Using default subreddit from page", subreddit=pages[0].name)
            return _subreddit_name(pages[0].name)

        brand_name = await resolver.brand_name(post.brand_id)
        if brand_name:
            clean_name = re.sub(r"[^a-zA-Z0-9]", "", brand_name)
            logger.debug("Using brand name as subreddit", subreddit=clean_name)
            return clean_name or None
        return None

    async def refresh_access_token(self, refresh_token: str) -> TokenGrant:
        return await self._request_token(
            self.TOKEN_URL,
            data={"grant_type": "refresh_token", "refresh_token": refresh_token},
            auth=(self._client_id, self._client_secret),
            headers={"User-Agent": self._user_agent},
        )

    async def upload_media(
        self,
        media: Media,
        access_token: str,
        resolved: ResolvedAccount,
    ) -> AssetReference:
        """No bytes move; the post links to the hosted file instead."""
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
        """Submit a self or link post."""
        params = build_submission(post, resolved.target or "", asset)

        logger.info(
            "Submitting to Reddit",
            subreddit=params["sr"],
            kind=params["kind"],
            title_length=len(params["title"]),
        )

        try:
            async with self._client() as client:
                response = await client.post(
                    f"{self.BASE_URL}/api/submit",
                    headers=self._headers(access_token),
                    data=params,
                )
        except httpx.HTTPError as e:
            message = f"Reddit request failed: {type(e).__name__}"
            raise PlatformRejected(message, detail={"message": message, "status": None, "raw": None}) from e

        data = parse_json_body(response)
        block = data.get("json") if isinstance(data.get("json"), dict) else {}

        if response.is_error or block.get("errors") or "error" in data:
            error = normalize_platform_error(data, response.status_code)
            raise PlatformRejected(f"Reddit API error: {error['message']}", detail=error)

        created = block.get("data") or {}
        if not created.get("id"):
            error = normalize_platform_error(data, response.status_code)
            error["message"] = "Unexpected response format from Reddit"
            raise PlatformRejected(error["message"], detail=error)

        permalink = created.get("permalink")
        post_url = f"{self.PUBLIC_URL}{permalink}" if permalink else created.get("url")

        logger.info("Reddit post created", external_id=created.get("name") or created["id"])
        return PublishOutcome(
            external_id=created.get("name") or created["id"],
            external_url=post_url or f"{self.PUBLIC_URL}/comments/{created['id']}",
            raw=data,
        )

    async def list_subreddits(self, access_token: str, kind: str = "subscriber") -> list[dict[str, Any]]:
        """
        Subreddits the account subscribes to or moderates.

        Args:
            access_token: Decrypted account token
            kind: "subscriber" or "moderator"
        """
        if kind not in ("subscriber", "moderator"):
            raise ValueError(f"Unknown subreddit listing: {kind}")

        async with self._client() as client:
            response = await client.get(
                f"{self.BASE_URL}/subreddits/mine/{kind}",
                params={"limit": 100},
                headers=self._headers(access_token),
            )

        data = parse_json_body(response)
        if response.is_error:
            error = normalize_platform_error(data, response.status_code)
            raise PlatformRejected(f"Failed to fetch subreddits: {error['message']}", detail=error)

        return [
            {
                "id": child["data"]["display_name"],
                "name": child["data"]["display_name"],
                "title": child["data"].get("title"),
                "subscribers": child["data"].get("subscribers"),
                "description": child["data"].get("public_description"),
                "userIsModerator": kind == "moderator",
            }
            for child in (data.get("data") or {}).get("children", [])
        ]

    async def validate_subreddit(self, access_token: str, subreddit: str) -> dict[str, Any]:
        """Check that a subreddit exists and is reachable with this token."""
        try:
            async with self._client() as client:
                response = await client.get(
                    f"{self.BASE_URL}/r/{_subreddit_name(subreddit)}/about",
                    headers=self._headers(access_token),
                )
        except httpx.HTTPError as e:
            logger.warning("Subreddit validation failed", subreddit=subreddit, error=type(e).__name__)
            return {"isValid": False, "error": "Failed to validate subreddit"}

        if response.is_error:
            return {"isValid": False, "error": "Subreddit not found or inaccessible"}

        about = parse_json_body(response).get("data") or {}
        return {
            "isValid": True,
            "data": {
                "name": about.get("display_name"),
                "title": about.get("title"),
                "subscribers": about.get("subscribers"),
                "over18": about.get("over18"),
                "restriction": about.get("subreddit_type"),
                "userIsModerator": about.get("user_is_moderator"),
                "userIsSubscriber": about.get("user_is_subscriber"),
            },
        }


def build_submission(post: Post, subreddit: str, asset: AssetReference | None) -> dict[str, str]:
    """
    Form fields for /api/submit.

    Media becomes a link to the hosted file. A text body holding a bare
    URL with nothing attached becomes a link post to that URL.
    """
    params = {
        "api_type": "json",
        "sr": subreddit,
        "title": truncate_title(post.content, TITLE_LIMIT),
        "resubmit": "true",
        "sendreplies": "true",
    }

    link = None
    if asset is not None and asset.hosted_url:
        link = asset.hosted_url
    elif not post.media:
        match = URL_PATTERN.search(post.content or "")
        if match:
            link = match.group(0)

    if link:
        params["kind"] = "link"
        params["url"] = link
    else:
        params["kind"] = "self"
        params["text"] = post.content or ""
    return params


def _subreddit_name(name: str) -> str:
    return name.strip().removeprefix("/").removeprefix("r/")
