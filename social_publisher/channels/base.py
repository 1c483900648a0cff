from abc import abstractmethod
from typing import Any

import httpx
import structlog

from ..domain.entities import CredentialHolder, Post
from ..domain.errors import TokenRefreshFailed
from ..domain.ports import AccountLookup, PublishAdapter, ResolvedAccount, TokenGrant

logger = structlog.get_logger()

DEFAULT_TITLE = "New Post"


class BasePublishAdapter(PublishAdapter):
    """
    Shared plumbing for HTTP-based platform adapters.

    Every request goes through a short-lived httpx.AsyncClient with an
    explicit timeout. ``transport`` lets tests plug in httpx.MockTransport.
    """

    def __init__(
        self,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    async def resolve_account(self, post: Post, resolver: AccountLookup) -> ResolvedAccount:
        holder = await resolver.resolve(post, self.platform)
        return ResolvedAccount(holder=holder, author_identity=self.author_identity(holder))

    @abstractmethod
    def author_identity(self, holder: CredentialHolder) -> str:
        """Platform-specific identity the post is authored as."""
        ...

    async def _request_token(
        self,
        url: str,
        data: dict[str, str],
        auth: tuple[str, str] | None = None,
        headers: dict[str, str] | None = None,
    ) -> TokenGrant:
        """POST a refresh_token grant and parse the token response."""
        name = self.platform.display_name
        try:
            async with self._client() as client:
                response = await client.post(url, data=data, auth=auth, headers=headers)
        except httpx.HTTPError as e:
            logger.error("Token refresh request failed", platform=self.platform.value, error=type(e).__name__)
            raise TokenRefreshFailed(f"{name} token refresh failed: {type(e).__name__}") from e

        body = parse_json_body(response)
        if response.is_error or not body.get("access_token"):
            error = normalize_platform_error(body, response.status_code)
            logger.error(
                "Token refresh rejected",
                platform=self.platform.value,
                status_code=response.status_code,
                error=error["message"],
            )
            raise TokenRefreshFailed(f"{name} token refresh failed: {error['message']}", detail=error)

        return TokenGrant(
            access_token=body["access_token"],
            expires_in=int(body.get("expires_in") or 3600),
            refresh_token=body.get("refresh_token"),
        )


def parse_json_body(response: httpx.Response) -> dict[str, Any]:
    """
    Decode a response body without letting parse errors escape.

    Non-JSON bodies come back as a structured error dict.
    """
    try:
        data = response.json()
    except ValueError:
        return {
            "error": f"Invalid JSON response: {response.text[:200]}",
            "status": response.status_code,
        }
    if not isinstance(data, dict):
        return {"data": data}
    return data


def normalize_platform_error(payload: dict[str, Any], status_code: int | None = None) -> dict[str, Any]:
    """
    Collapse the platforms' error shapes into one value.

    Handles Reddit-style ``json.errors`` tuple arrays, flat ``error`` /
    ``error_description`` fields, nested ``error.message`` objects and
    LinkedIn's ``message`` + ``serviceErrorCode``.
    """
    message: str | None = None

    json_block = payload.get("json")
    errors = json_block.get("errors") if isinstance(json_block, dict) else payload.get("errors")
    if isinstance(errors, list) and errors:
        first = errors[0]
        if isinstance(first, (list, tuple)) and first:
            message = first[1] if len(first) > 1 and first[1] else first[0]
        elif isinstance(first, dict):
            message = first.get("message") or first.get("error")
        else:
            message = str(first)

    if not message:
        error = payload.get("error")
        if isinstance(error, dict):
            message = error.get("message")
        elif error:
            message = str(error)
            if payload.get("error_description"):
                message = f"{message}: {payload['error_description']}"

    if not message and payload.get("message"):
        message = str(payload["message"])

    if not message:
        message = f"HTTP {status_code}" if status_code else "Platform returned an error"

    return {"message": message, "status": status_code, "raw": payload}


def truncate_title(text: str | None, limit: int) -> str:
    """Title within the platform limit, never empty."""
    title = (text or "").strip()[:limit].strip()
    return title or DEFAULT_TITLE
