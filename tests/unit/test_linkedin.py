import json
from urllib.parse import parse_qs

import httpx
import pytest

from social_publisher.channels import LinkedInAdapter
from social_publisher.domain.entities import Media, MediaKind, PostStatus
from social_publisher.domain.errors import (
    MediaTransferFailed,
    MediaValidationFailed,
    PlatformRejected,
    TokenRefreshFailed,
)
from social_publisher.domain.ports import AssetReference, ResolvedAccount

UPLOAD_MECHANISM = "com.linkedin.digitalmedia.uploading.MediaUploadHttpRequest"


class Recorder:
    """Collects requests seen by a MockTransport handler."""

    def __init__(self, handler):
        self.requests: list[httpx.Request] = []
        self._handler = handler

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._handler(request)


def make_adapter(handler) -> tuple[LinkedInAdapter, Recorder]:
    recorder = Recorder(handler)
    adapter = LinkedInAdapter(
        client_id="client-id",
        client_secret="client-secret",
        api_version="202402",
        timeout=5.0,
        transport=httpx.MockTransport(recorder),
    )
    return adapter, recorder


@pytest.fixture
def resolved(make_account) -> ResolvedAccount:
    return ResolvedAccount(holder=make_account(), author_identity="urn:li:person:li-member-1")


class TestLinkedInValidate:
    def test_mp4_video_passes(self, make_post):
        adapter, recorder = make_adapter(lambda request: httpx.Response(500))
        post = make_post(media=[Media(id="m1", post_id="post-1", url="https://cdn/clip.mp4", type="VIDEO")])

        adapter.validate(post)

        assert recorder.requests == []

    def test_other_video_container_is_rejected(self, make_post):
        adapter, recorder = make_adapter(lambda request: httpx.Response(500))
        post = make_post(media=[Media(id="m1", post_id="post-1", url="https://cdn/clip.mov", type="VIDEO")])

        with pytest.raises(MediaValidationFailed):
            adapter.validate(post)

        assert recorder.requests == []

    def test_images_are_not_checked(self, make_post):
        adapter, _ = make_adapter(lambda request: httpx.Response(500))
        post = make_post(media=[Media(id="m1", post_id="post-1", url="https://cdn/photo.gif")])

        adapter.validate(post)


class TestLinkedInPublish:
    @pytest.mark.asyncio
    async def test_text_post(self, make_post, resolved):
        adapter, recorder = make_adapter(
            lambda request: httpx.Response(201, json={}, headers={"x-restli-id": "urn:li:share:123"})
        )

        outcome = await adapter.publish(make_post(), "live-token", resolved, None)

        assert outcome.external_id == "urn:li:share:123"
        assert outcome.external_url == "https://www.linkedin.com/feed/update/urn:li:share:123"

        request = recorder.requests[0]
        assert request.url == "https://api.linkedin.com/v2/ugcPosts"
        assert request.headers["authorization"] == "Bearer live-token"
        assert request.headers["x-restli-protocol-version"] == "2.0.0"
        assert request.headers["linkedin-version"] == "202402"

        body = json.loads(request.content)
        assert body["author"] == "urn:li:person:li-member-1"
        assert body["visibility"] == {"com.linkedin.ugc.MemberNetworkVisibility": "PUBLIC"}
        share = body["specificContent"]["com.linkedin.ugc.ShareContent"]
        assert share["shareCommentary"] == {"text": "Hello world"}
        assert share["shareMediaCategory"] == "NONE"
        assert "media" not in share

    @pytest.mark.asyncio
    async def test_post_with_video_asset(self, make_post, resolved):
        adapter, recorder = make_adapter(lambda request: httpx.Response(201, json={"id": "urn:li:ugcPost:9"}))
        asset = AssetReference(
            kind=MediaKind.VIDEO,
            content_type="video/mp4",
            reference="urn:li:digitalmediaAsset:abc",
        )

        outcome = await adapter.publish(make_post(), "live-token", resolved, asset)

        assert outcome.external_id == "urn:li:ugcPost:9"
        share = json.loads(recorder.requests[0].content)["specificContent"]["com.linkedin.ugc.ShareContent"]
        assert share["shareMediaCategory"] == "VIDEO"
        assert share["media"][0]["media"] == "urn:li:digitalmediaAsset:abc"
        assert share["media"][0]["status"] == "READY"

    @pytest.mark.asyncio
    async def test_platform_error_is_normalized(self, make_post, resolved):
        adapter, _ = make_adapter(
            lambda request: httpx.Response(
                422,
                json={"message": "Content is a duplicate", "serviceErrorCode": 1003, "status": 422},
            )
        )

        with pytest.raises(PlatformRejected) as exc_info:
            await adapter.publish(make_post(), "live-token", resolved, None)

        detail = exc_info.value.detail
        assert detail["message"] == "Content is a duplicate"
        assert detail["status"] == 422
        assert detail["raw"]["serviceErrorCode"] == 1003

    @pytest.mark.asyncio
    async def test_non_json_error_body(self, make_post, resolved):
        adapter, _ = make_adapter(lambda request: httpx.Response(502, text="<html>Bad Gateway</html>"))

        with pytest.raises(PlatformRejected) as exc_info:
            await adapter.publish(make_post(), "live-token", resolved, None)

        assert exc_info.value.detail["message"].startswith("Invalid JSON response: <html>")

    @pytest.mark.asyncio
    async def test_network_error(self, make_post, resolved):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        adapter, _ = make_adapter(handler)

        with pytest.raises(PlatformRejected) as exc_info:
            await adapter.publish(make_post(), "live-token", resolved, None)

        assert exc_info.value.stage == "publish"


class TestLinkedInUpload:
    @pytest.mark.asyncio
    async def test_two_phase_upload(self, resolved):
        payload = b"\x89PNG fake image bytes"

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "cdn.example.com":
                return httpx.Response(200, content=payload, headers={"content-type": "image/png"})
            if request.url.path == "/v2/assets":
                return httpx.Response(
                    200,
                    json={
                        "value": {
                            "asset": "urn:li:digitalmediaAsset:xyz",
                            "uploadMechanism": {
                                UPLOAD_MECHANISM: {"uploadUrl": "https://upload.linkedin.example/put/1"}
                            },
                        }
                    },
                )
            return httpx.Response(201)

        adapter, recorder = make_adapter(handler)
        media = Media(id="m1", post_id="post-1", url="https://cdn.example.com/photo.png")

        asset = await adapter.upload_media(media, "live-token", resolved)

        assert asset == AssetReference(
            kind=MediaKind.IMAGE,
            content_type="image/png",
            reference="urn:li:digitalmediaAsset:xyz",
        )
        download, register, upload = recorder.requests
        assert download.method == "GET"
        register_body = json.loads(register.content)["registerUploadRequest"]
        assert register_body["recipes"] == ["urn:li:digitalmediaRecipe:feedshare-image"]
        assert register_body["owner"] == "urn:li:person:li-member-1"
        assert upload.method == "PUT"
        assert upload.headers["content-type"] == "image/png"
        assert upload.headers["content-length"] == str(len(payload))
        assert upload.content == payload

    @pytest.mark.asyncio
    async def test_redirected_media_url_is_followed(self, resolved):
        payload = b"\x89PNG redirected bytes"

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "cdn.example.com":
                return httpx.Response(302, headers={"location": "https://storage.example.com/1.png"})
            if request.url.host == "storage.example.com":
                return httpx.Response(200, content=payload, headers={"content-type": "image/png"})
            if request.url.path == "/v2/assets":
                return httpx.Response(
                    200,
                    json={
                        "value": {
                            "asset": "urn:li:digitalmediaAsset:redir",
                            "uploadMechanism": {UPLOAD_MECHANISM: {"uploadUrl": "https://upload.example/3"}},
                        }
                    },
                )
            return httpx.Response(201)

        adapter, recorder = make_adapter(handler)
        media = Media(id="m1", post_id="post-1", url="https://cdn.example.com/m/1.png")

        asset = await adapter.upload_media(media, "live-token", resolved)

        assert asset.reference == "urn:li:digitalmediaAsset:redir"
        hosts = [request.url.host for request in recorder.requests]
        assert hosts[:2] == ["cdn.example.com", "storage.example.com"]
        assert recorder.requests[-1].content == payload

    @pytest.mark.asyncio
    async def test_api_redirect_is_not_followed(self, resolved):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "cdn.example.com":
                return httpx.Response(200, content=b"img")
            return httpx.Response(301, headers={"location": "https://elsewhere.example.com/assets"})

        adapter, recorder = make_adapter(handler)
        media = Media(id="m1", post_id="post-1", url="https://cdn.example.com/photo.jpg")

        with pytest.raises(MediaTransferFailed) as exc_info:
            await adapter.upload_media(media, "live-token", resolved)

        assert exc_info.value.detail["step"] == "register"
        assert len(recorder.requests) == 2

    @pytest.mark.asyncio
    async def test_video_uses_video_recipe(self, resolved):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "cdn.example.com":
                return httpx.Response(200, content=b"video", headers={"content-type": "application/octet-stream"})
            if request.url.path == "/v2/assets":
                return httpx.Response(
                    200,
                    json={
                        "value": {
                            "asset": "urn:li:digitalmediaAsset:vid",
                            "uploadMechanism": {UPLOAD_MECHANISM: {"uploadUrl": "https://upload.example/2"}},
                        }
                    },
                )
            return httpx.Response(201)

        adapter, recorder = make_adapter(handler)
        media = Media(id="m1", post_id="post-1", url="https://cdn.example.com/clip.mp4", type="VIDEO")

        asset = await adapter.upload_media(media, "live-token", resolved)

        assert asset.kind == MediaKind.VIDEO
        assert asset.content_type == "video/mp4"
        register_body = json.loads(recorder.requests[1].content)["registerUploadRequest"]
        assert register_body["recipes"] == ["urn:li:digitalmediaRecipe:feedshare-video"]

    @pytest.mark.asyncio
    async def test_register_failure(self, resolved):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "cdn.example.com":
                return httpx.Response(200, content=b"img")
            return httpx.Response(403, json={"message": "Not enough permissions"})

        adapter, recorder = make_adapter(handler)
        media = Media(id="m1", post_id="post-1", url="https://cdn.example.com/photo.jpg")

        with pytest.raises(MediaTransferFailed) as exc_info:
            await adapter.upload_media(media, "live-token", resolved)

        assert exc_info.value.detail["step"] == "register"
        assert exc_info.value.detail["status"] == 403
        assert len(recorder.requests) == 2


class TestLinkedInRefresh:
    @pytest.mark.asyncio
    async def test_refresh_grant(self):
        adapter, recorder = make_adapter(
            lambda request: httpx.Response(
                200,
                json={"access_token": "new-token", "expires_in": 5184000, "refresh_token": "new-refresh"},
            )
        )

        grant = await adapter.refresh_access_token("old-refresh")

        assert grant.access_token == "new-token"
        assert grant.expires_in == 5184000
        assert grant.refresh_token == "new-refresh"
        form = parse_qs(recorder.requests[0].content.decode())
        assert form["grant_type"] == ["refresh_token"]
        assert form["refresh_token"] == ["old-refresh"]
        assert form["client_id"] == ["client-id"]

    @pytest.mark.asyncio
    async def test_refresh_rejected(self):
        adapter, _ = make_adapter(
            lambda request: httpx.Response(
                400,
                json={"error": "invalid_grant", "error_description": "The provided refresh token is invalid"},
            )
        )

        with pytest.raises(TokenRefreshFailed) as exc_info:
            await adapter.refresh_access_token("old-refresh")

        assert "invalid_grant" in str(exc_info.value)


class TestLinkedInAnalytics:
    @pytest.mark.asyncio
    async def test_share_statistics(self, make_post, resolved):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.startswith("/v2/shares/"):
                return httpx.Response(200, json={"ugcPost": "urn:li:ugcPost:77"})
            if request.url.path == "/v2/organizationalEntityShareStatistics":
                return httpx.Response(
                    200,
                    json={
                        "elements": [
                            {
                                "totalShareStatistics": {
                                    "likeCount": 3,
                                    "commentCount": 1,
                                    "shareCount": 2,
                                    "impressionCount": 250,
                                    "clickCount": 12,
                                }
                            }
                        ]
                    },
                )
            return httpx.Response(
                200,
                json={"likesSummary": {"totalLikes": 5}, "commentsSummary": {"aggregatedTotalComments": 4}},
            )

        adapter, recorder = make_adapter(handler)
        post = make_post(
            status=PostStatus.PUBLISHED,
            url="https://www.linkedin.com/feed/update/urn:li:share:123",
        )

        analytics = await adapter.fetch_analytics(post, "live-token", resolved)

        assert analytics.likes == 5
        assert analytics.comments == 4
        assert analytics.shares == 2
        assert analytics.impressions == 250
        assert analytics.clicks == 12
        assert len(recorder.requests) == 3

    @pytest.mark.asyncio
    async def test_url_without_urn(self, make_post, resolved):
        adapter, _ = make_adapter(lambda request: httpx.Response(200, json={}))
        post = make_post(status=PostStatus.PUBLISHED, url="https://example.com/not-linkedin")

        with pytest.raises(ValueError):
            await adapter.fetch_analytics(post, "live-token", resolved)
