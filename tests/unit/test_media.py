import pytest

from social_publisher.channels.media import content_type_for, file_extension, infer_media_kind
from social_publisher.domain.entities import Media, MediaKind


def media(url: str, type: str | None = None) -> Media:
    return Media(id="m1", post_id="post-1", url=url, type=type)


class TestInferMediaKind:
    @pytest.mark.parametrize("ext", ["mp4", "mov", "avi", "webm", "mkv", "MP4"])
    def test_video_extensions(self, ext):
        assert infer_media_kind(media(f"https://cdn.example.com/clip.{ext}")) == MediaKind.VIDEO

    @pytest.mark.parametrize("stored", ["VIDEO", "video", "video/quicktime"])
    def test_stored_video_type_wins(self, stored):
        assert infer_media_kind(media("https://cdn.example.com/file", stored)) == MediaKind.VIDEO

    def test_video_extension_with_query_string(self):
        assert infer_media_kind(media("https://cdn.example.com/clip.mov?sig=abc")) == MediaKind.VIDEO

    @pytest.mark.parametrize(
        "url,stored",
        [
            ("https://cdn.example.com/photo.png", None),
            ("https://cdn.example.com/photo.jpeg", "IMAGE"),
            ("https://cdn.example.com/no-extension", None),
            ("https://cdn.example.com/archive.zip", "application/zip"),
        ],
    )
    def test_everything_else_is_image(self, url, stored):
        assert infer_media_kind(media(url, stored)) == MediaKind.IMAGE


class TestContentType:
    def test_extension_map(self):
        assert content_type_for(media("https://cdn.example.com/a.png")) == "image/png"
        assert content_type_for(media("https://cdn.example.com/a.mov")) == "video/quicktime"

    def test_stored_mime_type_is_used_as_is(self):
        assert content_type_for(media("https://cdn.example.com/a", "image/webp")) == "image/webp"

    def test_defaults_by_kind(self):
        assert content_type_for(media("https://cdn.example.com/a")) == "image/jpeg"
        assert content_type_for(media("https://cdn.example.com/a", "VIDEO")) == "video/mp4"


def test_file_extension_ignores_dots_in_host():
    assert file_extension("https://cdn.example.com/uploads/file") == ""
    assert file_extension("https://cdn.example.com/uploads/file.JPG?x=1") == "jpg"
