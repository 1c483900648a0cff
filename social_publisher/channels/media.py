"""Media classification shared by the platform adapters."""

from urllib.parse import urlparse

from ..domain.entities import Media, MediaKind

VIDEO_EXTENSIONS = (".mp4", ".mov", ".avi", ".webm", ".mkv")

CONTENT_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "bmp": "image/bmp",
    "mp4": "video/mp4",
    "mov": "video/quicktime",
    "avi": "video/x-msvideo",
    "webm": "video/webm",
    "mkv": "video/x-matroska",
}


def infer_media_kind(media: Media) -> MediaKind:
    """
    Classify media as IMAGE or VIDEO.

    The stored type field is checked first, then the URL extension.
    Anything not recognized as video is an image.
    """
    stored = (media.type or "").strip().lower()
    if stored == "video" or stored.startswith("video/"):
        return MediaKind.VIDEO

    if f".{file_extension(media.url)}" in VIDEO_EXTENSIONS:
        return MediaKind.VIDEO
    return MediaKind.IMAGE


def file_extension(url: str) -> str:
    """Lower-case extension of the URL path, without query string."""
    path = urlparse(url).path
    _, dot, ext = path.rpartition(".")
    if not dot or "/" in ext:
        return ""
    return ext.lower()


def content_type_for(media: Media) -> str:
    """MIME type to declare when uploading the media bytes."""
    stored = (media.type or "").strip().lower()
    if stored.startswith(("image/", "video/")):
        return stored

    content_type = CONTENT_TYPES.get(file_extension(media.url))
    if content_type:
        return content_type
    return "video/mp4" if infer_media_kind(media) is MediaKind.VIDEO else "image/jpeg"
