"""
Error taxonomy for the publishing pipeline.

Every terminal error carries the pipeline stage it came from and a
``detail`` value that is stored verbatim in the failure notification.
"""

from typing import Any


class InvalidStatusTransition(ValueError):
    """Raised when a Post would move out of a terminal status."""

    pass


class PublishError(Exception):
    """Base class for errors raised by a publish pipeline stage."""

    stage = "unexpected"

    def __init__(self, message: str, detail: Any = None, recorded: bool = False) -> None:
        super().__init__(message)
        self.detail = detail if detail is not None else message
        # True once the Post/Notification bookkeeping has been written
        self.recorded = recorded


class NoConnectedAccount(PublishError):
    """No eligible SocialAccount/Page for the post's brand and user."""

    stage = "resolve"


class UnsupportedPlatform(PublishError):
    """No adapter registered for the post's platform."""

    stage = "resolve"


class TokenExpired(PublishError):
    """Token expired and could not be refreshed."""

    stage = "token"


class TokenRefreshFailed(TokenExpired):
    """Refresh round-trip to the platform token endpoint failed."""

    pass


class MediaValidationFailed(PublishError):
    """Media does not meet platform constraints."""

    stage = "validate"


class MediaTransferFailed(PublishError):
    """Network or platform error while uploading media."""

    stage = "media_transfer"


class PlatformRejected(PublishError):
    """Publish call returned a platform-level error."""

    stage = "publish"


class TokenCipherError(Exception):
    """Raised when a stored token cannot be encrypted or decrypted."""

    pass
