from .entities import (
    CredentialHolder,
    LinkedAccount,
    Media,
    MediaKind,
    Notification,
    NotificationType,
    Platform,
    Post,
    PostStatus,
    SocialAccount,
    SocialAccountPage,
)
from .errors import (
    InvalidStatusTransition,
    MediaTransferFailed,
    MediaValidationFailed,
    NoConnectedAccount,
    PlatformRejected,
    PublishError,
    TokenCipherError,
    TokenExpired,
    TokenRefreshFailed,
    UnsupportedPlatform,
)

__all__ = [
    "CredentialHolder",
    "InvalidStatusTransition",
    "LinkedAccount",
    "Media",
    "MediaKind",
    "MediaTransferFailed",
    "MediaValidationFailed",
    "NoConnectedAccount",
    "Notification",
    "NotificationType",
    "Platform",
    "PlatformRejected",
    "Post",
    "PostStatus",
    "PublishError",
    "SocialAccount",
    "SocialAccountPage",
    "TokenCipherError",
    "TokenExpired",
    "TokenRefreshFailed",
    "UnsupportedPlatform",
]
