from .idempotency import IdempotencyPort, IdempotencyRecord
from .notification_repository import NotificationRepository
from .post_repository import PostRepository
from .publish_adapter import (
    AccountLookup,
    AssetReference,
    MediaFailurePolicy,
    PostAnalytics,
    PublishAdapter,
    PublishOutcome,
    ResolvedAccount,
    TokenGrant,
)
from .social_account_repository import SocialAccountRepository
from .token_cipher import TokenCipher
from .unit_of_work import UnitOfWork

__all__ = [
    "AccountLookup",
    "AssetReference",
    "IdempotencyPort",
    "IdempotencyRecord",
    "MediaFailurePolicy",
    "NotificationRepository",
    "PostAnalytics",
    "PostRepository",
    "PublishAdapter",
    "PublishOutcome",
    "ResolvedAccount",
    "SocialAccountRepository",
    "TokenCipher",
    "TokenGrant",
    "UnitOfWork",
]
