from .account_resolver import AccountResolver
from .analytics_service import AnalyticsService
from .outcome_recorder import OutcomeRecorder
from .publish_service import PublishService
from .token_store import RefreshLocks, TokenStore, is_token_expired

__all__ = [
    "AccountResolver",
    "AnalyticsService",
    "OutcomeRecorder",
    "PublishService",
    "RefreshLocks",
    "TokenStore",
    "is_token_expired",
]
