from .database import Database
from .repositories import (
    PostgresNotificationRepository,
    PostgresPostRepository,
    PostgresSocialAccountRepository,
)
from .unit_of_work import SqlAlchemyUnitOfWork

__all__ = [
    "Database",
    "PostgresNotificationRepository",
    "PostgresPostRepository",
    "PostgresSocialAccountRepository",
    "SqlAlchemyUnitOfWork",
]
