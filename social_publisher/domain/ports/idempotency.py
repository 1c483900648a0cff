"""
Outbound port for idempotency checking.

This port defines the interface for idempotency operations.
Implementations live in the infrastructure layer.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any


@dataclass
class IdempotencyRecord:
    """Record of a processed operation."""

    key: str
    status: str  # processing, completed, failed
    created_at: datetime
    completed_at: datetime | None = None
    result: dict | None = None
    error: str | None = None


class IdempotencyPort(ABC):
    """
    Outbound port for idempotency checking.

    Used at the call site to keep a publish pipeline from running twice
    for the same post and to keep an outcome from being recorded twice.
    """

    @abstractmethod
    def generate_key(self, post_id: str, parts: list[str]) -> str:
        """
        Generate a unique idempotency key.

        Args:
            post_id: Post identifier
            parts: Extra discriminators (platform, outcome type, external id)

        Returns:
            Unique key for this operation
        """
        ...

    @abstractmethod
    def check_and_lock(self, key: str) -> IdempotencyRecord | None:
        """
        Check if operation exists and lock if not.

        Args:
            key: Idempotency key

        Returns:
            Existing record if found, None if new (and locked)
        """
        ...

    @abstractmethod
    def mark_completed(self, key: str, result: dict[str, Any]) -> None:
        """
        Mark operation as completed.

        Args:
            key: Idempotency key
            result: Operation result
        """
        ...

    @abstractmethod
    def mark_failed(self, key: str, error: str) -> None:
        """
        Mark operation as failed.

        Args:
            key: Idempotency key
            error: Error message
        """
        ...

    @abstractmethod
    def release_lock(self, key: str) -> None:
        """Release a processing lock without marking complete."""
        ...
