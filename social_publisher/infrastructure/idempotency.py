"""Idempotency service for publish pipelines.

Prevents a post from being published twice by overlapping pipelines and
keeps an outcome from producing two notifications.
"""

import hashlib
import time
from datetime import datetime
from typing import Any

import structlog

from ..domain.ports import IdempotencyPort, IdempotencyRecord

logger = structlog.get_logger()

# Default TTL for idempotency keys (24 hours)
DEFAULT_TTL_SECONDS = 86400

# A pipeline stuck in "processing" longer than this may be retried
DEFAULT_PROCESSING_TIMEOUT_SECONDS = 300


class InMemoryIdempotencyService(IdempotencyPort):
    """
    In-memory implementation of IdempotencyPort.

    Only guards pipelines inside one process. Several publisher processes
    need a shared store (Redis, a database table) instead.
    """

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        processing_timeout_seconds: int = DEFAULT_PROCESSING_TIMEOUT_SECONDS,
    ) -> None:
        """
        Initialize idempotency service.

        Args:
            ttl_seconds: Time-to-live for idempotency records
            processing_timeout_seconds: Age after which a processing lock is stale
        """
        self._ttl_seconds = ttl_seconds
        self._processing_timeout = processing_timeout_seconds
        self._cache: dict[str, IdempotencyRecord] = {}
        self._expires: dict[str, float] = {}

    def generate_key(self, post_id: str, parts: list[str]) -> str:
        """
        Generate an idempotency key for a post operation.

        Args:
            post_id: The post ID
            parts: Ordered discriminators (platform, outcome type, external id)

        Returns:
            SHA256 hash of post_id + parts
        """
        key_input = ":".join([post_id, *parts])
        return hashlib.sha256(key_input.encode()).hexdigest()

    def check_and_lock(self, key: str) -> IdempotencyRecord | None:
        """
        Check if an operation has run and lock it for processing.

        Args:
            key: The idempotency key

        Returns:
            Existing record if already processed/processing, None if new
        """
        self._cleanup_expired()

        existing = self._cache.get(key)

        if existing:
            if existing.status == "completed":
                logger.info(
                    "Operation already completed (idempotent)",
                    idempotency_key=key[:16],
                )
                return existing

            if existing.status == "processing":
                age = (datetime.now() - existing.created_at).total_seconds()
                if age > self._processing_timeout:
                    logger.warning(
                        "Processing timeout, allowing retry",
                        idempotency_key=key[:16],
                    )
                else:
                    logger.info(
                        "Operation currently being processed",
                        idempotency_key=key[:16],
                    )
                    return existing

        # Lock for processing
        record = IdempotencyRecord(
            key=key,
            status="processing",
            created_at=datetime.now(),
        )
        self._cache[key] = record
        self._expires[key] = time.time() + self._ttl_seconds

        logger.debug("Locked operation for processing", idempotency_key=key[:16])
        return None

    def mark_completed(self, key: str, result: dict[str, Any]) -> None:
        """
        Mark an operation as successfully processed.

        Args:
            key: The idempotency key
            result: The processing result to cache
        """
        if key in self._cache:
            record = self._cache[key]
            self._cache[key] = IdempotencyRecord(
                key=record.key,
                status="completed",
                created_at=record.created_at,
                completed_at=datetime.now(),
                result=result,
            )
            logger.debug("Marked operation as completed", idempotency_key=key[:16])

    def mark_failed(self, key: str, error: str) -> None:
        """
        Mark an operation as failed (allows retry).

        Args:
            key: The idempotency key
            error: The error message
        """
        if key in self._cache:
            record = self._cache[key]
            self._cache[key] = IdempotencyRecord(
                key=record.key,
                status="failed",
                created_at=record.created_at,
                completed_at=datetime.now(),
                error=error,
            )
            logger.debug(
                "Marked operation as failed",
                idempotency_key=key[:16],
                error=error,
            )

    def release_lock(self, key: str) -> None:
        """
        Release a processing lock without marking complete.

        Args:
            key: The idempotency key
        """
        if key in self._cache:
            del self._cache[key]
            self._expires.pop(key, None)
            logger.debug("Released processing lock", idempotency_key=key[:16])

    def _cleanup_expired(self) -> None:
        """Remove expired records from cache."""
        now = time.time()
        expired = [k for k, v in self._expires.items() if v < now]
        for key in expired:
            del self._cache[key]
            del self._expires[key]
        if expired:
            logger.debug("Cleaned up expired idempotency records", count=len(expired))
