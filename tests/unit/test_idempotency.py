"""Tests for idempotency service."""

import time
from datetime import datetime, timedelta

from social_publisher.domain.ports import IdempotencyRecord
from social_publisher.infrastructure.idempotency import InMemoryIdempotencyService


class TestIdempotencyService:
    """Tests for the idempotency service."""

    def setup_method(self) -> None:
        self.service = InMemoryIdempotencyService(ttl_seconds=60)

    def test_generate_key_consistent(self) -> None:
        """Same inputs should generate same key."""
        key1 = self.service.generate_key("post-123", ["LINKEDIN"])
        key2 = self.service.generate_key("post-123", ["LINKEDIN"])
        assert key1 == key2

    def test_generate_key_distinguishes_outcome(self) -> None:
        """The pipeline guard and the success guard must not collide."""
        pipeline = self.service.generate_key("post-123", ["LINKEDIN"])
        success = self.service.generate_key("post-123", ["POST_PUBLISHED", "urn:li:share:1"])
        assert pipeline != success

    def test_generate_key_different_posts(self) -> None:
        """Different posts should have different keys."""
        key1 = self.service.generate_key("post-123", ["REDDIT"])
        key2 = self.service.generate_key("post-456", ["REDDIT"])
        assert key1 != key2

    def test_check_and_lock_new_post(self) -> None:
        """New post should return None and be locked."""
        key = self.service.generate_key("post-new", ["LINKEDIN"])
        assert self.service.check_and_lock(key) is None

    def test_check_and_lock_processing_post(self) -> None:
        """Post being processed should return existing record."""
        key = self.service.generate_key("post-processing", ["LINKEDIN"])

        self.service.check_and_lock(key)

        result = self.service.check_and_lock(key)
        assert result is not None
        assert result.status == "processing"

    def test_stale_processing_lock_allows_retry(self) -> None:
        service = InMemoryIdempotencyService(processing_timeout_seconds=10)
        key = service.generate_key("post-stuck", ["LINKEDIN"])
        service._cache[key] = IdempotencyRecord(
            key=key,
            status="processing",
            created_at=datetime.now() - timedelta(seconds=30),
        )
        service._expires[key] = time.time() + 60

        assert service.check_and_lock(key) is None

    def test_mark_completed(self) -> None:
        """Completed post should be cached."""
        key = self.service.generate_key("post-complete", ["LINKEDIN"])

        self.service.check_and_lock(key)
        self.service.mark_completed(key, {"external_url": "https://example.com/1"})

        result = self.service.check_and_lock(key)
        assert result is not None
        assert result.status == "completed"
        assert result.result == {"external_url": "https://example.com/1"}

    def test_mark_failed_allows_relock(self) -> None:
        key = self.service.generate_key("post-failed", ["LINKEDIN"])

        self.service.check_and_lock(key)
        self.service.mark_failed(key, "Connection error")

        assert self.service.check_and_lock(key) is None

    def test_release_lock(self) -> None:
        """Released lock should allow new processing."""
        key = self.service.generate_key("post-release", ["LINKEDIN"])

        self.service.check_and_lock(key)
        self.service.release_lock(key)

        assert self.service.check_and_lock(key) is None

    def test_expired_records_cleaned(self) -> None:
        service = InMemoryIdempotencyService(ttl_seconds=0)
        key = service.generate_key("post-expire", ["LINKEDIN"])

        service.check_and_lock(key)
        service.mark_completed(key, {"external_url": "https://example.com/1"})

        time.sleep(0.1)

        assert service.check_and_lock(key) is None
