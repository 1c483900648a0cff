"""
Factory for publish adapter instances.

Encapsulates which platforms have an adapter and how each is configured.
"""

import httpx
import structlog

from ...channels import LinkedInAdapter, PinterestAdapter, RedditAdapter
from ...config import Settings
from ...domain.entities import Platform
from ...domain.errors import UnsupportedPlatform
from ...domain.ports import PublishAdapter

logger = structlog.get_logger()


class PublishAdapterFactory:
    """
    Creates the publish adapter for a platform.

    Adapters hold configuration only, so one instance per platform is
    shared by every pipeline in the process.
    """

    def __init__(
        self,
        config: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Args:
            config: Settings with platform credentials and HTTP timeout
            transport: Optional httpx transport (tests use MockTransport)
        """
        self._config = config
        self._transport = transport

    def create(self, platform: Platform) -> PublishAdapter:
        """
        Create the adapter for a platform.

        Raises:
            UnsupportedPlatform: If no adapter exists for the platform
        """
        timeout = self._config.http_timeout_seconds
        match platform:
            case Platform.LINKEDIN:
                return LinkedInAdapter(
                    client_id=self._config.linkedin_client_id,
                    client_secret=self._config.linkedin_client_secret,
                    api_version=self._config.linkedin_api_version,
                    timeout=timeout,
                    transport=self._transport,
                )
            case Platform.REDDIT:
                return RedditAdapter(
                    client_id=self._config.reddit_client_id,
                    client_secret=self._config.reddit_client_secret,
                    user_agent=self._config.reddit_user_agent,
                    timeout=timeout,
                    transport=self._transport,
                )
            case Platform.PINTEREST:
                return PinterestAdapter(
                    app_id=self._config.pinterest_app_id,
                    app_secret=self._config.pinterest_app_secret,
                    api_base=self._config.pinterest_api_base,
                    timeout=timeout,
                    transport=self._transport,
                )
            case _:
                raise UnsupportedPlatform(f"Publishing to {platform.display_name} is not supported")

    def create_all(self) -> dict[Platform, PublishAdapter]:
        """Adapters for every supported platform."""
        adapters: dict[Platform, PublishAdapter] = {}
        for platform in Platform:
            try:
                adapters[platform] = self.create(platform)
            except UnsupportedPlatform:
                logger.debug("No publish adapter for platform", platform=platform.value)
        return adapters
