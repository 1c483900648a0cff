from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Publisher settings loaded from environment."""

    # Service
    service_name: str = "social-publisher"

    # Database
    db_host: str = "localhost"
    db_port: int = 5432
    db_name: str = "social"
    db_user: str = "dbadmin"
    db_password: str = ""

    # Token encryption (shared with the web application)
    token_encryption_key: str = ""
    token_cipher_aad: str = "nextjs-token"

    # Outbound HTTP
    http_timeout_seconds: float = 30.0

    # LinkedIn API
    linkedin_client_id: str = ""
    linkedin_client_secret: str = ""
    linkedin_api_version: str = "202402"

    # Reddit API
    reddit_client_id: str = ""
    reddit_client_secret: str = ""
    reddit_user_agent: str = "social-publisher/1.0"

    # Pinterest API
    pinterest_app_id: str = ""
    pinterest_app_secret: str = ""
    pinterest_api_base: str = "https://api.pinterest.com/v5"

    # Scheduling
    poll_interval_seconds: int = 60  # Check for due posts every minute
    batch_size: int = 100  # Max posts to publish per poll
    max_concurrent_publishes: int = 10

    # Platforms where a failed media upload fails the post instead of
    # publishing text-only
    strict_media_platforms: list[str] = []

    @property
    def database_url(self) -> str:
        return f"postgresql+asyncpg://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
