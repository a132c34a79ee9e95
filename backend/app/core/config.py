from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Social Publisher"
    app_env: str = "development"
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_db: str = "social_publisher"
    postgres_user: str = "social_publisher"
    postgres_password: str = "social_publisher"

    redis_host: str = "localhost"
    redis_port: int = 6379

    database_url: str | None = None
    redis_url: str | None = None

    secret_key: str = "change_this_in_production"
    token_encryption_key: str | None = None

    meta_graph_api_base_url: str = "https://graph.facebook.com/v18.0"
    tiktok_api_base_url: str = "https://open.tiktokapis.com/v2"
    x_api_base_url: str = "https://api.x.com/2"
    platform_http_timeout_seconds: float = 20.0

    shop_domain: str = "shop.domain"
    media_public_base_url: str = "http://localhost:8000/media"

    rate_limit_window_seconds: int = 60
    rate_limit_default_per_minute: int = 100
    rate_limit_facebook_per_minute: int = 200
    rate_limit_instagram_per_minute: int = 200
    rate_limit_tiktok_per_minute: int = 6
    rate_limit_twitter_per_minute: int = 50

    publish_queue_backend: str = "celery"
    publish_max_attempts: int = 3
    publish_backoff_seconds: int = 2
    publish_job_lock_ttl_seconds: int = 120
    publish_job_pending_ttl_seconds: int = 3600
    scheduler_interval_seconds: float = 60.0
    scheduler_batch_size: int = 500

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @property
    def platform_rate_limits(self) -> dict[str, int]:
        return {
            "facebook": self.rate_limit_facebook_per_minute,
            "instagram": self.rate_limit_instagram_per_minute,
            "tiktok": self.rate_limit_tiktok_per_minute,
            "twitter": self.rate_limit_twitter_per_minute,
        }

    @property
    def sqlalchemy_database_uri(self) -> str:
        if self.database_url:
            return self.database_url
        return (
            f"postgresql+psycopg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def cache_redis_url(self) -> str:
        if self.redis_url:
            return self.redis_url
        return f"redis://{self.redis_host}:{self.redis_port}/0"


settings = Settings()
