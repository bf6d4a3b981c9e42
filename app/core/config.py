from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_env: str = Field(default="dev", alias="APP_ENV")
    app_host: str = Field(default="0.0.0.0", alias="APP_HOST")
    app_port: int = Field(default=8000, alias="APP_PORT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    trusted_proxies: str = Field(default="", alias="TRUSTED_PROXIES")

    database_url: str = Field(alias="DATABASE_URL")
    redis_url: str = Field(alias="REDIS_URL")

    celery_broker_url: str = Field(alias="CELERY_BROKER_URL")
    celery_result_backend: str = Field(alias="CELERY_RESULT_BACKEND")

    webhook_secret: str = Field(default="", alias="WEBHOOK_SECRET")
    require_webhook_verification: bool = Field(default=False, alias="REQUIRE_WEBHOOK_VERIFICATION")
    webhook_providers: str = Field(default="kajabi", alias="WEBHOOK_PROVIDERS")

    discord_bot_token: str = Field(alias="DISCORD_BOT_TOKEN")
    discord_guild_id: str = Field(alias="DISCORD_GUILD_ID")
    discord_client_id: str = Field(default="", alias="DISCORD_CLIENT_ID")
    discord_client_secret: str = Field(default="", alias="DISCORD_CLIENT_SECRET")
    discord_redirect_uri: str = Field(default="", alias="DISCORD_REDIRECT_URI")
    discord_admin_id: str = Field(default="", alias="DISCORD_ADMIN_ID")
    discord_api_timeout_seconds: float = Field(default=10.0, alias="DISCORD_API_TIMEOUT_SECONDS")
    discord_role_cache_ttl_seconds: int = Field(default=3600, alias="DISCORD_ROLE_CACHE_TTL_SECONDS")

    resend_api_key: str = Field(default="", alias="RESEND_API_KEY")
    resend_from_email: str = Field(default="", alias="RESEND_FROM_EMAIL")
    admin_email: str = Field(default="", alias="ADMIN_EMAIL")

    organization_name: str = Field(default="Your Organization", alias="ORGANIZATION_NAME")
    support_email: str = Field(default="support@example.com", alias="SUPPORT_EMAIL")
    support_discord_id: str = Field(default="", alias="SUPPORT_DISCORD_ID")
    support_discord_name: str = Field(default="Admin", alias="SUPPORT_DISCORD_NAME")

    default_sessions_per_purchase: int = Field(default=4, alias="DEFAULT_SESSIONS_PER_PURCHASE")
    default_mentee_role_name: str = Field(default="1-on-1 Mentee", alias="DEFAULT_MENTEE_ROLE_NAME")
    pending_join_ttl_hours: int = Field(default=168, alias="PENDING_JOIN_TTL_HOURS")

    webhook_rate_limit_max: int = Field(default=30, alias="WEBHOOK_RATE_LIMIT_MAX")
    webhook_rate_limit_window_ms: int = Field(default=60_000, alias="WEBHOOK_RATE_LIMIT_WINDOW_MS")
    redirect_rate_limit_max: int = Field(default=200, alias="REDIRECT_RATE_LIMIT_MAX")
    redirect_rate_limit_window_ms: int = Field(default=900_000, alias="REDIRECT_RATE_LIMIT_WINDOW_MS")

    analytics_retention_days: int = Field(default=180, alias="ANALYTICS_RETENTION_DAYS")
    analytics_ip_salt: str = Field(default="", alias="ANALYTICS_IP_SALT")
    delayed_join_alert_hours: int = Field(default=48, alias="DELAYED_JOIN_ALERT_HOURS")
    maintenance_batch_size: int = Field(default=1000, alias="MAINTENANCE_BATCH_SIZE")
    maintenance_max_batches: int = Field(default=50, alias="MAINTENANCE_MAX_BATCHES")
    daily_summary_hour_utc: int = Field(default=9, alias="DAILY_SUMMARY_HOUR_UTC")

    ops_alert_webhook_url: str = Field(default="", alias="OPS_ALERT_WEBHOOK_URL")
    ops_alert_slack_webhook_url: str = Field(default="", alias="OPS_ALERT_SLACK_WEBHOOK_URL")
    ops_alert_escalation_policy_json: str = Field(default="", alias="OPS_ALERT_ESCALATION_POLICY_JSON")

    def provider_names(self) -> tuple[str, ...]:
        return tuple(
            name.strip().lower() for name in self.webhook_providers.split(",") if name.strip()
        )

    def ip_hash_key(self) -> str:
        return self.analytics_ip_salt or self.webhook_secret


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
