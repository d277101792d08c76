"""
Configuration settings for the chat task bridge.
All sensitive values are loaded from environment variables.
"""

import json
from typing import Dict, List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "Chat Task Bridge"
    debug: bool = Field(default=False, env="DEBUG")
    environment: str = Field(default="production", env="ENVIRONMENT")

    # Server
    host: str = Field(default="0.0.0.0", env="HOST")
    port: int = Field(default=8000, env="PORT")
    webhook_base_url: str = Field(default="", env="WEBHOOK_BASE_URL")

    # Telegram
    telegram_bot_token: str = Field(default="", env="TELEGRAM_BOT_TOKEN")
    telegram_webhook_secret: str = Field(default="", env="TELEGRAM_WEBHOOK_SECRET")
    telegram_max_message_length: int = Field(default=4096, env="TELEGRAM_MAX_MESSAGE_LENGTH")

    # Database (PostgreSQL)
    database_url: str = Field(default="", env="DATABASE_URL")
    database_echo: bool = Field(default=False, env="DATABASE_ECHO")
    db_pool_size: int = Field(default=10, env="DB_POOL_SIZE")
    db_max_overflow: int = Field(default=20, env="DB_MAX_OVERFLOW")
    db_pool_timeout: int = Field(default=30, env="DB_POOL_TIMEOUT")
    db_pool_recycle: int = Field(default=3600, env="DB_POOL_RECYCLE")

    # Task provider
    provider_api_key: str = Field(default="", env="PROVIDER_API_KEY")
    provider_base_url: str = Field(default="https://api.manus.ai", env="PROVIDER_BASE_URL")
    provider_webhook_secret: str = Field(default="", env="PROVIDER_WEBHOOK_SECRET")
    provider_agent_profile: Optional[str] = Field(default=None, env="PROVIDER_AGENT_PROFILE")
    provider_timeout_seconds: float = Field(default=15.0, env="PROVIDER_TIMEOUT_SECONDS")
    provider_max_attempts: int = Field(default=3, env="PROVIDER_MAX_ATTEMPTS")
    provider_retry_base_delay_seconds: float = Field(default=0.3, env="PROVIDER_RETRY_BASE_DELAY_SECONDS")

    # Router / assistant LLM (OpenAI-compatible)
    router_llm_provider: str = Field(default="none", env="ROUTER_LLM_PROVIDER")
    router_llm_api_key: str = Field(default="", env="ROUTER_LLM_API_KEY")
    router_llm_model: str = Field(default="gpt-4o-mini", env="ROUTER_LLM_MODEL")
    router_llm_base_url: str = Field(default="https://api.openai.com/v1", env="ROUTER_LLM_BASE_URL")
    router_llm_timeout_seconds: float = Field(default=20.0, env="ROUTER_LLM_TIMEOUT_SECONDS")

    # Personality used to frame acknowledgements, results and local replies
    agent_personality: str = Field(default="", env="AGENT_PERSONALITY")

    # Connectors
    connector_catalog_url: str = Field(default="", env="CONNECTOR_CATALOG_URL")
    connector_catalog_limit: int = Field(default=200, env="CONNECTOR_CATALOG_LIMIT")
    connector_catalog_ttl_seconds: int = Field(default=300, env="CONNECTOR_CATALOG_TTL_SECONDS")
    enabled_connector_uids: str = Field(default="", env="ENABLED_CONNECTOR_UIDS")
    manual_connector_aliases: str = Field(default="", env="MANUAL_CONNECTOR_ALIASES")

    # Inbound rate limiting
    inbound_rate_limit_hits: int = Field(default=30, env="INBOUND_RATE_LIMIT_HITS")
    inbound_rate_limit_window_seconds: int = Field(default=60, env="INBOUND_RATE_LIMIT_WINDOW_SECONDS")
    inbound_rate_limit_max_keys: int = Field(default=10000, env="INBOUND_RATE_LIMIT_MAX_KEYS")

    # Webhook processing
    send_progress_updates: bool = Field(default=False, env="SEND_PROGRESS_UPDATES")

    # Cleanup / reconciliation
    internal_cleanup_token: str = Field(default="", env="INTERNAL_CLEANUP_TOKEN")
    cleanup_interval_minutes: int = Field(default=15, env="CLEANUP_INTERVAL_MINUTES")
    cleanup_batch_size: int = Field(default=1000, env="CLEANUP_BATCH_SIZE")
    cleanup_max_batches_per_table: int = Field(default=20, env="CLEANUP_MAX_BATCHES_PER_TABLE")
    stale_task_timeout_minutes: int = Field(default=10, env="STALE_TASK_TIMEOUT_MINUTES")
    stale_task_hard_ceiling_hours: int = Field(default=24, env="STALE_TASK_HARD_CEILING_HOURS")
    memory_superseded_retention_days: int = Field(default=30, env="MEMORY_SUPERSEDED_RETENTION_DAYS")
    channel_health_interval_seconds: int = Field(default=30, env="CHANNEL_HEALTH_INTERVAL_SECONDS")

    # Retention (days)
    session_ttl_days: int = Field(default=30, env="SESSION_TTL_DAYS")
    message_ttl_days: int = Field(default=30, env="MESSAGE_TTL_DAYS")
    task_ttl_days: int = Field(default=90, env="TASK_TTL_DAYS")
    webhook_event_ttl_days: int = Field(default=90, env="WEBHOOK_EVENT_TTL_DAYS")
    attachment_ttl_days: int = Field(default=30, env="ATTACHMENT_TTL_DAYS")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @property
    def router_llm_enabled(self) -> bool:
        """Whether an OpenAI-compatible model is configured for routing and replies."""
        return self.router_llm_provider == "openai_compatible" and bool(self.router_llm_api_key)

    @property
    def enabled_connector_uid_list(self) -> List[str]:
        """Parse ENABLED_CONNECTOR_UIDS (comma separated)."""
        return [uid.strip() for uid in self.enabled_connector_uids.split(",") if uid.strip()]

    @property
    def manual_connector_alias_map(self) -> Dict[str, List[str]]:
        """
        Parse MANUAL_CONNECTOR_ALIASES.

        Expected JSON shape: {"<connector uid>": ["alias", "other alias"]}.
        Invalid JSON yields an empty mapping.
        """
        if not self.manual_connector_aliases.strip():
            return {}
        try:
            raw = json.loads(self.manual_connector_aliases)
        except json.JSONDecodeError:
            return {}
        if not isinstance(raw, dict):
            return {}

        aliases: Dict[str, List[str]] = {}
        for uid, values in raw.items():
            if isinstance(values, str):
                values = [values]
            if not isinstance(values, list):
                continue
            cleaned = [v.strip() for v in values if isinstance(v, str) and v.strip()]
            if cleaned:
                aliases[str(uid)] = cleaned
        return aliases


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get the application settings."""
    return settings
