from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_csv(raw: str) -> list[str]:
    return [item.strip() for item in (raw or "").split(",") if item.strip()]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # --- Transport ---
    telegram_bot_token: str = ""
    bot_username: str = "YourBotUsername"
    webhook_base_url: str = ""
    webhook_secret: str = ""
    web_host: str = "0.0.0.0"
    web_port: int = 8080

    # --- Project ---
    project_name: str = "My Project"
    project_url: str = "https://yourproject.com"
    link_allowed_origins: str = ""

    # --- Storage ---
    database_url: str = ""
    serverless_mode: bool = False
    redis_url: str = "redis://localhost:6379/0"

    # --- Chain / market ---
    token_address: str = ""
    staking_contract_address: str = ""
    token_decimals: int = 18
    reward_decimals: int = 6
    rpc_urls: str = "https://mainnet.base.org,https://base.publicnode.com"
    dexscreener_base: str = "https://api.dexscreener.com"
    http_timeout_sec: float = 10.0

    # --- Linking ---
    link_token_length: int = 32
    link_token_ttl_minutes: int = 15

    # --- Quotas / limits ---
    max_active_alerts: int = 5
    max_watchlist: int = 10
    request_rate_limit_per_minute: int = 30

    # --- Alerts ---
    alert_check_interval_sec: int = 300
    alert_scheduler_enabled: bool = True
    cron_secret: str = ""

    log_level: str = "INFO"

    def rpc_urls_list(self) -> list[str]:
        return _split_csv(self.rpc_urls)

    def link_allowed_origins_list(self) -> list[str]:
        return _split_csv(self.link_allowed_origins)

    @property
    def store_configured(self) -> bool:
        return bool(self.database_url.strip())

    @property
    def webhook_mode(self) -> bool:
        return bool(self.webhook_base_url.strip())


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
