from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    telegram_bot_token: Optional[str] = None
    public_url: Optional[str] = None

    # Backend endpoint roles
    n8n_webhook_url: Optional[str] = None
    n8n_strategy_webhook_url: Optional[str] = None
    basic_timeout_seconds: float = 120.0
    strategy_timeout_seconds: float = 300.0

    # Per-user admission control
    user_rate_limit_window_ms: int = 60_000
    user_rate_limit_max_requests: int = 5
    rate_limit_cleanup_interval_seconds: float = 900.0

    conversation_ttl_seconds: float = 600.0

    ton_api_endpoint: str = "https://testnet.toncenter.com/api/v2/jsonRPC"
    wallet_lookup_timeout_seconds: float = 15.0

    vapi_assistant_id: Optional[str] = None
    vapi_web_call_url: Optional[str] = None

    log_level: str = "INFO"
    service_name: str = "TON AI Telegram Bot Bridge"

    class Config:
        env_file = ".env"
        extra = "ignore"

    @property
    def strategy_url(self) -> Optional[str]:
        """Strategy role falls back to the general webhook when no dedicated one is set."""
        return self.n8n_strategy_webhook_url or self.n8n_webhook_url

    @property
    def user_rate_limit_window_seconds(self) -> float:
        return self.user_rate_limit_window_ms / 1000


settings = Settings()
