# propdesk/config.py
from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ---- App ----
    app_env: str = "local"  # local|dev|prod
    database_url: str = "sqlite+pysqlite:///:memory:"

    # ---- CORS (used by main.py) ----
    cors_allow_origins: list[str] | str = ["*"]

    # ---- Auth ----
    auth_mode: str = "dev"  # dev|jwt
    dev_header_user_ref: str = "X-User-Ref"

    jwt_secret: str = "dev-change-me"
    jwt_exp_minutes: int = 60 * 24 * 7  # 7 days
    jwt_cookie_name: str = "propdesk_jwt"

    # ---- Outbound notification delivery ----
    notification_webhook_url: str | None = None
    notification_timeout_seconds: float = 5.0

    # ---- Payment gateway ----
    payment_gateway_url: str | None = None
    payment_gateway_api_key: str | None = None
    payment_timeout_seconds: float = 20.0

    # ---- Automatic ledger postings ----
    auto_post_task_costs: bool = True
    auto_post_hoa_fees: bool = True
    auto_post_paid_bookings: bool = True

    default_currency: str = "USD"

    # ---- Logging ----
    log_level: str = "INFO"
    sql_log_level: str = "WARNING"
    log_format: str = "json"  # json|text

    def model_post_init(self, __context) -> None:
        env = (self.app_env or "local").strip().lower()
        is_prod = env in ("prod", "production")

        if is_prod:
            if (self.auth_mode or "").strip().lower() == "dev":
                raise ValueError("SECURITY: auth_mode=dev is not allowed in prod")
            if self.jwt_secret == "dev-change-me":
                raise ValueError("SECURITY: jwt_secret must be set in prod")

            origins = self.cors_allow_origins
            if origins == "*" or origins == ["*"] or (isinstance(origins, str) and "*" in origins):
                raise ValueError("SECURITY: cors_allow_origins wildcard is not allowed in prod")


settings = Settings()
