from typing import Literal

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

IdentityScheme = Literal["telegram_id", "email", "any"]


class Settings(BaseSettings):
    env: str = "local"
    debug: bool = False
    log_level: str = "INFO"

    # Stripe
    stripe_secret_key: SecretStr | None = None
    stripe_webhook_secret: SecretStr | None = None
    stripe_signature_tolerance_sec: int = 300
    # customer read/write-back happens inside the webhook request
    stripe_timeout_sec: float = 10.0

    # BotHelp OpenAPI (optional: without credentials the relay only logs)
    bothelp_api_base: str = "https://openapi.bothelp.io"
    bothelp_token_path: str = "/openapi/oauth/token"
    bothelp_client_id: str | None = None
    bothelp_client_secret: SecretStr | None = None
    bothelp_tag: str = "sub_active"
    bothelp_webhook_url: str | None = None
    bothelp_timeout_sec: float = 10.0

    token_refresh_margin_sec: int = 60
    token_default_ttl_sec: int = 3600

    # which identity kinds the resolver may produce
    identity_scheme: IdentityScheme = "any"
    identity_metadata_key: str = "tg_id"

    # /pay/{lang} -> Stripe Payment Link
    payment_link_base: str = "https://buy.stripe.com"
    payment_links: dict[str, str] = {}
    payment_locales: dict[str, str] = {}
    pay_require_identity: bool = False

    port: int = 3000

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def bothelp_enabled(self) -> bool:
        secret = self.bothelp_client_secret.get_secret_value() if self.bothelp_client_secret else ""
        return bool(self.bothelp_client_id and secret)

    @property
    def bothelp_base_url(self) -> str:
        return self.bothelp_api_base.strip().rstrip("/")


settings = Settings()


def get_settings() -> Settings:
    """FastAPI dependency: process settings"""
    return settings
