import logging
from decimal import Decimal

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import Optional

class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    CONFIG_STRICT: bool = False

    # Database
    DATABASE_URL: Optional[str] = None
    TEST_DATABASE_URL: Optional[str] = None

    # Supabase (auth + storage)
    SUPABASE_URL: Optional[str] = None
    SUPABASE_ANON_KEY: Optional[str] = None
    SUPABASE_SERVICE_ROLE_KEY: Optional[str] = None

    # Access token verification
    SUPABASE_JWT_SECRET: Optional[str] = None  # HS256 project secret
    SUPABASE_JWT_AUDIENCE: str = "authenticated"
    SUPABASE_JWKS_URL: Optional[str] = None  # asymmetric keys, used when no secret is set

    # Payment proofs
    PROOF_BUCKET: str = "payment-proofs"
    MAX_PROOF_BYTES: int = 5 * 1024 * 1024
    MAX_REQUEST_BYTES: int = 8 * 1024 * 1024  # whole body, multipart overhead included

    # Subscription plan
    SUBSCRIPTION_PRICE: Decimal = Decimal("49.00")
    PAYPAL_CURRENCY: str = "USD"
    USDT_CURRENCY: str = "USDT"
    USDT_WALLET_ADDRESS: str = "TQn9Y2khEsLJW1ChVWFMSMeRDow5KcbLSE"
    USDT_NETWORK: str = "TRC20"

    # Gated community
    DISCORD_INVITE_URL: str = "https://discord.gg/sentientmarkets"

    # App URLs
    SITE_URL: str = "http://localhost:3000"
    PASSWORD_RESET_PATH: str = "/reset-password"
    CORS_ORIGINS: str = "http://localhost:3000"  # comma-separated

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def cors_origins(self) -> list[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def password_reset_url(self) -> str:
        return f"{self.SITE_URL.rstrip('/')}{self.PASSWORD_RESET_PATH}"


settings = Settings()


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Validate required configuration.

    In strict mode raise RuntimeError; otherwise emit warnings only.
    Secrets are not logged, only missing keys.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("sentient")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    required_keys = [
        "DATABASE_URL",
        "SUPABASE_URL",
        "SUPABASE_ANON_KEY",
        "SUPABASE_SERVICE_ROLE_KEY",
    ]

    missing = [key for key in required_keys if not getattr(cfg, key, None)]
    if not (cfg.SUPABASE_JWT_SECRET or cfg.SUPABASE_JWKS_URL):
        missing.append("SUPABASE_JWT_SECRET|SUPABASE_JWKS_URL")
    if missing:
        message = f"Missing required configuration: {', '.join(missing)}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    return True
