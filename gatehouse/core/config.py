import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

DEFAULT_BLOCK_EXPLORER_URL = "https://explorer.dcrdata.org/api"


class Settings:
    """Centralised application configuration sourced from environment variables."""

    def __init__(self) -> None:
        load_dotenv()
        self.database_path = Path(os.getenv("DATABASE_PATH", "data/gatehouse.db")).resolve()
        self.session_secret = os.getenv("SESSION_SECRET", "change-me")
        self.session_max_age = self._get_int("SESSION_MAX_AGE", default=86400)
        self.cookie_secure = self._get_bool("COOKIE_SECURE", default=True)
        self.verification_expiry_hours = self._get_int("VERIFICATION_EXPIRY_HOURS", default=24)
        self.reset_password_expiry_hours = self._get_int("RESET_PASSWORD_EXPIRY_HOURS", default=24)
        self.update_key_expiry_hours = self._get_int("UPDATE_KEY_EXPIRY_HOURS", default=24)
        self.login_attempts_to_lock = self._get_int("LOGIN_ATTEMPTS_TO_LOCK", default=5)
        self.bcrypt_rounds = self._get_int("BCRYPT_ROUNDS", default=12)
        self.paywall_amount = self._get_int("PAYWALL_AMOUNT", default=0)
        self.paywall_expiry_hours = self._get_int("PAYWALL_EXPIRY_HOURS", default=24)
        self.paywall_min_confirmations = self._get_int("PAYWALL_MIN_CONFIRMATIONS", default=2)
        self.paywall_poll_seconds = self._get_int("PAYWALL_POLL_SECONDS", default=60)
        self.block_explorer_url = os.getenv("BLOCK_EXPLORER_URL", DEFAULT_BLOCK_EXPLORER_URL)
        self.wallet_url = os.getenv("WALLET_URL")
        self.external_timeout_seconds = self._get_int("EXTERNAL_TIMEOUT_SECONDS", default=10)
        self.smtp_host = os.getenv("SMTP_HOST", "")
        self.smtp_port = self._get_int("SMTP_PORT", default=587)
        self.smtp_username = os.getenv("SMTP_USERNAME", "")
        self.smtp_password = os.getenv("SMTP_PASSWORD", "")
        self.smtp_from_email = os.getenv("SMTP_FROM_EMAIL", "")
        self.web_base_url = os.getenv("WEB_BASE_URL", "http://localhost:3000")
        self.host = os.getenv("HOST", "127.0.0.1")
        self.port = self._get_int("PORT", default=8000)
        origins = os.getenv("CORS_ALLOW_ORIGINS")
        if origins:
            self.cors_allow_origins = [item.strip() for item in origins.split(",") if item.strip()]
        else:
            self.cors_allow_origins = ["*"]
        if self.paywall_enabled and not self.wallet_url:
            raise RuntimeError("WALLET_URL is required when PAYWALL_AMOUNT is set")

    @property
    def paywall_enabled(self) -> bool:
        return self.paywall_amount > 0

    @property
    def email_enabled(self) -> bool:
        return bool(self.smtp_host and self.smtp_username and self.smtp_from_email)

    @staticmethod
    def _get_int(key: str, default: Optional[int] = None) -> int:
        value = os.getenv(key)
        if value is None:
            if default is None:
                raise RuntimeError(f"Missing required environment variable: {key}")
            return default
        try:
            return int(value)
        except ValueError as exc:
            raise RuntimeError(f"Environment variable {key} must be an integer") from exc

    @staticmethod
    def _get_bool(key: str, default: bool) -> bool:
        value = os.getenv(key)
        if value is None:
            return default
        return value.strip().lower() in ("1", "true", "yes", "on")
