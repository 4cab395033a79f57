"""
Runtime configuration, read from the environment once at startup.

Values may also come from a `.env` file next to the process (python-dotenv).
"""
import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    return int(raw) if raw else default


@dataclass
class Settings:
    database_url: str = "sqlite:///./tradedesk.db"
    jwt_secret: str = "tradedesk-secret-change-in-production"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 7 * 24 * 60
    frontend_url: str = "http://localhost:3001"
    port: int = 8000
    log_level: str = "INFO"
    chat_rate_limit: int = 30
    chat_rate_window_seconds: int = 60
    admin_email: Optional[str] = None
    admin_password: Optional[str] = None
    extra_origins: list = field(default_factory=lambda: ["http://localhost:3000"])

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            jwt_secret=os.getenv("JWT_SECRET", cls.jwt_secret),
            jwt_algorithm=os.getenv("JWT_ALGORITHM", cls.jwt_algorithm),
            access_token_expire_minutes=_env_int("ACCESS_TOKEN_EXPIRE_MINUTES", cls.access_token_expire_minutes),
            frontend_url=os.getenv("FRONTEND_URL", cls.frontend_url),
            port=_env_int("PORT", cls.port),
            log_level=os.getenv("LOG_LEVEL", cls.log_level),
            chat_rate_limit=_env_int("CHAT_RATE_LIMIT", cls.chat_rate_limit),
            chat_rate_window_seconds=_env_int("CHAT_RATE_WINDOW_SECONDS", cls.chat_rate_window_seconds),
            admin_email=os.getenv("ADMIN_EMAIL"),
            admin_password=os.getenv("ADMIN_PASSWORD"),
        )

    @property
    def allowed_origins(self) -> list:
        return [o for o in [self.frontend_url, *self.extra_origins] if o]
