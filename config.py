import os
from dataclasses import dataclass, field
from typing import Optional


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, default))


@dataclass
class Settings:
    database_url: str = "sqlite+aiosqlite:///./synergysphere.db"
    jwt_secret: str = "devsecret"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24
    refresh_token_expire_days: int = 7
    reset_token_expire_minutes: int = 60
    bcrypt_rounds: int = 12
    app_env: str = "development"
    log_level: str = "INFO"
    upload_dir: str = "public/uploads"
    frontend_url: str = "http://localhost:5173"
    rate_limit_requests: int = 100
    rate_limit_window_seconds: int = 15 * 60
    admin_email: Optional[str] = None
    admin_password: Optional[str] = field(default=None, repr=False)
    port: int = 8000

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            jwt_secret=os.getenv("JWT_SECRET", cls.jwt_secret),
            jwt_algorithm=os.getenv("JWT_ALGORITHM", cls.jwt_algorithm),
            access_token_expire_minutes=_env_int("ACCESS_TOKEN_EXPIRE_MINUTES", cls.access_token_expire_minutes),
            refresh_token_expire_days=_env_int("REFRESH_TOKEN_EXPIRE_DAYS", cls.refresh_token_expire_days),
            reset_token_expire_minutes=_env_int("RESET_TOKEN_EXPIRE_MINUTES", cls.reset_token_expire_minutes),
            bcrypt_rounds=_env_int("BCRYPT_ROUNDS", cls.bcrypt_rounds),
            app_env=os.getenv("APP_ENV", cls.app_env),
            log_level=os.getenv("LOG_LEVEL", cls.log_level),
            upload_dir=os.getenv("UPLOAD_DIR", cls.upload_dir),
            frontend_url=os.getenv("FRONTEND_URL", cls.frontend_url),
            rate_limit_requests=_env_int("RATE_LIMIT_REQUESTS", cls.rate_limit_requests),
            rate_limit_window_seconds=_env_int("RATE_LIMIT_WINDOW_SECONDS", cls.rate_limit_window_seconds),
            admin_email=os.getenv("ADMIN_EMAIL"),
            admin_password=os.getenv("ADMIN_PASSWORD"),
            port=_env_int("PORT", cls.port),
        )
