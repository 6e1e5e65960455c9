import os
import secrets
from dataclasses import dataclass, field

from dotenv import load_dotenv

DEFAULT_ADMIN_PASSWORD = "admin123"


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


@dataclass
class Settings:
    database_url: str = "sqlite:///./responses.db"
    upload_dir: str = "./uploads"
    max_file_size: int = 1024 * 1024
    admin_auth_mode: str = "hashed"
    admin_username: str = "admin"
    admin_password: str = DEFAULT_ADMIN_PASSWORD
    jwt_secret: str = ""
    jwt_expire_minutes: int = 120
    login_rate_limit: int = 5
    login_rate_window_seconds: int = 15 * 60
    api_rate_limit: int = 100
    api_rate_window_seconds: int = 15 * 60
    origins: list[str] = field(default_factory=lambda: ["http://localhost:3000"])
    log_level: str = "INFO"
    log_file: str = ""
    app_env: str = "development"
    # set when jwt_secret had to be generated at startup
    generated_jwt_secret: bool = False

    def __post_init__(self):
        if self.admin_auth_mode not in ("hashed", "configured"):
            raise ValueError(f"Unknown ADMIN_AUTH_MODE: {self.admin_auth_mode!r}")
        if not self.jwt_secret:
            self.jwt_secret = secrets.token_hex(64)
            self.generated_jwt_secret = True

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment (and a .env file, if any)."""
        load_dotenv()
        return cls(
            database_url=os.getenv("DATABASE_URL", "sqlite:///./responses.db"),
            upload_dir=os.getenv("UPLOAD_DIR", "./uploads"),
            max_file_size=_int_env("MAX_FILE_SIZE", 1024 * 1024),
            admin_auth_mode=os.getenv("ADMIN_AUTH_MODE", "hashed").strip().lower(),
            admin_username=os.getenv("ADMIN_USERNAME", "admin"),
            admin_password=os.getenv("ADMIN_PASSWORD", DEFAULT_ADMIN_PASSWORD),
            jwt_secret=os.getenv("JWT_SECRET", ""),
            jwt_expire_minutes=_int_env("JWT_EXPIRE_MINUTES", 120),
            login_rate_limit=_int_env("LOGIN_RATE_LIMIT", 5),
            login_rate_window_seconds=_int_env("LOGIN_RATE_WINDOW_SECONDS", 15 * 60),
            api_rate_limit=_int_env("API_RATE_LIMIT", 100),
            api_rate_window_seconds=_int_env("API_RATE_WINDOW_SECONDS", 15 * 60),
            origins=[o.strip() for o in os.getenv("ORIGINS", "http://localhost:3000").split(",") if o.strip()],
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            log_file=os.getenv("LOG_FILE", ""),
            app_env=os.getenv("APP_ENV", "development"),
        )
