"""
=============================================================================
CONFIGURATION
=============================================================================

Settings come from the process environment, optionally pre-seeded from a
`.env` file. Variables already set in the environment win over the file:

    $ cat .env
    JWT_SECRET=change-me
    APP_DEBUG=true

    $ APP_DEBUG=false python -m fileroute serve     → debug is off

=============================================================================
KEYS
=============================================================================

    APP_ENV              production | development | ...    (production)
    APP_DEBUG            error details in 500 pages          (false)
    APP_DIR              route tree root                     (app)
    JWT_SECRET           HMAC key for tokens                 (required)
    JWT_ACCESS_EXP       access token lifetime, seconds      (900)
    JWT_REFRESH_EXP      refresh token lifetime, seconds     (604800)
    JWT_LEEWAY           tolerated clock skew, seconds       (0)
    SECURE_COOKIES       Secure cookies + HSTS               (false)
    CSRF_ENABLED         CSRF checks on form posts           (true)
    LOGIN_PATH           where unauthenticated browsers go   (/login)
    LOG_FILE             log file; unset logs to stderr
    LOG_LEVEL            debug | info | warning | error      (info)
    DB_PATH              SQLite file                         (storage/db/app.db)
    RATE_LIMIT_BACKEND   memory | redis                      (memory)
    REDIS_URL            used by the redis backend
    HOST / PORT          development server address          (127.0.0.1:8000)

=============================================================================
"""

from dataclasses import dataclass
from typing import Any, Optional
import os

from dotenv import load_dotenv

from .exceptions import ConfigurationError


LOG_LEVELS = ("debug", "info", "warning", "error")
RATE_LIMIT_BACKENDS = ("memory", "redis")


def env(key: str, default: Any = None) -> Any:
    """
    Read an environment variable.

    "true"/"false" (any case) become booleans; anything else is returned
    as the raw string. Unset variables give `default`.
    """
    value = os.environ.get(key)
    if value is None:
        return default
    lowered = value.strip().lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    return value


def env_bool(key: str, default: bool = False) -> bool:
    value = env(key, default)
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "yes", "on")


def env_int(key: str, default: int) -> int:
    value = env(key)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{key} must be an integer, got {value!r}") from e


def load_env_file(path: Optional[str] = ".env") -> bool:
    """Load a .env file without overriding the environment; True if found."""
    if not path or not os.path.isfile(path):
        return False
    return load_dotenv(path, override=False)


@dataclass
class AppConfig:
    """
    Application settings.

    Usage:
        config = AppConfig.from_env(env_file=".env")
        config.validate(require_secret=True)
    """

    app_env: str = "production"
    debug: bool = False
    app_dir: str = "app"

    jwt_secret: Optional[str] = None
    jwt_access_exp: int = 900
    jwt_refresh_exp: int = 604800
    jwt_leeway: int = 0

    secure_cookies: bool = False
    csrf_enabled: bool = True
    login_path: str = "/login"

    log_file: Optional[str] = None
    log_level: str = "info"

    db_path: str = "storage/db/app.db"

    rate_limit_backend: str = "memory"
    redis_url: Optional[str] = None

    host: str = "127.0.0.1"
    port: int = 8000

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "AppConfig":
        """
        Build the configuration from the environment.

        Args:
            env_file: .env file to load first (missing files are ignored)
        """
        if env_file:
            load_env_file(env_file)

        return cls(
            app_env=str(env("APP_ENV", "production")),
            debug=env_bool("APP_DEBUG", False),
            app_dir=str(env("APP_DIR", "app")),
            jwt_secret=env("JWT_SECRET") or None,
            jwt_access_exp=env_int("JWT_ACCESS_EXP", 900),
            jwt_refresh_exp=env_int("JWT_REFRESH_EXP", 604800),
            jwt_leeway=env_int("JWT_LEEWAY", 0),
            secure_cookies=env_bool("SECURE_COOKIES", False),
            csrf_enabled=env_bool("CSRF_ENABLED", True),
            login_path=str(env("LOGIN_PATH", "/login")),
            log_file=env("LOG_FILE") or None,
            log_level=str(env("LOG_LEVEL", "info")).lower(),
            db_path=str(env("DB_PATH", "storage/db/app.db")),
            rate_limit_backend=str(env("RATE_LIMIT_BACKEND", "memory")).lower(),
            redis_url=env("REDIS_URL") or None,
            host=str(env("HOST", "127.0.0.1")),
            port=env_int("PORT", 8000),
        )

    def validate(self, require_secret: bool = False) -> None:
        """
        Fail fast on bad settings.

        Raises:
            ValueError: an out-of-range or unknown value
            ConfigurationError: JWT_SECRET missing and require_secret is set
        """
        if not 0 < self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 1-65535.")
        if self.jwt_access_exp <= 0 or self.jwt_refresh_exp <= 0:
            raise ValueError("JWT_ACCESS_EXP and JWT_REFRESH_EXP must be > 0")
        if self.jwt_leeway < 0:
            raise ValueError("JWT_LEEWAY must be >= 0")
        if self.log_level not in LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}")
        if self.rate_limit_backend not in RATE_LIMIT_BACKENDS:
            raise ValueError(f"RATE_LIMIT_BACKEND must be one of {', '.join(RATE_LIMIT_BACKENDS)}")
        if self.rate_limit_backend == "redis" and not self.redis_url:
            raise ValueError("RATE_LIMIT_BACKEND=redis requires REDIS_URL")
        if not self.login_path.startswith("/"):
            raise ValueError("LOGIN_PATH must start with /")
        if require_secret and not self.jwt_secret:
            raise ConfigurationError("JWT_SECRET not configured")
