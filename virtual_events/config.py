"""
Environment-driven configuration.

Values come from the process environment, optionally seeded from a `.env`
file in the working directory. The result is a plain mapping that the
gateway merges into `app.config`.
"""

import os
from typing import Any, Dict, List

from dotenv import load_dotenv

TRUTHY = {"1", "true", "yes", "on"}


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in TRUTHY


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}")


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if not raw:
        return default
    return [item.strip() for item in raw.split(",") if item.strip()]


def load_config() -> Dict[str, Any]:
    """
    Read every setting the service understands.

    Returns:
        dict: Flask-style upper-case config keys.
    """
    load_dotenv()

    return {
        "DATABASE_URL": os.getenv("DATABASE_URL"),
        "DB_POOL_MIN": _env_int("DB_POOL_MIN", 1),
        "DB_POOL_MAX": _env_int("DB_POOL_MAX", 10),
        "INIT_DB": _env_bool("INIT_DB", False),
        "USE_TRANSACTIONS": _env_bool("USE_TRANSACTIONS", True),
        "JWT_SECRET": os.getenv("JWT_SECRET"),
        "TOKEN_EXPIRATION_MINUTES": _env_int("TOKEN_EXPIRATION_MINUTES", 0),  # 0 = no exp claim
        "RESEND_API_KEY": os.getenv("RESEND_API_KEY"),
        "RESEND_FROM_EMAIL": os.getenv("RESEND_FROM_EMAIL"),
        "CORS_ORIGINS": _env_list("CORS_ORIGINS", ["*"]),
        "LOG_LEVEL": os.getenv("LOG_LEVEL", "INFO").upper(),
        "GATEWAY_PORT": _env_int("GATEWAY_PORT", 5050),
    }
