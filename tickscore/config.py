"""TickScore — application configuration.

Loads .env variables into a typed config object.
Validates numeric variables on startup.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv


@dataclass(frozen=True)
class Config:
    """Typed configuration loaded from environment variables."""

    db_path: str
    log_level: str
    api_port: int
    data_dir: str
    strategy_config_path: str | None = None


def _int_var(name: str, default: str) -> int:
    raw = os.environ.get(name, default)
    try:
        return int(raw)
    except ValueError:
        raise ValueError(
            f"Environment variable {name} must be an integer, got '{raw}'"
        ) from None


def load_config(env_path: str | None = None) -> Config:
    """Load configuration from environment variables.

    Every variable is optional.  Raises ``ValueError`` naming the variable
    when a numeric value cannot be parsed.
    """
    load_dotenv(dotenv_path=env_path)

    return Config(
        db_path=os.environ.get("TICKSCORE_DB_PATH", "data/tickscore.db"),
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
        api_port=_int_var("API_PORT", "8080"),
        data_dir=os.environ.get("DATA_DIR", "data"),
        strategy_config_path=os.environ.get("STRATEGY_CONFIG_PATH") or None,
    )
