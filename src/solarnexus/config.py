"""Environment-driven settings.

Values are read from the process environment, with a `.env` file in the
working directory loaded first if present.
"""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

DEFAULT_SOLAX_BASE_URL = "https://www.solaxcloud.com"
DEFAULT_SOLAX_TIMEOUT = 30.0


def get_db_path() -> Path | None:
    """Get the database path override (SOLARNEXUS_DB_PATH), if set."""
    path = os.environ.get("SOLARNEXUS_DB_PATH")
    return Path(path) if path else None


def get_tariff_config_path() -> Path | None:
    """Get the tariff YAML override (SOLARNEXUS_TARIFF_CONFIG), if set."""
    path = os.environ.get("SOLARNEXUS_TARIFF_CONFIG")
    return Path(path) if path else None


def get_log_level() -> int:
    """Get the log level from SOLARNEXUS_LOG_LEVEL (default: INFO)."""
    name = os.environ.get("SOLARNEXUS_LOG_LEVEL", "INFO").upper()
    level = logging.getLevelName(name)
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level in SOLARNEXUS_LOG_LEVEL: {name}")
    return level


def get_solax_base_url() -> str:
    """Get SolaX Cloud base URL from environment."""
    return os.environ.get("SOLAX_BASE_URL", DEFAULT_SOLAX_BASE_URL).rstrip("/")


def get_solax_timeout() -> float:
    """Get SolaX request timeout in seconds (default: 30)."""
    return float(os.environ.get("SOLAX_TIMEOUT", DEFAULT_SOLAX_TIMEOUT))
