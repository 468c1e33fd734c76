"""
Configuration management for the trade alert bot.

This module handles all configuration loading from environment variables
and the traders file, and provides type-safe access to configuration values
throughout the application.
"""

import json
import os
import re
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from tradewatch.models import Trader

# Load environment variables from .env file if it exists
load_dotenv()

ADDRESS_PATTERN = re.compile(r"^0x[a-fA-F0-9]{40}$")
MIN_POLL_INTERVAL_MS = 100


def _env_number(name: str, default, cast, errors: list[str]):
    """
    Read a numeric environment variable, falling back to default if malformed.

    Malformed values are recorded in errors so that validate() can report
    them instead of failing at import time.
    """
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return cast(raw)
    except ValueError:
        errors.append(f"{name} must be a number, got {raw!r}")
        return default


class Config:
    """
    Centralized configuration class for the trade alert bot.

    All configuration values are loaded from environment variables with
    sensible defaults where appropriate. Webhook URLs and bot tokens must be
    provided via environment variables.
    """

    # Malformed numeric values found while loading, reported by validate()
    ENV_ERRORS: list[str] = []

    # Notification channels (at least one required)
    DISCORD_WEBHOOK_URL: Optional[str] = os.getenv("DISCORD_WEBHOOK_URL")
    TELEGRAM_BOT_TOKEN: Optional[str] = os.getenv("TELEGRAM_BOT_TOKEN")
    TELEGRAM_CHAT_ID: Optional[str] = os.getenv("TELEGRAM_CHAT_ID")

    # Polymarket Configuration
    POLYMARKET_DATA_API_URL: str = os.getenv(
        "POLYMARKET_DATA_API_URL",
        "https://data-api.polymarket.com"
    )
    POLYMARKET_WEB_URL: str = os.getenv("POLYMARKET_WEB_URL", "https://polymarket.com")
    POSITIONS_PAGE_SIZE: int = _env_number("POSITIONS_PAGE_SIZE", 100, int, ENV_ERRORS)

    # Monitoring
    TRADERS_FILE: Path = Path(os.getenv("TRADERS_FILE", "config/traders.json"))
    POLL_INTERVAL_MS: int = _env_number("POLL_INTERVAL_MS", 1000, int, ENV_ERRORS)
    AGGREGATION_WINDOW_SECONDS: float = _env_number("AGGREGATION_WINDOW_SECONDS", 5, float, ENV_ERRORS)

    # Delivery policy (1 attempt = no retry)
    NOTIFY_MAX_ATTEMPTS: int = _env_number("NOTIFY_MAX_ATTEMPTS", 1, int, ENV_ERRORS)
    NOTIFY_RETRY_DELAY_SECONDS: float = _env_number("NOTIFY_RETRY_DELAY_SECONDS", 1.0, float, ENV_ERRORS)

    # Request Timeouts (seconds)
    API_TIMEOUT: int = _env_number("API_TIMEOUT", 10, int, ENV_ERRORS)

    # Database Configuration
    DB_PATH: Path = Path(os.getenv("DB_PATH", "data/trades.db"))

    # Scheduler Configuration
    TIMEZONE: str = os.getenv("TIMEZONE", "UTC")

    # Logging Configuration
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FILE: Optional[Path] = Path(os.getenv("LOG_FILE", "logs/bot.log")) if os.getenv("LOG_FILE") else None

    @classmethod
    def validate(cls) -> tuple[bool, list[str]]:
        """
        Validate that all required configuration values are present.

        The traders file is loaded as part of validation so that a broken
        trader list is reported before the pipeline is constructed.

        Returns:
            tuple: (is_valid, list_of_errors)
        """
        errors: list[str] = list(cls.ENV_ERRORS)

        has_discord = bool(cls.DISCORD_WEBHOOK_URL)
        has_telegram = bool(cls.TELEGRAM_BOT_TOKEN and cls.TELEGRAM_CHAT_ID)
        if not has_discord and not has_telegram:
            errors.append(
                "DISCORD_WEBHOOK_URL or TELEGRAM_BOT_TOKEN/TELEGRAM_CHAT_ID is required"
            )

        if cls.TELEGRAM_BOT_TOKEN and not cls.TELEGRAM_CHAT_ID:
            errors.append("TELEGRAM_CHAT_ID is required when TELEGRAM_BOT_TOKEN is set")

        # Validate numeric ranges
        if cls.POLL_INTERVAL_MS < MIN_POLL_INTERVAL_MS:
            errors.append(f"POLL_INTERVAL_MS must be at least {MIN_POLL_INTERVAL_MS}ms")

        if cls.AGGREGATION_WINDOW_SECONDS <= 0:
            errors.append("AGGREGATION_WINDOW_SECONDS must be positive")

        if cls.POSITIONS_PAGE_SIZE < 1:
            errors.append("POSITIONS_PAGE_SIZE must be at least 1")

        if cls.API_TIMEOUT < 1:
            errors.append("API_TIMEOUT must be at least 1 second")

        if cls.NOTIFY_MAX_ATTEMPTS < 1:
            errors.append("NOTIFY_MAX_ATTEMPTS must be at least 1")

        try:
            load_traders(cls.TRADERS_FILE)
        except ValueError as e:
            errors.append(str(e))

        return (len(errors) == 0, errors)

    @classmethod
    def ensure_directories(cls) -> None:
        """Create directories for the database and log file if they don't exist."""
        cls.DB_PATH.parent.mkdir(parents=True, exist_ok=True)
        if cls.LOG_FILE:
            cls.LOG_FILE.parent.mkdir(parents=True, exist_ok=True)


def load_traders(path: Optional[Path] = None) -> list[Trader]:
    """
    Load and validate the list of traders to monitor.

    The file must contain a non-empty JSON array of objects, each with an
    ``address`` (0x-prefixed, 40 hex characters) and a ``name``.

    Args:
        path: Path to the traders JSON file. If None, uses Config.TRADERS_FILE

    Returns:
        List of Trader objects in file order

    Raises:
        ValueError: If the file is missing, unreadable, or malformed
    """
    path = path or Config.TRADERS_FILE

    if not path.exists():
        raise ValueError(f"Traders config not found at {path}")

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ValueError(f"Could not read traders config {path}: {e}") from e

    if not isinstance(raw, list) or not raw:
        raise ValueError("Traders config must be a non-empty array")

    traders: list[Trader] = []
    for entry in raw:
        if not isinstance(entry, dict) or not entry.get("address") or not entry.get("name"):
            raise ValueError('Each trader must have "address" and "name" fields')

        address = str(entry["address"])
        if not ADDRESS_PATTERN.match(address):
            raise ValueError(f"Invalid Ethereum address: {address}")

        traders.append(Trader(address=address, name=str(entry["name"])))

    return traders
