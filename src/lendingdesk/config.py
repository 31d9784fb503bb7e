"""Configuration management for lendingdesk.

Loads configuration from environment variables and provides defaults.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load .env file if present
load_dotenv()


@dataclass
class Config:
    """Application configuration."""

    # Database
    db_path: Path
    db_url: Optional[str]  # overrides db_path when set (e.g. PostgreSQL)
    busy_timeout: float  # seconds SQLite waits on a locked database

    # Transactions
    tx_retry_max: int
    tx_retry_base_delay: float  # seconds

    # Overdue sweeper
    sweep_interval: float  # seconds

    # Logging
    log_level: str

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        db_path_str = os.environ.get(
            "LENDINGDESK_DB_PATH",
            str(Path.home() / ".lendingdesk" / "lending.db"),
        )
        db_path = Path(db_path_str).expanduser()

        return cls(
            db_path=db_path,
            db_url=os.environ.get("LENDINGDESK_DB_URL") or None,
            busy_timeout=float(os.environ.get("LENDINGDESK_BUSY_TIMEOUT", "5.0")),
            tx_retry_max=int(os.environ.get("LENDINGDESK_TX_RETRY_MAX", "5")),
            tx_retry_base_delay=float(
                os.environ.get("LENDINGDESK_TX_RETRY_DELAY", "0.05")
            ),
            sweep_interval=float(
                os.environ.get("LENDINGDESK_SWEEP_INTERVAL", "3600")
            ),
            log_level=os.environ.get("LENDINGDESK_LOG_LEVEL", "WARNING").upper(),
        )

    def validate(self) -> list[str]:
        """Validate configuration, return list of errors."""
        errors = []

        if self.db_url is None and not self.db_path.parent.exists():
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            except PermissionError:
                errors.append(f"Cannot create database directory: {self.db_path.parent}")

        if self.tx_retry_max < 1:
            errors.append("LENDINGDESK_TX_RETRY_MAX must be at least 1")
        if self.tx_retry_base_delay < 0:
            errors.append("LENDINGDESK_TX_RETRY_DELAY must not be negative")
        if self.busy_timeout < 0:
            errors.append("LENDINGDESK_BUSY_TIMEOUT must not be negative")
        if self.sweep_interval <= 0:
            errors.append("LENDINGDESK_SWEEP_INTERVAL must be positive")
        if self.log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            errors.append(f"Unknown log level: {self.log_level}")

        return errors


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get or create the global config instance."""
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config


def reset_config() -> None:
    """Reset the global config instance. Used for testing."""
    global _config
    _config = None
