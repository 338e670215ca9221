"""Configuration management for bucketsync.

Settings come from environment variables and from ``config.json`` in the
config directory (``~/.config/bucketsync`` by default). The config file holds
the storage accounts that sync pairs refer to::

    {
      "accounts": {
        "r2-main": {
          "endpoint_url": "https://<id>.r2.cloudflarestorage.com",
          "region": "auto",
          "access_key_id": "...",
          "secret_access_key": "..."
        }
      }
    }
"""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "config.json"
DATABASE_FILE_NAME = "bucketsync.db"
DEFAULT_MAX_WORKERS = 4


@dataclass
class AccountConfig:
    """Connection settings for one object-storage account."""

    account_id: str
    """Identifier that sync pairs use to refer to this account"""

    endpoint_url: Optional[str] = None
    """S3-compatible endpoint URL (None means AWS S3)"""

    region: Optional[str] = None
    """Region name (``auto`` for R2)"""

    access_key_id: Optional[str] = None
    """Access key; falls back to the default boto3 credential chain if unset"""

    secret_access_key: Optional[str] = None
    """Secret key matching ``access_key_id``"""

    @classmethod
    def from_dict(cls, account_id: str, data: dict) -> "AccountConfig":
        """Create an AccountConfig from a config file entry."""
        return cls(
            account_id=account_id,
            endpoint_url=data.get("endpoint_url"),
            region=data.get("region"),
            access_key_id=data.get("access_key_id"),
            secret_access_key=data.get("secret_access_key"),
        )

    def to_dict(self) -> dict:
        """Convert to a config file entry."""
        return {
            "endpoint_url": self.endpoint_url,
            "region": self.region,
            "access_key_id": self.access_key_id,
            "secret_access_key": self.secret_access_key,
        }


class Config:
    """Configuration manager for bucketsync."""

    def __init__(self, config_dir: Optional[Path] = None):
        """Initialize configuration.

        Args:
            config_dir: Configuration directory. Defaults to
                ``$BUCKETSYNC_CONFIG_DIR`` or ``~/.config/bucketsync``.
        """
        if config_dir is None:
            env_dir = os.environ.get("BUCKETSYNC_CONFIG_DIR")
            config_dir = (
                Path(env_dir) if env_dir else Path.home() / ".config" / "bucketsync"
            )
        self.config_dir = Path(config_dir)
        self._data: Optional[dict] = None

    def get_config_path(self) -> Path:
        """Path of the JSON config file."""
        return self.config_dir / CONFIG_FILE_NAME

    def _load(self) -> dict:
        if self._data is not None:
            return self._data

        path = self.get_config_path()
        if not path.exists():
            self._data = {}
            return self._data

        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid config file {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Invalid config file {path}: expected object")
        self._data = data
        return self._data

    def _save(self) -> None:
        self.config_dir.mkdir(parents=True, exist_ok=True)
        path = self.get_config_path()
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self._load(), f, indent=2)
        # Contains secret keys
        path.chmod(0o600)
        logger.debug("Saved config to %s", path)

    @property
    def database_path(self) -> Path:
        """SQLite database path (``$BUCKETSYNC_DB_PATH`` overrides)."""
        env_path = os.environ.get("BUCKETSYNC_DB_PATH")
        if env_path:
            return Path(env_path)
        return self.config_dir / DATABASE_FILE_NAME

    @property
    def database_url(self) -> str:
        """SQLAlchemy URL for the state database."""
        return f"sqlite:///{self.database_path}"

    @property
    def max_workers(self) -> int:
        """Number of pairs that may sync concurrently.

        ``$BUCKETSYNC_MAX_WORKERS`` overrides ``max_workers`` in the config file.

        Raises:
            ConfigurationError: If the value is not a positive integer
        """
        value = os.environ.get("BUCKETSYNC_MAX_WORKERS")
        source = "BUCKETSYNC_MAX_WORKERS"
        if value is None:
            value = self._load().get("max_workers", DEFAULT_MAX_WORKERS)
            source = f"max_workers in {self.get_config_path()}"
        try:
            workers = int(value)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(
                f"{source} must be an integer, got {value!r}"
            ) from e
        if workers < 1:
            raise ConfigurationError(f"{source} must be at least 1")
        return workers

    def list_accounts(self) -> list[AccountConfig]:
        """All configured storage accounts, sorted by id."""
        accounts = self._load().get("accounts", {})
        return [
            AccountConfig.from_dict(account_id, data)
            for account_id, data in sorted(accounts.items())
        ]

    def get_account(self, account_id: str) -> AccountConfig:
        """Look up a storage account.

        Raises:
            ConfigurationError: If the account is not configured
        """
        accounts = self._load().get("accounts", {})
        if account_id not in accounts:
            raise ConfigurationError(f"Unknown storage account: {account_id}")
        return AccountConfig.from_dict(account_id, accounts[account_id])

    def save_account(self, account: AccountConfig) -> None:
        """Add or replace a storage account in the config file."""
        data = self._load()
        data.setdefault("accounts", {})[account.account_id] = account.to_dict()
        self._save()

    def remove_account(self, account_id: str) -> bool:
        """Remove a storage account. Returns False if it did not exist."""
        accounts = self._load().get("accounts", {})
        if account_id not in accounts:
            return False
        del accounts[account_id]
        self._save()
        return True


config = Config()
