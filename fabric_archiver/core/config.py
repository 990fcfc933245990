"""Configuration management for the Fabric workspace archiver.

Run options come from a JSON file; credentials come from environment
variables with .env file support.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import platformdirs
from dotenv import load_dotenv

from ..errors import ConfigError
from .retry_policy import RetryPolicy

logger = logging.getLogger(__name__)

# Load .env file from project root
_env_path = Path(__file__).parent.parent.parent / ".env"
load_dotenv(_env_path)

APP_NAME = "fabric-archiver"
APP_AUTHOR = "fabric-archiver"

DEFAULT_API_URL = "https://api.fabric.microsoft.com/v1"
DEFAULT_SUPPORTED_ITEM_TYPES = [
    "Report",
    "SemanticModel",
    "Notebook",
    "SparkJobDefinition",
    "DataPipeline",
    "KQLDatabase",
    "KQLQueryset",
    "Eventhouse",
    "Reflex",
    "Environment",
]


def get_config_path() -> Path:
    """Get the platform-specific default config file path."""
    return Path(platformdirs.user_config_dir(APP_NAME, APP_AUTHOR)) / "config.json"


@dataclass
class RetrySettings:
    """Retry options as they appear in the config file."""

    max_retries: int = 3
    base_delay_seconds: float = 30.0
    backoff_multiplier: float = 2.0

    def to_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.max_retries,
            base_delay=self.base_delay_seconds,
            backoff_multiplier=self.backoff_multiplier,
        )


@dataclass
class Credentials:
    """Service principal credentials for the Fabric REST API."""

    tenant_id: str = ""
    client_id: str = ""
    client_secret: str = ""
    api_url: str = DEFAULT_API_URL

    @property
    def token_url(self) -> str:
        """OAuth2 token endpoint URL."""
        return f"https://login.microsoftonline.com/{self.tenant_id}/oauth2/v2.0/token"

    @property
    def scope(self) -> str:
        return "https://api.fabric.microsoft.com/.default"

    def validate(self) -> list[str]:
        errors = []
        if not self.tenant_id:
            errors.append("FABRIC_TENANT_ID is required")
        if not self.client_id:
            errors.append("FABRIC_CLIENT_ID is required")
        if not self.client_secret:
            errors.append("FABRIC_CLIENT_SECRET is required")
        return errors


@dataclass
class ArchiveConfig:
    """Options for an archive run."""

    workspace_filter: str = ""
    supported_item_types: list[str] = field(
        default_factory=lambda: list(DEFAULT_SUPPORTED_ITEM_TYPES)
    )
    target_folder: Path = Path("./fabric-archive")
    throttle_limit: int = 0  # 0 = auto
    retry: RetrySettings = field(default_factory=RetrySettings)

    def validate(self) -> list[str]:
        """Validate configuration values.

        Returns:
            List of validation error messages, empty if valid.
        """
        errors = []
        if not self.supported_item_types:
            errors.append("supportedItemTypes must list at least one item type")
        if not str(self.target_folder):
            errors.append("targetFolder is required")
        if self.throttle_limit < 0:
            errors.append("throttleLimit must be >= 0")
        if self.retry.max_retries < 0:
            errors.append("retry.maxRetries must be >= 0")
        if self.retry.base_delay_seconds < 0:
            errors.append("retry.baseDelaySeconds must be >= 0")
        if self.retry.backoff_multiplier < 1.0:
            errors.append("retry.backoffMultiplier must be >= 1.0")
        return errors

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ArchiveConfig":
        """Build a config from camelCase JSON data."""
        retry_data = data.get("retry") or {}
        defaults = RetrySettings()
        retry = RetrySettings(
            max_retries=int(retry_data.get("maxRetries", defaults.max_retries)),
            base_delay_seconds=float(
                retry_data.get("baseDelaySeconds", defaults.base_delay_seconds)
            ),
            backoff_multiplier=float(
                retry_data.get("backoffMultiplier", defaults.backoff_multiplier)
            ),
        )

        item_types = data.get("supportedItemTypes")
        if item_types is None:
            item_types = list(DEFAULT_SUPPORTED_ITEM_TYPES)

        return cls(
            workspace_filter=data.get("workspaceFilter") or "",
            supported_item_types=list(item_types),
            target_folder=Path(data.get("targetFolder") or "./fabric-archive"),
            throttle_limit=int(data.get("throttleLimit") or 0),
            retry=retry,
        )


def load_config(path: Optional[Path] = None) -> ArchiveConfig:
    """Load run options from a JSON file.

    Args:
        path: Config file. If None, the platform config dir is checked and
            built-in defaults are used when no file exists there.

    Returns:
        ArchiveConfig populated from the file.

    Raises:
        ConfigError: If an explicit file is missing or not valid JSON.
    """
    if path is None:
        default_path = get_config_path()
        if not default_path.exists():
            logger.debug(f"No config at {default_path}, using defaults")
            return ArchiveConfig()
        path = default_path
    elif not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config root in {path} must be an object")

    logger.debug(f"Loaded config from {path}")
    try:
        return ArchiveConfig.from_dict(data)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value in {path}: {e}") from e


def get_credentials() -> Credentials:
    """Load API credentials from environment variables."""
    return Credentials(
        tenant_id=os.environ.get("FABRIC_TENANT_ID", ""),
        client_id=os.environ.get("FABRIC_CLIENT_ID", ""),
        client_secret=os.environ.get("FABRIC_CLIENT_SECRET", ""),
        api_url=os.environ.get("FABRIC_API_URL", DEFAULT_API_URL).rstrip("/"),
    )
