"""
Config Provider Port - Abstract interface for configuration loading.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional


DEFAULT_API_URL = "https://api.github.com"
DEFAULT_DB_FILENAME = ".issuemirror.db"
TRANSPORTS = ("rest", "graphql")


@dataclass
class SourceConfig:
    """Remote API configuration."""

    token: str = ""
    api_url: str = DEFAULT_API_URL
    transport: str = "rest"
    timeout: float = 30.0
    per_page: int = 100
    issue_state: str = "open"

    def is_valid(self) -> bool:
        return bool(self.token and self.api_url and self.transport in TRANSPORTS)


@dataclass
class SyncConfig:
    """Synchronization behaviour."""

    max_retries: int = 3
    backoff_base: float = 1.0
    backoff_max: float = 30.0
    full: bool = False
    stale_after: float = 300.0
    verbose: bool = False


@dataclass
class StoreConfig:
    """Local store location."""

    db_path: Path = field(default_factory=lambda: Path(DEFAULT_DB_FILENAME))

    @property
    def url(self) -> str:
        return f"sqlite:///{self.db_path}"


@dataclass
class AppConfig:
    """Complete application configuration."""

    source: SourceConfig = field(default_factory=SourceConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    repository: Optional[str] = None

    def validate(self) -> list[str]:
        """Validate configuration, return list of errors."""
        errors = []

        if not self.source.token:
            errors.append(
                "Missing GitHub token - set GITHUB_TOKEN, pass --token, or log in with 'gh auth login'"
            )
        if not self.source.api_url:
            errors.append("Missing API URL")
        if self.source.transport not in TRANSPORTS:
            errors.append(
                f"Unknown transport '{self.source.transport}' (expected one of {', '.join(TRANSPORTS)})"
            )
        if self.source.timeout <= 0:
            errors.append("Timeout must be positive")
        if self.sync.max_retries < 0:
            errors.append("max_retries must not be negative")
        if self.repository is not None:
            parts = self.repository.split("/")
            if len(parts) != 2 or not all(parts):
                errors.append(f"Invalid repository format: {self.repository} (expected owner/name)")

        return errors


class ConfigProviderPort(ABC):
    """
    Abstract interface for configuration providers.

    Implementations can load from:
    - Environment variables
    - .env files
    - Command line overrides
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Get the provider name."""
        ...

    @abstractmethod
    def load(self) -> AppConfig:
        """Load complete configuration."""
        ...

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value by key."""
        ...

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """Set a configuration value."""
        ...

    @abstractmethod
    def validate(self) -> list[str]:
        """Validate configuration, return list of errors."""
        ...
