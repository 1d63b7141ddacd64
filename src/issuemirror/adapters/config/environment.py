"""
Environment Config Provider - Load configuration from environment variables.

Supports:
- Environment variables (GITHUB_TOKEN, ISSUEMIRROR_*)
- .env files
- Command line argument overrides
- The GitHub CLI (`gh auth token`) as a last-resort token source
"""

import logging
import os
import subprocess
from pathlib import Path
from typing import Any, Optional

from ...core.ports.config_provider import (
    ConfigProviderPort,
    AppConfig,
    SourceConfig,
    SyncConfig,
    StoreConfig,
    DEFAULT_API_URL,
)
from ..storage.path import resolve_db_path


logger = logging.getLogger("EnvironmentConfigProvider")


def gh_cli_token(timeout: float = 5.0) -> Optional[str]:
    """Ask the GitHub CLI for its token; None if gh is missing or logged out."""
    try:
        result = subprocess.run(
            ["gh", "auth", "token"],
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug(f"GitHub CLI unavailable: {e}")
        return None

    token = result.stdout.strip()
    if result.returncode != 0 or not token:
        return None
    return token


class EnvironmentConfigProvider(ConfigProviderPort):
    """
    Configuration provider that loads from environment variables and .env files.
    """

    ENV_PREFIX = "ISSUEMIRROR_"

    def __init__(
        self,
        env_file: Optional[Path] = None,
        cli_overrides: Optional[dict[str, Any]] = None,
        use_gh_cli: bool = True,
    ):
        """
        Initialize the config provider.

        Args:
            env_file: Path to .env file (auto-detected if not specified)
            cli_overrides: Command line argument overrides
            use_gh_cli: Fall back to `gh auth token` when no token is set
        """
        self._values: dict[str, Any] = {}
        self._env_file = env_file
        self._cli_overrides = cli_overrides or {}
        self._use_gh_cli = use_gh_cli
        self.token_source: Optional[str] = None

        # Load configuration
        self._load_env_file()
        self._load_environment()
        self._apply_cli_overrides()

    # -------------------------------------------------------------------------
    # ConfigProviderPort Implementation
    # -------------------------------------------------------------------------

    @property
    def name(self) -> str:
        return "Environment"

    def load(self) -> AppConfig:
        """Load complete configuration."""
        source = SourceConfig(
            token=self._resolve_token(),
            api_url=self.get("api_url", DEFAULT_API_URL),
            transport=str(self.get("transport", "rest")).lower(),
            timeout=float(self.get("timeout", 30.0)),
            per_page=int(self.get("per_page", 100)),
            issue_state=self.get("issue_state", "open"),
        )

        sync = SyncConfig(
            max_retries=int(self.get("max_retries", 3)),
            backoff_base=float(self.get("backoff_base", 1.0)),
            backoff_max=float(self.get("backoff_max", 30.0)),
            full=bool(self.get("full", False)),
            stale_after=float(self.get("stale_after", 300.0)),
            verbose=bool(self.get("verbose", False)),
        )

        store = StoreConfig(
            db_path=resolve_db_path(self._cli_overrides.get("db"), self._values.get("db_path")),
        )

        return AppConfig(
            source=source,
            sync=sync,
            store=store,
            repository=self.get("repository"),
        )

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value."""
        # Normalize key
        key = key.lower().replace("-", "_")

        # Check CLI overrides first
        if key in self._cli_overrides and self._cli_overrides[key] is not None:
            return self._cli_overrides[key]

        # Check loaded values
        return self._values.get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Set a configuration value."""
        key = key.lower().replace("-", "_")
        self._values[key] = value

    def validate(self) -> list[str]:
        """Validate configuration."""
        return self.load().validate()

    # -------------------------------------------------------------------------
    # Private Methods
    # -------------------------------------------------------------------------

    def _resolve_token(self) -> str:
        """Token precedence: override/env/.env, then the GitHub CLI."""
        token = self.get("github_token")
        if token:
            self.token_source = self.token_source or "environment"
            return str(token)

        if self._use_gh_cli:
            token = gh_cli_token()
            if token:
                self.token_source = "gh"
                return token

        return ""

    def _load_env_file(self) -> None:
        """Load values from .env file."""
        env_file = self._find_env_file()
        if not env_file:
            return

        for line in env_file.read_text().splitlines():
            line = line.strip()

            # Skip empty lines and comments
            if not line or line.startswith("#"):
                continue

            # Parse key=value
            if "=" not in line:
                continue

            key, value = line.split("=", 1)
            key = key.strip().lower()
            if key.startswith(self.ENV_PREFIX.lower()):
                key = key[len(self.ENV_PREFIX):]
            value = value.strip().strip('"').strip("'")

            self._values[key] = self._coerce(value)
            if key == "github_token":
                self.token_source = ".env"

    def _find_env_file(self) -> Optional[Path]:
        """Find .env file."""
        if self._env_file is not None:
            return self._env_file if self._env_file.exists() else None

        # Check current directory
        cwd_env = Path.cwd() / ".env"
        if cwd_env.exists():
            return cwd_env

        return None

    def _load_environment(self) -> None:
        """Load values from environment variables."""
        env_mapping = {
            "GITHUB_TOKEN": "github_token",
            "ISSUEMIRROR_REPOSITORY": "repository",
            "ISSUEMIRROR_DB_PATH": "db_path",
            "ISSUEMIRROR_API_URL": "api_url",
            "ISSUEMIRROR_TRANSPORT": "transport",
            "ISSUEMIRROR_TIMEOUT": "timeout",
            "ISSUEMIRROR_MAX_RETRIES": "max_retries",
            "ISSUEMIRROR_VERBOSE": "verbose",
        }

        for env_key, config_key in env_mapping.items():
            raw_value = os.environ.get(env_key)
            if raw_value is not None:
                self._values[config_key] = self._coerce(raw_value)
                if config_key == "github_token":
                    self.token_source = "environment"

    def _apply_cli_overrides(self) -> None:
        """Apply CLI argument overrides."""
        # Map CLI args to config keys
        cli_mapping = {
            "repository": "repository",
            "token": "github_token",
            "transport": "transport",
            "api_url": "api_url",
            "timeout": "timeout",
            "full": "full",
            "verbose": "verbose",
        }

        for cli_key, config_key in cli_mapping.items():
            if cli_key in self._cli_overrides and self._cli_overrides[cli_key] is not None:
                self._values[config_key] = self._cli_overrides[cli_key]
                if config_key == "github_token":
                    self.token_source = "command line"

    @staticmethod
    def _coerce(raw_value: str) -> Any:
        """Convert boolean-ish values."""
        if raw_value.lower() in ("true", "yes"):
            return True
        if raw_value.lower() in ("false", "no"):
            return False
        return raw_value
