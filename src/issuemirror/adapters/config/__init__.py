"""
Configuration Adapters - Load configuration from various sources.
"""

from .environment import EnvironmentConfigProvider, gh_cli_token

__all__ = ["EnvironmentConfigProvider", "gh_cli_token"]
