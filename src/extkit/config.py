"""
extkit Configuration.

Centralized configuration management using Pydantic Settings.
Loads configuration from environment variables (prefixed with ``EXTKIT_``).
"""

import os
import shlex
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


def get_xdg_cache_dir() -> str:
    """
    Get XDG-compliant cache directory for extkit.

    Follows XDG Base Directory Specification:
    - Uses $XDG_CACHE_HOME/extkit if XDG_CACHE_HOME is set
    - Falls back to $HOME/.cache/extkit if not set
    - Returns relative path .extkit-cache if HOME not available (dev/testing)

    Returns:
        str: Path to cache directory
    """
    xdg_cache_home = os.getenv("XDG_CACHE_HOME")
    if xdg_cache_home:
        return str(Path(xdg_cache_home) / "extkit")

    home = os.getenv("HOME")
    if home:
        return str(Path(home) / ".cache" / "extkit")

    # Fallback for development/testing environments without HOME
    return ".extkit-cache"


def get_xdg_state_dir() -> str:
    """
    Get XDG-compliant state directory for extkit logs.

    Returns:
        str: Path to state/logs directory
    """
    xdg_state_home = os.getenv("XDG_STATE_HOME")
    if xdg_state_home:
        return str(Path(xdg_state_home) / "extkit" / "logs")

    home = os.getenv("HOME")
    if home:
        return str(Path(home) / ".local" / "state" / "extkit" / "logs")

    return "./logs"


class Settings(BaseSettings):
    """Pipeline settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="EXTKIT_",
        case_sensitive=False,
        extra="ignore",
    )

    # Layout
    source_dir: str = "src"
    output_dir: str = "dist"
    tests_dir: str = "tests"
    test_suffix: str = "_test.py"
    entry_filenames: list[str] = ["__init__.py"]
    artifact_suffix: str = ".pyz"
    manifest_filename: str = "index.json"

    # Bundler
    cache_dir: str = get_xdg_cache_dir()
    externals: list[str] = ["extkit"]  # Host-provided modules, never vendored
    include_dependencies: bool = True
    pool_workers: int = 2

    # Conformance tests
    validator_command: str = "extkit-validator test"

    # Logging
    log_level: str = "INFO"
    log_dir: str = ""  # Defaults to XDG state dir if empty
    log_format: str = "standard"  # standard or json
    log_console_enabled: bool = True
    log_file_enabled: bool = False
    log_max_bytes: int = 10_485_760  # 10MB per log file
    log_backup_count: int = 5

    @property
    def source_path(self) -> Path:
        return Path(self.source_dir)

    @property
    def output_path(self) -> Path:
        return Path(self.output_dir)

    @property
    def tests_path(self) -> Path:
        return Path(self.tests_dir)

    @property
    def validator_argv(self) -> list[str]:
        """Validator command split into an argument vector."""
        return shlex.split(self.validator_command)

    @property
    def log_directory(self) -> Path:
        """Get the log directory path, using XDG default if not specified."""
        if self.log_dir:
            return Path(self.log_dir).expanduser()
        return Path(get_xdg_state_dir())


# Global settings instance
settings = Settings()
