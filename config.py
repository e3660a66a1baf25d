"""
Configuration for Keychain Editor.
"""

import os
from pathlib import Path
from typing import Optional
from dataclasses import dataclass, field

# Application version - update this for each release
VERSION = "1.2.0"


def _optional_path(name: str) -> Optional[Path]:
    value = os.getenv(name)
    return Path(value) if value else None


@dataclass
class Config:
    """Application configuration."""

    # Server settings (port 0 lets the OS pick a free port)
    HOST: str = os.getenv("KEYCHAIN_EDITOR_HOST", "127.0.0.1")
    PORT: int = int(os.getenv("KEYCHAIN_EDITOR_PORT", "0"))

    # File the bound port is written to, for the browser client
    PORT_FILE: Optional[Path] = field(default_factory=lambda: _optional_path("KEYCHAIN_EDITOR_PORT_FILE"))

    # irestore helper settings
    IRESTORE_BIN: Optional[str] = os.getenv("IRESTORE_BIN") or None
    IRESTORE_TIMEOUT: int = int(os.getenv("IRESTORE_TIMEOUT", "120"))

    # Parent directory for per-request working areas (None = system temp)
    WORK_DIR: Optional[Path] = field(default_factory=lambda: _optional_path("KEYCHAIN_EDITOR_WORK_DIR"))

    LOG_LEVEL: str = os.getenv("KEYCHAIN_EDITOR_LOG_LEVEL", "info")

    def __post_init__(self):
        """Ensure the working area parent exists."""
        if self.WORK_DIR is not None:
            self.WORK_DIR.mkdir(parents=True, exist_ok=True)

    @property
    def work_dir(self) -> Optional[str]:
        """Parent directory for temporary working areas, as tempfile expects it."""
        return str(self.WORK_DIR) if self.WORK_DIR is not None else None

    def port_file_content(self, port: int) -> str:
        """Content written to PORT_FILE for the browser client."""
        return f"export default {port};"


# Global config instance
config = Config()
