from __future__ import annotations

import os


class Settings:
    """Application settings loaded from environment variables."""

    def __init__(self) -> None:
        self.sf_bin: str = os.environ.get("SF_GUARD_SF_BIN", "sf")
        self.workspace: str = os.environ.get("SF_GUARD_WORKSPACE", "")
        self.state_file: str = os.environ.get(
            "SF_GUARD_STATE_FILE", ".sfguard/state.json"
        )
        self.snapshot_dir: str = os.environ.get(
            "SF_GUARD_SNAPSHOT_DIR", ".sfguard-temp"
        )
        self.session_ttl_seconds: int = int(
            os.environ.get("SF_GUARD_SESSION_TTL", "1800")
        )
        self.command_timeout: float = float(
            os.environ.get("SF_GUARD_COMMAND_TIMEOUT", "120")
        )
        self.log_level: str = os.environ.get("SF_GUARD_LOG_LEVEL", "WARNING")

    def validate(self) -> None:
        if not self.sf_bin:
            raise ValueError("SF_GUARD_SF_BIN must name the sf executable")
        if self.session_ttl_seconds <= 0:
            raise ValueError("SF_GUARD_SESSION_TTL must be a positive number of seconds")
        if self.command_timeout <= 0:
            raise ValueError("SF_GUARD_COMMAND_TIMEOUT must be positive")


settings = Settings()
