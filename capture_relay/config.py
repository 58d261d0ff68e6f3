"""
Centralized configuration management using Pydantic Settings.

Configuration is loaded from environment variables with sensible defaults.
"""

import os
import shlex
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServerConfig(BaseSettings):
    """HTTP/WebSocket server configuration."""

    model_config = SettingsConfigDict(env_prefix="RELAY_SERVER_", env_file=".env", extra="ignore")

    host: str = Field(default="0.0.0.0", description="Interface to bind")
    port: int = Field(
        default_factory=lambda: int(os.environ.get("PORT", 3000)),
        description="Port to listen on (falls back to PORT, then 3000)",
    )
    static_dir: Path = Field(
        default=Path(__file__).parent / "static",
        description="Directory holding the observer page",
    )


class CaptureConfig(BaseSettings):
    """Camera capture source configuration."""

    model_config = SettingsConfigDict(env_prefix="RELAY_CAPTURE_", env_file=".env", extra="ignore")

    enabled: bool = Field(default=True, description="Start the capture loop on startup")
    poll_interval: float = Field(default=10.0, description="Seconds between captures")
    image_dir: Path = Field(default=Path("public/images"), description="Where captured images are written")
    command: str = Field(
        default="libcamera-still --nopreview -t 1 -o {path}",
        description="Still capture command; {path} is replaced with the output file",
    )
    timeout: float = Field(default=30.0, description="Seconds before a capture command is killed")
    extension: str = Field(default="jpg", description="File extension of captured images")
    keep_last: int = Field(default=10, description="Number of most recent captures kept on disk")

    @field_validator("poll_interval", "timeout")
    @classmethod
    def _positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be greater than zero")
        return v

    @field_validator("keep_last")
    @classmethod
    def _keep_at_least_one(cls, v: int) -> int:
        if v < 1:
            raise ValueError("keep_last must be at least 1")
        return v

    @field_validator("command")
    @classmethod
    def _has_path_placeholder(cls, v: str) -> str:
        if "{path}" not in v:
            raise ValueError("capture command must contain a {path} placeholder")
        return v

    def build_command(self, path: Path) -> list[str]:
        """Return the argv for capturing into ``path``."""
        return [part.replace("{path}", str(path)) for part in shlex.split(self.command)]


class SettleConfig(BaseSettings):
    """Settle delay between a capture completing and it being broadcast."""

    model_config = SettingsConfigDict(env_prefix="RELAY_SETTLE_", env_file=".env", extra="ignore")

    delay: float = Field(default=10.0, description="Seconds to wait before an artifact is distributable")
    # "queue": publish every matched artifact in order
    # "replace": a newer artifact cancels the one being timed
    overlap_policy: str = Field(default="queue", description="queue or replace")

    @field_validator("delay")
    @classmethod
    def _non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("settle delay cannot be negative")
        return v

    @field_validator("overlap_policy")
    @classmethod
    def _known_policy(cls, v: str) -> str:
        v = v.lower()
        if v not in ("queue", "replace"):
            raise ValueError("overlap_policy must be 'queue' or 'replace'")
        return v


class BroadcastConfig(BaseSettings):
    """Observer broadcast configuration."""

    model_config = SettingsConfigDict(env_prefix="RELAY_BROADCAST_", env_file=".env", extra="ignore")

    welcome_message: str = Field(
        default="You have successfully connected to server through a web socket",
        description="Greeting sent once to each new observer",
    )
    send_timeout: float = Field(default=5.0, description="Per-session send timeout in seconds")


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_prefix="RELAY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # General
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Logging level")

    # Nested configs
    server: ServerConfig = Field(default_factory=ServerConfig)
    capture: CaptureConfig = Field(default_factory=CaptureConfig)
    settle: SettleConfig = Field(default_factory=SettleConfig)
    broadcast: BroadcastConfig = Field(default_factory=BroadcastConfig)


# Singleton settings instance
settings = Settings()
