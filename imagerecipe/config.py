"""Configuration settings for imagerecipe.

Settings come from IMGRECIPE_* environment variables, an optional .env
file, and defaults, in that order of precedence.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PREFIX = "IMGRECIPE_"


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the IMGRECIPE_ prefix.
    The host forwards these variables into the sandbox so that the re-invoked
    worker sees the same configuration.
    """

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Paths
    scratch_dir: Path = Field(
        default=Path("/scratch"),
        description="Scratch space holding the working root and image mount",
    )

    # Sandbox
    sandbox: Literal["fakemachine", "none"] = Field(
        default="fakemachine",
        description="Sandbox provider; 'none' runs every phase in-process",
    )
    fakemachine_binary: str = Field(
        default="fakemachine",
        description="fakemachine executable used to launch the sandbox",
    )
    sandbox_memory: int | None = Field(
        default=None,
        ge=256,
        description="Sandbox memory in MiB (provider default if not set)",
    )
    sandbox_cpus: int | None = Field(
        default=None,
        ge=1,
        description="Sandbox CPU count (provider default if not set)",
    )

    # Chroot execution
    chroot_backend: Literal["systemd-nspawn", "chroot"] = Field(
        default="systemd-nspawn",
        description="Process isolation used to run commands in the target root",
    )
    host_architecture: str | None = Field(
        default=None,
        description="Override detected host architecture (Debian naming)",
    )

    # Operational modes
    strict_cleanup: bool = Field(
        default=False,
        description="Fail the build when an action cleanup fails",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    @property
    def root_dir(self) -> Path:
        """Working root filesystem directory."""
        return self.scratch_dir / "rootdir"

    @property
    def mount_dir(self) -> Path:
        """Mount point of the prepared image."""
        return self.scratch_dir / "mnt"


def get_settings() -> Settings:
    """Get the application settings.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    return settings.model_dump_json(indent=2)


__all__ = ["ENV_PREFIX", "Settings", "get_settings", "print_settings_json"]
