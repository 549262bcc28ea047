"""Shared type definitions for imagerecipe.

This module contains enums and small dataclasses shared across subpackages
to avoid circular imports.
"""

from dataclasses import dataclass
from enum import Enum


class Phase(str, Enum):
    """Lifecycle phase of an action."""

    VERIFY = "verify"
    PRE_MACHINE = "pre-machine"
    RUN = "run"
    CLEANUP = "cleanup"
    POST_MACHINE = "post-machine"


class Compression(str, Enum):
    """Archive compression understood by the tar wrapper."""

    NONE = "none"
    GZ = "gz"
    XZ = "xz"
    BZ2 = "bz2"
    ZSTD = "zstd"


# tar flags per compression
TAR_COMPRESSION_FLAGS: dict[Compression, list[str]] = {
    Compression.NONE: [],
    Compression.GZ: ["-z"],
    Compression.XZ: ["-J"],
    Compression.BZ2: ["-j"],
    Compression.ZSTD: ["--zstd"],
}


@dataclass
class CommandResult:
    """Result of a finished external command."""

    label: str
    command: str
    exit_code: int


__all__ = [
    "TAR_COMPRESSION_FLAGS",
    "CommandResult",
    "Compression",
    "Phase",
]
