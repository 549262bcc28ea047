"""File tree overlay for builds.

This module handles:
- Crash-safe copying of single files (temp file + atomic rename)
- Recursive overlay of a source tree onto a destination tree
- Preserving permission bits of files and newly created directories

A destination path never observes a partially written file: content is
written next to it and renamed into place only once complete.
"""

from __future__ import annotations

import logging
import os
import shutil
import stat
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)


class OverlayError(Exception):
    """Raised when overlaying a tree fails."""

    def __init__(self, message: str, code: str = "overlay_error") -> None:
        super().__init__(message)
        self.code = code


def copy_file(source: Path, dest: Path, mode: int | None = None) -> None:
    """Copy a single file onto dest without exposing partial content.

    An existing file at dest is replaced unconditionally.

    Args:
        source: Path to source file.
        dest: Destination path; its parent must exist.
        mode: Permission bits for dest (default: those of source).

    Raises:
        OverlayError: If copying fails. No temporary file is left behind.
    """
    tmp_name: str | None = None
    try:
        if mode is None:
            mode = stat.S_IMODE(source.stat().st_mode)

        fd, tmp_name = tempfile.mkstemp(dir=dest.parent, prefix=f".{dest.name}.")
        with os.fdopen(fd, "wb") as tmp, source.open("rb") as src:
            shutil.copyfileobj(src, tmp)
            os.fchmod(tmp.fileno(), mode)

        os.replace(tmp_name, dest)
        tmp_name = None

    except OSError as e:
        raise OverlayError(
            f"Failed to copy file {source} -> {dest}: {e}",
            code="file_copy_error",
        ) from e

    finally:
        if tmp_name is not None:
            Path(tmp_name).unlink(missing_ok=True)


def _ensure_directory(source: Path, dest: Path) -> None:
    """Create dest with the permission bits of source if it does not exist."""
    try:
        if dest.is_dir():
            return
        dest.mkdir()
        # mkdir() is subject to the umask, apply the exact bits afterwards
        dest.chmod(stat.S_IMODE(source.stat().st_mode))
    except OSError as e:
        raise OverlayError(
            f"Failed to create directory {dest}: {e}",
            code="dir_create_error",
        ) from e


def copy_tree(source_dir: Path, dest_dir: Path) -> None:
    """Overlay source_dir onto dest_dir, file by file.

    The tree is walked depth-first in name order, creating each directory
    before its contents. Existing directories are kept; existing files are
    replaced. Symlinks, device nodes and other special files are rejected.

    Args:
        source_dir: Source directory.
        dest_dir: Destination directory (created if missing).

    Raises:
        OverlayError: On the first failure; the walk does not continue.
    """
    logger.info("Overlaying %s on %s", source_dir, dest_dir)
    if not source_dir.is_dir():
        raise OverlayError(
            f"Overlay source is not a directory: {source_dir}",
            code="overlay_not_dir",
        )

    _ensure_directory(source_dir, dest_dir)
    _copy_children(source_dir, dest_dir)


def _copy_children(source_dir: Path, dest_dir: Path) -> None:
    try:
        entries = sorted(os.scandir(source_dir), key=lambda e: e.name)
    except OSError as e:
        raise OverlayError(
            f"Failed to list directory {source_dir}: {e}",
            code="dir_list_error",
        ) from e

    for entry in entries:
        source = Path(entry.path)
        target = dest_dir / entry.name

        if entry.is_dir(follow_symlinks=False):
            logger.debug("D> %s -> %s", source, target)
            _ensure_directory(source, target)
            _copy_children(source, target)
        elif entry.is_file(follow_symlinks=False):
            logger.debug("F> %s -> %s", source, target)
            copy_file(source, target)
        else:
            raise OverlayError(
                f"Unsupported file type in overlay: {source}",
                code="unsupported_file_type",
            )


__all__ = [
    "OverlayError",
    "copy_file",
    "copy_tree",
]
