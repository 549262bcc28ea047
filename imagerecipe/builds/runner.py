"""Runner for external build commands.

This module handles:
- Executing tar, debootstrap, mkfs, systemd-nspawn, ... with subprocess
- Streaming stdout/stderr line by line, tagged with a label
- Turning non-zero exits into errors carrying the label and exit code
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import sys
import threading
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path
from typing import IO

from imagerecipe.types import CommandResult

logger = logging.getLogger(__name__)

Emit = Callable[[str], None]


class CommandExecutionError(Exception):
    """Raised when an external command fails."""

    def __init__(
        self,
        message: str,
        label: str,
        exit_code: int | None = None,
        code: str = "command_failed",
    ) -> None:
        super().__init__(message)
        self.label = label
        self.exit_code = exit_code
        self.code = code


def _write_stdout(line: str) -> None:
    sys.stdout.write(line + "\n")
    sys.stdout.flush()


def _drain(
    stream: IO[bytes], prefix: str, emit: Emit, errors: list[Exception]
) -> None:
    failed = False
    with stream:
        # Keep reading after a failed emit so the child never blocks on a full pipe
        for raw in stream:
            if failed:
                continue
            line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
            try:
                emit(f"{prefix} | {line}")
            except Exception as e:
                errors.append(e)
                failed = True


def run_command(
    label: str,
    cmd: Sequence[str | os.PathLike[str]],
    cwd: Path | None = None,
    env: Mapping[str, str] | None = None,
    emit: Emit | None = None,
) -> CommandResult:
    """Run a command, streaming its output tagged with label.

    stdout lines are emitted as ``"<label> | <line>"`` and stderr lines as
    ``"<label> E | <line>"``. Each stream keeps its own line order.

    Args:
        label: Human readable tag for output and errors.
        cmd: Command and arguments.
        cwd: Optional working directory.
        env: Optional extra environment variables.
        emit: Line sink (default: write to stdout).

    Returns:
        CommandResult of the successful run.

    Raises:
        CommandExecutionError: If the command cannot start or exits non-zero.
        Exception: The first error raised by emit, after the command exited.
    """
    if emit is None:
        emit = _write_stdout

    argv = [os.fspath(c) for c in cmd]
    cmd_str = shlex.join(argv)
    logger.info("Running %s: %s", label, cmd_str)

    full_env: dict[str, str] | None = None
    if env:
        full_env = dict(os.environ)
        full_env.update(env)

    try:
        proc = subprocess.Popen(
            argv,
            cwd=cwd,
            env=full_env,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )
    except OSError as e:
        raise CommandExecutionError(
            f"{label}: failed to execute {argv[0]}: {e}",
            label=label,
            code="execution_error",
        ) from e

    assert proc.stdout is not None and proc.stderr is not None
    emit_errors: list[Exception] = []
    readers = [
        threading.Thread(
            target=_drain, args=(proc.stdout, label, emit, emit_errors)
        ),
        threading.Thread(
            target=_drain, args=(proc.stderr, f"{label} E", emit, emit_errors)
        ),
    ]
    for reader in readers:
        reader.start()
    for reader in readers:
        reader.join()

    exit_code = proc.wait()
    if emit_errors:
        raise emit_errors[0]
    if exit_code != 0:
        message = f"{label} failed with exit code {exit_code}"
        logger.error("%s: %s", message, cmd_str)
        raise CommandExecutionError(message, label=label, exit_code=exit_code)

    return CommandResult(label=label, command=cmd_str, exit_code=exit_code)


__all__ = [
    "CommandExecutionError",
    "Emit",
    "run_command",
]
