"""Sandbox providers the build re-invokes itself inside."""

from imagerecipe.sandbox.machine import (
    FakeMachine,
    Machine,
    NullMachine,
    SandboxError,
    get_machine,
)

__all__ = ["FakeMachine", "Machine", "NullMachine", "SandboxError", "get_machine"]
