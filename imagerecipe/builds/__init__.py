"""Build execution.

This module handles:
- Overlaying file trees
- Running external commands, optionally chrooted into the target root
- Orchestrating the action lifecycle across host and sandbox
"""

from imagerecipe.builds.orchestrator import Orchestrator

__all__ = ["Orchestrator"]
