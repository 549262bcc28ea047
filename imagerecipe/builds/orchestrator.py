"""Build orchestration.

This module drives a recipe through the action lifecycle:

    verify (all) -> host:    pre_machine (all) -> sandbox -> post_machine (all)
                 -> sandbox: run (all) -> cleanup (all)

The same command acts as the host launcher and, re-invoked by the sandbox,
as the worker. Within a phase actions execute strictly in recipe order and
a phase completes for every action before the next phase starts.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from imagerecipe.types import Phase

if TYPE_CHECKING:
    from imagerecipe.actions.base import Action
    from imagerecipe.context import BuildContext
    from imagerecipe.recipes.schema import Recipe
    from imagerecipe.sandbox.machine import Machine

logger = logging.getLogger(__name__)


class Orchestrator:
    """Run the lifecycle phases of a recipe.

    Attributes:
        recipe: Parsed recipe.
        context: Build context shared by all actions.
        machine: Sandbox provider.
        recipe_path: Absolute path of the recipe file.
    """

    def __init__(
        self,
        recipe: Recipe,
        context: BuildContext,
        machine: Machine,
        recipe_path: Path,
    ) -> None:
        self.recipe = recipe
        self.context = context
        self.machine = machine
        self.recipe_path = recipe_path

    @property
    def actions(self) -> list[Action]:
        return self.recipe.actions

    def run(self) -> int:
        """Execute the recipe.

        Returns:
            Exit code: the sandbox's when launching it, else 0.

        Raises:
            Exception: The first error of a verify, run or (strict) cleanup.
        """
        self.verify_all()
        if not self.machine.in_machine():
            return self.run_host()
        self.run_all()
        return 0

    def verify_all(self) -> None:
        logger.info("Phase %s", Phase.VERIFY.value)
        for action in self.actions:
            action.verify(self.context)

    def run_host(self) -> int:
        """Prepare and launch the sandbox, then wait for it to exit."""
        args = self.pre_machine_all()
        logger.info("Launching sandbox for %s", self.recipe_path)
        exit_code = self.machine.run(args)
        self.post_machine_all()
        return exit_code

    def pre_machine_all(self) -> list[str]:
        """Collect volumes and arguments for the sandboxed re-invocation."""
        logger.info("Phase %s", Phase.PRE_MACHINE.value)
        artifact_dir = self.context.artifact_directory
        self.machine.add_volume(artifact_dir)
        self.machine.add_volume(self.recipe_path.parent)

        args = ["--artifactdir", str(artifact_dir), str(self.recipe_path)]
        for action in self.actions:
            action.pre_machine(self.context, self.machine, args)
        return args

    def post_machine_all(self) -> None:
        logger.info("Phase %s", Phase.POST_MACHINE.value)
        for action in self.actions:
            action.post_machine(self.context)

    def run_all(self) -> None:
        """Run every action, then clean up those whose run succeeded."""
        logger.info("Phase %s", Phase.RUN.value)
        completed: list[Action] = []
        try:
            for index, action in enumerate(self.actions, start=1):
                logger.info(
                    "[%d/%d] %s", index, len(self.actions), action.display_name
                )
                action.run(self.context)
                completed.append(action)
        except BaseException:
            # The run error wins; cleanup failures are only logged here
            self.cleanup_all(completed, strict=False)
            raise
        self.cleanup_all(completed)

    def cleanup_all(self, actions: list[Action], strict: bool | None = None) -> None:
        """Clean up actions in order; failures are logged, or raised if strict."""
        if strict is None:
            strict = self.context.settings.strict_cleanup
        logger.info("Phase %s", Phase.CLEANUP.value)
        first_error: Exception | None = None
        for action in actions:
            try:
                action.cleanup(self.context)
            except Exception as e:
                logger.warning("Cleanup of %s failed: %s", action.display_name, e)
                if first_error is None:
                    first_error = e

        if first_error is not None and strict:
            raise first_error


__all__ = ["Orchestrator"]
