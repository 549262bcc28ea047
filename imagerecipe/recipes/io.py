"""Recipe file loading.

This module provides helpers for reading recipe YAML files and turning
their action records into concrete Action instances.
"""

from pathlib import Path
from typing import Any

import yaml

# Registers every built-in action kind
import imagerecipe.actions  # noqa: F401
from imagerecipe.actions.base import action_from_dict
from imagerecipe.recipes.schema import Recipe


class RecipeError(Exception):
    """Raised when a recipe file is structurally invalid."""

    def __init__(self, message: str, code: str = "recipe_error") -> None:
        super().__init__(message)
        self.code = code


def load_yaml(path: Path) -> dict[str, Any]:
    """Load a YAML file and return its contents as a dict.

    Args:
        path: Path to the YAML file.

    Returns:
        Parsed YAML content as a dictionary.

    Raises:
        FileNotFoundError: If the file does not exist.
        RecipeError: If the file is not valid YAML or not a mapping.
    """
    with open(path, encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise RecipeError(f"Invalid YAML in {path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise RecipeError(f"Expected a YAML mapping, got {type(data).__name__}")
    return data


def parse_recipe_data(data: dict[str, Any]) -> Recipe:
    """Parse and validate recipe data.

    Every action record is dispatched on its ``action`` key before the
    recipe itself is validated, so an unknown action aborts the parse.

    Args:
        data: Dictionary containing recipe data.

    Returns:
        Validated Recipe instance.

    Raises:
        RecipeError: If 'actions' is not a list of mappings.
        UnknownActionError: If a record names an unknown action.
        pydantic.ValidationError: If fields do not match the schema.
    """
    records = data.get("actions", [])
    if not isinstance(records, list):
        raise RecipeError("'actions' must be a list")

    actions = []
    for index, record in enumerate(records):
        if not isinstance(record, dict):
            raise RecipeError(f"Action #{index + 1} must be a mapping")
        actions.append(action_from_dict(record))

    return Recipe.model_validate({**data, "actions": actions})


def load_recipe(path: Path) -> Recipe:
    """Load and validate a recipe from a YAML file.

    Raises:
        FileNotFoundError: If the file does not exist.
        RecipeError: If the file is malformed.
        UnknownActionError: If a record names an unknown action.
        pydantic.ValidationError: If data does not match the schema.
    """
    return parse_recipe_data(load_yaml(path))


__all__ = ["RecipeError", "load_recipe", "load_yaml", "parse_recipe_data"]
