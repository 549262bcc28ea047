"""Recipe loading.

This module handles:
- The Recipe schema (architecture + ordered actions)
- Loading recipes from YAML and dispatching records to action classes
"""

from imagerecipe.recipes.io import RecipeError, load_recipe, parse_recipe_data
from imagerecipe.recipes.schema import Recipe

__all__ = ["Recipe", "RecipeError", "load_recipe", "parse_recipe_data"]
