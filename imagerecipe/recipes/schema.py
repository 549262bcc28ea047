"""Pydantic model of a build recipe."""

from pydantic import BaseModel, ConfigDict, Field, SerializeAsAny

from imagerecipe.actions.base import Action


class Recipe(BaseModel):
    """A parsed recipe.

    Actions are already resolved to their concrete classes; build instances
    with imagerecipe.recipes.io.parse_recipe_data() rather than from raw
    action records.

    Attributes:
        architecture: Target architecture (Debian naming, e.g. 'arm64').
        actions: Actions in execution order.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    architecture: str = Field(min_length=1, description="Target architecture")
    actions: list[SerializeAsAny[Action]] = Field(
        default_factory=list, description="Ordered build actions"
    )


__all__ = ["Recipe"]
