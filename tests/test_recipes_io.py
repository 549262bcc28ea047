"""Tests for recipes/io.py module.

Tests YAML loading and dispatching of action records.
"""

import pytest
from pydantic import ValidationError

from imagerecipe.actions import (
    ACTION_REGISTRY,
    OverlayAction,
    RunAction,
    UnknownActionError,
    registered_actions,
)
from imagerecipe.actions.base import Action, register_action
from imagerecipe.recipes.io import (
    RecipeError,
    load_recipe,
    load_yaml,
    parse_recipe_data,
)

# Smallest valid record for every built-in action kind
MINIMAL_RECORDS = {
    "bootstrap": {"suite": "bookworm"},
    "debootstrap": {"suite": "bookworm"},
    "deploy-image": {},
    "ostree-commit": {"repository": "repo", "branch": "main"},
    "ostree-deploy": {
        "repository": "repo",
        "remote-repository": "https://example.com/repo",
        "branch": "main",
        "os": "debian",
    },
    "overlay": {"source": "files"},
    "pack": {"file": "out.tar.gz"},
    "run": {"script": "true"},
    "setup-image": {"imagename": "disk.img", "imagesize": "4G"},
    "unpack": {"file": "base.tar.gz"},
}


class TestDispatch:
    """Tests for action dispatch on the 'action' key."""

    def test_every_kind_has_a_record(self):
        """The minimal records cover the whole registry."""
        assert sorted(MINIMAL_RECORDS) == registered_actions()

    @pytest.mark.parametrize("kind", sorted(MINIMAL_RECORDS))
    def test_dispatch(self, kind):
        """Each kind parses into its registered class."""
        recipe = parse_recipe_data(
            {
                "architecture": "amd64",
                "actions": [{"action": kind, **MINIMAL_RECORDS[kind]}],
            }
        )

        (action,) = recipe.actions
        assert type(action) is ACTION_REGISTRY[kind]
        assert action.action == kind

    def test_unknown_kind(self):
        with pytest.raises(UnknownActionError, match="Unknown action: 'frobnicate'"):
            parse_recipe_data(
                {"architecture": "amd64", "actions": [{"action": "frobnicate"}]}
            )

    @pytest.mark.parametrize("record", [{}, {"action": 7}, {"action": None}])
    def test_missing_or_invalid_discriminator(self, record):
        with pytest.raises(UnknownActionError):
            parse_recipe_data({"architecture": "amd64", "actions": [record]})

    def test_unknown_field(self):
        """Unknown keys are rejected."""
        with pytest.raises(ValidationError):
            parse_recipe_data(
                {
                    "architecture": "amd64",
                    "actions": [{"action": "run", "script": "true", "shell": "bash"}],
                }
            )

    def test_missing_field(self):
        with pytest.raises(ValidationError):
            parse_recipe_data({"architecture": "amd64", "actions": [{"action": "run"}]})

    def test_duplicate_registration(self):
        """A kind can only be registered once."""
        with pytest.raises(ValueError, match="already registered"):

            @register_action("run")
            class Other(Action):
                pass

        assert ACTION_REGISTRY["run"] is RunAction


class TestParseRecipeData:
    """Tests for parse_recipe_data function."""

    def test_order_preserved(self):
        recipe = parse_recipe_data(
            {
                "architecture": "arm64",
                "actions": [
                    {"action": "run", "script": "one"},
                    {"action": "overlay", "source": "files"},
                    {"action": "run", "script": "two"},
                ],
            }
        )

        assert recipe.architecture == "arm64"
        assert [type(a) for a in recipe.actions] == [
            RunAction,
            OverlayAction,
            RunAction,
        ]
        assert [a.display_name for a in recipe.actions] == ["one", "overlay", "two"]

    def test_missing_architecture(self):
        with pytest.raises(ValidationError):
            parse_recipe_data({"actions": []})

    def test_unknown_top_level_key(self):
        with pytest.raises(ValidationError):
            parse_recipe_data({"architecture": "amd64", "actions": [], "extra": 1})

    def test_actions_not_a_list(self):
        with pytest.raises(RecipeError, match="must be a list"):
            parse_recipe_data({"architecture": "amd64", "actions": {"action": "run"}})

    def test_record_not_a_mapping(self):
        with pytest.raises(RecipeError, match="Action #2 must be a mapping"):
            parse_recipe_data(
                {
                    "architecture": "amd64",
                    "actions": [{"action": "run", "script": "true"}, "run"],
                }
            )

    def test_recipe_is_frozen(self):
        recipe = parse_recipe_data({"architecture": "amd64", "actions": []})

        with pytest.raises(ValidationError):
            recipe.architecture = "arm64"


class TestLoadRecipe:
    """Tests for load_yaml and load_recipe functions."""

    def test_load_recipe(self, tmp_path):
        path = tmp_path / "recipe.yaml"
        path.write_text(
            """
architecture: armhf
actions:
  - action: debootstrap
    suite: bookworm
    components: [main, contrib]
  - action: run
    description: Set hostname
    script: echo board > /etc/hostname
"""
        )

        recipe = load_recipe(path)

        assert recipe.architecture == "armhf"
        assert recipe.actions[0].components == ["main", "contrib"]
        assert recipe.actions[1].display_name == "Set hostname"

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("architecture: [unclosed\n")

        with pytest.raises(RecipeError, match="Invalid YAML"):
            load_yaml(path)

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- one\n- two\n")

        with pytest.raises(RecipeError, match="Expected a YAML mapping"):
            load_yaml(path)

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")

        assert load_yaml(path) == {}

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_recipe(tmp_path / "missing.yaml")
