"""Tests for ddcompile.registry - unit registries and entry-point discovery."""

from unittest.mock import MagicMock, patch

import pytest

from ddcompile.registry import (
    CHECKS_GROUP,
    GENERATORS_GROUP,
    STAGES_GROUP,
    DuplicateUnitError,
    Registry,
    create_default_registries,
)
from ddcompile.schemas import DocumentLevel
from ddcompile.stages import InitObjectsStage, as_stage


def _entry_point(name, obj, value="pkg.module:attr"):
    ep = MagicMock()
    ep.name = name
    ep.value = value
    ep.load.return_value = obj
    return ep


def _entry_points(groups):
    """Build a stand-in for importlib.metadata.entry_points()."""
    eps = MagicMock()
    eps.select.side_effect = lambda group: groups.get(group, [])
    return eps


class TestRegistry:
    """Tests for Registry."""

    def test_register_and_get(self):
        registry = Registry("stage", as_stage)
        stage = InitObjectsStage()
        registry.register(stage)
        assert registry.get("0.00-init_objects") is stage
        assert registry.has("0.00-init_objects")
        assert len(registry) == 1

    def test_duplicate(self):
        registry = Registry("stage", as_stage)
        registry.register(InitObjectsStage())
        with pytest.raises(DuplicateUnitError, match="0.00-init_objects"):
            registry.register(InitObjectsStage())

    def test_unknown(self):
        with pytest.raises(KeyError, match="No stage registered"):
            Registry("stage", as_stage).get("nope")

    def test_units_sorted_and_disabled(self):
        registry = Registry("stage", as_stage)
        for name in ("b", "c", "a"):
            registry.register(as_stage(name, lambda doc: doc))
        assert registry.names() == ["a", "b", "c"]
        assert [u.name for u in registry.units(disabled=["b"])] == ["a", "c"]


class TestDefaultRegistries:
    """Tests for create_default_registries."""

    def test_builtins(self, registries):
        assert registries.stages.names() == [
            "0.00-init_objects",
            "0.01-qualified_names",
            "1.00-factor_processes",
            "9.00-dependencies",
        ]
        assert registries.generators.names() == ["dataflow", "processes", "relations"]
        assert registries.checks.names() == [
            "acyclic",
            "dependencies_resolve",
            "fragments_nonempty",
            "inputs_produced",
            "no_collisions",
        ]

    def test_discovers_entry_points(self):
        def add_marker(document):
            """Mark the plan."""
            document["marked"] = True
            return document

        groups = {
            STAGES_GROUP: [_entry_point("5.00-marker", add_marker)],
            GENERATORS_GROUP: [_entry_point("summary", lambda plan: {"n": 1})],
            CHECKS_GROUP: [_entry_point("always_ok", lambda subject: [])],
        }
        with patch("ddcompile.registry.entry_points", return_value=_entry_points(groups)):
            registries = create_default_registries()

        stage = registries.stages.get("5.00-marker")
        assert stage.requires is DocumentLevel.QUALIFIED
        assert stage.description == "Mark the plan."
        assert registries.generators.has("summary")
        assert registries.checks.has("always_ok")

    def test_entry_point_cannot_shadow_builtin(self):
        groups = {STAGES_GROUP: [_entry_point("0.00-init_objects", lambda doc: doc)]}
        with patch("ddcompile.registry.entry_points", return_value=_entry_points(groups)):
            with pytest.raises(DuplicateUnitError):
                create_default_registries()

    def test_no_discovery(self):
        with patch("ddcompile.registry.entry_points") as mock_eps:
            create_default_registries(discover=False)
        mock_eps.assert_not_called()
