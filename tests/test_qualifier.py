"""Tests for ddcompile.qualifier.

Tests cover:
- Name qualification is idempotent and injective
- Entry qualification and the absence policy for output_
- Additive merge with collision detection
- Whole-document qualification of the e1/f1 example
"""

import copy

import pytest

from ddcompile.qualifier import (
    COLLISIONS_FIELD,
    merge_processes,
    qualify_document,
    qualify_entries,
    qualify_entry,
    qualify_name,
)
from ddcompile.schemas import Kind


class TestQualifyName:
    """Tests for qualify_name."""

    def test_adds_kind_prefix(self):
        assert qualify_name(Kind.PROCESS, "e1") == "process/e1"
        assert qualify_name(Kind.FACTOR, "f1") == "factor/f1"
        assert qualify_name(Kind.DATA, "r1") == "data/r1"

    def test_idempotent(self):
        """Re-qualifying a qualified name yields the same name."""
        once = qualify_name(Kind.DATA, "r1")
        assert qualify_name(Kind.DATA, once) == once

    @pytest.mark.parametrize("kind", list(Kind))
    def test_injective(self, kind):
        """Distinct names of one kind stay distinct."""
        names = ["a", "b", "a_b", "a/b", "A"]
        qualified = [qualify_name(kind, n) for n in names]
        assert len(set(qualified)) == len(names)

    def test_other_kind_prefix_is_not_mistaken(self):
        """A name that looks like another kind is still qualified."""
        assert qualify_name(Kind.PROCESS, "data/x") == "process/data/x"


class TestQualifyEntry:
    """Tests for qualify_entry and the absence policy."""

    def test_all_fields(self):
        entry = {
            "dependencies": ["a", "b"],
            "input_relations": ["r1"],
            "output_relation": "r2",
        }
        result = qualify_entry(entry)
        assert result["dependencies_"] == ["process/a", "process/b"]
        assert result["input_"] == ["data/r1"]
        assert result["output_"] == ["data/r2"]

    def test_original_fields_kept(self):
        result = qualify_entry({"output_relation": "r", "sql": "SELECT 1"})
        assert result["sql"] == "SELECT 1"
        assert result["output_relation"] == "r"

    def test_no_output_means_no_field(self):
        """No output_relation: the output_ key is absent, not an empty list."""
        result = qualify_entry({})
        assert "output_" not in result

    def test_null_output_means_no_field(self):
        result = qualify_entry({"output_relation": None})
        assert "output_" not in result

    def test_no_dependencies_means_empty_lists(self):
        result = qualify_entry({})
        assert result["dependencies_"] == []
        assert result["input_"] == []

    def test_does_not_mutate_input(self):
        entry = {"dependencies": ["a"], "nested": {"x": [1]}}
        original = copy.deepcopy(entry)
        result = qualify_entry(entry)
        result["nested"]["x"].append(2)
        assert entry == original

    def test_undefined_references_are_qualified(self):
        """Referenced names need not be defined anywhere."""
        result = qualify_entry({"dependencies": ["nowhere"]})
        assert result["dependencies_"] == ["process/nowhere"]

    def test_requalifying_is_stable(self):
        once = qualify_entry({"dependencies": ["a"], "output_relation": "r"})
        twice = qualify_entry(once)
        assert twice["dependencies_"] == once["dependencies_"]
        assert twice["output_"] == once["output_"]


class TestQualifyEntries:
    """Tests for qualify_entries."""

    def test_keys_and_references_commute(self):
        """The key of a definition and a reference to it qualify alike."""
        entries = {"a": {}, "b": {"dependencies": ["a"]}}
        result, collisions = qualify_entries(entries, Kind.PROCESS)
        assert collisions == []
        assert set(result) == {"process/a", "process/b"}
        assert result["process/b"]["dependencies_"] == ["process/a"]

    def test_factor_keys(self):
        result, _ = qualify_entries({"f": {}}, Kind.FACTOR)
        assert list(result) == ["factor/f"]

    def test_prefixed_and_bare_key_collide(self):
        """"x" and "process/x" qualify to one name and are reported."""
        entries = {"x": {"sql": "A"}, "process/x": {"sql": "B"}}
        result, collisions = qualify_entries(entries, Kind.PROCESS)
        assert collisions == ["process/x"]
        assert result["process/x"]["sql"] == "B"


class TestMergeProcesses:
    """Tests for merge_processes."""

    def test_additive(self):
        merged, collisions = merge_processes({"process/a": {}}, {"process/b": {}})
        assert set(merged) == {"process/a", "process/b"}
        assert collisions == []

    def test_merging_twice_is_a_collision(self):
        """Merging the same mapping twice is detected, not deduplicated."""
        entries, _ = qualify_entries({"e1": {}, "e2": {}}, Kind.PROCESS)
        merged, _ = merge_processes({}, entries)
        merged, collisions = merge_processes(merged, entries)
        assert collisions == ["process/e1", "process/e2"]

    def test_later_entry_wins(self):
        merged, collisions = merge_processes(
            {"process/a": {"v": 1}}, {"process/a": {"v": 2}}
        )
        assert merged["process/a"] == {"v": 2}
        assert collisions == ["process/a"]

    def test_does_not_mutate_processes(self):
        processes = {"process/a": {}}
        merge_processes(processes, {"process/b": {}})
        assert list(processes) == ["process/a"]


class TestQualifyDocument:
    """Tests for qualify_document."""

    def test_end_to_end_example(self, sample_document):
        result = qualify_document(sample_document)

        e1 = result["extraction"]["extractors"]["process/e1"]
        assert e1["output_"] == ["data/r1"]
        assert e1["dependencies_"] == []
        assert e1["input_"] == []

        f1 = result["inference"]["factors"]["factor/f1"]
        assert f1["dependencies_"] == ["process/e1"]
        assert f1["input_"] == ["data/r1"]
        assert "output_" not in f1

        assert "process/e1" in result["execution"]["processes"]
        assert COLLISIONS_FIELD not in result["execution"]

    def test_pure(self, sample_document):
        original = copy.deepcopy(sample_document)
        qualify_document(sample_document)
        assert sample_document == original

    def test_missing_sections(self):
        result = qualify_document({})
        assert result["extraction"]["extractors"] == {}
        assert result["inference"]["factors"] == {}
        assert result["execution"]["processes"] == {}

    def test_existing_process_collision_recorded(self, sample_document):
        sample_document["execution"]["processes"]["process/e1"] = {"dependencies_": []}
        result = qualify_document(sample_document)
        assert result["execution"][COLLISIONS_FIELD] == ["process/e1"]

    def test_extractor_keys_qualifying_alike_are_collisions(self):
        document = {
            "extraction": {
                "extractors": {"x": {"sql": "A"}, "process/x": {"sql": "B"}}
            },
        }
        result = qualify_document(document)
        assert result["execution"][COLLISIONS_FIELD] == ["process/x"]

    def test_factor_keys_qualifying_alike_are_collisions(self):
        document = {"inference": {"factors": {"f": {}, "factor/f": {}}}}
        result = qualify_document(document)
        assert result["execution"][COLLISIONS_FIELD] == ["factor/f"]

    def test_requalifying_document_reports_collisions(self, sample_document):
        """Running qualification twice merges extractors twice."""
        twice = qualify_document(qualify_document(sample_document))
        assert twice["execution"][COLLISIONS_FIELD] == ["process/e1"]
        assert list(twice["extraction"]["extractors"]) == ["process/e1"]
