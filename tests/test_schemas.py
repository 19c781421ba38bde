"""Tests for ddcompile.schemas - document levels, execution plan, records."""

import pytest

from ddcompile.errors import SchemaError
from ddcompile.qualifier import qualify_document
from ddcompile.schemas import (
    ABORTED,
    RUNNING,
    CycleDetectedError,
    DocumentLevel,
    ExecutionPlan,
    Kind,
    ProcessNode,
    UnknownDependencyError,
    WorkspaceRecord,
    check_document,
)


def _plan(processes):
    return ExecutionPlan.from_document({"execution": {"processes": processes}})


class TestKind:
    """Tests for Kind."""

    def test_of_qualified(self):
        assert Kind.of("process/a") is Kind.PROCESS
        assert Kind.of("factor/a") is Kind.FACTOR
        assert Kind.of("data/a") is Kind.DATA

    def test_of_unqualified(self):
        assert Kind.of("a") is None
        assert Kind.of("other/a") is None


class TestCheckDocument:
    """Tests for check_document at both levels."""

    def test_raw_accepts_sample(self, sample_document):
        check_document(sample_document, DocumentLevel.RAW)

    def test_raw_sections_optional(self):
        check_document({}, DocumentLevel.RAW)

    def test_raw_rejects_bad_dependencies(self):
        doc = {"extraction": {"extractors": {"e": {"dependencies": "x"}}}}
        with pytest.raises(SchemaError, match="extraction.extractors.e.dependencies"):
            check_document(doc, DocumentLevel.RAW)

    def test_raw_null_lists_are_absent(self):
        doc = {
            "extraction": {
                "extractors": {"e": {"dependencies": None, "input_relations": None}}
            }
        }
        check_document(doc, DocumentLevel.RAW)

    def test_raw_rejects_non_mapping_entry(self):
        doc = {"inference": {"factors": {"f": ["not", "a", "mapping"]}}}
        with pytest.raises(SchemaError, match="inference.factors.f"):
            check_document(doc, DocumentLevel.RAW)

    def test_not_a_mapping(self):
        with pytest.raises(SchemaError):
            check_document([], DocumentLevel.RAW)

    def test_qualified_accepts_qualified_sample(self, sample_document):
        check_document(qualify_document(sample_document), DocumentLevel.QUALIFIED)

    def test_qualified_rejects_raw_sample(self, sample_document):
        with pytest.raises(SchemaError):
            check_document(sample_document, DocumentLevel.QUALIFIED)

    def test_qualified_requires_sections(self):
        with pytest.raises(SchemaError, match="missing section"):
            check_document({}, DocumentLevel.QUALIFIED)

    def test_qualified_rejects_empty_output(self, sample_document):
        """output_ is absent or holds exactly one relation."""
        doc = qualify_document(sample_document)
        doc["extraction"]["extractors"]["process/e1"]["output_"] = []
        with pytest.raises(SchemaError, match="output_"):
            check_document(doc, DocumentLevel.QUALIFIED)

    def test_qualified_rejects_unqualified_process_key(self, sample_document):
        doc = qualify_document(sample_document)
        doc["execution"]["processes"]["bare"] = {}
        with pytest.raises(SchemaError, match="execution.processes.bare"):
            check_document(doc, DocumentLevel.QUALIFIED)


class TestProcessNode:
    """Tests for ProcessNode."""

    def test_from_entry(self):
        node = ProcessNode.from_entry(
            "factor/f1",
            {"dependencies_": ["process/e1"], "input_": ["data/r1"], "function": "f"},
        )
        assert node.dependencies == ("process/e1",)
        assert node.inputs == ("data/r1",)
        assert node.output is None
        assert node.payload == {"function": "f"}

    def test_to_dict_omits_missing_output(self):
        node = ProcessNode("process/e1")
        assert "output_" not in node.to_dict()

    def test_to_dict_with_output(self):
        node = ProcessNode("process/e1", output="data/r1")
        assert node.to_dict()["output_"] == ["data/r1"]


class TestExecutionPlan:
    """Tests for ExecutionPlan."""

    def test_upstream_includes_input_producers(self):
        plan = _plan({
            "process/e1": {"output_": ["data/r1"]},
            "factor/f1": {"input_": ["data/r1"]},
        })
        assert plan.upstream("factor/f1") == ["process/e1"]

    def test_upstream_ignores_own_output(self):
        plan = _plan({"process/e1": {"input_": ["data/r1"], "output_": ["data/r1"]}})
        assert plan.upstream("process/e1") == []

    def test_upstream_map_builds_producers_once(self, monkeypatch):
        plan = _plan({
            "process/e1": {"output_": ["data/r1"]},
            "process/e2": {"dependencies_": ["process/e1"]},
            "factor/f1": {"input_": ["data/r1"]},
        })
        calls = []
        producers = plan.producers
        monkeypatch.setattr(plan, "producers", lambda: calls.append(1) or producers())

        assert plan.upstream_map() == {
            "factor/f1": ["process/e1"],
            "process/e1": [],
            "process/e2": ["process/e1"],
        }
        assert len(calls) == 1

    def test_relations(self):
        plan = _plan({
            "process/e1": {"output_": ["data/r1"]},
            "factor/f1": {"input_": ["data/r1", "data/r2"]},
        })
        assert plan.relations() == {
            "data/r1": {"producers": ["process/e1"], "consumers": ["factor/f1"]},
            "data/r2": {"producers": [], "consumers": ["factor/f1"]},
        }

    def test_topological_order_deterministic(self):
        plan = _plan({
            "process/c": {},
            "process/b": {"dependencies_": ["process/a"]},
            "process/a": {},
        })
        assert plan.topological_order() == ["process/a", "process/b", "process/c"]

    def test_topological_order_cycle(self):
        plan = _plan({
            "process/a": {"dependencies_": ["process/b"]},
            "process/b": {"dependencies_": ["process/a"]},
        })
        with pytest.raises(CycleDetectedError) as exc_info:
            plan.topological_order()
        assert exc_info.value.remaining == ["process/a", "process/b"]

    def test_topological_order_unknown(self):
        plan = _plan({"process/a": {"dependencies_": ["process/missing"]}})
        with pytest.raises(UnknownDependencyError):
            plan.topological_order()
        assert plan.topological_order(ignore_unknown=True) == ["process/a"]


class TestWorkspaceRecord:
    """Tests for WorkspaceRecord."""

    def test_defaults(self):
        record = WorkspaceRecord(key="k")
        assert record.status == RUNNING
        assert record.artifacts == []
        assert record.ended_at is None

    def test_finish_and_round_trip(self):
        record = WorkspaceRecord(key="k", artifacts=["config-input.json"])
        record.finish(ABORTED, 3, "Validation failed")
        restored = WorkspaceRecord.from_dict(record.to_dict())
        assert restored.status == ABORTED
        assert restored.exit_status == 3
        assert restored.error == "Validation failed"
        assert restored.artifacts == ["config-input.json"]
        assert restored.ended_at == record.ended_at
