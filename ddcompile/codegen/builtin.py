"""
Built-in code generators.

- processes: execution order and per-process run spec
- dataflow: node/edge description of the process and relation graph
- relations: producers and consumers of every relation
"""

from typing import Any

from ddcompile.schemas import ExecutionPlan, Kind

from .base import Generator


class ProcessesGenerator(Generator):
    """Topological execution order plus what each process waits for."""

    name = "processes"
    description = "Execution order and process run specs"

    def generate(self, plan: dict[str, Any]) -> dict[str, Any]:
        execution_plan = ExecutionPlan.from_document(plan)
        upstream = execution_plan.upstream_map()
        processes = {}
        for name in sorted(execution_plan.nodes):
            node = execution_plan.nodes[name]
            processes[name] = {
                "kind": Kind.of(name).value,
                "upstream": upstream[name],
                "inputs": list(node.inputs),
                "output": node.output,
            }
        return {
            "order": execution_plan.topological_order(),
            "processes": processes,
        }


class DataflowGenerator(Generator):
    """Graph of processes and relations, as data (rendering is external)."""

    name = "dataflow"
    description = "Dataflow graph nodes and edges"

    def generate(self, plan: dict[str, Any]) -> dict[str, Any]:
        execution_plan = ExecutionPlan.from_document(plan)
        nodes: dict[str, str] = {}
        edges = []
        for name in sorted(execution_plan.nodes):
            node = execution_plan.nodes[name]
            nodes[name] = Kind.of(name).value
            for dep in node.dependencies:
                edges.append({"from": dep, "to": name, "kind": "dependency"})
            for relation in node.inputs:
                nodes.setdefault(relation, Kind.DATA.value)
                edges.append({"from": relation, "to": name, "kind": "input"})
            if node.output is not None:
                nodes.setdefault(node.output, Kind.DATA.value)
                edges.append({"from": name, "to": node.output, "kind": "output"})
        return {
            "nodes": [{"id": n, "kind": kind} for n, kind in sorted(nodes.items())],
            "edges": edges,
        }


class RelationsGenerator(Generator):
    """Per-relation producer and consumer lists."""

    name = "relations"
    description = "Relation producers and consumers"

    def generate(self, plan: dict[str, Any]) -> dict[str, Any]:
        return {"relations": ExecutionPlan.from_document(plan).relations()}


BUILTIN_GENERATORS = (
    ProcessesGenerator,
    DataflowGenerator,
    RelationsGenerator,
)
