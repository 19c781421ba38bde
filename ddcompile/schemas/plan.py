"""
Execution plan schema - qualified names, process nodes and the plan DAG.

A qualified name is "<kind>/<name>" where kind is one of process, factor
or data. A ProcessNode is one executable step (an extractor or a lifted
factor) read from the compiled document; the ExecutionPlan is the mapping
of qualified name -> ProcessNode for one build.

The plan does not enforce acyclicity or resolvability on construction.
Those are checked by the validation gate through topological_order().
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


# Fields added by qualification
DEPENDENCIES_FIELD = "dependencies_"
INPUT_FIELD = "input_"
OUTPUT_FIELD = "output_"
QUALIFIED_FIELDS = (DEPENDENCIES_FIELD, INPUT_FIELD, OUTPUT_FIELD)


class Kind(str, Enum):
    """Namespace of a qualified entity name."""

    PROCESS = "process"
    FACTOR = "factor"
    DATA = "data"

    @property
    def prefix(self) -> str:
        return f"{self.value}/"

    @classmethod
    def of(cls, qualified_name: str) -> Optional["Kind"]:
        """Return the kind of a qualified name, or None if unqualified."""
        head, sep, _ = qualified_name.partition("/")
        if not sep:
            return None
        try:
            return cls(head)
        except ValueError:
            return None


class UnknownDependencyError(ValueError):
    """A process depends on a name that is not in the plan."""
    pass


class CycleDetectedError(ValueError):
    """The dependency graph of the plan contains a cycle."""

    def __init__(self, remaining: list[str]):
        self.remaining = remaining
        super().__init__(
            f"Cycle detected among processes: {', '.join(remaining)}"
        )


@dataclass(frozen=True)
class ProcessNode:
    """
    One executable step of the execution plan.

    Attributes:
        name: Qualified name (process/<name> or factor/<name>)
        dependencies: Qualified names of explicit dependencies
        inputs: Qualified names of relations read
        output: Qualified name of the relation written, if any
        payload: Kind-specific definition, opaque to the compiler
    """
    name: str
    dependencies: tuple[str, ...] = ()
    inputs: tuple[str, ...] = ()
    output: Optional[str] = None
    payload: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_entry(cls, name: str, entry: dict[str, Any]) -> "ProcessNode":
        """Build a node from a qualified document entry."""
        outputs = entry.get(OUTPUT_FIELD) or []
        return cls(
            name=name,
            dependencies=tuple(entry.get(DEPENDENCIES_FIELD, [])),
            inputs=tuple(entry.get(INPUT_FIELD, [])),
            output=outputs[0] if outputs else None,
            payload={k: v for k, v in entry.items() if k not in QUALIFIED_FIELDS},
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize back to the document entry shape."""
        result = dict(self.payload)
        result[DEPENDENCIES_FIELD] = list(self.dependencies)
        result[INPUT_FIELD] = list(self.inputs)
        if self.output is not None:
            result[OUTPUT_FIELD] = [self.output]
        return result


@dataclass
class ExecutionPlan:
    """
    The complete process DAG of one build.

    Usage:
        plan = ExecutionPlan.from_document(compiled_document)
        for name in plan.topological_order():
            ...
    """
    nodes: dict[str, ProcessNode] = field(default_factory=dict)

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> "ExecutionPlan":
        processes = document.get("execution", {}).get("processes", {})
        return cls({
            name: ProcessNode.from_entry(name, entry)
            for name, entry in processes.items()
        })

    def __contains__(self, name: str) -> bool:
        return name in self.nodes

    def __len__(self) -> int:
        return len(self.nodes)

    def producers(self) -> dict[str, list[str]]:
        """Map each relation to the sorted names of processes writing it."""
        result: dict[str, list[str]] = {}
        for name in sorted(self.nodes):
            output = self.nodes[name].output
            if output is not None:
                result.setdefault(output, []).append(name)
        return result

    def relations(self) -> dict[str, dict[str, list[str]]]:
        """Map each referenced relation to its producers and consumers."""
        result: dict[str, dict[str, list[str]]] = {}
        for name in sorted(self.nodes):
            node = self.nodes[name]
            if node.output is not None:
                result.setdefault(node.output, {"producers": [], "consumers": []})
                result[node.output]["producers"].append(name)
            for relation in node.inputs:
                result.setdefault(relation, {"producers": [], "consumers": []})
                result[relation]["consumers"].append(name)
        return dict(sorted(result.items()))

    def upstream(
        self, name: str, producers: Optional[dict[str, list[str]]] = None
    ) -> list[str]:
        """
        Names a process must wait for.

        Explicit dependencies plus every producer of a relation the process
        reads. Reading its own output does not make a process wait for
        itself; an explicit self-dependency is kept.

        Pass a precomputed producers() map when walking many nodes.
        """
        node = self.nodes[name]
        if producers is None:
            producers = self.producers()
        names = set(node.dependencies)
        for relation in node.inputs:
            names.update(p for p in producers.get(relation, []) if p != name)
        return sorted(names)

    def upstream_map(self) -> dict[str, list[str]]:
        """upstream() of every process, keyed by sorted name."""
        producers = self.producers()
        return {name: self.upstream(name, producers) for name in sorted(self.nodes)}

    def topological_order(self, ignore_unknown: bool = False) -> list[str]:
        """
        Deterministic topological order of the plan (Kahn).

        Ties are broken lexicographically, so the same plan always yields
        the same order.

        Args:
            ignore_unknown: Drop edges to names outside the plan instead of
                raising UnknownDependencyError

        Raises:
            UnknownDependencyError: A dependency is not part of the plan
            CycleDetectedError: The graph has a cycle
        """
        deps: dict[str, list[str]] = {}
        for name, names in self.upstream_map().items():
            upstream = []
            for dep in names:
                if dep not in self.nodes:
                    if ignore_unknown:
                        continue
                    raise UnknownDependencyError(
                        f"Process '{name}' depends on unknown process '{dep}'"
                    )
                upstream.append(dep)
            deps[name] = upstream

        incoming = {name: len(d) for name, d in deps.items()}
        outgoing: dict[str, set[str]] = {name: set() for name in deps}
        for name, upstream in deps.items():
            for dep in upstream:
                outgoing[dep].add(name)

        ready = sorted(name for name, count in incoming.items() if count == 0)
        order: list[str] = []
        while ready:
            name = ready.pop(0)
            order.append(name)
            for child in sorted(outgoing[name]):
                incoming[child] -= 1
                if incoming[child] == 0:
                    ready.append(child)
                    ready.sort()

        if len(order) != len(deps):
            raise CycleDetectedError(sorted(set(deps) - set(order)))
        return order

