"""
Built-in config stages.

- 0.00-init_objects: make sure every section the compiler reads exists
- 0.01-qualified_names: qualify names and merge extractors into the plan
- 1.00-factor_processes: lift qualified factors into the plan
- 9.00-dependencies: derive each process's full upstream set
"""

import logging
from typing import Any

from ddcompile.qualifier import merge_processes, qualify_document, record_collisions
from ddcompile.schemas import DocumentLevel, ExecutionPlan

from .base import Stage

logger = logging.getLogger(__name__)


class InitObjectsStage(Stage):
    """Ensure extraction.extractors, inference.factors and execution.processes exist."""

    name = "0.00-init_objects"
    description = "Create empty definition sections"

    SECTIONS = (
        ("extraction", "extractors"),
        ("inference", "factors"),
        ("execution", "processes"),
    )

    def transform(self, document: dict[str, Any]) -> dict[str, Any]:
        for section, key in self.SECTIONS:
            outer = document.get(section)
            if outer is None:
                outer = document[section] = {}
            if outer.get(key) is None:
                outer[key] = {}
        return document


class QualifyNamesStage(Stage):
    """Qualify entity names and merge extractors into execution.processes."""

    name = "0.01-qualified_names"
    requires = DocumentLevel.RAW
    produces = DocumentLevel.QUALIFIED
    description = "Qualify names, merge extractors into the plan"

    def transform(self, document: dict[str, Any]) -> dict[str, Any]:
        return qualify_document(document)


class FactorProcessesStage(Stage):
    """
    Lift every qualified factor into execution.processes.

    Factors keep their factor/<name> key in the plan, so they cannot
    collide with extractors; a collision with a process already declared
    under that key is recorded like any other merge collision.
    """

    name = "1.00-factor_processes"
    requires = DocumentLevel.QUALIFIED
    produces = DocumentLevel.QUALIFIED
    description = "Lift factors into the plan"

    def transform(self, document: dict[str, Any]) -> dict[str, Any]:
        factors = document["inference"]["factors"]
        execution = document["execution"]
        merged, collisions = merge_processes(execution["processes"], factors)
        execution["processes"] = merged
        record_collisions(document, collisions)
        logger.debug(f"Lifted {len(factors)} factors into the plan")
        return document


class DependenciesStage(Stage):
    """Write execution.dependencies: explicit dependencies plus input producers."""

    name = "9.00-dependencies"
    requires = DocumentLevel.QUALIFIED
    produces = DocumentLevel.QUALIFIED
    description = "Derive process dependencies from relations"

    def transform(self, document: dict[str, Any]) -> dict[str, Any]:
        plan = ExecutionPlan.from_document(document)
        document["execution"]["dependencies"] = plan.upstream_map()
        return document


BUILTIN_STAGES = (
    InitObjectsStage,
    QualifyNamesStage,
    FactorProcessesStage,
    DependenciesStage,
)
