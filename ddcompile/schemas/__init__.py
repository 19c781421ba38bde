"""
ddcompile.schemas - Data structures shared by the compiler and the build.

Document -> ExecutionPlan -> WorkspaceRecord

1. Document: the JSON config tree threaded through config stages, at the
   raw or qualified level (DocumentLevel, check_document)
2. ExecutionPlan: qualified process name -> ProcessNode, the DAG of a build
3. WorkspaceRecord: status and artifacts of one compile attempt
"""

from .plan import (
    DEPENDENCIES_FIELD,
    INPUT_FIELD,
    OUTPUT_FIELD,
    CycleDetectedError,
    ExecutionPlan,
    Kind,
    ProcessNode,
    UnknownDependencyError,
)
from .document import (
    DocumentLevel,
    check_document,
    get_section,
)
from .workspace import (
    ABORTED,
    COMPLETED,
    RUNNING,
    WorkspaceRecord,
)

__all__ = [
    # Plan
    "DEPENDENCIES_FIELD",
    "INPUT_FIELD",
    "OUTPUT_FIELD",
    "CycleDetectedError",
    "ExecutionPlan",
    "Kind",
    "ProcessNode",
    "UnknownDependencyError",
    # Document
    "DocumentLevel",
    "check_document",
    "get_section",
    # Workspace
    "ABORTED",
    "COMPLETED",
    "RUNNING",
    "WorkspaceRecord",
]
