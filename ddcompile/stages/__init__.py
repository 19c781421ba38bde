"""
Config transform pipeline for ddcompile.

Each stage is one pure document transform; stages run in lexicographic
order of their names:
- 0.00-init_objects: create missing definition sections
- 0.01-qualified_names: qualify names, merge extractors into the plan
- 1.00-factor_processes: lift factors into the plan
- 9.00-dependencies: derive the upstream set of every process
"""

from .base import FunctionStage, Stage, StageResult, as_stage
from .builtin import (
    BUILTIN_STAGES,
    DependenciesStage,
    FactorProcessesStage,
    InitObjectsStage,
    QualifyNamesStage,
)
from .pipeline import (
    COMPILED_ARTIFACT,
    INPUT_ARTIFACT,
    ConfigPipeline,
    PipelineResult,
    plan_stages,
)

__all__ = [
    "BUILTIN_STAGES",
    "COMPILED_ARTIFACT",
    "INPUT_ARTIFACT",
    "ConfigPipeline",
    "DependenciesStage",
    "FactorProcessesStage",
    "FunctionStage",
    "InitObjectsStage",
    "PipelineResult",
    "QualifyNamesStage",
    "Stage",
    "StageResult",
    "as_stage",
    "plan_stages",
]
