"""
Config pipeline driver - run stages sequentially over one document.

The driver:
- checks statically that no stage needing qualified names runs before
  the stage that qualifies them
- persists the upstream document as config-input.json
- for each stage, enforces its input level, runs it on a private copy,
  enforces its output level and persists config-<stage>.json before the
  next stage starts
- links config.json to the last stage's artifact

A failing stage aborts the pipeline. Artifacts of the stages that already
ran stay in the workspace.
"""

import copy
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable

from ddcompile.errors import DdcompileError, SchemaError, StageFailed, StructuralError
from ddcompile.schemas import DocumentLevel, check_document
from ddcompile.workspace import Workspace

from .base import Stage, StageResult

logger = logging.getLogger(__name__)

INPUT_ARTIFACT = "config-input.json"
COMPILED_ARTIFACT = "config.json"


def stage_artifact(stage: Stage) -> str:
    return f"config-{stage.name}.json"


def plan_stages(stages: Iterable[Stage]) -> list[Stage]:
    """
    Order stages by name and check qualification comes first.

    Args:
        stages: Stages to run

    Returns:
        Stages in execution order

    Raises:
        StructuralError: If a stage requiring qualified names precedes
            every stage producing them
    """
    ordered = sorted(stages, key=lambda s: s.name)
    level = DocumentLevel.RAW
    for stage in ordered:
        if stage.requires is DocumentLevel.QUALIFIED and level is DocumentLevel.RAW:
            raise StructuralError(
                f"Stage {stage.name} requires qualified names but no earlier "
                f"stage produces them"
            )
        if stage.produces is DocumentLevel.QUALIFIED:
            level = DocumentLevel.QUALIFIED
    return ordered


@dataclass
class PipelineResult:
    """Result of a complete config pipeline run."""

    compiled_path: Path
    stages: list[StageResult] = field(default_factory=list)


class ConfigPipeline:
    """
    Sequential config transform pipeline.

    Usage:
        pipeline = ConfigPipeline(registries.stages.units())
        result = pipeline.run(document, workspace)
        compiled = read_json(result.compiled_path)
    """

    def __init__(self, stages: Iterable[Stage]):
        self.stages = plan_stages(stages)

    def run(self, document: dict[str, Any], workspace: Workspace) -> PipelineResult:
        """
        Run every stage over the document.

        Args:
            document: Document from upstream assembly
            workspace: Workspace receiving the artifacts

        Returns:
            PipelineResult pointing at the compiled config

        Raises:
            StructuralError: If there is nothing to run or the input is malformed
            StageFailed: If a stage raises or breaks its declared schema
        """
        if not self.stages:
            raise StructuralError("No config stages to run")

        check_document(document, DocumentLevel.RAW)
        workspace.write_artifact(INPUT_ARTIFACT, document)

        results: list[StageResult] = []
        current = document
        for stage in self.stages:
            current = self._run_stage(stage, current, workspace, results)

        workspace.link(COMPILED_ARTIFACT, results[-1].artifact)
        logger.info(
            f"Config pipeline completed ({len(results)} stages)",
            extra={
                "event": "pipeline_completed",
                "metadata": {"compiled": results[-1].artifact},
            },
        )
        return PipelineResult(
            compiled_path=workspace.artifact_path(COMPILED_ARTIFACT),
            stages=results,
        )

    def _run_stage(
        self,
        stage: Stage,
        document: dict[str, Any],
        workspace: Workspace,
        results: list[StageResult],
    ) -> dict[str, Any]:
        started_at = datetime.now(timezone.utc)
        start_time = time.time()
        logger.info(
            f"Running stage {stage.name}",
            extra={"stage": stage.name, "event": "stage_started"},
        )

        try:
            check_document(document, stage.requires)
        except SchemaError as e:
            raise StageFailed(stage.name, f"input is not {stage.requires.value}: {e}")

        try:
            output = stage.transform(copy.deepcopy(document))
        except DdcompileError:
            raise
        except Exception as e:
            logger.error(
                f"Stage {stage.name} failed with exception: {e}",
                extra={"stage": stage.name, "event": "stage_exception"},
                exc_info=True,
            )
            raise StageFailed(stage.name, str(e)) from e

        try:
            check_document(output, stage.produces)
        except SchemaError as e:
            raise StageFailed(stage.name, f"output is not {stage.produces.value}: {e}")

        artifact = stage_artifact(stage)
        workspace.write_artifact(artifact, output)

        result = StageResult(
            stage_name=stage.name,
            artifact=artifact,
            duration_seconds=time.time() - start_time,
            started_at=started_at,
            ended_at=datetime.now(timezone.utc),
        )
        results.append(result)
        logger.info(
            f"Stage {stage.name} completed",
            extra={
                "stage": stage.name,
                "event": "stage_completed",
                "metadata": {"artifact": artifact, "duration_seconds": result.duration_seconds},
            },
        )
        return output
