"""
Build orchestrator for ddcompile.

Coordinates one whole compile run:

    lock -> allocate workspace -> config pipeline -> plan checks
         -> code generation fan-out -> code checks -> promote

Everything after allocation runs under the failure supervisor, so every
outcome leaves the workspace record, the log and the pointer aliases
consistent. The first fatal failure propagates to the caller.
"""

import logging
import sys
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, TextIO

from ddcompile.codegen import CodegenFanout, GeneratorResult
from ddcompile.config import BuildConfig
from ddcompile.registry import UnitRegistries, create_default_registries
from ddcompile.stages import ConfigPipeline, StageResult
from ddcompile.supervisor import FailureSupervisor
from ddcompile.utils import read_json, setup_logging, teardown_logging
from ddcompile.validation import (
    CODE_PHASE,
    PLAN_PHASE,
    Check,
    CommandCheck,
    ValidationGate,
)
from ddcompile.workspace import BuildDirectory, Workspace


@dataclass
class BuildResult:
    """Result of a successful build."""

    workspace_key: str
    started_at: datetime
    ended_at: datetime
    duration_seconds: float
    compiled_path: Path
    stages: list[StageResult] = field(default_factory=list)
    generators: list[GeneratorResult] = field(default_factory=list)
    previous_compiled: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "workspace_key": self.workspace_key,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat(),
            "duration_seconds": self.duration_seconds,
            "compiled_path": str(self.compiled_path),
            "stages": [s.to_dict() for s in self.stages],
            "generators": [g.to_dict() for g in self.generators],
            "previous_compiled": self.previous_compiled,
        }


class Builder:
    """
    Main build orchestrator.

    Usage:
        config = load_config(project_dir=project)
        result = Builder(config).run(document)
    """

    def __init__(
        self,
        config: BuildConfig,
        registries: Optional[UnitRegistries] = None,
        quiet: Optional[bool] = None,
        lock_wait: Optional[bool] = None,
        stream: Optional[TextIO] = None,
    ):
        """
        Initialize builder.

        Args:
            config: Build configuration
            registries: Units to build with (defaults to built-ins plus
                entry points)
            quiet: Override the configured logging mode
            lock_wait: Override build.lock_wait
            stream: Where quiet mode writes the error excerpt
        """
        self.config = config
        self.registries = registries or create_default_registries()
        self.quiet = config.is_quiet() if quiet is None else quiet
        self.lock_wait = config.lock_wait if lock_wait is None else lock_wait
        self.stream = stream
        self.build_dir = BuildDirectory(config.get_build_root(), links=config.links)
        self.logger: Optional[logging.Logger] = None

    def checks(self) -> list[Check]:
        """Enabled checks: registered ones plus configured commands."""
        checks = list(self.registries.checks.units(disabled=self.config.disabled_checks))
        for name, command in sorted(self.config.command_checks.items()):
            if name in self.config.disabled_checks:
                continue
            checks.append(CommandCheck(name, command.phase, command.command))
        return checks

    def run(self, document: dict[str, Any]) -> BuildResult:
        """
        Compile a document into a new workspace and promote it.

        Args:
            document: Upstream (raw) config document

        Returns:
            BuildResult of the promoted workspace

        Raises:
            DdcompileError: First fatal failure of the build
        """
        started_at = datetime.now(timezone.utc)
        start_time = time.time()

        with self.build_dir.lock(wait=self.lock_wait):
            workspace = self.build_dir.allocate()
            self.logger = setup_logging(
                workspace.log_path,
                self.config.get_log_level(),
                self.config.get_log_format(),
                console_output=not self.quiet,
            )
            try:
                with FailureSupervisor(
                    self.build_dir,
                    workspace,
                    quiet=self.quiet,
                    stream=self.stream or sys.stderr,
                ):
                    result = self._run_phases(document, workspace)
            finally:
                teardown_logging(self.logger)

        result.started_at = started_at
        result.ended_at = datetime.now(timezone.utc)
        result.duration_seconds = time.time() - start_time
        return result

    def _run_phases(self, document: dict[str, Any], workspace: Workspace) -> BuildResult:
        config = self.config
        gate = ValidationGate(self.checks())

        pipeline = ConfigPipeline(
            self.registries.stages.units(disabled=config.disabled_stages)
        )
        pipeline_result = pipeline.run(document, workspace)
        compiled_path = pipeline_result.compiled_path

        gate.run(PLAN_PHASE, read_json(compiled_path), compiled_path)

        fanout = CodegenFanout(
            self.registries.generators.units(disabled=config.disabled_generators),
            max_workers=config.max_workers,
        )
        generator_results = fanout.run(compiled_path, workspace)

        fragments = {
            r.name: workspace.read_artifact(r.artifact) for r in generator_results
        }
        gate.run(CODE_PHASE, fragments, workspace.path)

        previous = self.build_dir.promote(workspace)

        return BuildResult(
            workspace_key=workspace.key,
            started_at=workspace.record.started_at,
            ended_at=datetime.now(timezone.utc),
            duration_seconds=0.0,
            compiled_path=compiled_path,
            stages=pipeline_result.stages,
            generators=generator_results,
            previous_compiled=previous,
        )
