"""
Validation gate - named pass/fail checks between build phases.

The gate runs twice per build:

- plan: after the config pipeline, against the compiled plan document
- code: after the fan-out, against the generated fragments
  (generator name -> fragment)

A check returns a list of failure messages; an empty list is a pass.
External checks are commands invoked with the artifact path as their last
argument and judged by exit status.
"""

import logging
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterable, Optional

from ddcompile.errors import ValidationFailed
from ddcompile.qualifier import COLLISIONS_FIELD
from ddcompile.schemas import CycleDetectedError, ExecutionPlan, Kind

logger = logging.getLogger(__name__)

PLAN_PHASE = "plan"
CODE_PHASE = "code"


@dataclass
class CheckResult:
    """Outcome of one check."""

    name: str
    passed: bool
    messages: list[str] = field(default_factory=list)
    exit_status: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "passed": self.passed,
            "messages": list(self.messages),
            "exit_status": self.exit_status,
        }


class Check(ABC):
    """Abstract base class for validation checks."""

    name: str = ""
    phase: str = PLAN_PHASE
    description: str = ""

    @abstractmethod
    def run(self, subject: Any) -> list[str]:
        """
        Check a subject.

        Args:
            subject: Compiled plan (plan phase) or fragments (code phase)

        Returns:
            Failure messages, empty when the check passes
        """
        pass

    def evaluate(self, subject: Any, artifact: Optional[Path] = None) -> CheckResult:
        """Run the check; an exception counts as a failure."""
        try:
            messages = list(self.run(subject))
        except Exception as e:
            logger.error(
                f"Check {self.name} raised: {e}",
                extra={"stage": self.name, "event": "check_error"},
                exc_info=True,
            )
            messages = [f"{type(e).__name__}: {e}"]
        return CheckResult(name=self.name, passed=not messages, messages=messages)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name}, phase={self.phase})"


class FunctionCheck(Check):
    """Check wrapping a plain function published through an entry point."""

    def __init__(self, name: str, func: Callable[[Any], list[str]], phase: Optional[str] = None):
        self.name = name
        self.func = func
        self.phase = phase or getattr(func, "phase", PLAN_PHASE)
        self.description = (func.__doc__ or "").strip().split("\n")[0]

    def run(self, subject: Any) -> list[str]:
        return self.func(subject) or []


def as_check(name: str, obj: Any) -> Check:
    """Turn an entry-point object into a Check."""
    if isinstance(obj, type) and issubclass(obj, Check):
        obj = obj()
    if isinstance(obj, Check):
        if not obj.name:
            obj.name = name
        return obj
    if callable(obj):
        return FunctionCheck(name, obj)
    raise TypeError(f"Entry point {name} is not a check: {obj!r}")


class CommandCheck(Check):
    """
    External check command.

    The command receives the artifact path as its last argument. Exit
    status 0 passes; any other status fails the gate and becomes the
    build's exit status.
    """

    def __init__(self, name: str, phase: str, command: list[str]):
        self.name = name
        self.phase = phase
        self.command = list(command)
        self.description = " ".join(self.command)

    def run(self, subject: Any, artifact: Optional[Path] = None) -> list[str]:
        return self.evaluate(subject, artifact).messages

    def evaluate(self, subject: Any, artifact: Optional[Path] = None) -> CheckResult:
        if artifact is None:
            return CheckResult(self.name, False, ["no artifact to check"])

        cmd = self.command + [str(artifact)]
        logger.debug(f"Running check command: {' '.join(cmd)}")
        try:
            proc = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as e:
            return CheckResult(self.name, False, [f"cannot run {cmd[0]}: {e}"])

        if proc.returncode == 0:
            return CheckResult(self.name, True)

        output = (proc.stderr or proc.stdout or "").strip()
        messages = [f"{cmd[0]} exited with status {proc.returncode}"]
        if output:
            messages.extend(output.splitlines())
        # a negative returncode means killed by that signal
        status = proc.returncode if proc.returncode > 0 else 128 - proc.returncode
        return CheckResult(self.name, False, messages, exit_status=status)


# =============================================================================
# Built-in checks
# =============================================================================


class NoCollisionsCheck(Check):
    name = "no_collisions"
    description = "No two definitions share one qualified name"

    def run(self, subject: dict[str, Any]) -> list[str]:
        collisions = subject.get("execution", {}).get(COLLISIONS_FIELD, [])
        return [f"name defined more than once: {name}" for name in collisions]


class DependenciesResolveCheck(Check):
    name = "dependencies_resolve"
    description = "Every dependency names a process of the plan"

    def run(self, subject: dict[str, Any]) -> list[str]:
        plan = ExecutionPlan.from_document(subject)
        messages = []
        for name in sorted(plan.nodes):
            for dep in plan.nodes[name].dependencies:
                if dep not in plan:
                    messages.append(f"{name} depends on undefined {dep}")
        return messages


class InputsProducedCheck(Check):
    """
    Every relation read is written by some process, or declared.

    Declared relations live under schema.relations, keyed by unqualified
    or data/-qualified name.
    """

    name = "inputs_produced"
    description = "Every input relation has a producer or is declared"

    def run(self, subject: dict[str, Any]) -> list[str]:
        plan = ExecutionPlan.from_document(subject)
        declared = (subject.get("schema") or {}).get("relations") or {}
        known = set(plan.producers())
        for relation in declared:
            known.add(relation if Kind.of(relation) else f"{Kind.DATA.prefix}{relation}")

        messages = []
        for name in sorted(plan.nodes):
            for relation in plan.nodes[name].inputs:
                if relation not in known:
                    messages.append(f"{name} reads {relation}, which nothing produces")
        return messages


class AcyclicCheck(Check):
    name = "acyclic"
    description = "The process graph has a topological order"

    def run(self, subject: dict[str, Any]) -> list[str]:
        try:
            ExecutionPlan.from_document(subject).topological_order(ignore_unknown=True)
        except CycleDetectedError as e:
            return [str(e)]
        return []


class FragmentsNonemptyCheck(Check):
    name = "fragments_nonempty"
    phase = CODE_PHASE
    description = "Every generated fragment is a non-empty mapping"

    def run(self, subject: dict[str, Any]) -> list[str]:
        messages = []
        for name in sorted(subject):
            fragment = subject[name]
            if not isinstance(fragment, dict) or not fragment:
                messages.append(f"generator {name} produced an empty fragment")
        return messages


BUILTIN_CHECKS = (
    NoCollisionsCheck,
    DependenciesResolveCheck,
    InputsProducedCheck,
    AcyclicCheck,
    FragmentsNonemptyCheck,
)


class ValidationGate:
    """
    Runs the enabled checks of one phase and fails the build on any failure.

    Usage:
        gate = ValidationGate(checks)
        gate.run("plan", compiled_document, compiled_path)
    """

    def __init__(self, checks: Iterable[Check]):
        self.checks = sorted(checks, key=lambda c: c.name)

    def for_phase(self, phase: str) -> list[Check]:
        return [c for c in self.checks if c.phase == phase]

    def run(self, phase: str, subject: Any, artifact: Optional[Path] = None) -> list[CheckResult]:
        """
        Run every check of a phase.

        All checks run even after a failure, so the log lists every
        failing check.

        Raises:
            ValidationFailed: If any check failed
        """
        results = []
        for check in self.for_phase(phase):
            result = check.evaluate(subject, artifact)
            results.append(result)
            if result.passed:
                logger.info(
                    f"Check {check.name} passed",
                    extra={"stage": check.name, "event": "check_passed"},
                )
            else:
                for message in result.messages:
                    logger.error(
                        f"Check {check.name} failed: {message}",
                        extra={
                            "stage": check.name,
                            "event": "check_failed",
                            "metadata": {"phase": phase},
                        },
                    )

        failed = [r for r in results if not r.passed]
        if failed:
            raise ValidationFailed(
                phase,
                {r.name: r.messages for r in failed},
                exit_status=failed[0].exit_status,
            )
        return results
