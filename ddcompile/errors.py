"""
Error classes for ddcompile builds.

Every fatal condition of a build is one of these types. Each carries the
exit status the CLI terminates with:

- StructuralError: a unit could not parse or produce the expected shape
- ValidationFailed: named checks failed against the plan or fragments
- GeneratorFailure: one or more concurrent generators failed
- RunInterrupted: interrupt/termination signal delivered to the build

Error handling contract:
- Nothing fatal is recovered; the build aborts and leaves evidence
- Errors are exceptions, not values
- The first fatal failure determines the exit status
"""

from typing import Optional


class DdcompileError(Exception):
    """Base exception for ddcompile."""

    exit_status = 1

    def __init__(self, message: str, exit_status: Optional[int] = None):
        super().__init__(message)
        if exit_status is not None:
            self.exit_status = exit_status


class ConfigError(DdcompileError):
    """Configuration file is missing, unparsable or invalid."""

    exit_status = 2


class StructuralError(DdcompileError):
    """
    A unit cannot parse or produce the expected document shape.

    Always fatal. Raised by the pipeline driver for stage ordering mistakes
    and wrapped around anything a stage raises.
    """

    exit_status = 2


class SchemaError(StructuralError):
    """A document does not satisfy the schema level a stage declares."""

    def __init__(self, message: str, path: str = ""):
        self.path = path
        if path:
            message = f"{path}: {message}"
        super().__init__(message)


class StageFailed(StructuralError):
    """A config pipeline stage raised or returned an unusable document."""

    def __init__(self, stage_id: str, message: str):
        self.stage_id = stage_id
        super().__init__(f"Stage {stage_id} failed: {message}")


class ValidationFailed(DdcompileError):
    """
    One or more checks of the validation gate failed.

    Attributes:
        phase: Gate phase the checks ran in ("plan" or "code")
        failures: check name -> list of messages
    """

    exit_status = 3

    def __init__(
        self,
        phase: str,
        failures: dict[str, list[str]],
        exit_status: Optional[int] = None,
    ):
        self.phase = phase
        self.failures = failures
        names = ", ".join(sorted(failures))
        super().__init__(f"Validation failed ({phase}): {names}", exit_status)


class GeneratorFailure(DdcompileError):
    """
    One or more code generators of a fan-out failed.

    Raised only after every launched generator has finished, so
    ``failures`` lists all of them, not just the first.
    """

    exit_status = 4

    def __init__(self, failures: dict[str, str]):
        self.failures = failures
        names = ", ".join(sorted(failures))
        super().__init__(f"Code generation failed: {names}")


class RunInterrupted(DdcompileError):
    """The build received an interrupt or termination signal."""

    def __init__(self, signum: int):
        self.signum = signum
        super().__init__(f"Interrupted by signal {signum}", exit_status=128 + signum)


class WorkspaceError(DdcompileError):
    """Build directory or pointer store cannot be read or written."""
    pass


class WorkspaceLockedError(WorkspaceError):
    """Another build holds the lock on the build directory."""

    exit_status = 75
