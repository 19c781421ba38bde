"""
Unit registries for stages, generators and checks.

Each registry maps a unit name to an implementation satisfying one
capability (document -> document for stages, plan -> fragment for
generators, subject -> messages for checks). Built-in units are registered
by create_default_registries(); third-party packages add units through
entry points:

    [project.entry-points."ddcompile.stages"]
    "5.00-my_stage" = "mypkg.stages:my_stage"

Units are always listed in lexicographic name order, which is the stage
execution order.
"""

import logging
from dataclasses import dataclass
from importlib.metadata import entry_points
from typing import Any, Callable, Generic, Iterable, TypeVar

logger = logging.getLogger(__name__)

STAGES_GROUP = "ddcompile.stages"
GENERATORS_GROUP = "ddcompile.generators"
CHECKS_GROUP = "ddcompile.checks"

T = TypeVar("T")


class DuplicateUnitError(ValueError):
    """Raised when two units are registered under the same name."""
    pass


class Registry(Generic[T]):
    """
    Registry of named units of one kind.

    Usage:
        registry = Registry("stage", as_stage)
        registry.register(QualifyNamesStage())
        registry.discover("ddcompile.stages")

        for stage in registry.units(disabled=["1.00-factor_processes"]):
            ...
    """

    def __init__(self, kind: str, adapter: Callable[[str, Any], T]):
        """
        Initialize an empty registry.

        Args:
            kind: Unit kind, used in messages ("stage", "generator", "check")
            adapter: Turns an entry-point object into a unit, given its name
        """
        self.kind = kind
        self._adapter = adapter
        self._units: dict[str, T] = {}

    def register(self, unit: T) -> None:
        """
        Register a unit under its name.

        Raises:
            DuplicateUnitError: If the name is already registered
        """
        name = unit.name
        if name in self._units:
            raise DuplicateUnitError(f"Duplicate {self.kind} name: {name}")
        self._units[name] = unit

    def get(self, name: str) -> T:
        """
        Get a unit by name.

        Raises:
            KeyError: If no unit is registered under that name
        """
        if name not in self._units:
            raise KeyError(
                f"No {self.kind} registered: {name}. Registered: {self.names()}"
            )
        return self._units[name]

    def has(self, name: str) -> bool:
        return name in self._units

    def names(self) -> list[str]:
        """Registered names in lexicographic order."""
        return sorted(self._units)

    def units(self, disabled: Iterable[str] = ()) -> list[T]:
        """Registered units in name order, skipping disabled names."""
        skip = set(disabled)
        return [self._units[name] for name in self.names() if name not in skip]

    def discover(self, group: str) -> int:
        """
        Register every unit published under an entry-point group.

        Args:
            group: Entry-point group name

        Returns:
            Number of units registered
        """
        count = 0
        for ep in entry_points().select(group=group):
            unit = self._adapter(ep.name, ep.load())
            self.register(unit)
            logger.debug(f"Discovered {self.kind} {ep.name} from {ep.value}")
            count += 1
        return count

    def __len__(self) -> int:
        return len(self._units)


@dataclass
class UnitRegistries:
    """The three registries a build draws its units from."""
    stages: Registry
    generators: Registry
    checks: Registry


def create_default_registries(discover: bool = True) -> UnitRegistries:
    """
    Create registries holding the built-in units.

    Args:
        discover: Also register units published through entry points

    Returns:
        Configured UnitRegistries
    """
    from ddcompile.codegen import BUILTIN_GENERATORS, as_generator
    from ddcompile.stages import BUILTIN_STAGES, as_stage
    from ddcompile.validation import BUILTIN_CHECKS, as_check

    stages = Registry("stage", as_stage)
    for stage_cls in BUILTIN_STAGES:
        stages.register(stage_cls())

    generators = Registry("generator", as_generator)
    for generator_cls in BUILTIN_GENERATORS:
        generators.register(generator_cls())

    checks = Registry("check", as_check)
    for check_cls in BUILTIN_CHECKS:
        checks.register(check_cls())

    if discover:
        stages.discover(STAGES_GROUP)
        generators.discover(GENERATORS_GROUP)
        checks.discover(CHECKS_GROUP)

    return UnitRegistries(stages=stages, generators=generators, checks=checks)
