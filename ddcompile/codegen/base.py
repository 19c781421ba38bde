"""
Base classes for code generators.

A generator reads the compiled plan document and returns one fragment.
The fan-out driver writes it to code-<name>.json; a generator never
touches the workspace itself.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable


@dataclass
class GeneratorResult:
    """Result of one generator of a fan-out."""

    name: str
    duration_seconds: float
    artifact: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "duration_seconds": self.duration_seconds,
            "artifact": self.artifact,
        }


class Generator(ABC):
    """Abstract base class for code generators."""

    name: str = ""
    description: str = ""

    @abstractmethod
    def generate(self, plan: dict[str, Any]) -> dict[str, Any]:
        """
        Generate one fragment from the compiled plan.

        Args:
            plan: The compiled config document (this generator's own copy)

        Returns:
            JSON-serializable fragment
        """
        pass

    @property
    def artifact(self) -> str:
        return f"code-{self.name}.json"

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name})"


class FunctionGenerator(Generator):
    """Generator wrapping a plain function published through an entry point."""

    def __init__(self, name: str, func: Callable[[dict[str, Any]], dict[str, Any]]):
        self.name = name
        self.func = func
        self.description = (func.__doc__ or "").strip().split("\n")[0]

    def generate(self, plan: dict[str, Any]) -> dict[str, Any]:
        return self.func(plan)


def as_generator(name: str, obj: Any) -> Generator:
    """Turn an entry-point object into a Generator."""
    if isinstance(obj, type) and issubclass(obj, Generator):
        obj = obj()
    if isinstance(obj, Generator):
        if not obj.name:
            obj.name = name
        return obj
    if callable(obj):
        return FunctionGenerator(name, obj)
    raise TypeError(f"Entry point {name} is not a generator: {obj!r}")
