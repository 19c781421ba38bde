"""
Base classes for config pipeline stages.

A stage is a pure transform from one config document to the next. It
declares the schema level it needs on input and guarantees on output; the
pipeline driver enforces both.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

from ddcompile.schemas import DocumentLevel


@dataclass
class StageResult:
    """Result of one stage of a config pipeline run."""

    stage_name: str
    artifact: str
    duration_seconds: float
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "stage_name": self.stage_name,
            "artifact": self.artifact,
            "duration_seconds": self.duration_seconds,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
        }


class Stage(ABC):
    """
    Abstract base class for config pipeline stages.

    Each stage must define:
    - name: stage identifier; stages run in lexicographic name order
    - transform(): produce the next document

    and may narrow requires/produces (both default to raw).
    """

    name: str = ""
    requires: DocumentLevel = DocumentLevel.RAW
    produces: DocumentLevel = DocumentLevel.RAW
    description: str = ""

    @abstractmethod
    def transform(self, document: dict[str, Any]) -> dict[str, Any]:
        """
        Transform a document.

        Args:
            document: Output of the previous stage (a private copy)

        Returns:
            The document handed to the next stage
        """
        pass

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(name={self.name}, "
            f"requires={self.requires.value}, produces={self.produces.value})"
        )


class FunctionStage(Stage):
    """
    Stage wrapping a plain function published through an entry point.

    Levels are read from ``requires`` / ``produces`` attributes of the
    function when present and default to qualified, since third-party
    stages run on qualified names.
    """

    def __init__(
        self,
        name: str,
        func: Callable[[dict[str, Any]], dict[str, Any]],
        requires: Optional[DocumentLevel] = None,
        produces: Optional[DocumentLevel] = None,
    ):
        self.name = name
        self.func = func
        self.requires = DocumentLevel(
            requires or getattr(func, "requires", DocumentLevel.QUALIFIED)
        )
        self.produces = DocumentLevel(produces or getattr(func, "produces", self.requires))
        self.description = (func.__doc__ or "").strip().split("\n")[0]

    def transform(self, document: dict[str, Any]) -> dict[str, Any]:
        return self.func(document)


def as_stage(name: str, obj: Any) -> Stage:
    """
    Turn an entry-point object into a Stage.

    Accepts a Stage instance, a Stage subclass or a plain callable.

    Raises:
        TypeError: If the object is none of those
    """
    if isinstance(obj, type) and issubclass(obj, Stage):
        obj = obj()
    if isinstance(obj, Stage):
        if not obj.name:
            obj.name = name
        return obj
    if callable(obj):
        return FunctionStage(name, obj)
    raise TypeError(f"Entry point {name} is not a stage: {obj!r}")
