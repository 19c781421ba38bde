"""
Code generation fan-out for ddcompile.

Generators run concurrently against the same compiled plan, each
producing one code-<name>.json fragment:
- processes: execution order and process run specs
- dataflow: dataflow graph nodes and edges
- relations: relation producers and consumers
"""

from .base import FunctionGenerator, Generator, GeneratorResult, as_generator
from .builtin import (
    BUILTIN_GENERATORS,
    DataflowGenerator,
    ProcessesGenerator,
    RelationsGenerator,
)
from .fanout import CodegenFanout

__all__ = [
    "BUILTIN_GENERATORS",
    "CodegenFanout",
    "DataflowGenerator",
    "FunctionGenerator",
    "Generator",
    "GeneratorResult",
    "ProcessesGenerator",
    "RelationsGenerator",
    "as_generator",
]
