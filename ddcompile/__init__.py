"""
ddcompile - Dataflow configuration compiler

Qualifies and merges extractor and factor definitions into an execution
plan, generates code fragments concurrently, and stages every build in a
versioned workspace with atomic promotion.
"""

__version__ = "0.1.0"


__all__ = ["BuildConfig", "Builder", "load_config", "qualify_document"]

from .build import Builder
from .config import BuildConfig, load_config
from .qualifier import qualify_document
