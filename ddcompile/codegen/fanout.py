"""
Code generation fan-out - run every generator concurrently.

All generators of one fan-out see the same finalized compiled plan: each
worker loads its own copy from the persisted artifact and writes only its
own code-<name>.json. Workers share no in-memory state.

Failure policy is fail-fast-on-join: the driver waits for every launched
generator, logs every failure, and only then raises GeneratorFailure.
Artifacts of the generators that succeeded stay persisted.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, wait
from pathlib import Path
from typing import Iterable, Optional

from ddcompile.errors import GeneratorFailure
from ddcompile.utils import read_json, write_json
from ddcompile.workspace import Workspace

from .base import Generator, GeneratorResult

logger = logging.getLogger(__name__)


def _run_generator(generator: Generator, compiled_path: Path, workspace: Workspace) -> GeneratorResult:
    """Worker body: load the plan, generate, write the artifact."""
    start_time = time.time()
    plan = read_json(compiled_path)
    fragment = generator.generate(plan)
    if not isinstance(fragment, dict):
        raise TypeError(
            f"generator returned {type(fragment).__name__}, expected a mapping"
        )
    write_json(workspace.artifact_path(generator.artifact), fragment)
    return GeneratorResult(
        name=generator.name,
        duration_seconds=time.time() - start_time,
        artifact=generator.artifact,
    )


class CodegenFanout:
    """
    Concurrent generator driver.

    Usage:
        fanout = CodegenFanout(registries.generators.units())
        results = fanout.run(pipeline_result.compiled_path, workspace)
    """

    def __init__(
        self, generators: Iterable[Generator], max_workers: Optional[int] = None
    ):
        """
        Args:
            generators: Generators of the fan-out
            max_workers: Thread cap; by default every generator gets a thread
        """
        self.generators = sorted(generators, key=lambda g: g.name)
        self.max_workers = max_workers

    def run(self, compiled_path: Path, workspace: Workspace) -> list[GeneratorResult]:
        """
        Run all generators and wait for every one of them.

        Args:
            compiled_path: Persisted compiled plan
            workspace: Workspace receiving the fragments

        Returns:
            One successful GeneratorResult per generator, in name order

        Raises:
            GeneratorFailure: If any generator failed (after all finished)
        """
        if not self.generators:
            logger.warning("No code generators registered")
            return []

        logger.info(
            f"Starting {len(self.generators)} generators",
            extra={
                "event": "codegen_started",
                "metadata": {"generators": [g.name for g in self.generators]},
            },
        )

        workers = len(self.generators)
        if self.max_workers is not None:
            workers = min(self.max_workers, workers)
        pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="codegen")
        try:
            futures = {
                g.name: pool.submit(_run_generator, g, compiled_path, workspace)
                for g in self.generators
            }
            wait(futures.values())
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

        results: list[GeneratorResult] = []
        failures: dict[str, str] = {}
        for name in sorted(futures):
            error = futures[name].exception()
            if error is not None:
                failures[name] = str(error) or type(error).__name__
                logger.error(
                    f"Generator {name} failed: {error}",
                    extra={"stage": name, "event": "generator_failed"},
                    exc_info=(type(error), error, error.__traceback__),
                )
                continue
            result = futures[name].result()
            results.append(result)
            workspace.add_artifact(result.artifact)
            logger.info(
                f"Generator {name} completed",
                extra={
                    "stage": name,
                    "event": "generator_completed",
                    "metadata": {"artifact": result.artifact},
                },
            )

        if failures:
            raise GeneratorFailure(failures)
        return results
