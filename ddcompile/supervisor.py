"""
Failure supervisor - pointer and record bookkeeping around one build.

Wrap the phases of a build in FailureSupervisor:

    with FailureSupervisor(build_dir, workspace, quiet=True):
        run_phases()

On entry the workspace becomes latest and running. On a normal exit the
running alias is dropped and the record marked completed. On any
exception, including an interrupt or termination signal, the workspace
becomes aborted, its record carries the error and exit status, and in
quiet mode an excerpt of the workspace log is written to stderr. The
exception always propagates.
"""

import json
import logging
import re
import signal
import sys
import threading
from collections import deque
from pathlib import Path
from typing import Optional, TextIO

from ddcompile.errors import DdcompileError, RunInterrupted
from ddcompile.schemas import ABORTED, COMPLETED, RUNNING
from ddcompile.utils import LOGGER_NAME
from ddcompile.workspace import ABORTED as ABORTED_ALIAS
from ddcompile.workspace import LATEST, RUNNING as RUNNING_ALIAS
from ddcompile.workspace import BuildDirectory, Workspace

logger = logging.getLogger(__name__)

HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)

ERROR_PATTERN = re.compile(r"\b(error|exception|traceback|failed|fatal)\b", re.IGNORECASE)


def exit_status_of(exc: BaseException) -> int:
    """Exit status a build terminates with for an exception."""
    if isinstance(exc, DdcompileError):
        return exc.exit_status
    if isinstance(exc, KeyboardInterrupt):
        return 128 + signal.SIGINT
    if isinstance(exc, SystemExit):
        return exc.code if isinstance(exc.code, int) else 1
    return 1


def error_excerpt(log_path: Path, limit: int = 50) -> list[str]:
    """
    Extract the error lines of a workspace log.

    JSON-lines logs are filtered by level (ERROR and above, including
    exception text); any other line is kept if it looks like an error.

    Args:
        log_path: Workspace log file
        limit: Keep at most this many lines (the last ones)

    Returns:
        Excerpt lines, oldest first
    """
    if not log_path.exists():
        return []

    lines: deque[str] = deque(maxlen=limit)
    with open(log_path, "r", errors="replace") as f:
        for raw in f:
            raw = raw.rstrip("\n")
            if not raw:
                continue
            try:
                entry = json.loads(raw)
            except ValueError:
                entry = None

            if isinstance(entry, dict) and "level" in entry:
                if entry["level"] not in ("ERROR", "CRITICAL"):
                    continue
                stage = f"[{entry['stage']}] " if entry.get("stage") else ""
                lines.append(f"{entry['level']}: {stage}{entry.get('message', '')}")
                for line in str(entry.get("exception", "")).splitlines():
                    lines.append(f"    {line}")
            elif ERROR_PATTERN.search(raw):
                lines.append(raw)
    return list(lines)


class FailureSupervisor:
    """
    Context manager guaranteeing evidence of every build outcome.

    Usage:
        with FailureSupervisor(build_dir, workspace, quiet=config.is_quiet()):
            ...
    """

    def __init__(
        self,
        build_dir: BuildDirectory,
        workspace: Workspace,
        quiet: bool = True,
        stream: Optional[TextIO] = None,
        excerpt_lines: int = 50,
    ):
        """
        Args:
            build_dir: Build root owning the pointer store
            workspace: Workspace of this build
            quiet: Write an error excerpt to stream on failure
            stream: Where the excerpt goes (defaults to sys.stderr at exit)
            excerpt_lines: Maximum number of excerpt lines
        """
        self.build_dir = build_dir
        self.workspace = workspace
        self.quiet = quiet
        self.stream = stream
        self.excerpt_lines = excerpt_lines
        self._previous_handlers: dict[int, object] = {}

    def __enter__(self) -> "FailureSupervisor":
        key = self.workspace.key
        self.build_dir.pointers.update({LATEST: key, RUNNING_ALIAS: key})
        self._install_handlers()
        logger.info(
            f"Build started in workspace {key}",
            extra={"event": "build_started", "metadata": {"workspace": key}},
        )
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        try:
            if exc is None:
                self._complete()
            else:
                self._abort(exc)
        finally:
            self._restore_handlers()
        return False

    def _complete(self) -> None:
        record = self.workspace.record
        if record.status == RUNNING:
            record.finish(COMPLETED, 0)
        self.workspace.save_record()
        self.build_dir.pointers.remove_if(RUNNING_ALIAS, self.workspace.key)
        logger.info(
            f"Build completed in workspace {self.workspace.key}",
            extra={"event": "build_completed"},
        )

    def _abort(self, exc: BaseException) -> None:
        status = exit_status_of(exc)
        logger.error(
            f"Build aborted: {exc}",
            extra={
                "event": "build_aborted",
                "metadata": {"exit_status": status, "error_type": type(exc).__name__},
            },
            exc_info=not isinstance(exc, DdcompileError),
        )

        key = self.workspace.key
        try:
            self.workspace.record.finish(ABORTED, status, str(exc) or type(exc).__name__)
            self.workspace.save_record()
            self.build_dir.pointers.set(ABORTED_ALIAS, key)
            self.build_dir.pointers.remove_if(RUNNING_ALIAS, key)
        except Exception as e:
            logger.error(
                f"Could not record aborted workspace {key}: {e}",
                extra={"event": "bookkeeping_failed"},
            )

        if self.quiet:
            self._write_excerpt()

    def _write_excerpt(self) -> None:
        for handler in logging.getLogger(LOGGER_NAME).handlers:
            handler.flush()

        stream = self.stream or sys.stderr
        lines = error_excerpt(self.workspace.log_path, self.excerpt_lines)
        stream.write(f"Build failed, see {self.workspace.log_path}\n")
        for line in lines:
            stream.write(f"{line}\n")
        stream.flush()

    def _install_handlers(self) -> None:
        # signal.signal only works in the main thread
        if threading.current_thread() is not threading.main_thread():
            return
        for signum in HANDLED_SIGNALS:
            self._previous_handlers[signum] = signal.signal(signum, self._on_signal)

    def _restore_handlers(self) -> None:
        for signum, handler in self._previous_handlers.items():
            signal.signal(signum, handler if handler is not None else signal.SIG_DFL)
        self._previous_handlers.clear()

    def _on_signal(self, signum, frame) -> None:
        raise RunInterrupted(signum)
