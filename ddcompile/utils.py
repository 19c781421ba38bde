"""
Utility functions for ddcompile builds.

Includes logging, console output and JSON file operations.
"""

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import yaml
from rich.console import Console
from rich.logging import RichHandler


# Global consoles for pretty output
console = Console()
err_console = Console(stderr=True)

LOGGER_NAME = "ddcompile"


def setup_logging(
    log_file: Path,
    log_level: str = "INFO",
    log_format: str = "structured",
    console_output: bool = True,
) -> logging.Logger:
    """
    Set up logging for one build.

    The log file always receives everything at log_level; the console only
    does when console_output is set (verbose mode).

    Args:
        log_file: Path to the workspace log file
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: "structured" (JSON lines) or "pretty" (human-readable)
        console_output: Also stream log records to the console

    Returns:
        Configured logger
    """
    log_file.parent.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, log_level.upper()))
    teardown_logging(logger)

    file_handler = logging.FileHandler(log_file)
    if log_format == "structured":
        file_handler.setFormatter(StructuredFormatter())
    else:
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
    logger.addHandler(file_handler)

    if console_output:
        if log_format == "pretty":
            console_handler = RichHandler(
                console=err_console, rich_tracebacks=True, show_time=False
            )
        else:
            console_handler = logging.StreamHandler()
            console_handler.setFormatter(
                logging.Formatter("%(levelname)s: %(message)s")
            )
        logger.addHandler(console_handler)

    return logger


def teardown_logging(logger: Optional[logging.Logger] = None) -> None:
    """Close and remove every handler of the build logger."""
    logger = logger or logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Add extra fields if present
        if hasattr(record, "stage"):
            log_data["stage"] = record.stage
        if hasattr(record, "event"):
            log_data["event"] = record.event
        if hasattr(record, "metadata"):
            log_data["metadata"] = record.metadata

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def write_json(path: Path, data: Any) -> Path:
    """
    Write JSON atomically.

    The data is written to a temporary file in the same directory and
    renamed over the target, so readers never see a partial file.

    Args:
        path: Target file
        data: JSON-serializable value

    Returns:
        The target path
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w") as f:
            json.dump(data, f, indent=2, sort_keys=True)
            f.write("\n")
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise
    return path


def read_json(path: Path) -> Any:
    """Read a JSON file."""
    with open(path, "r") as f:
        return json.load(f)


def load_document(path: Path) -> dict[str, Any]:
    """
    Load an input config document.

    YAML files (.yaml/.yml) are parsed with PyYAML, anything else as JSON.

    Raises:
        ValueError: If the file cannot be parsed or is not a mapping
    """
    with open(path, "r") as f:
        try:
            if path.suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            else:
                data = json.load(f)
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ValueError(f"Cannot parse {path}: {e}")
    if not isinstance(data, dict):
        raise ValueError(f"{path} does not contain a mapping")
    return data


def format_duration(seconds: float) -> str:
    """
    Format duration in seconds to human-readable string.

    Args:
        seconds: Duration in seconds

    Returns:
        Formatted string (e.g., "1m 23s", "45s")
    """
    if seconds < 60:
        return f"{int(seconds)}s"

    minutes = int(seconds // 60)
    remaining_seconds = int(seconds % 60)

    if minutes < 60:
        return f"{minutes}m {remaining_seconds}s"

    hours = minutes // 60
    remaining_minutes = minutes % 60
    return f"{hours}h {remaining_minutes}m {remaining_seconds}s"


def print_banner(title: str) -> None:
    """Print a banner to console."""
    console.rule(f"[bold blue]{title}[/bold blue]")


def print_success(message: str) -> None:
    """Print success message to console."""
    console.print(f"[bold green]✓[/bold green] {message}")


def print_error(message: str) -> None:
    """Print error message to stderr."""
    err_console.print(f"[bold red]✗[/bold red] {message}")


def print_warning(message: str) -> None:
    """Print warning message to console."""
    console.print(f"[bold yellow]⚠[/bold yellow] {message}")


def print_info(message: str) -> None:
    """Print info message to console."""
    console.print(f"[bold cyan]ℹ[/bold cyan] {message}")
