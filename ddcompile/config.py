"""
Configuration management for ddcompile builds.

Loads and validates the ddcompile.yaml file of a project. Every key is
optional; a project without the file builds with the defaults.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from ddcompile.errors import ConfigError


CONFIG_FILENAME = "ddcompile.yaml"

LOG_MODES = ("quiet", "verbose")
LOG_FORMATS = ("structured", "pretty")
CHECK_PHASES = ("plan", "code")


class CommandCheckConfig:
    """Configuration for one external validation command."""

    def __init__(self, name: str, data: Dict[str, Any]):
        self.name = name
        self.phase = data.get("phase", "plan")
        command = data.get("command")
        if isinstance(command, str):
            command = command.split()
        self.command: List[str] = list(command or [])

    def validate(self) -> None:
        """Validate command check configuration."""
        if self.phase not in CHECK_PHASES:
            raise ConfigError(
                f"Check {self.name}: phase must be one of {CHECK_PHASES}, got '{self.phase}'"
            )
        if not self.command:
            raise ConfigError(f"Check {self.name}: missing 'command'")

    def __repr__(self) -> str:
        return f"CommandCheckConfig(name={self.name}, phase={self.phase})"


class BuildConfig:
    """Complete build configuration."""

    def __init__(self, raw_config: Optional[Dict[str, Any]] = None, project_dir: Optional[Path] = None):
        self.raw_config = raw_config or {}
        self.project_dir = Path(project_dir or Path.cwd())

        build = self._section("build")
        self.build_root = Path(build.get("root", "run"))
        self.max_workers = build.get("max_workers")
        self.lock_wait = bool(build.get("lock_wait", False))
        self.links = bool(build.get("links", True))

        # Logging
        self.logging = self._section("logging")

        # Registries
        self.disabled_stages: List[str] = list(self._section("stages").get("disabled", []))
        self.disabled_generators: List[str] = list(
            self._section("generators").get("disabled", [])
        )

        validation = self._section("validation")
        self.disabled_checks: List[str] = list(validation.get("disabled", []))
        self.command_checks: Dict[str, CommandCheckConfig] = {
            name: CommandCheckConfig(name, data or {})
            for name, data in (validation.get("commands") or {}).items()
        }

    def _section(self, name: str) -> Dict[str, Any]:
        section = self.raw_config.get(name) or {}
        if not isinstance(section, dict):
            raise ConfigError(f"Section '{name}' must be a mapping")
        return section

    def get_build_root(self) -> Path:
        """Get absolute build root (relative roots resolve against the project)."""
        if self.build_root.is_absolute():
            return self.build_root
        return self.project_dir / self.build_root

    def get_log_mode(self) -> str:
        """Get logging mode (quiet or verbose)."""
        return self.logging.get("mode", "quiet")

    def is_quiet(self) -> bool:
        return self.get_log_mode() == "quiet"

    def get_log_level(self) -> str:
        """Get logging level."""
        return str(self.logging.get("level", "INFO")).upper()

    def get_log_format(self) -> str:
        """Get log format (structured or pretty)."""
        return self.logging.get("format", "structured")

    def validate(self) -> None:
        """Validate entire configuration."""
        if self.max_workers is not None and (
            not isinstance(self.max_workers, int) or self.max_workers < 1
        ):
            raise ConfigError(
                f"build.max_workers must be a positive integer, got {self.max_workers!r}"
            )
        if self.get_log_mode() not in LOG_MODES:
            raise ConfigError(
                f"logging.mode must be one of {LOG_MODES}, got '{self.get_log_mode()}'"
            )
        if self.get_log_format() not in LOG_FORMATS:
            raise ConfigError(
                f"logging.format must be one of {LOG_FORMATS}, got '{self.get_log_format()}'"
            )
        if self.get_log_level() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ConfigError(f"logging.level is not a level name: {self.get_log_level()}")

        for name, check in self.command_checks.items():
            try:
                check.validate()
            except ConfigError as e:
                raise ConfigError(f"Check '{name}' validation failed: {e}")

    def __repr__(self) -> str:
        return f"BuildConfig(project_dir={self.project_dir}, build_root={self.build_root})"


def load_config(
    config_path: Optional[Path] = None,
    project_dir: Optional[Path] = None,
) -> BuildConfig:
    """
    Load build configuration from YAML file.

    Args:
        config_path: Path to config file. Defaults to <project_dir>/ddcompile.yaml
        project_dir: Project directory. Defaults to the current directory

    Returns:
        Validated BuildConfig instance

    Raises:
        ConfigError: If config is invalid, or an explicit config_path is missing
    """
    project_dir = Path(project_dir or Path.cwd())

    if config_path is None:
        config_path = project_dir / CONFIG_FILENAME
        if not config_path.exists():
            config = BuildConfig({}, project_dir)
            config.validate()
            return config
    elif not config_path.exists():
        raise ConfigError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path, "r") as f:
            raw_config = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML syntax: {e}")

    if not isinstance(raw_config, dict):
        raise ConfigError(f"Configuration file must contain a mapping: {config_path}")

    config = BuildConfig(raw_config, project_dir)
    config.validate()
    return config
