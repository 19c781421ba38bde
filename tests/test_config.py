"""Tests for ddcompile.config."""

from pathlib import Path

import pytest
import yaml

from ddcompile.config import CONFIG_FILENAME, BuildConfig, load_config
from ddcompile.errors import ConfigError


def _write_config(project: Path, data) -> Path:
    path = project / CONFIG_FILENAME
    path.write_text(yaml.dump(data))
    return path


def test_defaults_without_file(tmp_path):
    config = load_config(project_dir=tmp_path)
    assert config.get_build_root() == tmp_path / "run"
    assert config.max_workers is None
    assert config.lock_wait is False
    assert config.is_quiet()
    assert config.get_log_level() == "INFO"
    assert config.get_log_format() == "structured"
    assert config.command_checks == {}


def test_load_project_file(tmp_path):
    _write_config(tmp_path, {
        "build": {"root": "out", "max_workers": 2, "lock_wait": True},
        "logging": {"mode": "verbose", "level": "debug", "format": "pretty"},
        "stages": {"disabled": ["9.00-dependencies"]},
        "generators": {"disabled": ["dataflow"]},
        "validation": {
            "disabled": ["inputs_produced"],
            "commands": {"lint": {"phase": "code", "command": "./lint.sh --strict"}},
        },
    })
    config = load_config(project_dir=tmp_path)

    assert config.get_build_root() == tmp_path / "out"
    assert config.max_workers == 2
    assert config.lock_wait is True
    assert not config.is_quiet()
    assert config.get_log_level() == "DEBUG"
    assert config.disabled_stages == ["9.00-dependencies"]
    assert config.disabled_generators == ["dataflow"]
    assert config.disabled_checks == ["inputs_produced"]
    lint = config.command_checks["lint"]
    assert lint.phase == "code"
    assert lint.command == ["./lint.sh", "--strict"]


def test_absolute_build_root(tmp_path):
    config = BuildConfig({"build": {"root": str(tmp_path / "abs")}}, project_dir=Path("/elsewhere"))
    assert config.get_build_root() == tmp_path / "abs"


def test_explicit_missing_file(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_config(tmp_path / "missing.yaml", project_dir=tmp_path)


def test_invalid_yaml(tmp_path):
    (tmp_path / CONFIG_FILENAME).write_text("build: [unclosed\n")
    with pytest.raises(ConfigError, match="Invalid YAML"):
        load_config(project_dir=tmp_path)


def test_not_a_mapping(tmp_path):
    _write_config(tmp_path, ["a", "b"])
    with pytest.raises(ConfigError, match="mapping"):
        load_config(project_dir=tmp_path)


@pytest.mark.parametrize("raw,match", [
    ({"build": {"max_workers": 0}}, "max_workers"),
    ({"logging": {"mode": "loud"}}, "logging.mode"),
    ({"logging": {"format": "xml"}}, "logging.format"),
    ({"logging": {"level": "chatty"}}, "logging.level"),
    ({"validation": {"commands": {"c": {"phase": "later", "command": "x"}}}}, "phase"),
    ({"validation": {"commands": {"c": {"phase": "plan"}}}}, "command"),
    ({"build": "run"}, "Section 'build'"),
])
def test_invalid_values(tmp_path, raw, match):
    _write_config(tmp_path, raw)
    with pytest.raises(ConfigError, match=match):
        load_config(project_dir=tmp_path)
