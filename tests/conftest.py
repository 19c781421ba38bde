import pytest

from ddcompile.config import BuildConfig
from ddcompile.registry import create_default_registries
from ddcompile.workspace import BuildDirectory


@pytest.fixture
def sample_document():
    """Extractor e1 writes r1; factor f1 depends on e1 and reads r1."""
    return {
        "extraction": {
            "extractors": {
                "e1": {"output_relation": "r1", "sql": "SELECT * FROM src"},
            },
        },
        "inference": {
            "factors": {
                "f1": {
                    "dependencies": ["e1"],
                    "input_relations": ["r1"],
                    "function": "is_true",
                },
            },
        },
        "execution": {"processes": {}},
    }


@pytest.fixture
def build_dir(tmp_path):
    return BuildDirectory(tmp_path / "run")


@pytest.fixture
def workspace(build_dir):
    return build_dir.allocate()


@pytest.fixture
def build_config(tmp_path):
    return BuildConfig({"build": {"root": "run"}}, project_dir=tmp_path)


@pytest.fixture
def registries():
    """Built-in units only; installed entry points are not discovered."""
    return create_default_registries(discover=False)
