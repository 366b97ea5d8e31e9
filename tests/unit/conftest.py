import json
import sys

import pytest

from kymobutler.models.settings import Settings


def pytest_collection_modifyitems(items):
    """Apply unit marker to all tests in this directory."""
    for item in items:
        if "/unit/" in str(item.fspath):
            item.add_marker(pytest.mark.unit)


@pytest.fixture
def make_settings(tmp_path, install_root, fake_engine):
    """Factory for Settings running the fake engine in a given mode."""

    def factory(mode: str = "success", **overrides) -> Settings:
        values = {
            "engine_path": sys.executable,
            "engine_args": [str(fake_engine), mode],
            "install_root": install_root,
            "output_dir": tmp_path / "out",
            "outputs_beside_input": False,
            "timeout_seconds": 20.0,
            "poll_interval": 0.05,
        }
        values.update(overrides)
        return Settings(**values)

    return factory


@pytest.fixture
def success_document():
    """A well-formed unidirectional response document."""
    return json.dumps(
        {
            "Kymograph": [[0.0, 0.25], [0.5, 1.0]],
            "overlay": [[[0, 0, 0], [1, 1, 1]], [[1, 0, 0], [0, 1, 0]]],
            "tracks": [[[0, 1], [1, 2]], [[0, 5], [1, 4]]],
            "anterograde": [[[0, 1], [1, 2]]],
            "retrograde": [[[0, 5], [1, 4]]],
        }
    ).encode("utf-8")
