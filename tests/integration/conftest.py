import pytest


def pytest_collection_modifyitems(items):
    """Apply integration marker to all tests in this directory."""
    for item in items:
        if "/integration/" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


@pytest.fixture(autouse=True)
def fresh_logging(monkeypatch):
    """Let each CLI invocation attach handlers to its own output streams."""
    monkeypatch.setattr("kymobutler.logging_config._logging_configured", False)
