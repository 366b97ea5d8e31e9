"""Tests for engine install discovery."""

import sys

import pytest

from kymobutler.engine.discovery import (
    find_install_root,
    is_install_root,
    resolve_engine_executable,
    resolve_install_root,
)
from kymobutler.exceptions import ConfigurationError


def _make_root(path):
    (path / "packages").mkdir(parents=True)
    (path / "packages" / "KymoButler.wl").write_text("")
    return path


class TestInstallRoot:
    def test_is_install_root(self, install_root, tmp_path):
        assert is_install_root(install_root)
        assert not is_install_root(tmp_path)

    def test_environment_variable_wins(self, tmp_path, monkeypatch):
        env_root = _make_root(tmp_path / "env")
        home = tmp_path / "home"
        _make_root(home / "KymoButler")
        monkeypatch.setenv("KYMOBUTLER_PATH", str(env_root))

        assert find_install_root(home=home) == env_root

    def test_invalid_environment_variable_falls_through(self, tmp_path, monkeypatch):
        home = tmp_path / "home"
        expected = _make_root(home / "Desktop" / "KymoButler-master")
        monkeypatch.setenv("KYMOBUTLER_PATH", str(tmp_path / "bogus"))

        assert find_install_root(home=home) == expected

    def test_candidate_order(self, tmp_path):
        home = tmp_path / "home"
        first = _make_root(home / "KymoButler")
        _make_root(home / "KymoButler-master")

        assert find_install_root(home=home) == first

    def test_nothing_found(self, tmp_path):
        assert find_install_root(home=tmp_path) is None

    def test_resolve_configured(self, install_root):
        assert resolve_install_root(install_root) == install_root

    def test_resolve_invalid_configured(self, tmp_path):
        with pytest.raises(ConfigurationError, match="engine.install_root"):
            resolve_install_root(tmp_path)


class TestEngineExecutable:
    def test_absolute_path(self):
        assert resolve_engine_executable(sys.executable)

    def test_missing(self):
        with pytest.raises(ConfigurationError, match="engine.path"):
            resolve_engine_executable("definitely-not-a-real-engine-binary")
