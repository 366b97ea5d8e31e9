"""Pytest configuration and fixtures for KymoButler tests."""

import io
import struct
import textwrap
import zlib

import numpy as np
import pytest

from PIL import Image

# Fake engine: reads the run script named by its last argument, pulls the
# artifact paths out of it and behaves according to its mode argument.
FAKE_ENGINE = textwrap.dedent(
    '''
    import json
    import re
    import sys
    import time

    mode = sys.argv[1]
    script = open(sys.argv[-1], encoding="utf-8").read()

    def path(name):
        return re.search(name + r'="((?:[^"\\\\]|\\\\.)*)"', script).group(1)

    print("engine starting")
    print("")
    print("mode=" + mode)
    sys.stdout.flush()

    if mode == "sleep":
        time.sleep(60)
    elif mode == "error":
        with open(path("responsePath"), "w") as f:
            json.dump({"error": True, "messages": "no tracks found"}, f)
        sys.exit(1)
    elif mode == "error-no-message":
        with open(path("responsePath"), "w") as f:
            json.dump({"error": True}, f)
        sys.exit(1)
    elif mode == "malformed":
        with open(path("responsePath"), "w") as f:
            f.write("not json {")
    elif mode == "no-output":
        sys.exit(0)
    else:
        bidirectional = "useBi=True;" in script
        body = {
            "Kymograph": [[0.0, 0.5], [0.5, 1.0]],
            "overlay": [[[0, 0, 0], [1, 1, 1]], [[1, 0, 0], [0, 1, 0]]],
        }
        if bidirectional:
            body["tracks"] = [[[0, 1], [1, 2]], [[0, 3], [1, 3]]]
        else:
            body["anterograde"] = [[[0, 1], [1, 2]]]
            body["retrograde"] = [[[0, 5], [1, 4]], [[2, 5], [3, 4]]]
            body["tracks"] = body["anterograde"] + body["retrograde"]
        with open(path("tracksCsvPath"), "w") as f:
            f.write("track_id,t,x,dir,t_phys,x_phys\\n")
        with open(path("pprocTablePath"), "w") as f:
            f.write("velocity\\n1.0\\n")
        with open(path("responsePath"), "w") as f:
            json.dump(body, f)
    '''
)


def pytest_configure(config):
    """Register custom test markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests that do not require external dependencies"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests combining multiple components"
    )
    config.addinivalue_line(
        "markers", "subprocess: Tests that launch a (fake) engine process"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take significant time (>5 seconds)"
    )


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path_factory, monkeypatch):
    """Keep config, logs and install-root discovery away from the real home."""
    home = tmp_path_factory.mktemp("home")
    monkeypatch.setenv("KYMOBUTLER_CONFIG", str(home / "config.toml"))
    monkeypatch.setenv("KYMOBUTLER_LOG_DIR", str(home / "logs"))
    monkeypatch.delenv("KYMOBUTLER_PATH", raising=False)
    return home


def make_png(
    shape: tuple[int, ...] = (16, 24), dtype: type = np.uint8, seed: int = 0
) -> bytes:
    """Encode a small random image as PNG."""
    rng = np.random.default_rng(seed)
    maximum = np.iinfo(dtype).max
    pixels = rng.integers(0, maximum, size=shape, endpoint=True).astype(dtype)
    buffer = io.BytesIO()
    Image.fromarray(pixels).save(buffer, format="PNG")
    return buffer.getvalue()


def make_oversized_png(width: int = 30000, height: int = 30000) -> bytes:
    """A PNG header declaring a huge image, with no pixel data."""

    def chunk(kind: bytes, data: bytes) -> bytes:
        crc = zlib.crc32(kind + data) & 0xFFFFFFFF
        return struct.pack(">I", len(data)) + kind + data + struct.pack(">I", crc)

    header = struct.pack(">IIBBBBB", width, height, 8, 0, 0, 0, 0)
    return b"\x89PNG\r\n\x1a\n" + chunk(b"IHDR", header) + chunk(b"IEND", b"")


@pytest.fixture
def png_factory():
    """Factory producing small random PNG images."""
    return make_png


@pytest.fixture
def oversized_png():
    """PNG bytes that Pillow refuses to open as a decompression bomb."""
    return make_oversized_png()


@pytest.fixture
def png_bytes():
    """A small 8-bit grayscale PNG."""
    return make_png()


@pytest.fixture
def kymograph_file(tmp_path, png_bytes):
    """A PNG kymograph on disk."""
    path = tmp_path / "images" / "cell 1.png"
    path.parent.mkdir()
    path.write_bytes(png_bytes)
    return path


@pytest.fixture
def install_root(tmp_path):
    """A minimal engine install root."""
    root = tmp_path / "KymoButler"
    (root / "packages").mkdir(parents=True)
    (root / "packages" / "KymoButler.wl").write_text("(* engine *)\n")
    (root / "packages" / "KymoButlerPProc.wl").write_text("(* pproc *)\n")
    return root


@pytest.fixture
def fake_engine(tmp_path):
    """Path to the fake engine script."""
    path = tmp_path / "fake_engine.py"
    path.write_text(FAKE_ENGINE, encoding="utf-8")
    return path

