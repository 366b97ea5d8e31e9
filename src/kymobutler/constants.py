"""
Constants and defaults for KymoButler job orchestration.

File naming follows the layout the KymoButler engine scripts expect, so
outputs from the local and legacy remote paths can be read by the same tools.
"""

import tempfile

from enum import Enum
from pathlib import Path

# ============================================================================
# Analysis Parameters
# ============================================================================

DEFAULT_THRESHOLD = 0.2
DEFAULT_MINIMUM_SIZE = 3.0
DEFAULT_MINIMUM_FRAMES = 3.0
DEFAULT_DECISION_THRESHOLD = 0.5
DEFAULT_TIME_SIZE = 1.0
DEFAULT_SPACE_SIZE = 1.0

DEFAULT_IMPROVE_START = 1
DEFAULT_IMPROVE_STOP = 15


class Device(str, Enum):
    """Compute device used by the engine's neural networks."""

    GPU = "GPU"
    CPU = "CPU"


class Direction(str, Enum):
    """Direction classification of a detected track."""

    ANTEROGRADE = "anterograde"
    RETROGRADE = "retrograde"
    BIDIRECTIONAL = "bidirectional"


# ============================================================================
# Engine
# ============================================================================

DEFAULT_ENGINE_PATH = "wolframscript"
DEFAULT_ENGINE_ARGS = ["-file"]
DEFAULT_TIMEOUT_SECONDS = 120.0
DEFAULT_POLL_INTERVAL = 0.25

# Relative to the engine install root
ENGINE_PACKAGE_DIR = "packages"
ENGINE_PACKAGE_FILE = "KymoButler.wl"
ENGINE_PPROC_FILE = "KymoButlerPProc.wl"

INSTALL_ROOT_ENV_VAR = "KYMOBUTLER_PATH"

# Candidate install roots, relative to the home directory
INSTALL_ROOT_CANDIDATES = [
    Path("KymoButler"),
    Path("KymoButler-master"),
    Path("Desktop") / "KymoButler",
    Path("Desktop") / "KymoButler-master",
    Path("Desktop") / "Apps" / "KymoButler-master" / "KymoButler-master",
]

# ============================================================================
# Session Layout
# ============================================================================

FALLBACK_BASE_NAME = "kymograph"
SESSION_DIR_PREFIX = "KymoButlerLocal_"
SESSION_TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"
DEBUG_FILE_SUFFIX = "_debug_KymoButler.json"

INPUT_SUFFIX = "_input.png"
RESPONSE_SUFFIX = "_response.json"
OVERLAY_SUFFIX = "_overlay.tif"
TRACKS_CSV_SUFFIX = "_tracks_long.csv"
PPROC_TABLE_SUFFIX = "_pproc_table.csv"
PPROC_HIST_V_SUFFIX = "_pproc_hist_v.png"
PPROC_HIST_T_SUFFIX = "_pproc_hist_t.png"
PPROC_HIST_DIST_SUFFIX = "_pproc_hist_dist.png"
SCRIPT_SUFFIX = "_local.wls"

TRACKS_CSV_HEADER = ["track_id", "t", "x", "dir", "t_phys", "x_phys"]

# ============================================================================
# Response Document
# ============================================================================

ERROR_FIELD = "error"
MESSAGES_FIELD = "messages"
KYMOGRAPH_FIELD = "Kymograph"
OVERLAY_FIELD = "overlay"
TRACKS_FIELD = "tracks"
ANTEROGRADE_FIELD = "anterograde"
RETROGRADE_FIELD = "retrograde"

UNDEFINED_ERROR_MESSAGE = "Undefined Error!"
SCRIPT_FAILURE_MESSAGE = "Local KymoButler processing failed."

# ============================================================================
# Legacy Remote Upload
# ============================================================================

QUERY_FIELD = "query"
QUERY_ANALYSIS = "analysis"
QUERY_UPLOAD = "upload"
QUERY_STATS = "stats"
KYMOGRAPH_UPLOAD_FIELD = "Kymograph"
THRESHOLD_UPLOAD_FIELD = "p"
MINIMUM_SIZE_UPLOAD_FIELD = "minimumSize"
MINIMUM_FRAMES_UPLOAD_FIELD = "minimumFrames"
TRACKS_UPLOAD_FIELD = "tracks"

# ============================================================================
# Configuration and Logging
# ============================================================================

CONFIG_PATH_ENV_VAR = "KYMOBUTLER_CONFIG"
DEFAULT_CONFIG_DIR = Path.home() / ".kymobutler"
DEFAULT_CONFIG_FILE = "config.toml"
DEFAULT_OUTPUT_DIR = Path(tempfile.gettempdir())

LOG_DIR_ENV_VAR = "KYMOBUTLER_LOG_DIR"
DEFAULT_LOG_DIR = DEFAULT_CONFIG_DIR / "logs"
DEFAULT_LOG_FILE = "kymobutler.log"
DEFAULT_LOG_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
DEFAULT_LOG_BACKUP_COUNT = 5
