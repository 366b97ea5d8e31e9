"""
Run-script rendering for the KymoButler engine.

The engine is driven by a Wolfram Language script. The script loads the
KymoButler packages from the install root, runs the uni- or bidirectional
detector on the session's input image and writes every artifact named by
the Session. On failure it writes an error document and exits non-zero.

The script text lives in templates/local.wls.jinja2 and is rendered with
Wolfram-safe delimiters. Rendering reads the template but writes nothing.
"""

import math

from functools import lru_cache
from pathlib import Path

from jinja2 import FileSystemLoader, StrictUndefined
from jinja2.sandbox import SandboxedEnvironment

from kymobutler.constants import (
    ENGINE_PACKAGE_DIR,
    ENGINE_PACKAGE_FILE,
    ENGINE_PPROC_FILE,
    SCRIPT_FAILURE_MESSAGE,
    TRACKS_CSV_HEADER,
)
from kymobutler.engine.paths import Session
from kymobutler.models.request import AnalysisRequest


def escape(value: str | Path | None) -> str:
    """
    Escape a value for use inside a script string literal.

    Backslashes are doubled and double quotes are backslash-escaped.
    """
    if value is None:
        return ""
    return str(value).replace("\\", "\\\\").replace('"', '\\"')


def format_number(value: float) -> str:
    """
    Render a number in script syntax.

    Exponents use the ``mantissa*^exponent`` form, since ``1e-05`` is not a
    number literal to the engine.

    Raises:
        ValueError: For NaN or infinite values
    """
    if not math.isfinite(value):
        raise ValueError(f"Cannot embed non-finite number {value!r} in script")

    text = repr(float(value))
    if "e" in text:
        mantissa, exponent = text.split("e")
        return f"{mantissa}*^{int(exponent)}"
    return text


def wl_bool(value: bool) -> str:
    return "True" if value else "False"


TEMPLATES_DIR = Path(__file__).parent / "templates"
LOCAL_TEMPLATE = "local.wls.jinja2"


@lru_cache(maxsize=1)
def _environment() -> SandboxedEnvironment:
    # Wolfram code is full of {{ }}, {# and [[ ]], so the delimiters move aside
    env = SandboxedEnvironment(
        loader=FileSystemLoader(TEMPLATES_DIR),
        autoescape=False,
        undefined=StrictUndefined,
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
        block_start_string="<%",
        block_end_string="%>",
        variable_start_string="<<",
        variable_end_string=">>",
        comment_start_string="<#",
        comment_end_string="#>",
    )
    env.filters["wl_string"] = escape
    env.filters["wl_number"] = format_number
    env.filters["wl_bool"] = wl_bool
    return env


def build_script(
    request: AnalysisRequest, session: Session, install_root: Path
) -> str:
    """
    Render the run script for one job.

    Args:
        request: Analysis parameters
        session: Session whose artifact paths the script writes
        install_root: Engine install root containing packages/KymoButler.wl

    Returns:
        Script text, newline-terminated
    """
    hist_v, hist_t, hist_dist = session.histogram_paths
    template = _environment().get_template(LOCAL_TEMPLATE)
    return template.render(
        request=request,
        session=session,
        install_root=install_root,
        hist_v=hist_v,
        hist_t=hist_t,
        hist_dist=hist_dist,
        package_dir=ENGINE_PACKAGE_DIR,
        packages=(ENGINE_PACKAGE_FILE, ENGINE_PPROC_FILE),
        failure_message=SCRIPT_FAILURE_MESSAGE,
        csv_header=TRACKS_CSV_HEADER,
    )
