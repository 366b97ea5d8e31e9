"""Difference-of-Gaussians kymograph enhancement."""

import logging

import numpy as np

from scipy import ndimage

from kymobutler.constants import DEFAULT_IMPROVE_START, DEFAULT_IMPROVE_STOP

logger = logging.getLogger(__name__)


def _blur(data: np.ndarray, sigma: int) -> np.ndarray:
    if sigma == 0:
        return data
    return ndimage.gaussian_filter(data, sigma=sigma)


def _rescale(data: np.ndarray, maximum: float) -> np.ndarray:
    low, high = float(np.min(data)), float(np.max(data))
    if high <= low:
        return np.zeros_like(data)
    return (data - low) / (high - low) * maximum


def improve_kymograph(
    image: np.ndarray,
    start: int = DEFAULT_IMPROVE_START,
    stop: int = DEFAULT_IMPROVE_STOP,
) -> np.ndarray:
    """
    Enhance tracks by summing band-pass (difference-of-Gaussians) layers.

    For each scale i in [start, stop] the layer blur(i - 1) - blur(i) is
    added, with blur(0) being the unfiltered image. Color input is reduced
    to its channel mean first.

    Args:
        image: 2D grayscale or 3D color pixel array
        start: First scale (>= 1)
        stop: Last scale (>= start)

    Returns:
        Enhanced image with the input's dtype: integer images are rescaled to
        their full range, float images are returned as float32

    Raises:
        ValueError: If the scale range is invalid
    """
    if start < 1 or stop < start:
        raise ValueError(f"Invalid scale range {start}..{stop}")

    data = np.asarray(image, dtype=np.float64)
    if data.ndim == 3:
        data = data.mean(axis=2)

    # The per-scale sum telescopes to blur(start - 1) - blur(stop)
    result = _blur(data, start - 1) - _blur(data, stop)
    logger.debug(f"Applied DoG enhancement over scales {start}..{stop}")

    if image.dtype == np.uint8:
        return np.round(_rescale(result, 255)).astype(np.uint8)
    if image.dtype == np.uint16:
        return np.round(_rescale(result, 65535)).astype(np.uint16)
    if np.issubdtype(image.dtype, np.integer):
        return np.round(_rescale(result, 65535)).astype(np.uint16)
    return result.astype(np.float32)
