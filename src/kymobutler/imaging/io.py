"""Image decoding and PNG encoding at the engine boundary."""

import io
import logging

from pathlib import Path

import numpy as np

from PIL import Image, UnidentifiedImageError

from kymobutler.exceptions import ImageDecodeError

logger = logging.getLogger(__name__)

# Pillow modes that are converted before handing pixels to numpy
_CONVERT_MODES = {"P": "RGB", "PA": "RGBA", "CMYK": "RGB", "YCbCr": "RGB", "1": "L"}


def decode_image(source: Path | bytes) -> np.ndarray:
    """
    Decode an image file or encoded bytes into a pixel array.

    Args:
        source: Path to an image file, or its encoded bytes

    Returns:
        2D array for grayscale images, 3D (rows, cols, channels) for color

    Raises:
        ImageDecodeError: If the data is not a readable image
    """
    label = str(source) if isinstance(source, Path) else f"<{len(source)} bytes>"
    try:
        fp = io.BytesIO(source) if isinstance(source, bytes) else source
        with Image.open(fp) as img:
            img.load()
            target = _CONVERT_MODES.get(img.mode)
            converted = img.convert(target) if target else img
            array = np.asarray(converted)
    except (
        UnidentifiedImageError,
        Image.DecompressionBombError,
        OSError,
        ValueError,
        SyntaxError,
    ) as e:
        raise ImageDecodeError(f"Cannot decode image {label}: {e}") from e

    if array.ndim not in (2, 3) or array.size == 0:
        raise ImageDecodeError(f"Unsupported image shape {array.shape} in {label}")

    return array


def _to_png_compatible(array: np.ndarray) -> np.ndarray:
    if array.dtype == np.bool_:
        return array.astype(np.uint8) * 255
    if array.dtype == np.uint8:
        return array
    if array.ndim == 2 and array.dtype == np.uint16:
        return array

    # Float, signed or wide integer data is rescaled into the 16-bit range
    # (8-bit for color, which PNG cannot store at 16 bits through Pillow)
    data = array.astype(np.float64)
    low, high = float(np.min(data)), float(np.max(data))
    span = high - low
    scaled = (data - low) / span if span > 0 else np.zeros_like(data)
    if array.ndim == 2:
        return np.round(scaled * 65535).astype(np.uint16)
    return np.round(scaled * 255).astype(np.uint8)


def encode_png(array: np.ndarray) -> bytes:
    """
    Encode a pixel array as PNG.

    8-bit and 16-bit grayscale data are written unchanged; other types are
    rescaled to the available range.
    """
    data = _to_png_compatible(np.asarray(array))
    buffer = io.BytesIO()
    Image.fromarray(data).save(buffer, format="PNG")
    return buffer.getvalue()


def normalize_to_png(image: bytes) -> bytes:
    """
    Re-encode any readable image as PNG.

    Raises:
        ImageDecodeError: If the bytes are not a readable image
    """
    return encode_png(decode_image(image))
