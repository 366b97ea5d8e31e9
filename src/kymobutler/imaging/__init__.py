"""Image decoding, encoding and kymograph enhancement."""

from kymobutler.imaging.improve import improve_kymograph
from kymobutler.imaging.io import decode_image, encode_png, normalize_to_png

__all__ = ["decode_image", "encode_png", "improve_kymograph", "normalize_to_png"]
