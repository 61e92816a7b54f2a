# map_generation/image_io.py

"""Writing generated pixel buffers to image files with Pillow."""

import logging
import os

import numpy as np
from PIL import Image

from .errors import InvalidParameterError


def buffer_to_image(buffer, width: int, height: int) -> Image.Image:
    """Wraps a row-major RGB byte buffer in a Pillow image."""
    pixels = np.frombuffer(buffer, dtype=np.uint8)
    if pixels.size != width * height * 3:
        raise InvalidParameterError(
            f"Buffer holds {pixels.size} bytes, expected {width * height * 3} "
            f"for a {width}x{height} RGB image."
        )
    # Pillow works with (height, width, channels) arrays.
    return Image.fromarray(pixels.reshape(height, width, 3))


def save_image(buffer, width: int, height: int, path: str, logger: logging.Logger = None) -> str:
    """
    Saves the buffer as an image. The format follows the file extension
    (PNG for the default output path). Returns the path written.
    """
    logger = logger or logging.getLogger(__name__)
    img = buffer_to_image(buffer, width, height)

    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)

    logger.info(f"Writing output to: {path}")
    img.save(path)
    return path
