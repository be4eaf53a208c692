"""I/O utilities for loading and saving images with geometry."""

from pyramidreg.io.image import Image, read_image, write_image

__all__ = [
    "Image",
    "read_image",
    "write_image",
]
