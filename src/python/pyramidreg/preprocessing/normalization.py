"""Intensity normalization for density-based similarity measures."""

import numpy as np

from pyramidreg.io.image import Image


def zscore_normalize(image: Image) -> Image:
    """Shift and scale intensities to zero mean and unit variance.

    Matches ``itk::NormalizeImageFilter``. A constant image maps to all
    zeros. Geometry is preserved.

    Parameters
    ----------
    image : Image
        Input image of any numeric pixel type.

    Returns
    -------
    Image
        Float64 image with the same geometry.
    """
    data = image.array.astype(np.float64)
    std = data.std()
    if std == 0:
        return image.with_array(np.zeros_like(data))
    return image.with_array((data - data.mean()) / std)
