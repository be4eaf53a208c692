"""Image interpolation on continuous indices and resampling."""

from __future__ import annotations

import numpy as np
from scipy.ndimage import map_coordinates

from pyramidreg.io.image import Image


class LinearInterpolator:
    """N-linear interpolation via ``scipy.ndimage.map_coordinates``."""

    name = "LinearInterpolateImageFunction"

    def evaluate(self, array: np.ndarray, index: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """
        Interpolate ``array`` at continuous indices.

        Args:
            array: Image data in numpy axis order.
            index: Continuous indices ``(N, D)`` in ITK axis order.

        Returns:
            Tuple of (values, inside) where ``inside`` marks indices within
            the image buffer. Values outside are clamped to the edge and
            should be discarded by the caller.
        """
        coords = np.asarray(index, dtype=np.float64)[:, ::-1].T
        upper = (np.asarray(array.shape) - 1)[:, np.newaxis]
        inside = np.all((coords >= 0) & (coords <= upper), axis=0)
        values = map_coordinates(array, coords, order=1, mode="nearest")
        return values, inside


def resample(
    moving: Image,
    reference: Image,
    transform,
    interpolator: LinearInterpolator,
    default_value: float = -100.0,
) -> Image:
    """Resample ``moving`` onto the grid of ``reference`` through ``transform``.

    Pixels that map outside the moving image get ``default_value``.
    """
    points = reference.index_to_physical(reference.grid_indices())
    cindex = moving.physical_to_index(transform.transform_points(points))
    values, inside = interpolator.evaluate(moving.array.astype(np.float64), cindex)
    values = np.where(inside, values, default_value)
    return reference.with_array(values.reshape(reference.array.shape))
