"""Multi-resolution pyramid schedules and level images.

Shrink factors halve per level from coarse to fine, ending at full
resolution. Each level image is Gaussian-smoothed before decimation so
that small bright structures survive at coarse levels.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
from scipy.ndimage import gaussian_filter, map_coordinates

from pyramidreg.io.image import Image

logger = logging.getLogger(__name__)

MIN_LEVEL_EXTENT = 64

# Only x and y shrink; the z axis of 3D volumes stays at full resolution.
REDUCED_AXES = (0, 1)


@dataclass(frozen=True)
class PyramidSchedule:
    """Per-level shrink factors in ITK axis order, coarsest first."""

    factors: tuple[tuple[int, ...], ...]

    def __len__(self) -> int:
        return len(self.factors)

    def __getitem__(self, level: int) -> tuple[int, ...]:
        return self.factors[level]

    @property
    def number_of_levels(self) -> int:
        return len(self.factors)

    def format_level(self, level: int) -> str:
        """Factors as ``[x y z]`` for history output."""
        return "[" + " ".join(str(f) for f in self.factors[level]) + "]"


def default_factors(number_of_levels: int, dimension: int) -> tuple[tuple[int, ...], ...]:
    """Shrink factors ``2^(N-1-l)`` on the in-plane axes for each level ``l``."""
    factors = []
    for level in range(number_of_levels):
        factor = 2 ** (number_of_levels - 1 - level)
        factors.append(tuple(factor if axis in REDUCED_AXES else 1 for axis in range(dimension)))
    return tuple(factors)


def build_schedule(size: tuple[int, ...], number_of_levels: int) -> PyramidSchedule:
    """
    Shrink schedule for an image of ``size`` (ITK axis order).

    The level count drops until every reduced axis keeps at least
    ``MIN_LEVEL_EXTENT`` pixels at the coarsest level, or a single level is
    left.

    Args:
        size: Fixed image extent in ITK axis order.
        number_of_levels: Requested level count.

    Returns:
        PyramidSchedule with at least one level.
    """
    dimension = len(size)
    levels = max(1, int(number_of_levels))
    while True:
        factors = default_factors(levels, dimension)
        coarsest = factors[0]
        too_small = any(
            size[axis] // coarsest[axis] < MIN_LEVEL_EXTENT for axis in REDUCED_AXES
        )
        if levels == 1 or not too_small:
            break
        levels -= 1

    if levels != number_of_levels:
        logger.info(
            f"Reduced pyramid from {number_of_levels} to {levels} levels for image size {tuple(size)}"
        )
    return PyramidSchedule(factors)


def downsample(image: Image, factors: tuple[int, ...]) -> Image:
    """
    Smooth and decimate ``image`` by integer ``factors`` (ITK axis order).

    Samples are taken at the centers of each ``factor``-sized block so the
    level image covers the same physical extent.
    """
    factors = tuple(int(f) for f in factors)
    if all(f == 1 for f in factors):
        return image

    numpy_factors = factors[::-1]
    sigma = [0.5 * f if f > 1 else 0.0 for f in numpy_factors]
    smoothed = gaussian_filter(image.array.astype(np.float64), sigma=sigma, mode="nearest")

    new_shape = [max(1, n // f) for n, f in zip(smoothed.shape, numpy_factors)]
    axes = [np.arange(n) * f + (f - 1) / 2.0 for n, f in zip(new_shape, numpy_factors)]
    coords = np.stack(np.meshgrid(*axes, indexing="ij"))
    data = map_coordinates(smoothed, coords, order=1, mode="nearest")

    shift = image.spacing * (np.asarray(factors) - 1) / 2.0
    return Image(
        array=data,
        origin=image.origin + image.direction @ shift,
        spacing=image.spacing * np.asarray(factors),
        direction=image.direction.copy(),
    )
