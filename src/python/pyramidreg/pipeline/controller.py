"""Level-transition control: optimizer scales, step decay, adaptive sampling."""

from __future__ import annotations

import logging
import math

import numpy as np

from pyramidreg.errors import ConfigurationError
from pyramidreg.pipeline.config import SAMPLED_SIMILARITIES, SimilarityKind
from pyramidreg.pipeline.history import LEVEL_DIVIDER, HistorySink

logger = logging.getLogger(__name__)

ROTATION_SCALE = 1.0
RIGID_TRANSLATION_SCALE = 1e-3
AFFINE_TRANSLATION_SCALE = 1e-6


def transform_scales(transform) -> np.ndarray:
    """
    Fixed optimizer scales for a transform's parameter vector.

    Rotation and matrix entries get 1.0. Translations get 1e-3 for rigid
    transforms and 1e-6 for affine transforms.

    Raises:
        ConfigurationError: For a transform without known scales.
    """
    name = transform.name
    if name == "Euler2DTransform":
        # Chosen to mirror the 3D rigid scales; no reference values exist for 2D.
        return np.array([ROTATION_SCALE] + [RIGID_TRANSLATION_SCALE] * 2)
    elif name == "Euler3DTransform":
        return np.array([ROTATION_SCALE] * 3 + [RIGID_TRANSLATION_SCALE] * 3)
    elif name == "AffineTransform":
        d = transform.dimension
        return np.concatenate([np.full(d * d, ROTATION_SCALE), np.full(d, AFFINE_TRANSLATION_SCALE)])
    else:
        raise ConfigurationError(f"No optimizer scales defined for {name}")


class LevelTransitionController:
    """Adjusts the optimizer each time the registration enters a new level.

    Level 0 computes the transform scales. Every later level halves the
    maximum step length and divides the minimum step length by 10. Scales
    are re-applied at every level. For sampled mutual-information measures
    the spatial-sample count is recomputed from a decaying sample fraction.

    Args:
        similarity: Similarity kind attached to the pipeline.
        sample_fraction: Initial spatial-sample fraction.
        sink: Open history sink for level-boundary blocks.
    """

    def __init__(self, similarity: SimilarityKind, sample_fraction: float, sink: HistorySink):
        self.similarity = similarity
        self.sample_fraction = sample_fraction
        self.sink = sink
        self.scales: np.ndarray | None = None

    @property
    def adapts_sampling(self) -> bool:
        return self.similarity in SAMPLED_SIMILARITIES

    def on_level_advance(self, registration) -> None:
        optimizer = registration.optimizer
        level = registration.current_level

        if level == 0:
            self.scales = transform_scales(registration.transform)
        else:
            optimizer.maximum_step_length /= 2.0
            optimizer.minimum_step_length /= 10.0
        optimizer.scales = self.scales.copy()

        factors = registration.schedule[level]
        lines = []
        if self.adapts_sampling:
            total = registration.fixed_region_pixel_count
            level_pixels = total // (factors[0] * factors[1])
            samples = math.floor(self.sample_fraction * total / (factors[0] * factors[1]))
            registration.metric.number_of_spatial_samples = samples
            self.sample_fraction /= 2.0
            lines.append(f"Number of spatial samples: {samples} of {level_pixels}")

        lines += [
            f"Maximum Step Length: {optimizer.maximum_step_length:.10g}",
            f"Minimum Step Length: {optimizer.minimum_step_length:.10g}",
            LEVEL_DIVIDER,
            f"Pyramid Schedule: {registration.schedule.format_level(level)}",
            f"MultiResolution Level: {level}",
            "",
        ]
        for line in lines:
            logger.info(line)
        try:
            self.sink.write_lines(lines)
        except OSError as e:
            logger.warning(f"Could not write level record to {self.sink.path}: {e}")
