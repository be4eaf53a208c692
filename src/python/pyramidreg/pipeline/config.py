"""Registration configuration: strategy enumerations and validated options."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum, IntEnum
from pathlib import Path

import numpy as np

from pyramidreg.errors import ConfigurationError

logger = logging.getLogger(__name__)


class SimilarityKind(IntEnum):
    """Similarity measures, numbered as on the command line."""

    MEAN_SQUARES = 0
    GRADIENT_DIFFERENCE = 1
    MUTUAL_INFORMATION = 2
    NORMALIZED_CROSS_CORRELATION = 3
    MATTES_MUTUAL_INFORMATION = 4
    MUTUAL_INFORMATION_HISTOGRAM = 5
    NORMALIZED_MUTUAL_INFORMATION_HISTOGRAM = 6

    @property
    def label(self) -> str:
        return self.name.replace("_", " ").capitalize()


class TransformKind(IntEnum):
    EULER = 0
    AFFINE = 1


class OptimizerKind(Enum):
    REGULAR_STEP_GRADIENT_DESCENT = "regular_step_gradient_descent"
    GRADIENT_DESCENT = "gradient_descent"


class InterpolatorKind(Enum):
    LINEAR = "linear"
    NEAREST_NEIGHBOR = "nearest_neighbor"


# Measures whose optimum is a maximum.
MAXIMIZED_SIMILARITIES = frozenset(
    {
        SimilarityKind.MUTUAL_INFORMATION,
        SimilarityKind.MATTES_MUTUAL_INFORMATION,
        SimilarityKind.MUTUAL_INFORMATION_HISTOGRAM,
        SimilarityKind.NORMALIZED_CROSS_CORRELATION,
        SimilarityKind.NORMALIZED_MUTUAL_INFORMATION_HISTOGRAM,
    }
)

# Measures that consume a spatial-sample count.
SAMPLED_SIMILARITIES = frozenset(
    {SimilarityKind.MUTUAL_INFORMATION, SimilarityKind.MATTES_MUTUAL_INFORMATION}
)

# Measures that expect zero-mean, unit-variance inputs.
NORMALIZED_INPUT_SIMILARITIES = frozenset({SimilarityKind.MUTUAL_INFORMATION})

DEFAULT_SIMILARITY = SimilarityKind.NORMALIZED_CROSS_CORRELATION
DEFAULT_TRANSFORM = TransformKind.EULER
DEFAULT_SAMPLE_FRACTION = 0.1
DEFAULT_ITERATIONS = 500


@dataclass(frozen=True)
class PipelineVariant:
    """A buildable (dimension, transform) combination."""

    dimension: int
    transform: TransformKind
    transform_name: str
    pixel_type: type = np.float64


SUPPORTED_VARIANTS: dict[tuple[int, TransformKind], PipelineVariant] = {
    (2, TransformKind.EULER): PipelineVariant(2, TransformKind.EULER, "Euler2DTransform"),
    (3, TransformKind.EULER): PipelineVariant(3, TransformKind.EULER, "Euler3DTransform"),
    (3, TransformKind.AFFINE): PipelineVariant(3, TransformKind.AFFINE, "AffineTransform"),
}


@dataclass
class RegistrationConfig:
    """Options for one registration run.

    Treated as read-only once validated. The level-transition controller
    keeps its own decaying copy of ``sample_fraction``.
    """

    dimensions: int
    fixed_path: Path
    moving_path: Path
    history_path: Path
    max_step: float = 5.0
    min_step: float = 1e-5
    sample_fraction: float = DEFAULT_SAMPLE_FRACTION
    pyramid_levels: int = 3
    intensity_threshold: float | None = None
    similarity: SimilarityKind = DEFAULT_SIMILARITY
    iterations: int = DEFAULT_ITERATIONS
    transform: TransformKind = DEFAULT_TRANSFORM
    optimizer: OptimizerKind = OptimizerKind.REGULAR_STEP_GRADIENT_DESCENT
    interpolator: InterpolatorKind = InterpolatorKind.LINEAR
    histogram_bins: int = 128
    output_path: Path | None = None

    def __post_init__(self):
        self.fixed_path = Path(self.fixed_path)
        self.moving_path = Path(self.moving_path)
        self.history_path = Path(self.history_path)
        if self.output_path is not None:
            self.output_path = Path(self.output_path)

    @classmethod
    def from_options(
        cls,
        dimensions: int,
        fixed_path: Path | str,
        moving_path: Path | str,
        history_path: Path | str,
        max_step: float = 5.0,
        min_step: float = 1e-5,
        sample_fraction: float = DEFAULT_SAMPLE_FRACTION,
        pyramid_levels: int = 3,
        intensity_threshold: float | None = None,
        similarity: int = int(DEFAULT_SIMILARITY),
        iterations: int = DEFAULT_ITERATIONS,
        transform: int = int(DEFAULT_TRANSFORM),
        output_path: Path | str | None = None,
    ) -> RegistrationConfig:
        """Build a config from raw option values.

        Out-of-range values are replaced by their defaults with a warning;
        this never raises. Call ``validate`` afterwards.
        """
        if not 0 < sample_fraction <= 1:
            logger.warning(
                f"Invalid spatial sample fraction: {sample_fraction}. "
                f"It must lie in (0, 1]; using the default {DEFAULT_SAMPLE_FRACTION}"
            )
            sample_fraction = DEFAULT_SAMPLE_FRACTION

        try:
            similarity_kind = SimilarityKind(similarity)
        except ValueError:
            choices = ", ".join(f"{k.value} - {k.label}" for k in SimilarityKind)
            logger.warning(
                f"Invalid similarity specifier: {similarity} ({choices}); "
                f"using {DEFAULT_SIMILARITY.label.lower()}"
            )
            similarity_kind = DEFAULT_SIMILARITY

        if iterations < 1:
            logger.warning(
                f"Invalid maximum number of iterations: {iterations}; "
                f"using the default {DEFAULT_ITERATIONS}"
            )
            iterations = DEFAULT_ITERATIONS

        try:
            transform_kind = TransformKind(transform)
        except ValueError:
            logger.warning(
                f"Invalid transform specifier: {transform} (0 - Euler, 1 - Affine); using Euler"
            )
            transform_kind = DEFAULT_TRANSFORM

        return cls(
            dimensions=dimensions,
            fixed_path=fixed_path,
            moving_path=moving_path,
            history_path=history_path,
            max_step=max_step,
            min_step=min_step,
            sample_fraction=sample_fraction,
            pyramid_levels=pyramid_levels,
            intensity_threshold=intensity_threshold,
            similarity=similarity_kind,
            iterations=int(iterations),
            transform=transform_kind,
            output_path=output_path,
        )

    @property
    def variant(self) -> PipelineVariant:
        """The pipeline variant for this config.

        Raises:
            ConfigurationError: If the combination is not buildable.
        """
        try:
            return SUPPORTED_VARIANTS[(self.dimensions, self.transform)]
        except KeyError:
            raise ConfigurationError(
                f"Unknown or unsupported transformation: {self.transform.name.lower()} "
                f"in {self.dimensions}D"
            ) from None

    def validate(self) -> None:
        """Check the config is runnable. Raises ConfigurationError if not."""
        if self.dimensions not in (2, 3):
            raise ConfigurationError(
                f"Invalid or missing image dimensions: {self.dimensions} (expected 2 or 3)"
            )
        for label, path in (("fixed", self.fixed_path), ("moving", self.moving_path)):
            if not path.is_file():
                raise ConfigurationError(f"Unable to find the {label} image: {path}")
        if self.pyramid_levels < 1:
            raise ConfigurationError(f"Pyramid level count must be >= 1, got {self.pyramid_levels}")
        if self.max_step <= 0 or self.min_step <= 0:
            raise ConfigurationError("Step lengths must be positive")
        _ = self.variant


def prepare_history(path: Path | str) -> Path:
    """Truncate the history file so the run appends to an empty file.

    Raises:
        ConfigurationError: If the file cannot be opened for writing.
    """
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("")
    except OSError as e:
        raise ConfigurationError(f"Unable to open the iteration history file {path}: {e}") from e
    return path
