"""Strategy dispatch: enumerated config choices to engine components.

Each table maps a kind to its component class. Kinds missing from a table
are unsupported for every pipeline variant. A similarity or interpolator
miss is fatal; an optimizer miss only leaves the pipeline without an
optimizer, which the assembler detects before running.
"""

from __future__ import annotations

import logging

from pyramidreg.errors import UnsupportedStrategyError
from pyramidreg.pipeline.config import (
    MAXIMIZED_SIMILARITIES,
    InterpolatorKind,
    OptimizerKind,
    RegistrationConfig,
    SimilarityKind,
)
from pyramidreg.registration.interpolators import LinearInterpolator
from pyramidreg.registration.metrics import (
    GradientDifferenceMetric,
    MattesMutualInformationMetric,
    MeanSquaresMetric,
    MutualInformationHistogramMetric,
    MutualInformationMetric,
    NormalizedCrossCorrelationMetric,
    NormalizedMutualInformationHistogramMetric,
    SimilarityMeasure,
)
from pyramidreg.registration.optimizers import RegularStepGradientDescentOptimizer

logger = logging.getLogger(__name__)

SIMILARITY_TAG = "pyramidreg:invalidSimilaritySettings"
INTERPOLATOR_TAG = "pyramidreg:invalidInterpolatorSettings"
OPTIMIZER_TAG = "pyramidreg:invalidOptimizerSettings"

SAMPLING_SEED = 76926294
GRADIENT_DIFFERENCE_DELTA = 0.5
VIOLA_WELLS_STANDARD_DEVIATION = 0.4
RELAXATION_FACTOR = 0.9

SIMILARITY_TABLE: dict[SimilarityKind, type[SimilarityMeasure]] = {
    SimilarityKind.MEAN_SQUARES: MeanSquaresMetric,
    SimilarityKind.GRADIENT_DIFFERENCE: GradientDifferenceMetric,
    SimilarityKind.MUTUAL_INFORMATION: MutualInformationMetric,
    SimilarityKind.NORMALIZED_CROSS_CORRELATION: NormalizedCrossCorrelationMetric,
    SimilarityKind.MATTES_MUTUAL_INFORMATION: MattesMutualInformationMetric,
    SimilarityKind.MUTUAL_INFORMATION_HISTOGRAM: MutualInformationHistogramMetric,
    SimilarityKind.NORMALIZED_MUTUAL_INFORMATION_HISTOGRAM: NormalizedMutualInformationHistogramMetric,
}

INTERPOLATOR_TABLE: dict[InterpolatorKind, type] = {
    InterpolatorKind.LINEAR: LinearInterpolator,
}

OPTIMIZER_TABLE: dict[OptimizerKind, type] = {
    OptimizerKind.REGULAR_STEP_GRADIENT_DESCENT: RegularStepGradientDescentOptimizer,
}


def create_similarity(config: RegistrationConfig) -> SimilarityMeasure:
    """
    Build and parameterize the similarity measure for ``config.similarity``.

    Raises:
        UnsupportedStrategyError: If the kind is not in the dispatch table.
    """
    kind = config.similarity
    if kind not in SIMILARITY_TABLE:
        raise UnsupportedStrategyError(
            SIMILARITY_TAG, kind, "Unknown or unsupported similarity metric"
        )
    metric = SIMILARITY_TABLE[kind]()

    if kind == SimilarityKind.GRADIENT_DIFFERENCE:
        metric.derivative_delta = GRADIENT_DIFFERENCE_DELTA
    elif kind == SimilarityKind.MUTUAL_INFORMATION:
        metric.sampling_fraction = config.sample_fraction
        metric.fixed_image_standard_deviation = VIOLA_WELLS_STANDARD_DEVIATION
        metric.moving_image_standard_deviation = VIOLA_WELLS_STANDARD_DEVIATION
        metric.seed = SAMPLING_SEED
    elif kind == SimilarityKind.MATTES_MUTUAL_INFORMATION:
        metric.number_of_histogram_bins = config.histogram_bins
        metric.sampling_fraction = config.sample_fraction
        metric.seed = SAMPLING_SEED
    elif kind in (
        SimilarityKind.MUTUAL_INFORMATION_HISTOGRAM,
        SimilarityKind.NORMALIZED_MUTUAL_INFORMATION_HISTOGRAM,
    ):
        metric.histogram_size = (config.histogram_bins, config.histogram_bins)

    metric.intensity_threshold = config.intensity_threshold
    return metric


def create_interpolator(config: RegistrationConfig):
    """
    Build the interpolator for ``config.interpolator``.

    Raises:
        UnsupportedStrategyError: If the kind is not in the dispatch table.
    """
    kind = config.interpolator
    if kind not in INTERPOLATOR_TABLE:
        raise UnsupportedStrategyError(
            INTERPOLATOR_TAG, kind, "Unknown or unsupported interpolation scheme"
        )
    return INTERPOLATOR_TABLE[kind]()


def create_optimizer(config: RegistrationConfig) -> RegularStepGradientDescentOptimizer | None:
    """Build the optimizer for ``config.optimizer``, or None with a warning if unsupported."""
    kind = config.optimizer
    if kind not in OPTIMIZER_TABLE:
        logger.warning(f"{OPTIMIZER_TAG}: Unknown or unsupported optimizer scheme ({kind!r})")
        return None
    optimizer = OPTIMIZER_TABLE[kind]()
    optimizer.maximum_step_length = config.max_step
    optimizer.minimum_step_length = config.min_step
    optimizer.number_of_iterations = config.iterations
    optimizer.relaxation_factor = RELAXATION_FACTOR
    optimizer.maximize = config.similarity in MAXIMIZED_SIMILARITIES
    return optimizer


def dispatch_strategies(config: RegistrationConfig, registration) -> None:
    """
    Attach similarity, interpolator and optimizer to ``registration``.

    All components are built before any is attached, so a failure leaves
    ``registration`` untouched.

    Args:
        config: Validated registration config.
        registration: Pipeline object with ``metric``, ``interpolator`` and
            ``optimizer`` attributes.

    Raises:
        UnsupportedStrategyError: For an unsupported similarity or
            interpolator kind.
    """
    metric = create_similarity(config)
    interpolator = create_interpolator(config)
    optimizer = create_optimizer(config)

    registration.metric = metric
    registration.interpolator = interpolator
    registration.optimizer = optimizer
    logger.debug(
        f"Dispatched {metric.name}, {interpolator.name}, "
        f"{optimizer.name if optimizer is not None else 'no optimizer'}"
    )
