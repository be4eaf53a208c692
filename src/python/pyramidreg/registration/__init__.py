"""Numerical registration engine: transforms, metrics, optimizer, pyramid."""

from pyramidreg.registration.interpolators import LinearInterpolator, resample
from pyramidreg.registration.method import MultiResolutionRegistration
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
from pyramidreg.registration.pyramid import PyramidSchedule, build_schedule, downsample
from pyramidreg.registration.transforms import (
    AffineTransform,
    Euler2DTransform,
    Euler3DTransform,
    Transform,
    initialize_from_moments,
)

__all__ = [
    "AffineTransform",
    "Euler2DTransform",
    "Euler3DTransform",
    "GradientDifferenceMetric",
    "LinearInterpolator",
    "MattesMutualInformationMetric",
    "MeanSquaresMetric",
    "MultiResolutionRegistration",
    "MutualInformationHistogramMetric",
    "MutualInformationMetric",
    "NormalizedCrossCorrelationMetric",
    "NormalizedMutualInformationHistogramMetric",
    "PyramidSchedule",
    "RegularStepGradientDescentOptimizer",
    "SimilarityMeasure",
    "Transform",
    "build_schedule",
    "downsample",
    "initialize_from_moments",
    "resample",
]
