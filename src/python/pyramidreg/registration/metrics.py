"""Image similarity measures.

Each measure compares the fixed image against the moving image mapped
through the current transform. Values and parameter derivatives follow the
ITK v3 metric family. ``maximize`` tells the optimizer which direction
improves the measure.

Mean squares and normalized cross-correlation use analytic derivatives
through the transform Jacobian. The remaining measures use central finite
differences.
"""

from __future__ import annotations

import logging

import numpy as np
from skimage.metrics import normalized_mutual_information

from pyramidreg.errors import RegistrationEngineError
from pyramidreg.io.image import Image

logger = logging.getLogger(__name__)

_EPS = np.finfo(np.float64).eps

DEFAULT_SAMPLING_SEED = 76926294
PARZEN_BLOCK_SIZE = 256


def _image_gradients(array: np.ndarray) -> list[np.ndarray]:
    """Per-axis index-space gradients in ITK axis order."""
    gradients = []
    for axis in range(array.ndim):
        if array.shape[axis] < 2:
            gradients.append(np.zeros_like(array, dtype=np.float64))
        else:
            gradients.append(np.gradient(array.astype(np.float64), axis=axis))
    return gradients[::-1]


def _mutual_information(joint: np.ndarray) -> float:
    """Mutual information of a joint histogram (nats)."""
    total = joint.sum()
    if total <= 0:
        return 0.0
    p = joint / total
    pf = p.sum(axis=1, keepdims=True)
    pm = p.sum(axis=0, keepdims=True)
    nonzero = p > 0
    return float(np.sum(p[nonzero] * np.log(p[nonzero] / (pf @ pm)[nonzero])))


class SimilarityMeasure:
    """Base class for similarity measures.

    Call ``initialize`` once per pyramid level with the level images, then
    evaluate at parameter vectors of the attached transform.
    """

    name = "ImageToImageMetric"
    maximize = False
    derivative_step = 0.1

    def __init__(self):
        self.intensity_threshold: float | None = None
        self.fixed_image: Image | None = None
        self.moving_image: Image | None = None
        self.transform = None
        self.interpolator = None
        self._fixed_points: np.ndarray | None = None
        self._fixed_values: np.ndarray | None = None

    def initialize(self, fixed: Image, moving: Image, transform, interpolator) -> None:
        self.fixed_image = fixed
        self.moving_image = moving
        self.transform = transform
        self.interpolator = interpolator
        self._moving_array = moving.array.astype(np.float64)
        indices = self._select_fixed_indices()
        self._fixed_points = fixed.index_to_physical(indices)
        self._fixed_values = self._fixed_lookup(indices)
        logger.debug(f"{self.name}: {len(indices)} fixed samples")

    def _fixed_lookup(self, indices: np.ndarray) -> np.ndarray:
        flat = np.ravel_multi_index(
            tuple(indices[:, ::-1].T.astype(np.intp)), self.fixed_image.array.shape
        )
        return self.fixed_image.array.ravel()[flat].astype(np.float64)

    def _candidate_indices(self) -> np.ndarray:
        """Fixed pixel indices at or above the intensity threshold."""
        indices = self.fixed_image.grid_indices()
        if self.intensity_threshold is not None:
            keep = self.fixed_image.array.ravel() >= self.intensity_threshold
            indices = indices[keep]
        if len(indices) == 0:
            raise RegistrationEngineError(
                f"No fixed image pixels at or above intensity threshold {self.intensity_threshold}"
            )
        return indices

    def _select_fixed_indices(self) -> np.ndarray:
        return self._candidate_indices()

    def _sample(self, parameters: np.ndarray):
        """Map fixed samples into the moving image.

        Returns fixed values, moving values, the inside mask and the
        continuous moving indices of all fixed samples.
        """
        self.transform.set_parameters(parameters)
        mapped = self.transform.transform_points(self._fixed_points)
        cindex = self.moving_image.physical_to_index(mapped)
        moving_values, inside = self.interpolator.evaluate(self._moving_array, cindex)
        if not inside.any():
            raise RegistrationEngineError("All the points mapped to outside of the moving image")
        return self._fixed_values[inside], moving_values[inside], inside, cindex

    def _measure(self, fixed_values: np.ndarray, moving_values: np.ndarray) -> float:
        raise NotImplementedError

    def get_value(self, parameters: np.ndarray) -> float:
        fixed_values, moving_values, _, _ = self._sample(parameters)
        return self._measure(fixed_values, moving_values)

    def _finite_difference_step(self) -> float:
        return self.derivative_step

    def get_derivative(self, parameters: np.ndarray) -> np.ndarray:
        base = np.asarray(parameters, dtype=np.float64)
        step = self._finite_difference_step()
        derivative = np.zeros_like(base)
        for j in range(base.size):
            delta = np.zeros_like(base)
            delta[j] = step
            derivative[j] = (self.get_value(base + delta) - self.get_value(base - delta)) / (2 * step)
        self.transform.set_parameters(base)
        return derivative

    def get_value_and_derivative(self, parameters: np.ndarray) -> tuple[float, np.ndarray]:
        value = self.get_value(parameters)
        return value, self.get_derivative(parameters)


class _AnalyticGradientMixin:
    """Moving-image derivatives w.r.t. transform parameters."""

    def initialize(self, fixed, moving, transform, interpolator):
        super().initialize(fixed, moving, transform, interpolator)
        self._gradient_arrays = _image_gradients(self._moving_array)

    def _sample_with_derivatives(self, parameters: np.ndarray):
        fixed_values, moving_values, inside, cindex = self._sample(parameters)
        inside_index = cindex[inside]
        index_gradient = np.stack(
            [self.interpolator.evaluate(g, inside_index)[0] for g in self._gradient_arrays], axis=1
        )
        inverse_direction = np.linalg.inv(self.moving_image.direction)
        physical_gradient = (index_gradient / self.moving_image.spacing) @ inverse_direction
        jacobian = self.transform.jacobian(self._fixed_points[inside])
        moving_derivatives = np.einsum("nd,ndp->np", physical_gradient, jacobian)
        return fixed_values, moving_values, moving_derivatives


class MeanSquaresMetric(_AnalyticGradientMixin, SimilarityMeasure):
    """Mean squared intensity difference. Lower is better."""

    name = "MeanSquaresImageToImageMetric"

    def _measure(self, fixed_values, moving_values):
        return float(np.mean((fixed_values - moving_values) ** 2))

    def get_derivative(self, parameters):
        return self.get_value_and_derivative(parameters)[1]

    def get_value_and_derivative(self, parameters):
        f, m, dm = self._sample_with_derivatives(parameters)
        diff = f - m
        value = float(np.mean(diff**2))
        derivative = -2.0 * np.mean(diff[:, np.newaxis] * dm, axis=0)
        return value, derivative


class NormalizedCrossCorrelationMetric(_AnalyticGradientMixin, SimilarityMeasure):
    """Normalized cross-correlation of intensities. Higher is better.

    With ``subtract_mean`` off (the default) the measure is
    ``sum(f m) / sqrt(sum(f^2) sum(m^2))``. A zero denominator gives 0.
    """

    name = "NormalizedCorrelationImageToImageMetric"
    maximize = True

    def __init__(self):
        super().__init__()
        self.subtract_mean = False

    def _center(self, f, m, dm=None):
        if not self.subtract_mean:
            return f, m, dm
        if dm is not None:
            dm = dm - dm.mean(axis=0)
        return f - f.mean(), m - m.mean(), dm

    def _measure(self, fixed_values, moving_values):
        f, m, _ = self._center(fixed_values, moving_values)
        denominator = np.sqrt(np.sum(f * f) * np.sum(m * m))
        if denominator == 0:
            return 0.0
        return float(np.sum(f * m) / denominator)

    def get_derivative(self, parameters):
        return self.get_value_and_derivative(parameters)[1]

    def get_value_and_derivative(self, parameters):
        f, m, dm = self._sample_with_derivatives(parameters)
        f, m, dm = self._center(f, m, dm)
        sff = np.sum(f * f)
        smm = np.sum(m * m)
        sfm = np.sum(f * m)
        denominator = np.sqrt(sff * smm)
        if denominator == 0:
            return 0.0, np.zeros(dm.shape[1])
        value = sfm / denominator
        derivative = (f @ dm) / denominator - sfm * (m @ dm) / (np.sqrt(sff) * smm**1.5)
        return float(value), derivative


class GradientDifferenceMetric(SimilarityMeasure):
    """Gradient difference measure over the whole fixed grid.

    Compares per-axis gradients of the fixed image and of the moving image
    resampled onto the fixed grid. Each axis contributes
    ``mean(d^2 / (var_a + d^2))`` with ``var_a`` the fixed-gradient
    variance, so a perfect match gives 0. Lower is better.
    """

    name = "GradientDifferenceImageToImageMetric"

    def __init__(self):
        super().__init__()
        self.derivative_delta = 0.001

    def _finite_difference_step(self):
        return self.derivative_delta

    def initialize(self, fixed, moving, transform, interpolator):
        super().initialize(fixed, moving, transform, interpolator)
        self._grid_points = fixed.index_to_physical(fixed.grid_indices())
        self._fixed_gradients = _image_gradients(fixed.array)
        self._gradient_variances = [float(np.var(g)) or 1.0 for g in self._fixed_gradients]
        self._threshold_mask = np.ones(fixed.number_of_pixels, dtype=bool)
        if self.intensity_threshold is not None:
            self._threshold_mask = fixed.array.ravel() >= self.intensity_threshold

    def get_value(self, parameters):
        self.transform.set_parameters(parameters)
        cindex = self.moving_image.physical_to_index(self.transform.transform_points(self._grid_points))
        values, inside = self.interpolator.evaluate(self._moving_array, cindex)
        mask = inside & self._threshold_mask
        if not mask.any():
            raise RegistrationEngineError("All the points mapped to outside of the moving image")
        moving_on_fixed = values.reshape(self.fixed_image.array.shape)
        moving_gradients = _image_gradients(moving_on_fixed)
        value = 0.0
        for fixed_gradient, moving_gradient, variance in zip(
            self._fixed_gradients, moving_gradients, self._gradient_variances
        ):
            diff = (fixed_gradient - moving_gradient).ravel()[mask]
            value += float(np.mean(diff**2 / (variance + diff**2)))
        return value


class _SpatialSamplingMixin:
    """Random subset of fixed samples, drawn once per ``initialize``."""

    default_spatial_samples = 50

    def _init_sampling(self):
        self.number_of_spatial_samples: int | None = None
        self.sampling_fraction: float | None = None
        self.seed: int = DEFAULT_SAMPLING_SEED

    def _sample_count(self, available: int) -> int:
        if self.number_of_spatial_samples is not None:
            requested = int(self.number_of_spatial_samples)
        elif self.sampling_fraction is not None:
            requested = int(np.floor(self.sampling_fraction * available))
        else:
            requested = self.default_spatial_samples
        return int(min(available, max(requested, 2)))

    def _select_fixed_indices(self):
        candidates = self._candidate_indices()
        count = self._sample_count(len(candidates))
        rng = np.random.default_rng(self.seed)
        chosen = rng.choice(len(candidates), size=count, replace=False)
        return candidates[np.sort(chosen)]


class MutualInformationMetric(_SpatialSamplingMixin, SimilarityMeasure):
    """Viola-Wells mutual information with Parzen density estimates.

    The spatial samples are split into two halves. Entropies are estimated
    on one half using Gaussian kernels centered on the other. Expects
    intensity-normalized inputs. Higher is better.

    Kernel sums are accumulated over ``block_size`` rows at a time, so
    memory stays linear in the number of samples.
    """

    name = "MutualInformationImageToImageMetric"
    maximize = True

    def __init__(self):
        super().__init__()
        self._init_sampling()
        self.fixed_image_standard_deviation = 0.4
        self.moving_image_standard_deviation = 0.4
        self.block_size = PARZEN_BLOCK_SIZE

    def initialize(self, fixed, moving, transform, interpolator):
        super().initialize(fixed, moving, transform, interpolator)
        half = len(self._fixed_points) // 2
        self._set_b = np.zeros(len(self._fixed_points), dtype=bool)
        self._set_b[half:] = True

    @staticmethod
    def _kernel(rows: np.ndarray, columns: np.ndarray, sigma: float) -> np.ndarray:
        d = (rows[:, np.newaxis] - columns[np.newaxis, :]) / sigma
        return np.exp(-0.5 * d**2) / (np.sqrt(2 * np.pi) * sigma)

    def get_value(self, parameters):
        fixed_values, moving_values, inside, _ = self._sample(parameters)
        in_b = self._set_b[inside]
        if in_b.all() or not in_b.any():
            raise RegistrationEngineError("Too few samples mapped inside the moving image")
        sf = self.fixed_image_standard_deviation
        sm = self.moving_image_standard_deviation
        fixed_b, moving_b = fixed_values[in_b], moving_values[in_b]
        fixed_a, moving_a = fixed_values[~in_b], moving_values[~in_b]

        log_fixed = log_moving = log_joint = 0.0
        step = max(int(self.block_size), 1)
        for start in range(0, len(fixed_b), step):
            gf = self._kernel(fixed_b[start : start + step], fixed_a, sf)
            gm = self._kernel(moving_b[start : start + step], moving_a, sm)
            log_fixed += np.log(gf.mean(axis=1) + _EPS).sum()
            log_moving += np.log(gm.mean(axis=1) + _EPS).sum()
            log_joint += np.log((gf * gm).mean(axis=1) + _EPS).sum()

        n = len(fixed_b)
        return float((log_joint - log_fixed - log_moving) / n)


class MattesMutualInformationMetric(_SpatialSamplingMixin, SimilarityMeasure):
    """Mattes mutual information over a joint histogram. Higher is better.

    Fixed samples fall into hard bins. Moving samples are split linearly
    between the two nearest bins, which keeps the value continuous in the
    transform parameters.
    """

    name = "MattesMutualInformationImageToImageMetric"
    maximize = True
    padding = 2

    def __init__(self):
        super().__init__()
        self._init_sampling()
        self.number_of_histogram_bins = 50

    def initialize(self, fixed, moving, transform, interpolator):
        super().initialize(fixed, moving, transform, interpolator)
        usable = max(self.number_of_histogram_bins - 2 * self.padding, 1)
        self._fixed_min = float(fixed.array.min())
        self._moving_min = float(moving.array.min())
        self._fixed_bin_size = (float(fixed.array.max()) - self._fixed_min) / usable or 1.0
        self._moving_bin_size = (float(moving.array.max()) - self._moving_min) / usable or 1.0

    def _measure(self, fixed_values, moving_values):
        bins = self.number_of_histogram_bins
        fixed_bins = np.floor((fixed_values - self._fixed_min) / self._fixed_bin_size + self.padding)
        fixed_bins = np.clip(fixed_bins, 0, bins - 1).astype(np.intp)
        moving_position = (moving_values - self._moving_min) / self._moving_bin_size + self.padding
        moving_position = np.clip(moving_position, 0, bins - 1)
        lower = np.floor(moving_position).astype(np.intp)
        weight = moving_position - lower
        upper = np.minimum(lower + 1, bins - 1)
        joint = np.zeros((bins, bins))
        np.add.at(joint, (fixed_bins, lower), 1.0 - weight)
        np.add.at(joint, (fixed_bins, upper), weight)
        return _mutual_information(joint)


class MutualInformationHistogramMetric(SimilarityMeasure):
    """Mutual information from a hard-binned joint histogram. Higher is better."""

    name = "MutualInformationHistogramImageToImageMetric"
    maximize = True

    def __init__(self):
        super().__init__()
        self.histogram_size: tuple[int, int] = (256, 256)

    def _measure(self, fixed_values, moving_values):
        joint, _, _ = np.histogram2d(fixed_values, moving_values, bins=self.histogram_size)
        return _mutual_information(joint)


class NormalizedMutualInformationHistogramMetric(SimilarityMeasure):
    """Normalized mutual information ``(H(F) + H(M)) / H(F, M)``. Higher is better."""

    name = "NormalizedMutualInformationHistogramImageToImageMetric"
    maximize = True

    def __init__(self):
        super().__init__()
        self.histogram_size: tuple[int, int] = (256, 256)

    def _measure(self, fixed_values, moving_values):
        return float(
            normalized_mutual_information(fixed_values, moving_values, bins=self.histogram_size[0])
        )
