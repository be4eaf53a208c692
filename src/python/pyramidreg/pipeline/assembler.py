"""Pipeline assembly: build, wire and run one registration attempt."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from pyramidreg.errors import ConfigurationError, RegistrationEngineError, UnsupportedStrategyError
from pyramidreg.io.image import Image, read_image, write_image
from pyramidreg.pipeline.config import (
    NORMALIZED_INPUT_SIMILARITIES,
    PipelineVariant,
    RegistrationConfig,
    TransformKind,
    prepare_history,
)
from pyramidreg.pipeline.controller import LevelTransitionController
from pyramidreg.pipeline.dispatch import OPTIMIZER_TAG, dispatch_strategies
from pyramidreg.pipeline.history import HistorySink, IterationLogger, format_vector
from pyramidreg.pipeline.logging import log_step
from pyramidreg.preprocessing.normalization import zscore_normalize
from pyramidreg.registration.interpolators import resample
from pyramidreg.registration.method import MultiResolutionRegistration
from pyramidreg.registration.pyramid import build_schedule
from pyramidreg.registration.transforms import (
    AffineTransform,
    Euler2DTransform,
    Euler3DTransform,
    Transform,
    initialize_from_moments,
)

logger = logging.getLogger(__name__)

OUTSIDE_PIXEL_VALUE = -100.0


@dataclass
class RegistrationResult:
    """Outcome of one registration attempt.

    ``status`` is ``"success"``, ``"unsupported: <reason>"`` or
    ``"error: <reason>"``. Transform fields are only set on success.
    """

    status: str
    parameters: np.ndarray | None = None
    matrix: np.ndarray | None = None
    offset: np.ndarray | None = None
    stop_condition: str | None = None
    number_of_levels: int = 0

    @property
    def succeeded(self) -> bool:
        return self.status == "success"


def create_transform(variant: PipelineVariant) -> Transform:
    if variant.transform == TransformKind.AFFINE:
        return AffineTransform(variant.dimension)
    elif variant.dimension == 2:
        return Euler2DTransform()
    else:
        return Euler3DTransform()


class RegistrationAssembler:
    """Builds the registration pipeline for a validated config and runs it.

    Steps run in a fixed order; each is logged with timing. Unsupported
    strategies and engine failures abort the attempt and are reported in
    the returned ``RegistrationResult``. Nothing is retried.
    """

    def __init__(self, config: RegistrationConfig, run_id: str | None = None):
        self.config = config
        self.variant = config.variant
        self.run_id = run_id or config.moving_path.stem
        self.registration: MultiResolutionRegistration | None = None
        self.fixed_raw: Image | None = None
        self.moving_raw: Image | None = None

    @log_step
    def build_pipeline(self) -> None:
        self.registration = MultiResolutionRegistration(
            self.variant.dimension, self.variant.pixel_type
        )

    @log_step
    def dispatch(self) -> None:
        dispatch_strategies(self.config, self.registration)
        if self.registration.optimizer is None:
            raise UnsupportedStrategyError(
                OPTIMIZER_TAG, self.config.optimizer, "No optimizer attached to the pipeline"
            )

    @log_step
    def load_images(self) -> None:
        """Read both images; normalize them when the measure expects it."""
        self.fixed_raw = read_image(self.config.fixed_path, self.variant.pixel_type)
        self.moving_raw = read_image(self.config.moving_path, self.variant.pixel_type)
        for label, image in (("fixed", self.fixed_raw), ("moving", self.moving_raw)):
            if image.dimension != self.variant.dimension:
                raise RegistrationEngineError(
                    f"The {label} image is {image.dimension}D, expected {self.variant.dimension}D"
                )

        if self.config.similarity in NORMALIZED_INPUT_SIMILARITIES:
            logger.info("Normalizing input images to zero mean and unit variance")
            self.registration.fixed_image = zscore_normalize(self.fixed_raw)
            self.registration.moving_image = zscore_normalize(self.moving_raw)
        else:
            self.registration.fixed_image = self.fixed_raw
            self.registration.moving_image = self.moving_raw

    @log_step
    def set_region(self) -> None:
        self.registration.fixed_region_size = self.registration.fixed_image.size

    @log_step
    def initialize_transform(self) -> None:
        transform = create_transform(self.variant)
        initialize_from_moments(transform, self.fixed_raw, self.moving_raw)
        self.registration.transform = transform
        self.registration.initial_parameters = transform.parameters.copy()
        logger.info(f"Initial transform parameters: {format_vector(transform.parameters)}")

    @log_step
    def initialize_scales(self) -> None:
        n = self.registration.transform.number_of_parameters
        self.registration.optimizer.scales = np.ones(n)

    @log_step
    def build_pyramid(self) -> None:
        self.registration.schedule = build_schedule(
            self.registration.fixed_image.size, self.config.pyramid_levels
        )

    def register_observers(self, sink: HistorySink) -> None:
        controller = LevelTransitionController(
            self.config.similarity, self.config.sample_fraction, sink
        )
        self.registration.add_level_observer(controller)
        self.registration.add_iteration_observer(IterationLogger(sink))

    @log_step
    def execute(self) -> None:
        try:
            self.registration.run()
        except (ConfigurationError, RegistrationEngineError):
            raise
        except Exception as e:
            raise RegistrationEngineError(f"{type(e).__name__}: {e}") from e

    def report(self, sink: HistorySink) -> RegistrationResult:
        """Materialize the final transform and write it to history and console."""
        transform = self.registration.transform
        transform.set_parameters(self.registration.last_parameters)
        result = RegistrationResult(
            status="success",
            parameters=transform.parameters.copy(),
            matrix=transform.matrix.copy(),
            offset=transform.offset.copy(),
            stop_condition=self.registration.optimizer.stop_condition,
            number_of_levels=self.registration.number_of_levels,
        )
        lines = [
            f"Optimizer stop condition: {result.stop_condition}",
            f"Final parameters: {format_vector(result.parameters)}",
            f"Final matrix: {format_vector(result.matrix)}",
            f"Offset: {format_vector(result.offset)}",
        ]
        for line in lines:
            logger.info(line)
        try:
            sink.write_lines(lines)
        except OSError as e:
            logger.warning(f"Could not write final transform to {sink.path}: {e}")
        return result

    @log_step
    def write_output(self) -> None:
        """Resample the moving image onto the fixed grid with the final transform."""
        resampled = resample(
            self.moving_raw,
            self.fixed_raw,
            self.registration.transform,
            self.registration.interpolator,
            default_value=OUTSIDE_PIXEL_VALUE,
        )
        write_image(resampled, self.config.output_path, pixel_type=self.variant.pixel_type)
        logger.info(f"Wrote registered image to {self.config.output_path}")

    def assemble(self) -> RegistrationResult:
        """
        Run every assembly step and the registration itself.

        Returns:
            RegistrationResult. Unsupported strategies and engine errors are
            reported through ``status`` rather than raised.
        """
        try:
            self.build_pipeline()
            self.dispatch()
            self.load_images()
            self.set_region()
            self.initialize_transform()
            self.initialize_scales()
            self.build_pyramid()
            with HistorySink(self.config.history_path) as sink:
                self.register_observers(sink)
                self.execute()
                result = self.report(sink)
            if self.config.output_path is not None:
                self.write_output()
            return result
        except UnsupportedStrategyError as e:
            logger.error(f"Registration aborted: {e}")
            return RegistrationResult(status=f"unsupported: {e}")
        except RegistrationEngineError as e:
            logger.exception(f"Registration failed: {e}")
            return RegistrationResult(status=f"error: {e}")


def register(config: RegistrationConfig) -> RegistrationResult:
    """
    Validate ``config``, reset its history file and run one registration.

    Raises:
        ConfigurationError: If the config is invalid or the history file is
            not writable.
    """
    config.validate()
    prepare_history(config.history_path)
    return RegistrationAssembler(config).assemble()
