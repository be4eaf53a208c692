"""Multi-resolution registration driver."""

from __future__ import annotations

import logging
from typing import Protocol

import numpy as np

from pyramidreg.errors import RegistrationEngineError
from pyramidreg.io.image import Image
from pyramidreg.registration.pyramid import PyramidSchedule, downsample

logger = logging.getLogger(__name__)


class LevelObserver(Protocol):
    def on_level_advance(self, registration: MultiResolutionRegistration) -> None: ...


class IterationObserver(Protocol):
    def on_iteration_complete(self, optimizer) -> None: ...


class MultiResolutionRegistration:
    """Coarse-to-fine registration of a moving image onto a fixed image.

    Components (metric, interpolator, optimizer, transform) are attached by
    the caller. ``run`` walks the pyramid schedule, notifying level
    observers before each level is optimized. Iteration observers are
    forwarded to the optimizer.
    """

    def __init__(self, dimension: int, pixel_type: type = np.float64):
        self.dimension = dimension
        self.pixel_type = pixel_type
        self.metric = None
        self.interpolator = None
        self.optimizer = None
        self.transform = None
        self.fixed_image: Image | None = None
        self.moving_image: Image | None = None
        self.fixed_region_size: tuple[int, ...] | None = None
        self.initial_parameters: np.ndarray | None = None
        self.schedule: PyramidSchedule | None = None
        self.current_level = 0
        self.last_parameters: np.ndarray | None = None
        self._level_observers: list[LevelObserver] = []
        self._iteration_observers: list[IterationObserver] = []

    @property
    def number_of_levels(self) -> int:
        return 0 if self.schedule is None else len(self.schedule)

    @property
    def fixed_region_pixel_count(self) -> int:
        return int(np.prod(self.fixed_region_size))

    def add_level_observer(self, observer: LevelObserver) -> None:
        self._level_observers.append(observer)

    def add_iteration_observer(self, observer: IterationObserver) -> None:
        self._iteration_observers.append(observer)

    def _check_ready(self) -> None:
        required = {
            "metric": self.metric,
            "interpolator": self.interpolator,
            "optimizer": self.optimizer,
            "transform": self.transform,
            "fixed image": self.fixed_image,
            "moving image": self.moving_image,
            "pyramid schedule": self.schedule,
        }
        for label, component in required.items():
            if component is None:
                raise RegistrationEngineError(f"The {label} is not present")

    def run(self) -> np.ndarray:
        """
        Optimize level by level from coarse to fine.

        Returns:
            Final transform parameters (also kept as ``last_parameters``).

        Raises:
            RegistrationEngineError: If a component is missing or the
                metric cannot be evaluated.
        """
        self._check_ready()
        if self.fixed_region_size is None:
            self.fixed_region_size = self.fixed_image.size
        position = (
            self.transform.parameters.copy()
            if self.initial_parameters is None
            else np.asarray(self.initial_parameters, dtype=np.float64).copy()
        )
        for observer in self._iteration_observers:
            if observer.on_iteration_complete not in self.optimizer.iteration_callbacks:
                self.optimizer.add_iteration_callback(observer.on_iteration_complete)

        for level in range(self.number_of_levels):
            self.current_level = level
            for observer in self._level_observers:
                observer.on_level_advance(self)
            factors = self.schedule[level]
            fixed_level = downsample(self.fixed_image, factors)
            moving_level = downsample(self.moving_image, factors)
            logger.debug(f"Level {level}: factors={factors}, fixed size={fixed_level.size}")
            self.metric.initialize(fixed_level, moving_level, self.transform, self.interpolator)
            position = self.optimizer.start_optimization(self.metric, position).copy()

        self.last_parameters = position
        self.transform.set_parameters(position)
        return position
