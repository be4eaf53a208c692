"""Regular-step gradient descent, ITK v3 flavour."""

from __future__ import annotations

import logging
from collections.abc import Callable

import numpy as np

from pyramidreg.errors import RegistrationEngineError

logger = logging.getLogger(__name__)


class RegularStepGradientDescentOptimizer:
    """Gradient descent with a step length that relaxes on direction reversal.

    Each iteration moves ``current_step_length`` along the scaled gradient.
    When the new gradient points against the previous one the step is
    multiplied by ``relaxation_factor``. Optimization stops when the step
    falls below ``minimum_step_length``, the scaled gradient magnitude falls
    below ``gradient_magnitude_tolerance``, or ``number_of_iterations`` is
    reached.

    Iteration callbacks receive the optimizer after every cost evaluation,
    including the evaluation that triggers convergence.
    """

    name = "RegularStepGradientDescentOptimizer"

    def __init__(self):
        self.maximum_step_length = 1.0
        self.minimum_step_length = 1e-3
        self.number_of_iterations = 100
        self.relaxation_factor = 0.5
        self.gradient_magnitude_tolerance = 1e-4
        self.maximize = False
        self.scales: np.ndarray | None = None

        self.current_iteration = 0
        self.current_step_length = 0.0
        self.current_position: np.ndarray | None = None
        self.value = 0.0
        self.gradient: np.ndarray | None = None
        self.stop_condition: str | None = None
        self.iteration_callbacks: list[Callable[[RegularStepGradientDescentOptimizer], None]] = []

    def add_iteration_callback(
        self, callback: Callable[[RegularStepGradientDescentOptimizer], None]
    ) -> None:
        self.iteration_callbacks.append(callback)

    def _resolve_scales(self, n_parameters: int) -> np.ndarray:
        if self.scales is None:
            return np.ones(n_parameters)
        scales = np.asarray(self.scales, dtype=np.float64)
        if scales.size != n_parameters:
            raise RegistrationEngineError(
                f"Optimizer scales have {scales.size} entries, transform has {n_parameters} parameters"
            )
        if np.any(scales == 0):
            raise RegistrationEngineError("Optimizer scales must be non-zero")
        return scales

    def start_optimization(self, cost_function, initial_position: np.ndarray) -> np.ndarray:
        """
        Run the descent from ``initial_position``.

        Args:
            cost_function: Object with ``get_value_and_derivative(parameters)``.
            initial_position: Starting parameter vector.

        Returns:
            Final parameter vector (also kept as ``current_position``).
        """
        self.current_position = np.asarray(initial_position, dtype=np.float64).copy()
        scales = self._resolve_scales(self.current_position.size)
        self.current_step_length = self.maximum_step_length
        self.current_iteration = 0
        self.gradient = np.zeros_like(self.current_position)
        self.stop_condition = None

        while self.stop_condition is None:
            if self.current_iteration >= self.number_of_iterations:
                self.stop_condition = (
                    f"Maximum number of iterations ({self.number_of_iterations}) exceeded."
                )
                break
            previous_gradient = self.gradient
            self.value, self.gradient = cost_function.get_value_and_derivative(self.current_position)
            self.gradient = np.asarray(self.gradient, dtype=np.float64)
            self._advance_one_step(previous_gradient, scales)
            for callback in self.iteration_callbacks:
                callback(self)
            self.current_iteration += 1

        logger.debug(f"{self.name} stopped: {self.stop_condition}")
        return self.current_position

    def _advance_one_step(self, previous_gradient: np.ndarray, scales: np.ndarray) -> None:
        transformed = self.gradient / scales
        previous_transformed = previous_gradient / scales
        magnitude = float(np.sqrt(np.sum(transformed**2)))

        if magnitude < self.gradient_magnitude_tolerance:
            self.stop_condition = (
                f"Gradient magnitude tolerance met after {self.current_iteration} iterations. "
                f"Gradient magnitude ({magnitude:g}) is less than gradient magnitude tolerance "
                f"({self.gradient_magnitude_tolerance:g})."
            )
            return

        if float(np.dot(transformed, previous_transformed)) < 0:
            self.current_step_length *= self.relaxation_factor

        if self.current_step_length < self.minimum_step_length:
            self.stop_condition = (
                f"Step too small after {self.current_iteration} iterations. "
                f"Current step ({self.current_step_length:g}) is less than minimum step "
                f"({self.minimum_step_length:g})."
            )
            return

        direction = 1.0 if self.maximize else -1.0
        factor = direction * self.current_step_length / magnitude
        self.current_position = self.current_position + transformed * factor
