"""Tests for pyramidreg.registration.optimizers module."""

import numpy as np
import pytest

from pyramidreg.errors import RegistrationEngineError
from pyramidreg.registration.optimizers import RegularStepGradientDescentOptimizer


class Quadratic:
    """f(p) = sign * sum((p - target)^2)."""

    def __init__(self, target, sign=1.0):
        self.target = np.asarray(target, dtype=np.float64)
        self.sign = sign
        self.evaluations = 0

    def get_value_and_derivative(self, parameters):
        self.evaluations += 1
        diff = np.asarray(parameters) - self.target
        return self.sign * float(np.sum(diff**2)), self.sign * 2.0 * diff


class Flat:
    def get_value_and_derivative(self, parameters):
        return 1.0, np.zeros(len(parameters))


def _optimizer(**settings) -> RegularStepGradientDescentOptimizer:
    optimizer = RegularStepGradientDescentOptimizer()
    optimizer.maximum_step_length = 1.0
    optimizer.minimum_step_length = 1e-4
    optimizer.number_of_iterations = 200
    for name, value in settings.items():
        setattr(optimizer, name, value)
    return optimizer


class TestRegularStepGradientDescent:
    """Tests for RegularStepGradientDescentOptimizer."""

    def test_minimizes_quadratic(self):
        optimizer = _optimizer()

        result = optimizer.start_optimization(Quadratic([3.0, -4.0]), np.zeros(2))

        np.testing.assert_allclose(result, [3.0, -4.0], atol=1e-3)
        assert optimizer.stop_condition is not None

    def test_maximize(self):
        optimizer = _optimizer(maximize=True)

        result = optimizer.start_optimization(Quadratic([-2.0, 1.0], sign=-1.0), np.zeros(2))

        np.testing.assert_allclose(result, [-2.0, 1.0], atol=1e-3)

    def test_first_step_has_maximum_length(self):
        optimizer = _optimizer(number_of_iterations=1)

        result = optimizer.start_optimization(Quadratic([30.0, 40.0]), np.zeros(2))

        np.testing.assert_allclose(result, [0.6, 0.8])

    def test_iteration_cap(self):
        calls = []
        optimizer = _optimizer(number_of_iterations=3, maximum_step_length=0.01)
        optimizer.add_iteration_callback(lambda opt: calls.append(opt.current_iteration))

        optimizer.start_optimization(Quadratic([100.0]), np.zeros(1))

        assert calls == [0, 1, 2]
        assert optimizer.stop_condition.startswith("Maximum number of iterations (3)")

    def test_converged_evaluation_fires_callback(self):
        """A zero gradient stops at once but still reports the iteration."""
        calls = []
        optimizer = _optimizer()
        optimizer.add_iteration_callback(lambda opt: calls.append((opt.current_iteration, opt.value)))

        result = optimizer.start_optimization(Flat(), np.array([1.0, 2.0]))

        assert calls == [(0, 1.0)]
        assert optimizer.stop_condition.startswith("Gradient magnitude tolerance")
        np.testing.assert_array_equal(result, [1.0, 2.0])

    def test_relaxation_on_reversal(self):
        """Overshooting a minimum shrinks the step by the relaxation factor."""
        optimizer = _optimizer(maximum_step_length=3.0, relaxation_factor=0.5, number_of_iterations=2)

        optimizer.start_optimization(Quadratic([1.0]), np.zeros(1))

        assert optimizer.current_step_length == pytest.approx(1.5)

    def test_step_too_small(self):
        optimizer = _optimizer(maximum_step_length=1.0, minimum_step_length=0.3, relaxation_factor=0.5)

        optimizer.start_optimization(Quadratic([0.25]), np.zeros(1))

        assert optimizer.stop_condition.startswith("Step too small")

    def test_scales_weight_the_step(self):
        """Small scales make a parameter take most of the step."""
        optimizer = _optimizer(number_of_iterations=1, scales=np.array([1.0, 1e-3]))

        result = optimizer.start_optimization(Quadratic([1.0, 1.0]), np.zeros(2))

        assert abs(result[1]) > 100 * abs(result[0])

    def test_scale_length_mismatch(self):
        optimizer = _optimizer(scales=np.ones(3))

        with pytest.raises(RegistrationEngineError, match="scales"):
            optimizer.start_optimization(Quadratic([0.0, 0.0]), np.ones(2))

    def test_restart_resets_step_length(self):
        optimizer = _optimizer(maximum_step_length=2.0)
        optimizer.start_optimization(Quadratic([0.5]), np.zeros(1))
        assert optimizer.current_step_length < 2.0

        optimizer.number_of_iterations = 1
        optimizer.start_optimization(Quadratic([10.0]), np.zeros(1))

        assert optimizer.current_step_length == 2.0
