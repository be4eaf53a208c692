"""Centered parametric transforms and moments-based initialization.

Parameter layouts follow the ITK conventions so that optimizer scales and
history files line up with other ITK tooling:

- ``Euler2DTransform``: ``[angle, tx, ty]``
- ``Euler3DTransform``: ``[rx, ry, rz, tx, ty, tz]``, rotation ``Rz @ Rx @ Ry``
- ``AffineTransform``: row-major matrix followed by translation

All map a fixed-image physical point ``x`` to the moving image as
``T(x) = A (x - c) + c + t``.
"""

from __future__ import annotations

import numpy as np
from scipy.ndimage import center_of_mass

from pyramidreg.errors import RegistrationEngineError
from pyramidreg.io.image import Image


class Transform:
    """Base class for centered linear transforms."""

    name = "Transform"

    def __init__(self, dimension: int):
        self.dimension = dimension
        self.center = np.zeros(dimension)
        self.parameters = self.identity_parameters()

    @property
    def number_of_parameters(self) -> int:
        return int(self.parameters.size)

    def identity_parameters(self) -> np.ndarray:
        raise NotImplementedError

    def set_parameters(self, parameters: np.ndarray) -> None:
        parameters = np.asarray(parameters, dtype=np.float64)
        if parameters.shape != self.parameters.shape:
            raise RegistrationEngineError(
                f"{self.name} expects {self.number_of_parameters} parameters, "
                f"got {parameters.size}"
            )
        self.parameters = parameters.copy()

    @property
    def matrix(self) -> np.ndarray:
        raise NotImplementedError

    @property
    def translation(self) -> np.ndarray:
        raise NotImplementedError

    def set_translation(self, translation: np.ndarray) -> None:
        raise NotImplementedError

    @property
    def offset(self) -> np.ndarray:
        """Translation of the equivalent uncentered ``A x + offset`` form."""
        return self.center + self.translation - self.matrix @ self.center

    def transform_points(self, points: np.ndarray) -> np.ndarray:
        points = np.asarray(points, dtype=np.float64)
        return (points - self.center) @ self.matrix.T + self.center + self.translation

    def jacobian(self, points: np.ndarray) -> np.ndarray:
        """Derivative of mapped points w.r.t. parameters, shape ``(N, D, P)``."""
        raise NotImplementedError

    def _translation_jacobian(self, n_points: int) -> np.ndarray:
        return np.broadcast_to(np.eye(self.dimension), (n_points, self.dimension, self.dimension))


class Euler2DTransform(Transform):
    """Rigid 2D transform: rotation angle (radians) then translation."""

    name = "Euler2DTransform"

    def __init__(self):
        super().__init__(2)

    def identity_parameters(self) -> np.ndarray:
        return np.zeros(3)

    @property
    def matrix(self) -> np.ndarray:
        c, s = np.cos(self.parameters[0]), np.sin(self.parameters[0])
        return np.array([[c, -s], [s, c]])

    @property
    def translation(self) -> np.ndarray:
        return self.parameters[1:3]

    def set_translation(self, translation: np.ndarray) -> None:
        self.parameters[1:3] = translation

    def jacobian(self, points: np.ndarray) -> np.ndarray:
        centered = np.asarray(points, dtype=np.float64) - self.center
        c, s = np.cos(self.parameters[0]), np.sin(self.parameters[0])
        d_rotation = np.array([[-s, -c], [c, -s]])
        jac = np.empty((len(centered), 2, 3))
        jac[:, :, 0] = centered @ d_rotation.T
        jac[:, :, 1:] = self._translation_jacobian(len(centered))
        return jac


def _axis_rotations(angles: np.ndarray) -> tuple[list[np.ndarray], list[np.ndarray]]:
    """Rotation matrices about x, y, z and their angle derivatives."""
    cx, cy, cz = np.cos(angles)
    sx, sy, sz = np.sin(angles)
    rotations = [
        np.array([[1, 0, 0], [0, cx, -sx], [0, sx, cx]]),
        np.array([[cy, 0, sy], [0, 1, 0], [-sy, 0, cy]]),
        np.array([[cz, -sz, 0], [sz, cz, 0], [0, 0, 1]]),
    ]
    derivatives = [
        np.array([[0, 0, 0], [0, -sx, -cx], [0, cx, -sx]]),
        np.array([[-sy, 0, cy], [0, 0, 0], [-cy, 0, -sy]]),
        np.array([[-sz, -cz, 0], [cz, -sz, 0], [0, 0, 0]]),
    ]
    return rotations, derivatives


class Euler3DTransform(Transform):
    """Rigid 3D transform: three rotation angles then translation."""

    name = "Euler3DTransform"

    def __init__(self):
        super().__init__(3)

    def identity_parameters(self) -> np.ndarray:
        return np.zeros(6)

    @property
    def matrix(self) -> np.ndarray:
        (rx, ry, rz), _ = _axis_rotations(self.parameters[:3])
        return rz @ rx @ ry

    @property
    def translation(self) -> np.ndarray:
        return self.parameters[3:6]

    def set_translation(self, translation: np.ndarray) -> None:
        self.parameters[3:6] = translation

    def jacobian(self, points: np.ndarray) -> np.ndarray:
        centered = np.asarray(points, dtype=np.float64) - self.center
        (rx, ry, rz), (drx, dry, drz) = _axis_rotations(self.parameters[:3])
        partials = [rz @ drx @ ry, rz @ rx @ dry, drz @ rx @ ry]
        jac = np.empty((len(centered), 3, 6))
        for k, partial in enumerate(partials):
            jac[:, :, k] = centered @ partial.T
        jac[:, :, 3:] = self._translation_jacobian(len(centered))
        return jac


class AffineTransform(Transform):
    """General linear map plus translation."""

    name = "AffineTransform"

    def identity_parameters(self) -> np.ndarray:
        return np.concatenate([np.eye(self.dimension).ravel(), np.zeros(self.dimension)])

    @property
    def matrix(self) -> np.ndarray:
        d = self.dimension
        return self.parameters[: d * d].reshape(d, d)

    @property
    def translation(self) -> np.ndarray:
        return self.parameters[self.dimension * self.dimension :]

    def set_translation(self, translation: np.ndarray) -> None:
        self.parameters[self.dimension * self.dimension :] = translation

    def jacobian(self, points: np.ndarray) -> np.ndarray:
        centered = np.asarray(points, dtype=np.float64) - self.center
        d = self.dimension
        jac = np.zeros((len(centered), d, d * d + d))
        for i in range(d):
            jac[:, i, i * d : (i + 1) * d] = centered
        jac[:, :, d * d :] = self._translation_jacobian(len(centered))
        return jac


def image_center_of_mass(image: Image) -> np.ndarray:
    """Intensity-weighted centroid of an image in physical coordinates.

    Raises:
        RegistrationEngineError: If the total image mass is zero.
    """
    if image.array.sum() == 0:
        raise RegistrationEngineError("Total mass of the image was zero")
    index = np.asarray(center_of_mass(image.array))[::-1]
    return image.index_to_physical(index[np.newaxis])[0]


def initialize_from_moments(transform: Transform, fixed: Image, moving: Image) -> np.ndarray:
    """Center ``transform`` on the fixed image and align the centers of mass.

    The rotation or matrix part is left at identity. Returns the resulting
    parameter vector.
    """
    fixed_center = image_center_of_mass(fixed)
    moving_center = image_center_of_mass(moving)
    transform.center = fixed_center
    transform.set_parameters(transform.identity_parameters())
    transform.set_translation(moving_center - fixed_center)
    return transform.parameters.copy()
