"""Pytest fixtures for pyramidreg tests."""

import logging
from pathlib import Path

import numpy as np
import pytest

from pyramidreg.pipeline.config import RegistrationConfig
from pyramidreg.testing.synthetic import (
    PhantomConfig,
    make_constant_image,
    make_phantom,
    misalign,
    write_pair,
)


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Undo console handlers installed by CLI runs so caplog keeps working."""
    yield
    package_logger = logging.getLogger("pyramidreg")
    package_logger.handlers.clear()
    package_logger.propagate = True
    package_logger.setLevel(logging.NOTSET)


@pytest.fixture
def phantom() -> np.ndarray:
    """128x128 blob phantom."""
    return make_phantom(PhantomConfig(shape=(128, 128), seed=7))


@pytest.fixture
def constant_pair(tmp_path: Path) -> tuple[Path, Path]:
    """Two identical 64x64 constant images written as TIFF."""
    image = make_constant_image((64, 64), value=100.0)
    return write_pair(tmp_path / "constant", image, image.copy(), suffix=".tif")


@pytest.fixture
def shifted_pair(tmp_path: Path, phantom: np.ndarray) -> tuple[Path, Path]:
    """Phantom and a copy translated by +3 pixels along x."""
    moving = misalign(phantom, (0.0, 3.0))
    return write_pair(tmp_path / "shifted", phantom, moving, suffix=".tif")


@pytest.fixture
def make_config(tmp_path: Path):
    """Factory for configs pointing at a fixed/moving pair."""

    def _make(pair: tuple[Path, Path], dimensions: int = 2, **kwargs) -> RegistrationConfig:
        fixed, moving = pair
        return RegistrationConfig(
            dimensions=dimensions,
            fixed_path=fixed,
            moving_path=moving,
            history_path=tmp_path / "history.txt",
            **kwargs,
        )

    return _make
