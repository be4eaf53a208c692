"""Tests for pyramidreg.io module."""

from pathlib import Path

import numpy as np
import pytest
import tifffile

from pyramidreg.io import Image, read_image, write_image
from pyramidreg.io.image import _cast


class TestTiff:
    """Tests for TIFF read/write through tifffile."""

    def test_read_casts_to_float64(self, tmp_path: Path):
        data = np.random.default_rng(0).integers(0, 255, (32, 48), dtype=np.uint8)
        path = tmp_path / "plane.tif"
        tifffile.imwrite(path, data)

        image = read_image(path)

        assert image.array.dtype == np.float64
        assert image.size == (48, 32)
        np.testing.assert_array_equal(image.array, data)
        np.testing.assert_array_equal(image.spacing, [1.0, 1.0])

    def test_write_creates_parent(self, tmp_path: Path):
        path = tmp_path / "nested" / "dir" / "out.tif"

        write_image(Image.from_array(np.ones((4, 5))), path)

        assert tifffile.imread(path).shape == (4, 5)

    def test_write_volume(self, tmp_path: Path):
        volume = np.arange(3 * 8 * 8, dtype=np.float64).reshape(3, 8, 8)
        path = tmp_path / "volume.tif"

        write_image(Image.from_array(volume), path)

        assert read_image(path).array.shape == (3, 8, 8)

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            read_image(tmp_path / "nope.tif")


class TestCast:
    def test_integer_cast_rounds_and_saturates(self):
        result = _cast(np.array([-100.0, 1.6, 300.0]), np.uint8)

        np.testing.assert_array_equal(result, [0, 2, 255])
        assert result.dtype == np.uint8

    def test_float_cast(self):
        assert _cast(np.array([1.5]), np.float32).dtype == np.float32


class TestGeometry:
    """Tests for Image index/physical mapping."""

    def test_round_trip(self):
        direction = np.array([[0.0, -1.0], [1.0, 0.0]])
        image = Image.from_array(np.zeros((10, 20)), spacing=(0.5, 2.0), origin=(3.0, -1.0), direction=direction)
        index = np.array([[1.0, 2.0], [7.5, 0.25]])

        np.testing.assert_allclose(image.physical_to_index(image.index_to_physical(index)), index)

    def test_grid_indices_order(self):
        """Indices are in ITK order and raveled like the array."""
        image = Image.from_array(np.arange(6).reshape(2, 3))

        indices = image.grid_indices()

        np.testing.assert_array_equal(indices[1], [1, 0])
        np.testing.assert_array_equal(indices[3], [0, 1])


class TestSimpleITKFormats:
    """Tests for geometry-carrying formats through SimpleITK."""

    def test_metaimage_preserves_geometry(self, tmp_path: Path):
        pytest.importorskip("SimpleITK", reason="SimpleITK required for MetaImage I/O")
        image = Image.from_array(
            np.random.default_rng(1).normal(size=(6, 7, 8)),
            spacing=(0.5, 0.75, 2.0),
            origin=(1.0, 2.0, 3.0),
        )
        path = tmp_path / "volume.mha"

        write_image(image, path)
        loaded = read_image(path)

        np.testing.assert_allclose(loaded.array, image.array)
        np.testing.assert_allclose(loaded.spacing, image.spacing)
        np.testing.assert_allclose(loaded.origin, image.origin)
        np.testing.assert_allclose(loaded.direction, np.eye(3))

    def test_integer_pixel_type(self, tmp_path: Path):
        pytest.importorskip("SimpleITK", reason="SimpleITK required for MetaImage I/O")
        path = tmp_path / "plane.mha"

        write_image(Image.from_array(np.array([[1.4, 2.6], [-3.0, 70000.0]])), path, pixel_type=np.uint16)

        np.testing.assert_array_equal(read_image(path, pixel_type=np.uint16).array, [[1, 3], [0, 65535]])
