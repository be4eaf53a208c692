"""Image container and file I/O using SimpleITK (tifffile for plain TIFF)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import numpy as np
import tifffile

logger = logging.getLogger(__name__)

TIFF_SUFFIXES = (".tif", ".tiff")


def _import_sitk():
    """Lazy import SimpleITK with helpful error message."""
    try:
        import SimpleITK as sitk
        return sitk
    except ImportError:
        raise ImportError(
            "SimpleITK required for medical image formats. "
            "Install with: pip install SimpleITK"
        )


@dataclass
class Image:
    """In-memory image with physical geometry.

    ``array`` is stored in numpy axis order (Z, Y, X) or (Y, X). ``origin``,
    ``spacing`` and ``direction`` follow ITK axis order (x, y[, z]), so
    ``size`` is ``array.shape`` reversed.
    """

    array: np.ndarray
    origin: np.ndarray
    spacing: np.ndarray
    direction: np.ndarray

    @classmethod
    def from_array(
        cls,
        array: np.ndarray,
        spacing: tuple[float, ...] | None = None,
        origin: tuple[float, ...] | None = None,
        direction: np.ndarray | None = None,
    ) -> Image:
        """Wrap an array with unit spacing, zero origin and identity direction by default."""
        array = np.asarray(array)
        ndim = array.ndim
        return cls(
            array=array,
            origin=np.zeros(ndim) if origin is None else np.asarray(origin, dtype=np.float64),
            spacing=np.ones(ndim) if spacing is None else np.asarray(spacing, dtype=np.float64),
            direction=(
                np.eye(ndim)
                if direction is None
                else np.asarray(direction, dtype=np.float64).reshape(ndim, ndim)
            ),
        )

    @property
    def dimension(self) -> int:
        return self.array.ndim

    @property
    def size(self) -> tuple[int, ...]:
        """Image extent in ITK axis order."""
        return tuple(int(s) for s in self.array.shape[::-1])

    @property
    def number_of_pixels(self) -> int:
        return int(self.array.size)

    @property
    def pixel_type(self) -> np.dtype:
        return self.array.dtype

    def with_array(self, array: np.ndarray) -> Image:
        """New image sharing this geometry."""
        return Image(
            array=array,
            origin=self.origin.copy(),
            spacing=self.spacing.copy(),
            direction=self.direction.copy(),
        )

    def index_to_physical(self, index: np.ndarray) -> np.ndarray:
        """Map continuous indices ``(N, D)`` in ITK order to physical points."""
        return self.origin + (np.asarray(index, dtype=np.float64) * self.spacing) @ self.direction.T

    def physical_to_index(self, points: np.ndarray) -> np.ndarray:
        """Map physical points ``(N, D)`` to continuous indices in ITK order."""
        inverse = np.linalg.inv(self.direction)
        return ((np.asarray(points, dtype=np.float64) - self.origin) @ inverse.T) / self.spacing

    def grid_indices(self) -> np.ndarray:
        """All pixel indices ``(N, D)`` in ITK order, raveled like ``array``."""
        grids = np.meshgrid(*[np.arange(s) for s in self.array.shape], indexing="ij")
        numpy_order = np.stack([g.ravel() for g in grids], axis=1)
        return numpy_order[:, ::-1].astype(np.float64)


def read_image(path: Path | str, pixel_type: type = np.float64) -> Image:
    """
    Read an image file into memory, cast to ``pixel_type``.

    MetaImage, NIfTI, NRRD and the other SimpleITK formats keep their
    geometry. Plain TIFF stacks are read with tifffile and get unit spacing.

    Args:
        path: Path to the image file.
        pixel_type: numpy dtype of the returned array.

    Returns:
        Image with geometry.

    Raises:
        FileNotFoundError: If the file does not exist.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Image file not found: {path}")

    if path.suffix.lower() in TIFF_SUFFIXES:
        data = tifffile.imread(path)
        logger.debug(f"Loaded {path} with tifffile, shape={data.shape}")
        return Image.from_array(data.astype(pixel_type))

    sitk = _import_sitk()
    itk_image = sitk.ReadImage(str(path))
    ndim = itk_image.GetDimension()
    image = Image(
        array=sitk.GetArrayFromImage(itk_image).astype(pixel_type),
        origin=np.asarray(itk_image.GetOrigin(), dtype=np.float64),
        spacing=np.asarray(itk_image.GetSpacing(), dtype=np.float64),
        direction=np.asarray(itk_image.GetDirection(), dtype=np.float64).reshape(ndim, ndim),
    )
    logger.debug(f"Loaded {path} with SimpleITK, size={image.size}, spacing={tuple(image.spacing)}")
    return image


def _cast(array: np.ndarray, dtype: np.dtype) -> np.ndarray:
    """Cast with rounding and saturation for integer targets."""
    dtype = np.dtype(dtype)
    if np.issubdtype(dtype, np.integer):
        info = np.iinfo(dtype)
        return np.clip(np.rint(array), info.min, info.max).astype(dtype)
    return array.astype(dtype)


def write_image(image: Image, path: Path | str, pixel_type: type | None = None) -> None:
    """
    Write an image to disk after casting to ``pixel_type``.

    Args:
        image: Image to write.
        path: Output path; the suffix selects the file format.
        pixel_type: Target dtype. Defaults to the image's own dtype.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    data = _cast(image.array, pixel_type or image.pixel_type)

    if path.suffix.lower() in TIFF_SUFFIXES:
        tifffile.imwrite(path, data)
        return

    sitk = _import_sitk()
    itk_image = sitk.GetImageFromArray(data)
    itk_image.SetOrigin(tuple(float(v) for v in image.origin))
    itk_image.SetSpacing(tuple(float(v) for v in image.spacing))
    itk_image.SetDirection(tuple(float(v) for v in image.direction.ravel()))
    sitk.WriteImage(itk_image, str(path))
    logger.debug(f"Wrote {path} ({data.dtype})")
