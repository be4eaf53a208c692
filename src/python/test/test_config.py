"""Tests for pyramidreg.pipeline.config module."""

import logging
from pathlib import Path

import pytest

from pyramidreg.errors import ConfigurationError
from pyramidreg.pipeline.config import (
    RegistrationConfig,
    SimilarityKind,
    TransformKind,
    prepare_history,
)


def _options(**overrides):
    options = dict(
        dimensions=2,
        fixed_path="fixed.tif",
        moving_path="moving.tif",
        history_path="history.txt",
    )
    options.update(overrides)
    return options


class TestFromOptions:
    """Tests for clamping of raw option values."""

    def test_defaults(self):
        """Omitted options take the documented defaults."""
        config = RegistrationConfig.from_options(**_options())

        assert config.max_step == 5.0
        assert config.min_step == 1e-5
        assert config.sample_fraction == 0.1
        assert config.pyramid_levels == 3
        assert config.intensity_threshold is None
        assert config.similarity == SimilarityKind.NORMALIZED_CROSS_CORRELATION
        assert config.iterations == 500
        assert config.transform == TransformKind.EULER
        assert isinstance(config.fixed_path, Path)

    @pytest.mark.parametrize("fraction", [0.0, -0.5, 1.5])
    def test_sample_fraction_out_of_range(self, fraction, caplog):
        """Fractions outside (0, 1] become 0.1 with a warning."""
        with caplog.at_level(logging.WARNING):
            config = RegistrationConfig.from_options(**_options(sample_fraction=fraction))

        assert config.sample_fraction == 0.1
        assert "spatial sample fraction" in caplog.text

    def test_sample_fraction_one_is_kept(self):
        config = RegistrationConfig.from_options(**_options(sample_fraction=1.0))
        assert config.sample_fraction == 1.0

    @pytest.mark.parametrize("metric", [-1, 7, 42])
    def test_metric_out_of_range(self, metric, caplog):
        """Unknown metric numbers fall back to normalized cross correlation."""
        with caplog.at_level(logging.WARNING):
            config = RegistrationConfig.from_options(**_options(similarity=metric))

        assert config.similarity == SimilarityKind.NORMALIZED_CROSS_CORRELATION
        assert "Invalid similarity specifier" in caplog.text

    def test_metric_in_range(self):
        config = RegistrationConfig.from_options(**_options(similarity=4))
        assert config.similarity == SimilarityKind.MATTES_MUTUAL_INFORMATION

    def test_transform_out_of_range(self, caplog):
        with caplog.at_level(logging.WARNING):
            config = RegistrationConfig.from_options(**_options(transform=2))

        assert config.transform == TransformKind.EULER
        assert "Invalid transform specifier" in caplog.text

    def test_iterations_below_one(self, caplog):
        with caplog.at_level(logging.WARNING):
            config = RegistrationConfig.from_options(**_options(iterations=0))

        assert config.iterations == 500

    def test_clamps_are_independent(self):
        """Each bad option is clamped without touching the others."""
        config = RegistrationConfig.from_options(
            **_options(sample_fraction=2.0, similarity=9, iterations=25, transform=1)
        )

        assert config.sample_fraction == 0.1
        assert config.similarity == SimilarityKind.NORMALIZED_CROSS_CORRELATION
        assert config.iterations == 25
        assert config.transform == TransformKind.AFFINE


class TestValidate:
    """Tests for RegistrationConfig.validate."""

    def test_valid(self, constant_pair, make_config):
        make_config(constant_pair).validate()

    @pytest.mark.parametrize("dimensions", [0, 1, 4])
    def test_bad_dimensions(self, constant_pair, make_config, dimensions):
        with pytest.raises(ConfigurationError, match="dimensions"):
            make_config(constant_pair, dimensions=dimensions).validate()

    def test_missing_image(self, tmp_path, constant_pair, make_config):
        config = make_config((constant_pair[0], tmp_path / "nope.tif"))

        with pytest.raises(ConfigurationError, match="moving image"):
            config.validate()

    def test_affine_2d_rejected(self, constant_pair, make_config):
        """Unsupported (dimension, transform) pairs fail before any pipeline work."""
        config = make_config(constant_pair, transform=TransformKind.AFFINE)

        with pytest.raises(ConfigurationError, match="unsupported transformation"):
            config.validate()

    @pytest.mark.parametrize(
        "dimensions, transform, expected",
        [
            (2, TransformKind.EULER, "Euler2DTransform"),
            (3, TransformKind.EULER, "Euler3DTransform"),
            (3, TransformKind.AFFINE, "AffineTransform"),
        ],
    )
    def test_variants(self, constant_pair, make_config, dimensions, transform, expected):
        config = make_config(constant_pair, dimensions=dimensions, transform=transform)
        assert config.variant.transform_name == expected
        assert config.variant.dimension == dimensions


class TestPrepareHistory:
    """Tests for prepare_history."""

    def test_truncates_existing(self, tmp_path):
        path = tmp_path / "history.txt"
        path.write_text("old run\n")

        prepare_history(path)

        assert path.read_text() == ""

    def test_unwritable(self, tmp_path):
        """A directory in place of the history file is a configuration error."""
        with pytest.raises(ConfigurationError, match="history file"):
            prepare_history(tmp_path)
