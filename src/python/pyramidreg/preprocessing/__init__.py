"""Image preprocessing applied before registration."""

from pyramidreg.preprocessing.normalization import zscore_normalize

__all__ = ["zscore_normalize"]
