"""pyramidreg: multi-resolution intensity-based image registration."""

from pyramidreg import io, pipeline, preprocessing, registration
from pyramidreg.errors import (
    ConfigurationError,
    RegistrationEngineError,
    UnsupportedStrategyError,
)
from pyramidreg.pipeline import (
    RegistrationConfig,
    RegistrationResult,
    SimilarityKind,
    TransformKind,
    register,
)

__version__ = "0.1.0"

__all__ = [
    # Subpackages
    "io",
    "pipeline",
    "preprocessing",
    "registration",
    # Running a registration
    "RegistrationConfig",
    "RegistrationResult",
    "SimilarityKind",
    "TransformKind",
    "register",
    # Errors
    "ConfigurationError",
    "RegistrationEngineError",
    "UnsupportedStrategyError",
    # Package metadata
    "__version__",
]
