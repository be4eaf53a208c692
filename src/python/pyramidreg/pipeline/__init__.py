"""Registration orchestration: configuration, dispatch, assembly and control."""

from pyramidreg.pipeline.assembler import RegistrationAssembler, RegistrationResult, register
from pyramidreg.pipeline.config import (
    InterpolatorKind,
    OptimizerKind,
    RegistrationConfig,
    SimilarityKind,
    TransformKind,
    prepare_history,
)
from pyramidreg.pipeline.controller import LevelTransitionController, transform_scales
from pyramidreg.pipeline.dispatch import dispatch_strategies
from pyramidreg.pipeline.history import HistorySink, IterationLogger

__all__ = [
    "HistorySink",
    "InterpolatorKind",
    "IterationLogger",
    "LevelTransitionController",
    "OptimizerKind",
    "RegistrationAssembler",
    "RegistrationConfig",
    "RegistrationResult",
    "SimilarityKind",
    "TransformKind",
    "dispatch_strategies",
    "prepare_history",
    "register",
    "transform_scales",
]
