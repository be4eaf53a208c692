"""Command-line entry point.

Usage:
    pyramidreg DIMENSIONS TARGET MOVING HISTORY [MAXSTEP] [MINSTEP]
        [SAMPLEFRACTION] [PYRAMIDLEVELS] [THRESHOLD] [METRIC] [ITERATIONS]
        [TRANSFORM] [-o OUTPUT]
"""

import argparse
import logging
import sys
from pathlib import Path

from pyramidreg.errors import ConfigurationError
from pyramidreg.pipeline.assembler import register
from pyramidreg.pipeline.config import RegistrationConfig, SimilarityKind, TransformKind
from pyramidreg.pipeline.logging import setup_logging

logger = logging.getLogger(__name__)

METRIC_HELP = ", ".join(f"{k.value}={k.label}" for k in SimilarityKind)
TRANSFORM_HELP = ", ".join(f"{k.value}={k.name.capitalize()}" for k in TransformKind)


class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message):
        self.print_usage(sys.stderr)
        sys.stderr.write(f"{self.prog}: error: {message}\n")
        sys.exit(1)


def build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="pyramidreg",
        description="Multi-resolution intensity-based registration of a moving image onto a target image",
    )
    parser.add_argument("dimensions", type=int, help="Image dimensionality (2 or 3)")
    parser.add_argument("target", type=Path, help="Fixed (target) image")
    parser.add_argument("moving", type=Path, help="Moving image")
    parser.add_argument("history", type=Path, help="Iteration history file (overwritten)")
    parser.add_argument(
        "max_step", type=float, nargs="?", default=5.0,
        help="Maximum optimizer step length (default: 5.0)",
    )
    parser.add_argument(
        "min_step", type=float, nargs="?", default=1e-5,
        help="Minimum optimizer step length (default: 1e-5)",
    )
    parser.add_argument(
        "sample_fraction", type=float, nargs="?", default=0.1,
        help="Fraction of pixels used as spatial samples, in (0, 1] (default: 0.1)",
    )
    parser.add_argument(
        "pyramid_levels", type=int, nargs="?", default=3,
        help="Number of multi-resolution levels (default: 3)",
    )
    parser.add_argument(
        "threshold", type=float, nargs="?", default=None,
        help="Exclude fixed-image pixels below this intensity from the metric",
    )
    parser.add_argument(
        "metric", type=int, nargs="?", default=int(SimilarityKind.NORMALIZED_CROSS_CORRELATION),
        help=f"Similarity metric: {METRIC_HELP} (default: 3)",
    )
    parser.add_argument(
        "iterations", type=int, nargs="?", default=500,
        help="Maximum iterations per level (default: 500)",
    )
    parser.add_argument(
        "transform", type=int, nargs="?", default=int(TransformKind.EULER),
        help=f"Transform: {TRANSFORM_HELP} (default: 0)",
    )
    parser.add_argument(
        "-o", "--output", type=Path, default=None,
        help="Write the moving image resampled onto the target grid",
    )
    parser.add_argument(
        "--log-level", type=str, default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Console log level (default: INFO)",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)

    config = RegistrationConfig.from_options(
        dimensions=args.dimensions,
        fixed_path=args.target,
        moving_path=args.moving,
        history_path=args.history,
        max_step=args.max_step,
        min_step=args.min_step,
        sample_fraction=args.sample_fraction,
        pyramid_levels=args.pyramid_levels,
        intensity_threshold=args.threshold,
        similarity=args.metric,
        iterations=args.iterations,
        transform=args.transform,
        output_path=args.output,
    )

    try:
        result = register(config)
    except ConfigurationError as e:
        logger.error(str(e))
        return 1

    if not result.succeeded:
        logger.error(f"Registration did not complete: {result.status}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
