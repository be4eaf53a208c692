"""CLI entry point for synthetic image-pair generation.

Usage:
    python -m pyramidreg.testing --output pairs/blobs --shift 3 -5
    python -m pyramidreg.testing --output pairs/flat --constant
"""

import argparse
from pathlib import Path

from .synthetic import PhantomConfig, make_constant_image, make_phantom, misalign, write_pair


def main():
    parser = argparse.ArgumentParser(
        description="Generate a synthetic fixed/moving image pair for pyramidreg"
    )
    parser.add_argument(
        "--output",
        type=Path,
        required=True,
        help="Output directory for the image pair",
    )
    parser.add_argument(
        "--size",
        type=int,
        nargs="+",
        default=[128, 128],
        help="Image shape in numpy order (default: 128 128)",
    )
    parser.add_argument(
        "--shift",
        type=float,
        nargs="+",
        default=None,
        help="Moving-image translation in pixels, numpy order (default: none)",
    )
    parser.add_argument(
        "--angle",
        type=float,
        default=0.0,
        help="In-plane rotation of the moving image in degrees (default: 0)",
    )
    parser.add_argument(
        "--constant",
        action="store_true",
        help="Write two identical constant images instead of a phantom",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=42,
        help="Random seed for reproducibility (default: 42)",
    )

    args = parser.parse_args()
    shape = tuple(args.size)

    if args.constant:
        fixed = make_constant_image(shape)
        moving = fixed.copy()
    else:
        fixed = make_phantom(PhantomConfig(shape=shape, seed=args.seed))
        translation = tuple(args.shift) if args.shift else (0.0,) * len(shape)
        moving = misalign(fixed, translation, args.angle)

    fixed_path, moving_path = write_pair(args.output, fixed, moving)
    print(f"Fixed: {fixed_path}")
    print(f"Moving: {moving_path}")


if __name__ == "__main__":
    main()
