"""Command line interface for colortrace."""
import argparse
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path

from colortrace.pipeline import LoadStatus, Vectorizer
from colortrace.svg_export import save_svg
from colortrace.types import (
    BITMAP_TYPES,
    PATH_TYPES,
    TURN_POLICIES,
    SvgOptions,
    VectorizationError,
    VectorizerConfig,
)


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser."""
    parser = argparse.ArgumentParser(
        prog='colortrace',
        description='Convert raster images to color SVG with K-means++ and Potrace'
    )

    parser.add_argument(
        'input',
        type=str,
        help='Input image path'
    )

    parser.add_argument(
        '-o', '--output',
        type=str,
        help='Output SVG path (default: input.svg)'
    )

    parser.add_argument(
        '--mode',
        type=str,
        choices=['color', 'black'],
        default=None,
        help='color: clustered palette layers (default); black: one monochrome layer'
    )

    parser.add_argument(
        '--colors',
        type=int,
        default=None,
        help='Number of palette colors (default: 5)'
    )

    parser.add_argument(
        '--turnpolicy',
        type=str,
        choices=TURN_POLICIES,
        default=None,
        help='How ambiguous boundary turns are resolved (default: minority)'
    )

    parser.add_argument(
        '--turdsize',
        type=int,
        default=None,
        help='Drop shapes enclosing this many pixels or fewer (default: 2)'
    )

    parser.add_argument(
        '--alphamax',
        type=float,
        default=None,
        help='Corner threshold; lower gives more corners (default: 1.0)'
    )

    parser.add_argument(
        '--opttolerance',
        type=float,
        default=None,
        help='Curve merge tolerance (default: 0.2)'
    )

    parser.add_argument(
        '--no-optcurve',
        action='store_true',
        help='Do not merge Bezier segments'
    )

    parser.add_argument(
        '--bitmap-type',
        type=str,
        choices=BITMAP_TYPES,
        default=None,
        help='Monochrome mask algorithm (default: balance)'
    )

    parser.add_argument(
        '--black-level',
        type=float,
        default=None,
        help='Brightness threshold for the monochrome mask (default: 128)'
    )

    color_space = parser.add_mutually_exclusive_group()
    color_space.add_argument(
        '--lab',
        dest='use_lab',
        action='store_const',
        const=True,
        default=None,
        help='Cluster colors in CIE Lab (default)'
    )
    color_space.add_argument(
        '--rgb',
        dest='use_lab',
        action='store_const',
        const=False,
        help='Cluster colors in RGB (faster)'
    )

    parser.add_argument(
        '--remove-background',
        action='store_true',
        help='Omit the background rectangle'
    )

    parser.add_argument(
        '--scale',
        type=float,
        default=1.0,
        help='Output scale factor (default: 1.0)'
    )

    parser.add_argument(
        '--path-type',
        type=str,
        choices=PATH_TYPES,
        default='fill',
        help='fill: filled shapes; curve: stroked outlines (default: fill)'
    )

    parser.add_argument(
        '--fill-color',
        type=str,
        default='black',
        help='Path color in black mode (default: black)'
    )

    parser.add_argument(
        '--seed',
        type=int,
        default=None,
        help='Random seed for reproducible clustering'
    )

    parser.add_argument(
        '--timeout',
        type=float,
        default=None,
        help='Give up after this many seconds'
    )

    parser.add_argument(
        '--config',
        type=str,
        default=None,
        help='JSON file with configuration options'
    )

    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Log pipeline progress'
    )

    return parser


def build_config(parsed_args) -> VectorizerConfig:
    """Merge a JSON config file (if any) with command line overrides."""
    if parsed_args.config:
        with open(parsed_args.config, 'r', encoding='utf-8') as f:
            config = VectorizerConfig.from_dict(json.load(f))
    else:
        config = VectorizerConfig()

    overrides = {
        'mode': parsed_args.mode,
        'color_size': parsed_args.colors,
        'turnpolicy': parsed_args.turnpolicy,
        'turdsize': parsed_args.turdsize,
        'alphamax': parsed_args.alphamax,
        'opttolerance': parsed_args.opttolerance,
        'bitmap_type': parsed_args.bitmap_type,
        'black_level': parsed_args.black_level,
        'kmeans_use_lab_color': parsed_args.use_lab,
        'random_seed': parsed_args.seed,
        'timeout': parsed_args.timeout,
    }
    if parsed_args.no_optcurve:
        overrides['optcurve'] = False
    if parsed_args.remove_background:
        overrides['remove_background'] = True

    return replace(config, **{k: v for k, v in overrides.items() if v is not None})


def main(args=None):
    """Main entry point."""
    parser = create_parser()
    parsed_args = parser.parse_args(args)

    logging.basicConfig(
        level=logging.INFO if parsed_args.verbose else logging.WARNING,
        format='%(levelname)s %(name)s: %(message)s'
    )

    input_path = Path(parsed_args.input)
    if not input_path.exists():
        print(f"Error: Input file not found: {input_path}", file=sys.stderr)
        return 1

    # Determine output path
    if parsed_args.output:
        output_path = Path(parsed_args.output)
    else:
        output_path = input_path.with_suffix('.svg')

    try:
        config = build_config(parsed_args)
        svg_options = SvgOptions(
            scale_size=parsed_args.scale,
            path_type=parsed_args.path_type,
            fill_color=parsed_args.fill_color
        )
    except (OSError, ValueError, TypeError, VectorizationError) as e:
        print(f"Error: Invalid configuration: {e}", file=sys.stderr)
        return 1

    print(f"Mode: {config.mode}")
    if config.mode == 'color':
        print(f"  Colors: {config.color_size}")

    try:
        vectorizer = Vectorizer(config, svg_options)
        status = vectorizer.load_image(input_path)
        if status != LoadStatus.OK:
            print(f"Error: Cannot vectorize {input_path}: {status.name}", file=sys.stderr)
            return 1

        colors = vectorizer.get_image_colors()
        if colors:
            print(f"  Background: {colors['bg_color']}")
            print(f"  Palette: {' '.join(colors['color_list'])}")

        svg_string = vectorizer.get_svg()
        if svg_string is None:
            print(f"Error: No traceable content in {input_path}", file=sys.stderr)
            return 1

        save_svg(svg_string, str(output_path))
        print(f"Saved: {output_path} ({len(svg_string):,} bytes)")
        return 0

    except VectorizationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
