#!/usr/bin/env python3
"""
Streetcar Init Script

Scans the front/back/left/right (or rear) image folders under the working
directory, reads capture time and GPS data from every image, cuts the
combined timeline into sequences and writes one GeoJSON feature collection
per sequence to ``.streetcar/geojson/sequence<N>.geojson``. Source images are
symlinked into ``sequence<N>/<camera>/`` folders.

Usage:
    streetcar-init --utc-offset -04:00 [--root DIR] [--cut-seconds 5]
                   [--min-speed 5] [--infer-coordinates] [--no-links] [-v | -q]

Examples:
    streetcar-init --utc-offset -04:00
    STREETCAR_UTC_OFFSET=+02:00 streetcar-init -vv
"""

import argparse
import logging
import sys
from pathlib import Path

import streetcar
from streetcar.config import load_config
from streetcar.errors import ConfigurationError, FilesystemFailure
from streetcar.pipeline import run
from streetcar.utils import format_bytes, setup_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="streetcar-init",
        description="Generate GeoJSON sequences from multi-camera streetview captures",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Settings may also come from STREETCAR_* environment variables, e.g.
STREETCAR_UTC_OFFSET, STREETCAR_CUT_SEQUENCE_MS, STREETCAR_MIN_SPEED_KPH.
        """,
    )
    parser.add_argument("--version", action="version", version=streetcar.__version__)
    parser.add_argument(
        "--root", type=Path, help="Folder containing the camera folders (default: cwd)"
    )
    parser.add_argument(
        "--utc-offset",
        help="Camera clock offset from UTC, e.g. -04:00 (required unless set in env)",
    )
    parser.add_argument(
        "--cut-seconds",
        type=float,
        help="Start a new sequence after a gap of this many seconds (default: 5)",
    )
    parser.add_argument(
        "--min-speed",
        type=float,
        help="Drop samples slower than this many km/h (default: 5)",
    )
    parser.add_argument(
        "--infer-coordinates",
        action="store_true",
        default=None,
        help="Borrow a sibling camera's coordinate when an image has none",
    )
    parser.add_argument("--workers", type=int, help="Extraction worker threads")
    parser.add_argument(
        "--timeout",
        type=float,
        help=(
            "Stop waiting for extraction after this many seconds; pending files "
            "count as failures (soft deadline: a hung decoder still delays exit)"
        ),
    )
    parser.add_argument(
        "--no-links",
        dest="link_files",
        action="store_false",
        default=None,
        help="Do not symlink images into sequence folders",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=1,
        help="More output (-vv for per-file debug)",
    )
    parser.add_argument("-q", "--quiet", action="store_true", help="Warnings only")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    setup_logging(0 if args.quiet else args.verbose)
    logger = logging.getLogger("streetcar-init")

    try:
        config = load_config(
            ROOT=args.root,
            UTC_OFFSET=args.utc_offset,
            CUT_SEQUENCE_MS=(
                round(args.cut_seconds * 1000) if args.cut_seconds is not None else None
            ),
            MIN_SPEED_KPH=args.min_speed,
            INFER_COORDINATES=args.infer_coordinates,
            MAX_WORKERS=args.workers,
            EXTRACT_TIMEOUT_S=args.timeout,
            LINK_FILES=args.link_files,
        )
    except ConfigurationError as e:
        logger.error(str(e))
        return 1

    logger.debug(f"root = {config.ROOT}")
    logger.debug(f"output = {config.GEOJSON_DIR}")

    try:
        result = run(config)
    except FilesystemFailure as e:
        logger.error(str(e))
        return 1

    extraction = result.extraction
    if not args.quiet:
        print(
            f"{extraction.num_files} file(s), {len(extraction.records)} usable "
            f"({format_bytes(extraction.num_bytes)}), "
            f"{len(result.written)} sequence(s) written"
        )

    if result.is_empty:
        logger.warning("Nothing to map: no image with a usable capture time")
    return 0


if __name__ == "__main__":
    sys.exit(main())
