"""Meta Business Record export parser."""

import argparse
import logging
from pathlib import Path
from typing import Optional

from metarecord.pipeline import FORMATS, process_archives

logger = logging.getLogger(__name__)


def main(argv: Optional[list[str]] = None) -> int:
    """
    main entry point for metarecord CLI.

    Args:
        argv: command line arguments (defaults to sys.argv[1:])

    Returns:
        exit code (0 success, 1 partial failure, 2 fatal error)
    """
    parser = argparse.ArgumentParser(
        description="Parse Meta Business Record exports into JSON or HTML reports"
    )
    parser.add_argument(
        "source",
        help="record ZIP archive or directory of ZIP archives",
    )
    parser.add_argument(
        "output",
        nargs="?",
        default=".",
        help="output directory (default: current directory)",
    )
    parser.add_argument(
        "--format",
        choices=[*FORMATS, "all"],
        default="json",
        help="export format (default: json)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="parse archives but don't write any files",
    )
    parser.add_argument(
        "--overwrite",
        action="store_true",
        help="replace existing export files",
    )
    parser.add_argument(
        "--embed-media",
        action="store_true",
        help="embed image thumbnails in HTML reports",
    )
    parser.add_argument(
        "--progress",
        action="store_true",
        help="show a progress bar",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="suppress non-error output",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="enable debug logging",
    )

    args = parser.parse_args(argv)

    # configures logging
    level = logging.DEBUG if args.verbose else logging.INFO
    if args.quiet and not args.verbose:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="[%(levelname)s] %(message)s",
    )

    # validates source path exists
    source_path = Path(args.source)
    if not source_path.exists():
        logger.error("Source not found: %s", args.source)
        return 2

    formats = list(FORMATS) if args.format == "all" else [args.format]

    try:
        return process_archives(
            source=source_path,
            output_dir=Path(args.output),
            formats=formats,
            dry_run=args.dry_run,
            overwrite=args.overwrite,
            embed_media=args.embed_media,
            quiet=args.quiet,
            progress=args.progress,
        )
    except Exception as e:
        logger.error("Fatal error: %s", e)
        return 2
