"""Batch driver: parses record archives and exports them."""

from pathlib import Path
from typing import Optional

from metarecord.core.parser import ParseOptions, parse_archive
from metarecord.exporters.base import Exporter
from metarecord.exporters.html import HTMLReportExporter
from metarecord.exporters.json import JSONExporter
from metarecord.progress import ProgressHandler

FORMATS = ("json", "html")


def discover_archives(source: Path) -> list[Path]:
    """
    discovers record archives from source path.

    Args:
        source: path to a ZIP archive or a directory of ZIP archives

    Returns:
        list of archive paths, sorted by name

    Raises:
        FileNotFoundError: if source doesn't exist
    """
    if not source.exists():
        raise FileNotFoundError(f"Source not found: {source}")

    if source.is_file():
        return [source] if source.suffix.lower() == ".zip" else []

    if source.is_dir():
        return sorted(p for p in source.iterdir() if p.suffix.lower() == ".zip")

    return []


def build_exporters(formats: list[str], embed_media: bool = False) -> list[Exporter]:
    """creates one exporter per requested format."""
    exporters: list[Exporter] = []
    for name in formats:
        if name == "json":
            exporters.append(JSONExporter())
        elif name == "html":
            exporters.append(HTMLReportExporter(embed_media=embed_media))
        else:
            raise ValueError(f"Unknown export format: {name}")
    return exporters


def process_archives(
    source: Path,
    output_dir: Path,
    formats: Optional[list[str]] = None,
    dry_run: bool = False,
    overwrite: bool = False,
    embed_media: bool = False,
    quiet: bool = False,
    progress: bool = False,
) -> int:
    """
    parses every archive under source and exports it to output_dir.

    Args:
        source: path to a ZIP archive or a directory of ZIP archives
        output_dir: directory receiving the exports
        formats: export formats (default: json)
        dry_run: if True, parse but don't write anything
        overwrite: if True, replace existing exports
        embed_media: if True, embed image thumbnails in HTML reports
        quiet: if True, suppress non-error output
        progress: if True, show progress bar

    Returns:
        exit code (0 success, 1 partial failure)
    """
    exporters = build_exporters(formats or ["json"], embed_media)

    with ProgressHandler(quiet=quiet, show_progress=progress) as handler:
        archives = discover_archives(source)
        if not archives:
            handler.log_info(f"No ZIP archives found in {source}")
            return 0

        handler.log_info(f"Found {len(archives)} archive(s) to process")
        handler.start(len(archives))

        processed = 0
        failed = 0
        for archive in archives:
            if _process_archive(
                archive, output_dir, exporters, dry_run, overwrite, handler
            ):
                processed += 1
            else:
                failed += 1

        handler.finish(processed, failed)

        if failed > 0:
            return 1
        return 0


def _process_archive(
    archive: Path,
    output_dir: Path,
    exporters: list[Exporter],
    dry_run: bool,
    overwrite: bool,
    handler: ProgressHandler,
) -> bool:
    """
    parses and exports a single archive.

    Returns:
        True on success, False if the archive failed
    """

    def on_progress(step: str, percent: int) -> None:
        handler.stage(archive.name, step, percent)

    try:
        record = parse_archive(archive, options=ParseOptions(), on_progress=on_progress)
        record.source_name = archive.name
        handler.summarize(record)

        for exporter in exporters:
            written = exporter.export(
                record, str(output_dir), dry_run=dry_run, overwrite=overwrite
            )
            if written is not None:
                handler.log_info(f"Wrote {written}")

        handler.advance(archive.name)
        return True

    except Exception as e:
        handler.log_error(f"Failed: {archive.name}: {e}")
        handler.advance(archive.name, ok=False)
        return False

