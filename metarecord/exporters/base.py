"""base exporter interface."""

import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from metarecord.core.models import Record


def output_stem(record: Record) -> str:
    """derives a filesystem-safe file stem from the record's source name."""
    stem = Path(record.source_name or "record").stem
    stem = re.sub(r"[^\w\s-]", "", stem)
    stem = re.sub(r"[-\s]+", "_", stem).strip("_")
    return stem or "record"


class Exporter(ABC):  # pylint: disable=too-few-public-methods
    """abstract base class for record exporters."""

    @abstractmethod
    def export(
        self,
        record: Record,
        destination: str,
        dry_run: bool = False,
        overwrite: bool = False,
    ) -> Optional[Path]:
        """
        Export a record to the destination.

        Args:
            record: The parsed record to export
            destination: Directory to write the export into
            dry_run: If True, don't actually write anything
            overwrite: If True, overwrite existing files

        Returns:
            Path written, or None when nothing was written
        """
        ...  # pylint: disable=unnecessary-ellipsis
