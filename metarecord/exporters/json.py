"""JSON exporter producing serializable plain data."""

import json
import logging
from dataclasses import fields, is_dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from metarecord.core.archive import MediaBlob
from metarecord.core.models import Conversation, Message, Record
from metarecord.exporters.base import Exporter, output_stem

logger = logging.getLogger(__name__)

# read-only properties exported alongside the stored fields
COMPUTED_FIELDS: dict[type, tuple[str, ...]] = {
    Message: ("type", "sender", "content"),
    Conversation: (
        "message_count",
        "attachments_count",
        "shares_count",
        "calls_count",
        "created_at",
        "last_activity",
    ),
}


def to_plain(value: Any) -> Any:
    """
    converts records and their parts into JSON-ready data.

    datetimes become ISO-8601 strings and media blobs are reduced to their
    path, size and MIME type.
    """
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, MediaBlob):
        return {"path": value.path, "size": value.size, "mime_type": value.mime_type}
    if isinstance(value, Enum):
        return value.value
    if is_dataclass(value) and not isinstance(value, type):
        data = {f.name: to_plain(getattr(value, f.name)) for f in fields(value)}
        for name in COMPUTED_FIELDS.get(type(value), ()):
            data[name] = to_plain(getattr(value, name))
        return data
    if isinstance(value, (list, tuple)):
        return [to_plain(item) for item in value]
    if isinstance(value, dict):
        return {str(key): to_plain(item) for key, item in value.items()}
    return value


class JSONExporter(Exporter):  # pylint: disable=too-few-public-methods
    """exports a record as one JSON document."""

    def __init__(self, indent: int = 2) -> None:
        self.indent = indent

    def render(self, record: Record) -> str:
        return json.dumps(to_plain(record), indent=self.indent, ensure_ascii=False)

    def export(
        self,
        record: Record,
        destination: str,
        dry_run: bool = False,
        overwrite: bool = False,
    ) -> Optional[Path]:
        """writes <stem>.json into destination."""
        output_path = Path(destination) / f"{output_stem(record)}.json"

        if dry_run:
            logger.info("Would write to: %s", output_path)
            return None

        if output_path.exists() and not overwrite:
            logger.info("Skipping existing file: %s", output_path)
            return None

        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(self.render(record), encoding="utf-8")
        return output_path
