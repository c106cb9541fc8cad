"""HTML investigator report rendered from Markdown."""

import base64
import html as html_lib
import logging
from io import BytesIO
from pathlib import Path
from typing import Any, Optional, cast

from markdown_it import MarkdownIt
from PIL import Image

from metarecord.core.archive import MediaBlob
from metarecord.core.models import Conversation, Record
from metarecord.core.sections import SECTION_NAMES, SECTION_TITLES
from metarecord.exporters.base import Exporter, output_stem

logger = logging.getLogger(__name__)

THUMBNAIL_SIZE = (320, 320)
TIME_FORMAT = "%Y-%m-%d %H:%M:%S UTC"


def _cell(value: Any) -> str:
    """formats a value for a Markdown table cell."""
    if value is None or value == "":
        return "-"
    if hasattr(value, "strftime"):
        return value.strftime(TIME_FORMAT)
    text = " ".join(str(value).split())
    return text.replace("\\", "\\\\").replace("|", "\\|")


def _table(headers: list[str], rows: list[list[Any]]) -> list[str]:
    lines = [
        "| " + " | ".join(headers) + " |",
        "| " + " | ".join("---" for _ in headers) + " |",
    ]
    lines.extend("| " + " | ".join(_cell(v) for v in row) + " |" for row in rows)
    lines.append("")
    return lines


def thumbnail_data_url(blob: MediaBlob) -> Optional[str]:
    """
    converts an image blob to a PNG thumbnail data URL.

    Args:
        blob: image blob

    Returns:
        data URL, or None if the blob is not a readable image
    """
    try:
        with Image.open(BytesIO(blob.data)) as img:
            img.thumbnail(THUMBNAIL_SIZE)
            if img.mode not in ("RGB", "RGBA", "L", "LA"):
                img = img.convert("RGBA")
            buffer = BytesIO()
            img.save(buffer, format="PNG")
    except Exception as e:  # pylint: disable=broad-except
        logger.debug("Could not thumbnail %s: %s", blob.path, e)
        return None
    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:image/png;base64,{encoded}"


class HTMLReportExporter(Exporter):  # pylint: disable=too-few-public-methods
    """exports a record as a standalone HTML report."""

    def __init__(self, embed_media: bool = False, max_display_emails: int = 5) -> None:
        self.embed_media = embed_media
        self.max_display_emails = max_display_emails

    def export(
        self,
        record: Record,
        destination: str,
        dry_run: bool = False,
        overwrite: bool = False,
    ) -> Optional[Path]:
        """writes <stem>.html into destination."""
        output_path = Path(destination) / f"{output_stem(record)}.html"

        if dry_run:
            logger.info("Would write to: %s", output_path)
            return None

        if output_path.exists() and not overwrite:
            logger.info("Skipping existing file: %s", output_path)
            return None

        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(self.render(record), encoding="utf-8")
        return output_path

    def render(self, record: Record) -> str:
        """renders the full HTML document."""
        md = MarkdownIt()
        md.enable("table")
        # record content is untrusted: raw HTML stays escaped text
        md.disable("html_inline")
        md.disable("html_block")
        body = cast(str, md.render(self.build_markdown(record)))

        title = html_lib.escape(f"Meta Business Record: {record.source_name}")
        return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <title>{title}</title>
</head>
<body>
{body}
</body>
</html>"""

    def build_markdown(self, record: Record) -> str:
        """builds the Markdown report."""
        lines = [f"# Meta Business Record: {_cell(record.source_name)}", ""]
        lines.append(
            f"Parsed at {_cell(record.parsed_at)} from {record.total_files} file(s)."
        )
        lines.append("")

        lines.extend(self._request_lines(record))
        lines.extend(self._profile_lines(record))
        lines.extend(self._section_lines(record))

        if record.diagnostics:
            lines.extend(["## Diagnostics", ""])
            lines.extend(f"- {_cell(note)}" for note in record.diagnostics)
            lines.append("")

        lines.extend([f"## Conversations ({len(record.conversations)})", ""])
        for conversation in record.conversations:
            lines.extend(self._conversation_lines(conversation))

        if record.following or record.followers:
            lines.extend(["## Social Graph", ""])
            rows = [
                [e.direction, e.username, e.platform_id, e.display_name]
                for e in record.following + record.followers
            ]
            lines.extend(_table(["Direction", "Username", "Id", "Name"], rows))

        if record.logins:
            lines.extend(["## Logins", ""])
            rows = [
                [
                    entry.timestamp,
                    entry.ip,
                    "yes" if entry.success else "no",
                    entry.device,
                ]
                for entry in record.logins
            ]
            lines.extend(_table(["Time", "IP", "Success", "Device"], rows))

        for name, values in record.other_sections.items():
            if values:
                title = SECTION_TITLES.get(name, (name,))[0]
                lines.extend([f"## {title}", ""])
                lines.extend(_table(["Value"], [[value] for value in values]))

        return "\n".join(lines)

    def _request_lines(self, record: Record) -> list[str]:
        request = record.request_parameters
        if request is None:
            return []
        date_range = request.date_range
        rows = [
            ["Service", request.service],
            ["Internal Ticket Number", request.internal_ticket_number],
            ["Target", request.target],
            ["Account Identifier", request.account_identifier],
            ["Account Type", request.account_type],
            ["Generated", request.generated],
            ["Date Range Start", date_range.start if date_range else None],
            ["Date Range End", date_range.end if date_range else None],
        ]
        return ["## Request Parameters", ""] + _table(["Field", "Value"], rows)

    def _profile_lines(self, record: Record) -> list[str]:
        profile = record.profile
        if profile is None:
            return ["## Profile", "", "No profile data present in this export.", ""]
        emails = profile.display_emails(self.max_display_emails)
        hidden = len(profile.emails) - len(emails)
        email_text = ", ".join(emails) + (f" (+{hidden} more)" if hidden > 0 else "")
        rows = [
            ["Username", profile.username],
            ["Display Name", profile.display_name],
            ["E-mails", email_text],
            ["Phone Numbers", ", ".join(profile.phone_numbers)],
            ["Registration IP", profile.registration_ip],
            ["Registration Date", profile.registration_date],
            ["Business Account", "yes" if profile.business_account else "no"],
        ]
        return ["## Profile", ""] + _table(["Field", "Value"], rows)

    def _section_lines(self, record: Record) -> list[str]:
        rows = []
        for name in SECTION_NAMES:
            if name in record.empty_sections:
                status = "empty"
            elif name in record.sections_found:
                status = "found"
            else:
                status = "not present in this export"
            rows.append([name, status])
        return ["## Sections", ""] + _table(["Section", "Status"], rows)

    def _conversation_lines(self, conversation: Conversation) -> list[str]:
        participants = ", ".join(
            f"{p.username} ({p.platform_id})" for p in conversation.participants
        )
        lines = [
            f"### Thread {conversation.thread_id}",
            "",
            f"Participants: {_cell(participants)}",
            "",
            f"{conversation.message_count} message(s), "
            f"{conversation.attachments_count} attachment(s), "
            f"{conversation.shares_count} share(s), "
            f"{conversation.calls_count} call(s).",
            "",
        ]
        rows = []
        images = []
        for message in conversation.messages:
            content = message.content
            if message.share is not None and message.share.url:
                content = f"{content} {message.share.url}".strip()
            if message.call_record is not None:
                call = message.call_record
                state = "missed" if call.missed else f"{call.duration}s"
                content = f"{content} [{call.call_type} call, {state}]".strip()
            if message.removed_by_sender:
                content = f"{content} (removed by sender)".strip()
            names = ", ".join(
                a.filename or a.source_path or a.type for a in message.attachments
            )
            rows.append([message.sent, message.sender, message.type, content, names])

            if self.embed_media:
                for attachment in message.attachments:
                    blob = attachment.resolved_blob
                    if blob is not None and blob.mime_type.startswith("image/"):
                        data_url = thumbnail_data_url(blob)
                        if data_url:
                            alt = _cell(attachment.filename)
                            images.append(f"![{alt}]({data_url})")

        lines.extend(_table(["Sent", "Author", "Type", "Content", "Attachments"], rows))
        for image in images:
            lines.extend([image, ""])
        return lines
