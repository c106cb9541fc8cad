"""Archive loading: record document lookup and multi-keyed media map."""

import io
import logging
import mimetypes
import posixpath
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Iterator, Optional, Union
from urllib.parse import unquote

from metarecord.core.errors import NoRecordDocumentFound

logger = logging.getLogger(__name__)

DOCUMENT_NAMES = ("records.html", "index.html", "instagram_data.html")
MEDIA_PREFIXES = ("linked_media/",)
MEDIA_EXTENSIONS = frozenset(
    {
        ".jpg", ".jpeg", ".png", ".gif", ".webp", ".bmp", ".heic",
        ".mp4", ".mov", ".avi", ".webm", ".mkv",
        ".mp3", ".wav", ".ogg", ".m4a", ".aac", ".opus",
    }
)  # fmt: skip

ArchiveSource = Union[bytes, bytearray, str, Path, BinaryIO]


def is_media_path(name: str) -> bool:
    """checks whether a path has an allow-listed media extension."""
    return posixpath.splitext(name.lower())[1] in MEDIA_EXTENSIONS


def guess_mime_type(name: str) -> str:
    """guesses a MIME type from a file name."""
    mime, _ = mimetypes.guess_type(name)
    if mime:
        return mime
    ext = posixpath.splitext(name.lower())[1]
    if ext in (".m4a", ".aac", ".opus"):
        return "audio/mp4" if ext == ".m4a" else f"audio/{ext[1:]}"
    if ext in (".heic", ".webp"):
        return f"image/{ext[1:]}"
    if ext in (".mkv", ".webm"):
        return "video/x-matroska" if ext == ".mkv" else "video/webm"
    return "application/octet-stream"


@dataclass(frozen=True)
class MediaBlob:
    """binary media entry materialized from the archive."""

    path: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def filename(self) -> str:
        return posixpath.basename(self.path)

    @property
    def mime_type(self) -> str:
        return guess_mime_type(self.path)


def _strip_media_prefix(path: str) -> Optional[str]:
    """returns path after a known media folder prefix, if any."""
    for prefix in MEDIA_PREFIXES:
        if path.startswith(prefix):
            return path[len(prefix) :]
        marker = "/" + prefix
        if marker in path:
            return path.split(marker, 1)[1]
    return None


def _normalize_ref(ref: str) -> str:
    """normalizes a document reference into archive path form."""
    ref = unquote(ref.strip()).replace("\\", "/")
    while ref.startswith("./"):
        ref = ref[2:]
    return ref.lstrip("/")


class MediaMap:
    """media blobs indexed under every path form documents use to refer to them."""

    def __init__(self) -> None:
        self._by_key: dict[str, MediaBlob] = {}
        self._blobs: list[MediaBlob] = []

    def add(self, blob: MediaBlob, document_dir: str = "") -> None:
        """indexes blob under every path form a document may use for it."""
        self._blobs.append(blob)
        keys = [blob.path, blob.filename]
        stripped = _strip_media_prefix(blob.path)
        if stripped:
            keys.append(stripped)
        if document_dir and blob.path.startswith(document_dir + "/"):
            keys.append(blob.path[len(document_dir) + 1 :])
        for key in keys:
            # first blob wins for ambiguous bare filenames
            self._by_key.setdefault(key, blob)

    def resolve(self, ref: Optional[str]) -> Optional[MediaBlob]:
        """
        resolves a document reference to a blob.

        tries the exact key, the normalized key, the key with a media
        prefix stripped, then the bare filename.
        """
        if not ref:
            return None
        if ref in self._by_key:
            return self._by_key[ref]

        normalized = _normalize_ref(ref)
        candidates = [normalized]
        stripped = _strip_media_prefix(normalized)
        if stripped:
            candidates.append(stripped)
        candidates.append(posixpath.basename(normalized))

        for key in candidates:
            blob = self._by_key.get(key)
            if blob is not None:
                return blob
        return None

    def keys(self) -> list[str]:
        return list(self._by_key)

    def __iter__(self) -> Iterator[MediaBlob]:
        return iter(self._blobs)

    def __len__(self) -> int:
        return len(self._blobs)

    def __contains__(self, ref: object) -> bool:
        return isinstance(ref, str) and self.resolve(ref) is not None


@dataclass
class ArchiveContents:
    """decompressed archive ready for parsing."""

    document_name: str
    document_text: str
    media: MediaMap
    total_files: int


def _open_zip(source: ArchiveSource) -> zipfile.ZipFile:
    if isinstance(source, (bytes, bytearray)):
        return zipfile.ZipFile(io.BytesIO(source), "r")
    return zipfile.ZipFile(source, "r")


def find_document_name(names: list[str]) -> Optional[str]:
    """
    picks the record document among archive entry names.

    Args:
        names: non-directory entry names

    Returns:
        entry name, or None when nothing qualifies
    """
    # conventional names at the root
    for candidate in DOCUMENT_NAMES:
        if candidate in names:
            return candidate

    # conventional names nested in a folder, shallowest first
    nested = sorted(
        (n for n in names if posixpath.basename(n) in DOCUMENT_NAMES),
        key=lambda n: (n.count("/"), DOCUMENT_NAMES.index(posixpath.basename(n))),
    )
    if nested:
        return nested[0]

    # any top-level html file
    for name in sorted(names):
        if "/" not in name and name.lower().endswith((".html", ".htm")):
            return name

    return None


def load_archive(source: ArchiveSource) -> ArchiveContents:
    """
    decompresses a record export.

    Args:
        source: ZIP bytes, a path to a ZIP file, or a binary file object

    Returns:
        document text plus the media map

    Raises:
        NoRecordDocumentFound: if the source is not a ZIP or holds no record document
    """
    try:
        zf = _open_zip(source)
    except (zipfile.BadZipFile, OSError) as e:
        raise NoRecordDocumentFound(f"Unsupported or invalid export: {e}") from e

    with zf:
        names = [info.filename for info in zf.infolist() if not info.is_dir()]

        document_name = find_document_name(names)
        if document_name is None:
            raise NoRecordDocumentFound(
                "No record document (records.html) found in archive"
            )
        logger.debug("Using record document %s", document_name)

        document_text = zf.read(document_name).decode("utf-8", errors="replace")
        document_dir = posixpath.dirname(document_name)

        media = MediaMap()
        for name in names:
            if not is_media_path(name):
                continue
            try:
                media.add(MediaBlob(path=name, data=zf.read(name)), document_dir)
            except (zipfile.BadZipFile, OSError, RuntimeError) as e:
                # corrupt or encrypted entries are skipped, not fatal
                logger.warning("Could not extract media %s: %s", name, e)

    logger.info("Indexed %d media file(s) from %d entries", len(media), len(names))
    return ArchiveContents(
        document_name=document_name,
        document_text=document_text,
        media=media,
        total_files=len(names),
    )
