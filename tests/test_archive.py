"""tests for archive loading and the media map."""

from pathlib import Path

import pytest
from builders import build_zip, png_bytes

from metarecord.core.archive import (
    MediaBlob,
    MediaMap,
    find_document_name,
    guess_mime_type,
    is_media_path,
    load_archive,
)
from metarecord.core.errors import NoRecordDocumentFound, RecordParseError


def test_is_media_path() -> None:
    """only allow-listed extensions count as media."""
    assert is_media_path("linked_media/a.JPG") is True
    assert is_media_path("clip.mp4") is True
    assert is_media_path("records.html") is False
    assert is_media_path("notes.txt") is False


def test_guess_mime_type() -> None:
    """known extensions map to MIME types, unknown ones to octet-stream."""
    assert guess_mime_type("a.jpg") == "image/jpeg"
    assert guess_mime_type("a.png") == "image/png"
    assert guess_mime_type("a.zzz") == "application/octet-stream"


def test_media_blob_properties() -> None:
    """blobs expose size, filename and MIME type."""
    blob = MediaBlob(path="export/linked_media/clip.mp4", data=b"1234")

    assert blob.size == 4
    assert blob.filename == "clip.mp4"
    assert blob.mime_type == "video/mp4"


def test_media_map_resolves_path_variants() -> None:
    """references resolve by exact, normalized, de-prefixed and bare names."""
    media = MediaMap()
    blob = MediaBlob(path="export/linked_media/photo 1.jpg", data=b"x")
    media.add(blob, document_dir="export")

    assert media.resolve("export/linked_media/photo 1.jpg") is blob
    assert media.resolve("linked_media/photo%201.jpg") is blob
    assert media.resolve("./linked_media/photo 1.jpg") is blob
    assert media.resolve("elsewhere/photo 1.jpg") is blob
    assert media.resolve("photo 1.jpg") is blob


def test_media_map_misses() -> None:
    """unknown or empty references resolve to None."""
    media = MediaMap()
    media.add(MediaBlob(path="linked_media/a.jpg", data=b"x"))

    assert media.resolve("linked_media/b.jpg") is None
    assert media.resolve("") is None
    assert media.resolve(None) is None
    assert "b.jpg" not in media
    assert "a.jpg" in media


def test_media_map_first_blob_wins_for_shared_filename() -> None:
    """ambiguous bare filenames resolve to the first blob added."""
    media = MediaMap()
    first = MediaBlob(path="one/x.jpg", data=b"1")
    second = MediaBlob(path="two/x.jpg", data=b"2")
    media.add(first)
    media.add(second)

    assert media.resolve("x.jpg") is first
    assert media.resolve("two/x.jpg") is second
    assert len(media) == 2
    assert list(media) == [first, second]


def test_find_document_name_prefers_root_names() -> None:
    """conventional names at the root win over nested ones."""
    assert find_document_name(["a/records.html", "index.html"]) == "index.html"
    assert find_document_name(["index.html", "records.html"]) == "records.html"


def test_find_document_name_nested_shallowest_first() -> None:
    """nested conventional names are picked shallowest first."""
    names = ["deep/a/records.html", "b/index.html"]

    assert find_document_name(names) == "b/index.html"


def test_find_document_name_falls_back_to_any_top_level_html() -> None:
    """any root html file is accepted last."""
    assert find_document_name(["report.htm", "x/y.txt"]) == "report.htm"
    assert find_document_name(["x/other.html", "notes.txt"]) is None
    assert find_document_name([]) is None


def test_load_archive_indexes_media() -> None:
    """load_archive returns the document text and a media map."""
    data = build_zip(
        {
            "records.html": "<html><body>café</body></html>".encode("utf-8"),
            "linked_media/a.jpg": png_bytes(),
            "notes.txt": b"ignored",
        }
    )

    contents = load_archive(data)

    assert contents.document_name == "records.html"
    assert "café" in contents.document_text
    assert contents.total_files == 3
    assert len(contents.media) == 1
    assert contents.media.resolve("a.jpg") is not None


def test_load_archive_keys_media_relative_to_nested_document() -> None:
    """media next to a nested document resolves by document-relative path."""
    data = build_zip(
        {
            "export/records.html": b"<html><body>x</body></html>",
            "export/linked_media/a.jpg": b"jpeg",
        }
    )

    contents = load_archive(data)

    assert contents.document_name == "export/records.html"
    blob = contents.media.resolve("linked_media/a.jpg")
    assert blob is not None and blob.path == "export/linked_media/a.jpg"


def test_load_archive_from_path(tmp_path: Path) -> None:
    """archives can be loaded from a filesystem path."""
    archive = tmp_path / "export.zip"
    archive.write_bytes(build_zip({"index.html": b"<p>x</p>"}))

    assert load_archive(archive).document_name == "index.html"


def test_load_archive_rejects_non_zip() -> None:
    """non-ZIP input raises NoRecordDocumentFound."""
    with pytest.raises(NoRecordDocumentFound):
        load_archive(b"definitely not a zip")


def test_load_archive_without_document() -> None:
    """a ZIP without any html document raises NoRecordDocumentFound."""
    data = build_zip({"linked_media/a.jpg": b"x", "readme.txt": b"hi"})

    with pytest.raises(RecordParseError):
        load_archive(data)
