"""Media association: blob resolution, file handles and image sniffing."""

import logging
import shutil
import tempfile
from io import BytesIO
from pathlib import Path
from typing import Any, Optional, Union

from PIL import Image, UnidentifiedImageError

from metarecord.core.archive import MediaBlob, MediaMap
from metarecord.core.models import Attachment, MediaReference, Photo, Record

logger = logging.getLogger(__name__)

Resolvable = Union[Attachment, MediaReference, Photo]


class MediaStore:
    """
    materializes media blobs as files and hands out file:// URLs.

    the store owns its directory: release() (or leaving the context manager)
    deletes every file it created.
    """

    def __init__(self, directory: Optional[Path] = None) -> None:
        self._owned = directory is None
        if directory is None:
            directory = Path(tempfile.mkdtemp(prefix="metarecord_"))
        self.directory = directory
        self._urls: dict[str, str] = {}
        self._released = False

    def __enter__(self) -> "MediaStore":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.release()

    @property
    def created_urls(self) -> list[str]:
        """every URL handed out so far, for the caller to track or revoke."""
        return list(self._urls.values())

    def url_for(self, blob: MediaBlob) -> str:
        """
        writes blob once and returns its file URL.

        Raises:
            RuntimeError: if the store was released
        """
        if self._released:
            raise RuntimeError("MediaStore has been released")
        key = blob.path
        if key not in self._urls:
            # one subfolder per blob keeps equal file names from colliding
            target = self.directory / str(len(self._urls)) / blob.filename
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(blob.data)
            self._urls[key] = target.resolve().as_uri()
        return self._urls[key]

    def release(self) -> None:
        """deletes every materialized file."""
        if self._released:
            return
        self._released = True
        if self._owned:
            shutil.rmtree(self.directory, ignore_errors=True)
        else:
            for index in range(len(self._urls)):
                shutil.rmtree(self.directory / str(index), ignore_errors=True)
        self._urls.clear()


def sniff_image(blob: MediaBlob) -> Optional[tuple[str, tuple[int, int]]]:
    """
    confirms an image blob with Pillow.

    Returns:
        (MIME type, (width, height)), or None if Pillow cannot identify it
    """
    try:
        with Image.open(BytesIO(blob.data)) as img:
            mime = Image.MIME.get(img.format or "", blob.mime_type)
            return mime, img.size
    except (UnidentifiedImageError, OSError, ValueError) as e:
        logger.debug("Could not identify image %s: %s", blob.path, e)
        return None


def _resolve(
    item: Resolvable, ref: Optional[str], media: MediaMap
) -> Optional[MediaBlob]:
    if item.resolved_blob is None and ref:
        item.resolved_blob = media.resolve(ref)
    return item.resolved_blob


def associate_media(
    record: Record,
    media: MediaMap,
    store: Optional[MediaStore] = None,
    sniff_images: bool = True,
) -> int:
    """
    resolves every media reference of a record against the media map.

    sets resolved blobs, file URLs when a store is given and, for images,
    the confirmed MIME type and dimensions. running it again changes nothing.

    Args:
        record: parsed record, enriched in place
        media: media map of the archive
        store: optional store handing out file URLs
        sniff_images: confirm image types and sizes with Pillow

    Returns:
        number of references left unresolved
    """
    unresolved = 0

    for attachment in record.iter_attachments():
        blob = _resolve(attachment, attachment.source_path, media)
        if blob is None:
            unresolved += 1
            continue
        if attachment.size is None:
            attachment.size = blob.size
        is_image = blob.mime_type.startswith("image/")
        if sniff_images and is_image and attachment.dimensions is None:
            sniffed = sniff_image(blob)
            if sniffed:
                attachment.type, attachment.dimensions = sniffed
        if store is not None:
            attachment.resolved_url = store.url_for(blob)

    references: list[Union[MediaReference, Photo]] = list(record.photos)
    if record.profile_picture is not None:
        references.insert(0, record.profile_picture)
    for reference in references:
        blob = _resolve(reference, reference.path, media)
        if blob is None:
            unresolved += 1
            continue
        if store is not None:
            reference.resolved_url = store.url_for(blob)

    if unresolved:
        logger.warning("%d media reference(s) not found in archive", unresolved)
    return unresolved
