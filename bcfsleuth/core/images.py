from __future__ import annotations

"""Snapshot extraction, performed on demand.

Reading every raster file is the most expensive part of handling an
archive, so the parser only records where images could come from. An
:class:`ImageSource` keeps the archive open together with the per-topic
folder index; :func:`extract_images` uses it later to attach bytes to the
viewpoints that a consumer actually wants to show or export.
"""

import io
import logging
import posixpath
from typing import Dict, Iterable, List, Optional, Tuple

from PIL import Image, UnidentifiedImageError

from bcfsleuth.core.archive import BcfArchive, is_image_file
from bcfsleuth.core.exceptions import CorruptEntryError
from bcfsleuth.core.models import Topic, Viewpoint, ViewpointImage

logger = logging.getLogger(__name__)

__all__ = [
    "ImageSource",
    "mime_type_for",
    "match_snapshot",
    "extract_images",
]

_MIME_TYPES = {
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "bmp": "image/bmp",
    "webp": "image/webp",
}


def mime_type_for(filename: str) -> str:
    """Infer the MIME type from the file extension; unknown types are PNG."""
    extension = filename.rsplit(".", 1)[-1].lower() if "." in (filename or "") else ""
    mime = _MIME_TYPES.get(extension)
    if mime is None:
        logger.warning("Unknown image extension %r, defaulting to PNG", extension)
        return "image/png"
    return mime


def _stem(filename: str) -> str:
    base = posixpath.basename(filename)
    return base.rsplit(".", 1)[0] if "." in base else base


class ImageSource:
    """Capability to read snapshot bytes for the topics of one archive.

    Holds the open archive and, per topic folder, the names of the raster
    files sitting directly in it. Keep it alive for as long as images may
    still be requested; call :meth:`close` to release the archive.
    """

    def __init__(self, archive: BcfArchive, folders: Iterable[str]) -> None:
        self._archive = archive
        self._index: Dict[str, Tuple[str, ...]] = {
            folder: tuple(sorted(n for n in archive.folder_files(folder) if is_image_file(n)))
            for folder in folders
        }
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def image_files(self, topic_id: str) -> Tuple[str, ...]:
        return self._index.get(topic_id, ())

    def read(self, topic_id: str, filename: str) -> bytes:
        return self._archive.read_bytes(f"{topic_id}/{filename}")

    def close(self) -> None:
        if not self._closed:
            self._archive.close()
            self._closed = True


def match_snapshot(viewpoint: Viewpoint, candidates: Iterable[str]) -> Optional[str]:
    """Pick the raster file that belongs to *viewpoint*, or ``None``.

    Tried in order: the declared snapshot name exactly, the viewpoint
    identifier (with or without hyphens) inside a file name, then either
    extension-less name containing the other.
    """
    files: List[str] = list(candidates)
    snapshot = (viewpoint.snapshot_reference or "").strip()

    if snapshot:
        wanted = snapshot.replace("\\", "/").lstrip("./")
        for name in files:
            if name == snapshot or name == wanted:
                return name

    identifier = (viewpoint.identifier or "").lower()
    if identifier:
        compact = identifier.replace("-", "")
        for name in files:
            lowered = name.lower()
            if identifier in lowered or (compact and compact in lowered):
                return name

    if snapshot:
        base = _stem(snapshot).lower()
        if base:
            for name in files:
                candidate = _stem(name).lower()
                if candidate and (base in candidate or candidate in base):
                    return name
    return None


def _image_size(data: bytes) -> Optional[Tuple[int, int]]:
    try:
        with Image.open(io.BytesIO(data)) as img:
            return img.size
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        logger.debug("Could not read image header: %s", exc)
        return None


def _attach(viewpoint: Viewpoint, source: ImageSource, topic_id: str, filename: str) -> None:
    data = source.read(topic_id, filename)
    viewpoint.image = ViewpointImage(
        data=data,
        mime_type=mime_type_for(filename),
        filename=filename,
        size=_image_size(data),
    )
    logger.debug("Attached %s (%s, %d bytes) to viewpoint %s", filename,
                 viewpoint.image.mime_type, len(data), viewpoint.identifier)


def extract_images(topics: Iterable[Topic], source: ImageSource) -> None:
    """Attach snapshot bytes to every viewpoint of *topics* that lacks an image.

    Mutates ``Viewpoint.image`` in place. A viewpoint with no matching file
    simply stays without an image.
    """
    if source.closed:
        logger.warning("Image source already closed; no images extracted")
        return
    for topic in topics:
        files = source.image_files(topic.identifier)
        if not files:
            continue
        for viewpoint in topic.viewpoints:
            if viewpoint.image is not None:
                continue
            filename = match_snapshot(viewpoint, files)
            if filename is None:
                logger.debug("No image for viewpoint %s (snapshot: %s)", viewpoint.identifier,
                             viewpoint.snapshot_reference or "none")
                continue
            try:
                _attach(viewpoint, source, topic.identifier, filename)
            except CorruptEntryError as exc:
                logger.error("Error extracting image %s for viewpoint %s: %s", filename,
                             viewpoint.identifier, exc)
