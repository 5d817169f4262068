from __future__ import annotations

"""Read-only access to a BCF container (a zip archive of XML documents).

The reader keeps the archive open for as long as the object lives so that
snapshot bytes can be read on demand after the main parse. Reads are
serialised with a lock, which lets topics be extracted on worker threads.
"""

import io
import logging
import posixpath
import re
import threading
import zipfile
import zlib
from typing import Dict, List, Optional, Tuple

from bcfsleuth.core.exceptions import CorruptEntryError, EntryNotFoundError, ParseError
from bcfsleuth.core.models import ArchiveStructure

logger = logging.getLogger(__name__)

__all__ = [
    "BcfArchive",
    "is_guid",
    "is_image_file",
    "VERSION_ENTRY",
    "PROJECT_ENTRY",
    "DOCUMENTS_ENTRY",
    "EXTENSIONS_ENTRIES",
    "MARKUP_NAME",
    "COMMENTS_NAME",
    "VIEWPOINT_SUFFIX",
    "IMAGE_EXTENSIONS",
]

VERSION_ENTRY = "bcf.version"
PROJECT_ENTRY = "project.bcfp"
DOCUMENTS_ENTRY = "documents.xml"
EXTENSIONS_ENTRIES = ("extensions.xsd", "extensions.xml")
MARKUP_NAME = "markup.bcf"
COMMENTS_NAME = "comments.bcf"
VIEWPOINT_SUFFIX = ".bcfv"
IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".gif", ".bmp", ".webp")

_GUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def is_guid(value: str) -> bool:
    """Return True for canonical 8-4-4-4-12 GUIDs (RFC 4122 version/variant)."""
    return bool(value) and bool(_GUID_RE.match(value))


def is_image_file(filename: str) -> bool:
    return bool(filename) and filename.lower().endswith(IMAGE_EXTENSIONS)


def _normalise(path: str) -> str:
    path = path.replace("\\", "/")
    while path.startswith("./"):
        path = path[2:]
    return path.lstrip("/")


class BcfArchive:
    """Container reader over the raw bytes of one archive."""

    def __init__(self, data: bytes, filename: str = "<memory>") -> None:
        self.filename = filename
        try:
            self._zip = zipfile.ZipFile(io.BytesIO(data), "r")
        except (zipfile.BadZipFile, ValueError) as exc:
            raise ParseError(f"Invalid BCF file: not a zip container ({exc})", filename, exc)
        self._lock = threading.Lock()
        # Map normalised paths to real member names (some tools write "\" or "./")
        self._entries: Dict[str, str] = {}
        for info in self._zip.infolist():
            if info.is_dir():
                continue
            self._entries.setdefault(_normalise(info.filename), info.filename)
        logger.debug("Opened archive %s with %d entries", filename, len(self._entries))

    # ------------------------------------------------------------------
    # Entry access
    # ------------------------------------------------------------------
    def list_entries(self) -> List[str]:
        return list(self._entries)

    def has_entry(self, path: str) -> bool:
        return _normalise(path) in self._entries

    def read_bytes(self, path: str) -> bytes:
        member = self._entries.get(_normalise(path))
        if member is None:
            raise EntryNotFoundError(f"Entry not found: {path}", self.filename)
        try:
            with self._lock:
                return self._zip.read(member)
        except (zipfile.BadZipFile, zlib.error, NotImplementedError, RuntimeError) as exc:
            raise CorruptEntryError(f"Cannot read entry {path}: {exc}", self.filename, exc)

    def read_text(self, path: str) -> str:
        return self.read_bytes(path).decode("utf-8-sig", errors="replace")

    def read_optional(self, path: str) -> Optional[bytes]:
        """Return the bytes of *path*, or ``None`` when it is absent or unreadable."""
        try:
            return self.read_bytes(path)
        except EntryNotFoundError:
            return None
        except CorruptEntryError as exc:
            logger.warning("Ignoring corrupt entry %s: %s", path, exc)
            return None

    def close(self) -> None:
        with self._lock:
            self._zip.close()

    def __enter__(self) -> "BcfArchive":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Topic folders
    # ------------------------------------------------------------------
    def topic_folders(self) -> List[str]:
        """Return the distinct GUID-shaped first path segments (no fixed order)."""
        folders = set()
        for path in self.list_entries():
            head, sep, _rest = path.partition("/")
            if sep and is_guid(head):
                folders.add(head)
        return list(folders)

    def folder_entries(self, folder: str) -> List[str]:
        """Return every entry path below *folder*, at any depth."""
        prefix = folder + "/"
        return [path for path in self._entries if path.startswith(prefix)]

    def folder_files(self, folder: str) -> List[str]:
        """Return the names of files sitting directly inside *folder*."""
        prefix = folder + "/"
        names = []
        for path in self._entries:
            if path.startswith(prefix) and "/" not in path[len(prefix):]:
                names.append(path[len(prefix):])
        return names

    def describe(self) -> ArchiveStructure:
        """Summarise the archive layout for diagnostics."""
        root_files: List[str] = []
        other_files: List[str] = []
        image_files: List[str] = []
        topic_folders: Dict[str, List[str]] = {}
        for path in sorted(self.list_entries()):
            head, sep, rest = path.partition("/")
            if not sep:
                root_files.append(path)
            elif is_guid(head):
                topic_folders.setdefault(head, []).append(rest)
                if is_image_file(posixpath.basename(rest)):
                    image_files.append(path)
            else:
                other_files.append(path)
        folders: Dict[str, Tuple[str, ...]] = {k: tuple(v) for k, v in topic_folders.items()}
        return ArchiveStructure(
            root_files=tuple(root_files),
            topic_folders=folders,
            image_files=tuple(image_files),
            other_files=tuple(other_files),
        )
