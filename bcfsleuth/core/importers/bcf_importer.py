from __future__ import annotations

"""BCF archive importer.

Turns the raw bytes of a ``.bcf``/``.bcfzip`` container into a
:class:`~bcfsleuth.core.models.BcfDocument`. :func:`parse` is the single
entry point; :class:`BcfArchiveImporter` wraps it for callers that start
from a file on disk.

Only a missing ``bcf.version`` (or bytes that are not a zip container at
all) fails the import. Every other problem degrades to a default value or
drops the one topic it occurred in.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import List, Optional

from bcfsleuth.config import ConfigManager
from bcfsleuth.core.archive import BcfArchive, PROJECT_ENTRY, VERSION_ENTRY
from bcfsleuth.core.custom_fields import build_registry
from bcfsleuth.core.exceptions import BcfError, ParseError
from bcfsleuth.core.format_detector import detect_format, read_declared_version
from bcfsleuth.core.images import ImageSource, extract_images
from bcfsleuth.core.models import BcfDocument, FormatVersion, Topic
from bcfsleuth.core.project_parser import parse_documents, parse_extensions, parse_project
from bcfsleuth.core.topics import extract_topic
from bcfsleuth.core.xml_utils import parse_xml

logger = logging.getLogger(__name__)

__all__ = ["parse", "BcfArchiveImporter"]


def _safe_extract(archive: BcfArchive, topic_id: str, version: FormatVersion) -> Optional[Topic]:
    """Extract one topic; any failure drops that topic only."""
    try:
        return extract_topic(archive, topic_id, version)
    except Exception as exc:
        logger.error("Error parsing topic %s: %s", topic_id, exc, exc_info=True)
        return None


def _extract_topics(archive: BcfArchive, folders: List[str], version: FormatVersion,
                    workers: int) -> List[Topic]:
    if workers > 1 and len(folders) > 1:
        logger.debug("Extracting %d topics on %d threads", len(folders), workers)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="bcf-topic") as pool:
            results = list(pool.map(lambda f: _safe_extract(archive, f, version), folders))
    else:
        results = [_safe_extract(archive, folder, version) for folder in folders]
    topics = [topic for topic in results if topic is not None]
    topics.sort(key=lambda topic: topic.identifier)
    return topics


def _log_structure(document: BcfDocument) -> None:
    if not logger.isEnabledFor(logging.DEBUG):
        return
    structure = document.structure
    logger.debug("=== BCF file structure: %s ===", document.filename)
    logger.debug("Root files: %s", list(structure.root_files))
    for folder, files in structure.topic_folders.items():
        logger.debug("Topic folder %s: %s", folder, list(files))
    logger.debug("Image files: %d, other files: %d", len(structure.image_files),
                 len(structure.other_files))


def _option(explicit, key: str, default):
    if explicit is not None:
        return explicit
    return ConfigManager().get_parser_option(key, default)


def parse(archive_bytes: bytes, filename: str = "<memory>", *,
          eager_images: Optional[bool] = None,
          topic_workers: Optional[int] = None) -> BcfDocument:
    """Parse one archive into a normalised :class:`BcfDocument`.

    Args:
        archive_bytes: Raw bytes of the container.
        filename: Name used in log messages and on the result.
        eager_images: Read every snapshot now and release the archive.
            Defaults to the ``eager_images`` parser option (off).
        topic_workers: Threads used for topic extraction. Defaults to the
            ``topic_workers`` parser option (1, sequential).

    Returns:
        The aggregate. Unless images were read eagerly, its
        ``image_source`` keeps the archive open for :func:`extract_images`.

    Raises:
        ParseError: If the bytes are not a zip container or ``bcf.version``
            is missing.
    """
    eager = bool(_option(eager_images, "eager_images", False))
    workers = max(1, int(_option(topic_workers, "topic_workers", 1)))

    archive = BcfArchive(archive_bytes, filename)
    try:
        declared = read_declared_version(archive)
        project_data = archive.read_optional(PROJECT_ENTRY)
        project_root = parse_xml(project_data, PROJECT_ENTRY) if project_data is not None else None
        if project_data is None:
            logger.warning("No %s in %s", PROJECT_ENTRY, filename)

        detection = detect_format(archive, declared, project_root)
        document = BcfDocument(
            filename=filename,
            project=parse_project(project_root, detection.version),
            detection=detection,
            extensions=parse_extensions(archive),
            documents=parse_documents(archive),
            structure=archive.describe(),
        )
        _log_structure(document)

        folders = archive.topic_folders()
        logger.debug("Found %d topic folders", len(folders))
        document.topics = _extract_topics(archive, folders, detection.version, workers)
        document.custom_field_registry = build_registry(document.topics)
    except ParseError:
        archive.close()
        raise
    except BcfError as exc:
        archive.close()
        raise ParseError(f"Invalid BCF file: {exc}", filename, exc)

    source = ImageSource(archive, folders)
    if eager:
        extract_images(document.topics, source)
        source.close()
    else:
        document.image_source = source

    logger.info("Parsed %s: %s, project %r, %d topics", filename, detection.version.label,
                document.project.name, len(document.topics))
    return document


class BcfArchiveImporter:
    """Importer for BCF archives stored on disk."""

    def __init__(self, eager_images: Optional[bool] = None) -> None:
        self.logger = logging.getLogger(f"{__name__}.BcfArchiveImporter")
        self.eager_images = eager_images

    def can_import(self, file_path: Path) -> bool:
        """Check if this importer can handle the given file.

        Args:
            file_path: Path to the file to check

        Returns:
            True if the file has a BCF extension and contains ``bcf.version``
        """
        file_path = Path(file_path)
        if not file_path.is_file():
            return False
        if file_path.suffix.lower() not in self.get_supported_extensions():
            return False
        try:
            with BcfArchive(file_path.read_bytes(), file_path.name) as archive:
                return archive.has_entry(VERSION_ENTRY)
        except (BcfError, OSError):
            return False

    def import_archive(self, file_path: Path, eager_images: Optional[bool] = None) -> BcfDocument:
        """Import a BCF archive from disk.

        Args:
            file_path: Path to the ``.bcf``/``.bcfzip`` file
            eager_images: Overrides the importer-level setting for this call

        Returns:
            BcfDocument for the archive

        Raises:
            ParseError: If the file cannot be read or is not a BCF archive
        """
        file_path = Path(file_path)
        self.logger.debug("Importing BCF archive: %s", file_path)
        try:
            data = file_path.read_bytes()
        except OSError as exc:
            raise ParseError(f"Failed to read BCF file: {exc}", str(file_path), exc)
        eager = eager_images if eager_images is not None else self.eager_images
        return parse(data, file_path.name, eager_images=eager)

    def get_supported_extensions(self) -> List[str]:
        """Get list of supported file extensions.

        Returns:
            List of file extensions (with dots) that this importer supports
        """
        return ['.bcf', '.bcfzip']

    def get_format_description(self) -> str:
        """Get human-readable description of supported format.

        Returns:
            Description string for UI display
        """
        return "BCF Archive (2.0, 2.1, 3.0)"
