from __future__ import annotations

"""Schema generation detection.

The version declared in ``bcf.version`` is a claim, not a fact: several
exporters write ``3.0`` into archives that are laid out as 2.1. Detection
therefore weighs structural evidence in a fixed priority order and always
returns a version. Only a missing descriptor is fatal, and that check
happens in :func:`read_declared_version`, before detection runs.

The demote-to-2.1 and default-to-2.1 policies were tuned against archives
seen in the wild. Do not reorder the checks without fixture evidence.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from lxml import etree as ET

from bcfsleuth.core.archive import (
    BcfArchive,
    DOCUMENTS_ENTRY,
    EXTENSIONS_ENTRIES,
    MARKUP_NAME,
    VERSION_ENTRY,
)
from bcfsleuth.core.exceptions import ParseError
from bcfsleuth.core.models import DetectionSignal, FormatDetection, FormatVersion
from bcfsleuth.core.xml_utils import (
    element_text,
    find_children,
    find_descendant,
    get_attribute,
    has_attribute,
    local_name,
    parse_xml,
)

logger = logging.getLogger(__name__)

__all__ = [
    "read_declared_version",
    "classify_declared",
    "detect_format",
    "ProjectLayout",
    "inspect_project_layout",
    "find_in_document",
]


def find_in_document(root: Optional[ET._Element], name: str) -> Optional[ET._Element]:
    """Return *root* if it is named *name*, else its first such descendant."""
    if root is None:
        return None
    if local_name(root) == name:
        return root
    return find_descendant(root, name)


def read_declared_version(archive: BcfArchive) -> str:
    """Return the version string declared by ``bcf.version`` ('' if unreadable).

    Raises :class:`ParseError` when the descriptor is absent.
    """
    if not archive.has_entry(VERSION_ENTRY):
        raise ParseError(f"Invalid BCF file: missing {VERSION_ENTRY} file", archive.filename)
    root = parse_xml(archive.read_bytes(VERSION_ENTRY), VERSION_ENTRY)
    version = find_in_document(root, "Version")
    if version is None:
        logger.warning("No Version element found in %s", VERSION_ENTRY)
        return ""
    declared = get_attribute(version, "VersionId")
    if not declared:
        declared = element_text(find_descendant(version, "DetailedVersion"))
    return declared


def classify_declared(declared: str) -> Optional[FormatVersion]:
    """Map a declared version string onto a generation, or None if unrecognised."""
    value = (declared or "").strip()
    if value == "3" or value.startswith("3."):
        return FormatVersion.G2
    if value.startswith("2.1"):
        return FormatVersion.G1
    if value.startswith("2.0") or value == "2":
        return FormatVersion.G0
    return None


class ProjectLayout(Enum):
    PROJECT_INFO = "ProjectInfo"
    PROJECT_EXTENSION = "ProjectExtension"
    BOTH = "both"
    NONE = "none"


@dataclass(frozen=True)
class _ProjectShape:
    layout: ProjectLayout
    has_extension_schema: bool = False


def inspect_project_layout(project_root: Optional[ET._Element]) -> _ProjectShape:
    info = find_in_document(project_root, "ProjectInfo")
    extension = find_in_document(project_root, "ProjectExtension")
    schema = extension is not None and find_descendant(extension, "ExtensionSchema") is not None
    if info is not None and extension is not None:
        return _ProjectShape(ProjectLayout.BOTH, schema)
    if info is not None:
        return _ProjectShape(ProjectLayout.PROJECT_INFO)
    if extension is not None:
        return _ProjectShape(ProjectLayout.PROJECT_EXTENSION, schema)
    return _ProjectShape(ProjectLayout.NONE)


@dataclass(frozen=True)
class _Evidence:
    """Outcome of the newest-generation checks: decisive for or against."""

    confirms: bool
    signal: DetectionSignal


def _sample_topic_markers(archive: BcfArchive) -> bool:
    for folder in sorted(archive.topic_folders()):
        path = f"{folder}/{MARKUP_NAME}"
        data = archive.read_optional(path)
        if data is None:
            continue
        root = parse_xml(data, path)
        topic = find_in_document(root, "Topic")
        if topic is None:
            return False
        if has_attribute(topic, "ServerAssignedId"):
            logger.debug("Found ServerAssignedId on sampled topic %s", folder)
            return True
        links = find_children(topic, "ReferenceLink")
        for container in find_children(topic, "ReferenceLinks"):
            links.extend(find_children(container, "ReferenceLink"))
        if len(links) > 1:
            logger.debug("Found %d reference links on sampled topic %s", len(links), folder)
            return True
        return False
    return False


def _newest_generation_evidence(archive: BcfArchive, shape: _ProjectShape) -> Optional[_Evidence]:
    if archive.has_entry(DOCUMENTS_ENTRY):
        return _Evidence(True, DetectionSignal.DOCUMENTS_MANIFEST)
    # Exactly one project layout is decisive; both or neither fall through
    if shape.layout is ProjectLayout.PROJECT_INFO:
        return _Evidence(True, DetectionSignal.PROJECT_INFO_LAYOUT)
    if shape.layout is ProjectLayout.PROJECT_EXTENSION:
        return _Evidence(False, DetectionSignal.PROJECT_EXTENSION_LAYOUT)
    if _sample_topic_markers(archive):
        return _Evidence(True, DetectionSignal.TOPIC_MARKERS)
    return None


def _legacy_generation(shape: _ProjectShape) -> Optional[FormatDetection]:
    """Tell 2.0 from 2.1 by the ExtensionSchema inside ProjectExtension."""
    if shape.layout not in (ProjectLayout.PROJECT_EXTENSION, ProjectLayout.BOTH):
        return None
    if shape.has_extension_schema:
        return FormatDetection(FormatVersion.G1, signal=DetectionSignal.EXTENSION_SCHEMA)
    return FormatDetection(FormatVersion.G0, signal=DetectionSignal.PROJECT_EXTENSION_LAYOUT)


def _detect(archive: BcfArchive, declared: str,
            project_root: Optional[ET._Element]) -> FormatDetection:
    shape = inspect_project_layout(project_root)
    claimed = classify_declared(declared)

    if claimed is FormatVersion.G2:
        evidence = _newest_generation_evidence(archive, shape)
        if evidence is not None and evidence.confirms:
            return FormatDetection(FormatVersion.G2, declared, evidence.signal)
        signal = evidence.signal if evidence is not None else DetectionSignal.DEFAULT
        logger.warning("Version file declares %s but structure suggests %s (%s); using %s",
                       declared, FormatVersion.G1.value, signal.value, FormatVersion.G1.value)
        return FormatDetection(FormatVersion.G1, declared, signal, demoted=True)

    if claimed is not None:
        legacy = _legacy_generation(shape)
        if legacy is None:
            return FormatDetection(claimed, declared, DetectionSignal.DECLARED)
        if legacy.version is not claimed:
            logger.info("Version file declares %s but project layout indicates %s",
                        declared, legacy.version.value)
        return FormatDetection(legacy.version, declared, legacy.signal)

    logger.info("Unrecognised declared version %r, using structure analysis", declared)
    evidence = _newest_generation_evidence(archive, shape)
    if evidence is not None and evidence.confirms:
        return FormatDetection(FormatVersion.G2, declared, evidence.signal)
    legacy = _legacy_generation(shape)
    if legacy is not None:
        return FormatDetection(legacy.version, declared, legacy.signal)
    if any(archive.has_entry(name) for name in EXTENSIONS_ENTRIES):
        return FormatDetection(FormatVersion.G1, declared, DetectionSignal.EXTENSIONS_FILE)
    logger.info("No clear format indicators; defaulting to %s", FormatVersion.G1.value)
    return FormatDetection(FormatVersion.G1, declared, DetectionSignal.DEFAULT)


def detect_format(archive: BcfArchive, declared: str,
                  project_root: Optional[ET._Element] = None) -> FormatDetection:
    """Resolve the schema generation of *archive*. Never raises."""
    try:
        detection = _detect(archive, declared, project_root)
    except Exception:
        logger.error("Format detection failed; defaulting to %s", FormatVersion.G1.value,
                     exc_info=True)
        detection = FormatDetection(FormatVersion.G1, declared or "", DetectionSignal.DEFAULT)
    logger.debug("Detected %s (declared=%r, signal=%s, demoted=%s)", detection.version.label,
                 detection.declared_version, detection.signal.value, detection.demoted)
    return detection
