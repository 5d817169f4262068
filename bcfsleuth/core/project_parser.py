from __future__ import annotations

"""Project-level documents: ``project.bcfp``, extensions and ``documents.xml``.

All three are optional. A missing or unreadable file degrades to a default
value and is logged; none of them can fail a parse.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from lxml import etree as ET

from bcfsleuth.core.archive import BcfArchive, DOCUMENTS_ENTRY, EXTENSIONS_ENTRIES
from bcfsleuth.core.format_detector import find_in_document
from bcfsleuth.core.models import (
    DocumentEntry,
    DocumentsManifest,
    ExtensionsSchema,
    FormatVersion,
    Project,
    UNKNOWN_PROJECT_NAME,
)
from bcfsleuth.core.xml_utils import (
    element_text,
    find_child,
    find_descendant,
    get_attribute,
    iter_descendants,
    iter_elements,
    local_name,
    parse_xml,
)

logger = logging.getLogger(__name__)

__all__ = [
    "parse_project",
    "parse_extensions",
    "parse_documents",
]


@dataclass(frozen=True)
class _ProjectRecord:
    name: str = ""
    identifier: str = ""
    has_extension_schema: bool = False


def _first_attribute(element: Optional[ET._Element], names: tuple[str, ...]) -> str:
    for name in names:
        value = get_attribute(element, name)
        if value:
            return value
    return ""


def _child_text(element: Optional[ET._Element], name: str) -> str:
    if element is None:
        return ""
    return element_text(find_descendant(element, name))


def _parse_project_info(root: ET._Element) -> _ProjectRecord:
    """Newest layout: ``ProjectInfo/Project`` with Name and ProjectId attributes."""
    info = find_in_document(root, "ProjectInfo")
    if info is None:
        logger.warning("ProjectInfo element not found")
        return _ProjectRecord()
    project = find_descendant(info, "Project")
    if project is None:
        logger.warning("Project element not found in ProjectInfo")
        return _ProjectRecord()
    return _ProjectRecord(get_attribute(project, "Name"), get_attribute(project, "ProjectId"))


def _parse_project_extension(root: ET._Element) -> _ProjectRecord:
    """Older layouts: ``ProjectExtension/Project`` plus an optional ExtensionSchema."""
    extension = find_in_document(root, "ProjectExtension")
    if extension is None:
        logger.warning("ProjectExtension element not found")
        return _ProjectRecord()
    has_schema = find_descendant(extension, "ExtensionSchema") is not None
    project = find_descendant(extension, "Project")
    if project is None:
        return _ProjectRecord(has_extension_schema=has_schema)
    identifier = _first_attribute(project, ("ProjectId", "Id", "Guid"))
    name = (_child_text(project, "Name") or _child_text(project, "name")
            or _first_attribute(project, ("Name", "name")))
    return _ProjectRecord(name, identifier, has_schema)


def _parse_project_fallback(root: ET._Element) -> _ProjectRecord:
    """Try every known shape regardless of version; first name found wins."""
    extension = find_in_document(root, "ProjectExtension")
    project = find_descendant(extension, "Project") if extension is not None else None
    if project is not None:
        name = _child_text(project, "Name")
        if name:
            logger.debug("Fallback: found ProjectExtension structure")
            return _ProjectRecord(name, get_attribute(project, "ProjectId"))

    info = find_in_document(root, "ProjectInfo")
    if info is not None:
        nested = find_descendant(info, "Project")
        name = _child_text(info, "Name") or get_attribute(nested, "Name")
        if name:
            logger.debug("Fallback: found ProjectInfo structure")
            identifier = get_attribute(info, "ProjectId") or get_attribute(nested, "ProjectId")
            return _ProjectRecord(name, identifier)

    project = find_in_document(root, "Project")
    if project is not None:
        name = _child_text(project, "Name") or get_attribute(project, "Name")
        if name:
            logger.debug("Fallback: found direct Project structure")
            return _ProjectRecord(name, _first_attribute(project, ("ProjectId", "Id")))
    return _ProjectRecord()


def parse_project(project_root: Optional[ET._Element], version: FormatVersion) -> Project:
    """Build the :class:`Project` record from a parsed ``project.bcfp`` root."""
    if project_root is None:
        logger.warning("No usable project.bcfp; using '%s'", UNKNOWN_PROJECT_NAME)
        return Project(format_version=version)

    if version is FormatVersion.G2:
        record = _parse_project_info(project_root)
        has_schema = False
    else:
        record = _parse_project_extension(project_root)
        has_schema = record.has_extension_schema

    name, identifier = record.name, record.identifier
    if not name:
        logger.debug("Primary project parsing found no name, trying fallback shapes")
        fallback = _parse_project_fallback(project_root)
        name = fallback.name
        identifier = identifier or fallback.identifier

    project = Project(
        name=name or UNKNOWN_PROJECT_NAME,
        identifier=identifier,
        format_version=version,
        has_extension_schema=has_schema,
    )
    logger.debug("Parsed project %r (id=%r, %s)", project.name, project.identifier, version.label)
    return project


# ---------------------------------------------------------------------------
# Extensions
# ---------------------------------------------------------------------------

# Enumeration owner names are matched case-insensitively by substring; order
# matters because "UserIdType" also contains "type".
_ENUM_BUCKETS = (
    ("userid", "user_id_types"),
    ("status", "topic_statuses"),
    ("priority", "priorities"),
    ("label", "topic_labels"),
    ("stage", "stages"),
    ("type", "topic_types"),
)

# Newer list layout: container tag -> bucket
_LIST_CONTAINERS = {
    "TopicTypes": "topic_types",
    "TopicStatuses": "topic_statuses",
    "Priorities": "priorities",
    "TopicLabels": "topic_labels",
    "Stages": "stages",
    "Users": "user_id_types",
}


def _bucket_for(owner_name: str) -> Optional[str]:
    lowered = owner_name.lower()
    if "snippet" in lowered:
        return None
    for needle, bucket in _ENUM_BUCKETS:
        if needle in lowered:
            return bucket
    return None


def _enumeration_owner(element: ET._Element) -> str:
    """Name of the closest named ancestor (the simpleType being restricted)."""
    for ancestor in element.iterancestors():
        name = ancestor.get("name")
        if name:
            return name
    return ""


def _add(buckets: Dict[str, List[str]], bucket: str, value: str) -> None:
    value = value.strip()
    if value and value not in buckets[bucket]:
        buckets[bucket].append(value)


def _collect_xsd(root: ET._Element, buckets: Dict[str, List[str]]) -> None:
    for element in iter_elements(root):
        if local_name(element) != "enumeration":
            continue
        bucket = _bucket_for(_enumeration_owner(element))
        if bucket:
            _add(buckets, bucket, element.get("value", ""))


def _collect_list_layout(root: ET._Element, buckets: Dict[str, List[str]]) -> None:
    for container_name, bucket in _LIST_CONTAINERS.items():
        container = find_in_document(root, container_name)
        if container is None:
            continue
        for child in container:
            if isinstance(child.tag, str):
                _add(buckets, bucket, element_text(child))


def parse_extensions(archive: BcfArchive) -> Optional[ExtensionsSchema]:
    """Read the enumerations declared in ``extensions.xsd`` / ``extensions.xml``."""
    for entry in EXTENSIONS_ENTRIES:
        data = archive.read_optional(entry)
        if data is None:
            continue
        root = parse_xml(data, entry)
        if root is None:
            logger.warning("Could not parse %s; ignoring extensions", entry)
            return ExtensionsSchema(source_file=entry)
        buckets: Dict[str, List[str]] = {bucket: [] for _, bucket in _ENUM_BUCKETS}
        if entry.endswith(".xsd"):
            _collect_xsd(root, buckets)
        else:
            _collect_list_layout(root, buckets)
        schema = ExtensionsSchema(source_file=entry, **{k: tuple(v) for k, v in buckets.items()})
        logger.debug("Parsed extensions from %s: %s", entry, buckets)
        return schema
    return None


# ---------------------------------------------------------------------------
# Documents manifest
# ---------------------------------------------------------------------------

def parse_documents(archive: BcfArchive) -> Optional[DocumentsManifest]:
    """Read ``documents.xml``; ``None`` when the archive has none (normal for 2.x)."""
    data = archive.read_optional(DOCUMENTS_ENTRY)
    if data is None:
        return None
    root = parse_xml(data, DOCUMENTS_ENTRY)
    if root is None:
        logger.warning("Could not parse %s", DOCUMENTS_ENTRY)
        return DocumentsManifest()

    candidates = [root] if local_name(root) == "Document" else []
    candidates.extend(iter_descendants(root, ("Document",)))
    entries = []
    for element in candidates:
        entry = DocumentEntry(
            guid=get_attribute(element, "Guid"),
            filename=element_text(find_child(element, "Filename")),
            description=element_text(find_child(element, "Description")),
        )
        if entry.guid or entry.filename:
            entries.append(entry)
    logger.debug("Parsed %d documents from %s", len(entries), DOCUMENTS_ENTRY)
    return DocumentsManifest(tuple(entries))
