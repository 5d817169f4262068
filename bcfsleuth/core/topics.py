from __future__ import annotations

"""Topic extraction: one normalised :class:`Topic` per topic folder.

Composes the alias tables, the custom field scanner, the comment merger and
the viewpoint extractor. Nothing here keeps a reference to the parsed XML;
every value the rest of the system needs is copied into the record.
"""

import logging
import re
from typing import List, Optional, Tuple

from lxml import etree as ET

from bcfsleuth.core.archive import BcfArchive, COMMENTS_NAME, MARKUP_NAME
from bcfsleuth.core.comments import merge_comments
from bcfsleuth.core.custom_fields import scan_anomalies, scan_scope
from bcfsleuth.core.fields import NESTED_RECORDS, TOPIC_SCOPE, resolve_record, resolve_text
from bcfsleuth.core.format_detector import find_in_document
from bcfsleuth.core.models import DocumentReference, FormatVersion, HeaderFile, Topic
from bcfsleuth.core.viewpoints import extract_viewpoints
from bcfsleuth.core.xml_utils import (
    element_text,
    find_child,
    find_children,
    get_attribute,
    iter_descendants,
    local_name,
    parse_xml,
)

logger = logging.getLogger(__name__)

__all__ = [
    "extract_topic",
    "read_labels",
    "read_reference_links",
    "read_document_references",
    "read_header_files",
]

_LABEL_CONTAINERS = ("Labels", "TopicLabels", "Tags", "Categories")
_LABEL_ITEMS = ("Label", "TopicLabel", "Tag", "Category")
_LABEL_SEPARATORS = re.compile(r"[,;|]")


def _append_unique(values: List[str], value: str) -> None:
    value = value.strip()
    if value and value not in values:
        values.append(value)


def read_labels(topic_el: ET._Element) -> Tuple[str, ...]:
    """Collect labels from every label container of the topic, in order."""
    labels: List[str] = []
    pruned = NESTED_RECORDS[TOPIC_SCOPE]
    for container in iter_descendants(topic_el, _LABEL_CONTAINERS, pruned):
        items = [child for child in container if isinstance(child.tag, str)]
        nested = [child for child in items if local_name(child) in _LABEL_ITEMS]
        if nested:
            for item in nested:
                _append_unique(labels, element_text(item))
        elif not items and element_text(container):
            # 2.x writes one <Labels> per label; some tools pack several into one
            for part in _LABEL_SEPARATORS.split(element_text(container)):
                _append_unique(labels, part)
        else:
            _append_unique(labels, get_attribute(container, "value")
                           or get_attribute(container, "Label"))
    return tuple(labels)


def read_reference_links(topic_el: ET._Element, version: FormatVersion) -> Tuple[str, ...]:
    """2.x topics carry a single reference link; 3.0 topics may carry many."""
    elements = find_children(topic_el, "ReferenceLink")
    for container in find_children(topic_el, "ReferenceLinks"):
        elements.extend(find_children(container, "ReferenceLink"))
    links: List[str] = []
    for element in elements:
        _append_unique(links, element_text(element))
    if version is not FormatVersion.G2:
        return tuple(links[:1])
    return tuple(links)


def _document_reference(element: ET._Element) -> DocumentReference:
    return DocumentReference(
        identifier=get_attribute(element, "Guid"),
        document_guid=resolve_text(element, ("DocumentGuid",), attributes=("DocumentGuid",)),
        url=resolve_text(element, ("Url", "ReferencedDocument"),
                         attributes=("Url", "ReferencedDocument")),
        description=resolve_text(element, ("Description",), attributes=("Description",)),
    )


def read_document_references(topic_el: ET._Element) -> Tuple[DocumentReference, ...]:
    elements = find_children(topic_el, "DocumentReference")
    for container in find_children(topic_el, "DocumentReferences"):
        elements.extend(find_children(container, "DocumentReference"))
    references = []
    for element in elements:
        reference = _document_reference(element)
        if reference.identifier or reference.document_guid or reference.url:
            references.append(reference)
    return tuple(references)


def _is_external(element: ET._Element) -> bool:
    raw = resolve_text(element, ("IsExternal",), attributes=("IsExternal", "isExternal"))
    return raw.lower() in ("true", "1")


def read_header_files(markup_root: ET._Element) -> Tuple[HeaderFile, ...]:
    """Model files listed under ``Header/Files/File`` (older shape: ``Header/File``)."""
    header = find_in_document(markup_root, "Header")
    if header is None:
        return ()
    elements = find_children(header, "File")
    for container in find_children(header, "Files"):
        elements.extend(find_children(container, "File"))
    files = []
    for element in elements:
        files.append(HeaderFile(
            ifc_project=get_attribute(element, "IfcProject"),
            ifc_spatial_structure_element=get_attribute(element, "IfcSpatialStructureElement"),
            is_external=_is_external(element),
            filename=element_text(find_child(element, "Filename")),
            date=element_text(find_child(element, "Date")),
            reference=element_text(find_child(element, "Reference")),
        ))
    return tuple(files)


def _read_document(archive: BcfArchive, path: str) -> Optional[ET._Element]:
    data = archive.read_optional(path)
    if data is None:
        return None
    root = parse_xml(data, path)
    if root is None:
        logger.warning("Could not parse %s", path)
    return root


def extract_topic(archive: BcfArchive, topic_id: str,
                  version: FormatVersion) -> Optional[Topic]:
    """Build the record for the topic stored under *topic_id*.

    Returns ``None`` when the folder has no readable markup document.
    Any other exception propagates to the caller, which isolates it.
    """
    markup_path = f"{topic_id}/{MARKUP_NAME}"
    markup_root = _read_document(archive, markup_path)
    if markup_root is None:
        logger.warning("Topic %s has no usable %s; skipping", topic_id, MARKUP_NAME)
        return None

    topic_el = find_in_document(markup_root, "Topic")
    if topic_el is None:
        logger.debug("No Topic element in %s; reading fields from the document root", markup_path)
        topic_el = markup_root

    fields = resolve_record(topic_el, TOPIC_SCOPE)
    if not fields["title"]:
        logger.debug("Topic %s has no title", topic_id)

    server_assigned_id = ""
    document_references: Tuple[DocumentReference, ...] = ()
    header_files: Tuple[HeaderFile, ...] = ()
    if version is FormatVersion.G2:
        server_assigned_id = get_attribute(topic_el, "ServerAssignedId")
        document_references = read_document_references(topic_el)
        header_files = read_header_files(markup_root)

    custom_fields = scan_scope(topic_el, TOPIC_SCOPE)
    custom_fields.update(scan_anomalies(markup_root))

    comments_root = _read_document(archive, f"{topic_id}/{COMMENTS_NAME}")
    comments = merge_comments(topic_id, markup_root, comments_root,
                              sources=(MARKUP_NAME, COMMENTS_NAME))

    topic = Topic(
        identifier=topic_id,
        format_version=version,
        labels=read_labels(topic_el),
        server_assigned_id=server_assigned_id,
        reference_links=read_reference_links(topic_el, version),
        document_references=document_references,
        header_files=header_files,
        comments=comments,
        viewpoints=extract_viewpoints(archive, topic_id, markup_root),
        custom_fields=custom_fields,
        **fields,
    )
    logger.debug("Extracted topic %s %r: %d comments, %d viewpoints, %d custom fields",
                 topic_id, topic.title, len(topic.comments), len(topic.viewpoints),
                 len(topic.custom_fields))
    return topic
