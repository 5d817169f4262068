from __future__ import annotations

"""Discovery of custom and vendor-specific fields.

Keys encode where a value came from::

    {scope}_attr_{name}                  attribute of the scope element
    {scope}_element_{tag}                non-standard child element
    {scope}_element_{tag}_attr_{name}    attribute of that child
    namespace_{uri}_{local}              element in a foreign namespace
    unknown_{tag}                        tag carrying a vendor marker

Keys are not stable across authoring tools; consumers should treat them as
opaque labels.
"""

import logging
import re
from typing import Dict, Iterable, Optional

from lxml import etree as ET

from bcfsleuth.core.fields import STANDARD_FIELDS
from bcfsleuth.core.models import CustomFieldInfo, CustomFieldRegistry, Topic
from bcfsleuth.core.xml_utils import element_text, iter_elements, local_name, qualified_name

logger = logging.getLogger(__name__)

__all__ = [
    "BASELINE_NAMESPACES",
    "VENDOR_MARKERS",
    "scan_scope",
    "scan_anomalies",
    "build_registry",
    "display_name",
    "categorize",
]

BASELINE_NAMESPACES = frozenset({
    "http://www.w3.org/1999/xhtml",
    "http://www.w3.org/XML/1998/namespace",
})

VENDOR_MARKERS = ("CustomField", "Extension", "UserDefined", "Extra", "Additional")


def scan_scope(scope: Optional[ET._Element], prefix: str) -> Dict[str, str]:
    """Flatten the attributes and non-standard children of *scope*."""
    fields: Dict[str, str] = {}
    if scope is None:
        return fields

    for name, value in scope.attrib.items():
        value = value.strip()
        if value:
            fields[f"{prefix}_attr_{ET.QName(name).localname}"] = value

    for child in scope:
        tag = local_name(child)
        if not tag or tag in STANDARD_FIELDS:
            continue
        text = element_text(child)
        if text:
            fields[f"{prefix}_element_{tag}"] = text
        for name, value in child.attrib.items():
            value = value.strip()
            if value:
                fields[f"{prefix}_element_{tag}_attr_{ET.QName(name).localname}"] = value
    return fields


def scan_anomalies(root: Optional[ET._Element]) -> Dict[str, str]:
    """Report foreign-namespace and vendor-marked elements anywhere under *root*."""
    fields: Dict[str, str] = {}
    if root is None:
        return fields
    for element in iter_elements(root):
        namespace = ET.QName(element.tag).namespace
        if namespace and namespace not in BASELINE_NAMESPACES:
            text = element_text(element)
            if text:
                fields[f"namespace_{namespace}_{local_name(element)}"] = text
        tag = qualified_name(element)
        if any(marker in tag for marker in VENDOR_MARKERS):
            text = element_text(element)
            if text:
                fields[f"unknown_{tag}"] = text
    return fields


def display_name(field_name: str) -> str:
    """Turn ``topic_element_CostCode`` into ``Element CostCode``."""
    name = re.sub(r"^(topic|comment)_", "", field_name)
    name = re.sub(r"_(attr|element)_", " ", name)
    name = name.replace("_", " ")
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), name)


def categorize(field_name: str) -> str:
    if "attr" in field_name:
        return "Attributes"
    if "namespace" in field_name:
        return "Vendor Extensions"
    if "element" in field_name:
        return "Custom Elements"
    if "comment" in field_name:
        return "Comment Extensions"
    return "Other Custom Fields"


def _record(target: Dict[str, CustomFieldInfo], fields: Dict[str, str]) -> None:
    for name, value in fields.items():
        value = str(value).strip()
        if not value:
            continue
        info = target.get(name)
        if info is None:
            info = target[name] = CustomFieldInfo(display_name(name), categorize(name))
        if value not in info.values:
            info.values.append(value)
        info.count += 1


def build_registry(topics: Iterable[Topic]) -> CustomFieldRegistry:
    """Index every custom field key found on *topics* and their comments."""
    registry = CustomFieldRegistry()
    for topic in topics:
        _record(registry.topic_fields, dict(topic.custom_fields))
        for comment in topic.comments:
            _record(registry.comment_fields, dict(comment.custom_fields))
    if registry.total:
        logger.debug("Discovered %d custom fields (topic: %s, comment: %s)", registry.total,
                     sorted(registry.topic_fields), sorted(registry.comment_fields))
    return registry
