from __future__ import annotations

"""Viewpoint discovery and camera extraction.

Viewpoints are found in two passes. The markup document declares
viewpoint references; the topic folder holds ``.bcfv`` sub-documents with
the camera. Some tools write only one of the two, so a sub-document with no
declaration still yields a viewpoint, and a declaration with no
sub-document keeps an empty camera.
"""

import logging
import math
import posixpath
import re
from typing import Dict, List, Optional, Tuple

from lxml import etree as ET

from bcfsleuth.core.archive import BcfArchive, VIEWPOINT_SUFFIX
from bcfsleuth.core.exceptions import CorruptEntryError
from bcfsleuth.core.comments import COMMENT_TAGS
from bcfsleuth.core.models import CameraType, Vector3, Viewpoint
from bcfsleuth.core.xml_utils import (
    element_text,
    find_child,
    find_descendant,
    get_attribute,
    iter_elements,
    local_name,
    parse_xml,
)

logger = logging.getLogger(__name__)

__all__ = [
    "GENERIC_VIEWPOINT_ID",
    "LEGACY_TARGET_DISTANCE",
    "declared_viewpoints",
    "identifier_from_filename",
    "read_camera",
    "extract_viewpoints",
]

GENERIC_VIEWPOINT_ID = "viewpoint-generic"

# Nominal distance for the derived legacy target. Display only.
LEGACY_TARGET_DISTANCE = 10.0

_REFERENCE_TAGS = frozenset({"Viewpoints", "ViewPoint", "Viewpoint"})
_ID_ATTRIBUTES = ("Guid", "guid", "ViewPointGuid")
_BARE_GUID_RE = re.compile(r"^[0-9a-f-]{36}$", re.IGNORECASE)


def _strip_reference(reference: str) -> str:
    """``../x/Viewpoint_1.bcfv`` -> ``Viewpoint_1``."""
    name = posixpath.basename(reference.replace("\\", "/"))
    if name.lower().endswith(VIEWPOINT_SUFFIX):
        name = name[: -len(VIEWPOINT_SUFFIX)]
    return name


def _is_reference(element: ET._Element) -> bool:
    if local_name(element) not in _REFERENCE_TAGS:
        return False
    if any(get_attribute(element, attr) for attr in _ID_ATTRIBUTES):
        return True
    if find_child(element, "Viewpoint") is not None or find_child(element, "Snapshot") is not None:
        return True
    # A bare <Viewpoint>name.bcfv</Viewpoint> leaf
    return len(element) == 0 and VIEWPOINT_SUFFIX in (element.text or "")


def _iter_references(markup_root: ET._Element):
    accepted: List[ET._Element] = []
    for element in iter_elements(markup_root):
        ancestors = list(element.iterancestors())
        # Skip the inner file-name leaf of an accepted reference, and a
        # comment's pointer at the viewpoint it discusses
        if any(a in accepted for a in ancestors):
            continue
        if any(local_name(a) in COMMENT_TAGS for a in ancestors):
            continue
        if _is_reference(element):
            accepted.append(element)
            yield element


def _file_reference(element: ET._Element) -> Optional[str]:
    child = find_child(element, "Viewpoint")
    if child is not None:
        return element_text(child) or None
    if len(element) == 0:
        text = (element.text or "").strip()
        if VIEWPOINT_SUFFIX in text:
            return text
    return None


def _order_index(element: ET._Element, ordinal: int) -> int:
    raw = element_text(find_child(element, "Index"))
    try:
        return int(raw)
    except ValueError:
        return ordinal


def declared_viewpoints(markup_root: Optional[ET._Element], topic_id: str) -> List[Viewpoint]:
    """Structural pass: one provisional viewpoint per declared reference."""
    viewpoints: List[Viewpoint] = []
    if markup_root is None:
        return viewpoints
    for ordinal, element in enumerate(_iter_references(markup_root)):
        file_ref = _file_reference(element)
        identifier = next((get_attribute(element, a) for a in _ID_ATTRIBUTES
                           if get_attribute(element, a)), "")
        if not identifier and file_ref:
            identifier = _strip_reference(file_ref)
        if not identifier:
            identifier = f"viewpoint-{topic_id}-{ordinal}"
            logger.warning("No identifier for viewpoint %d of topic %s; using %s",
                           ordinal, topic_id, identifier)
        if any(vp.identifier == identifier for vp in viewpoints):
            logger.debug("Viewpoint %s of topic %s declared twice", identifier, topic_id)
            continue
        snapshot = element_text(find_child(element, "Snapshot")) or None
        viewpoints.append(Viewpoint(
            identifier=identifier,
            source_file_name=file_ref,
            snapshot_reference=snapshot,
            order_index=_order_index(element, ordinal),
        ))
    return viewpoints


def identifier_from_filename(filename: str) -> str:
    """Map a ``.bcfv`` file name to the viewpoint identifier it stands for."""
    stem = _strip_reference(filename)
    if stem.startswith("Viewpoint_"):
        return stem[len("Viewpoint_"):]
    if _BARE_GUID_RE.match(stem):
        return stem
    if stem == "viewpoint":
        return GENERIC_VIEWPOINT_ID
    return stem


# ---------------------------------------------------------------------------
# Camera
# ---------------------------------------------------------------------------

def _number(element: Optional[ET._Element]) -> Optional[float]:
    if element is None:
        return None
    try:
        value = float(element_text(element))
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def _triple(camera: ET._Element, name: str) -> Optional[Vector3]:
    """All three of X/Y/Z or nothing."""
    holder = find_descendant(camera, name)
    if holder is None:
        return None
    values = [_number(find_child(holder, axis)) for axis in ("X", "Y", "Z")]
    if any(v is None for v in values):
        return None
    return (values[0], values[1], values[2])


def _find_camera(root: ET._Element) -> Tuple[CameraType, Optional[ET._Element]]:
    for camera_type, tag in ((CameraType.PERSPECTIVE, "PerspectiveCamera"),
                             (CameraType.ORTHOGONAL, "OrthogonalCamera")):
        element = root if local_name(root) == tag else find_descendant(root, tag)
        if element is not None:
            return camera_type, element
    return CameraType.NONE, None


def _reset_camera(viewpoint: Viewpoint) -> None:
    viewpoint.camera_type = CameraType.NONE
    viewpoint.view_point = viewpoint.direction = viewpoint.up_vector = None
    viewpoint.field_of_view = viewpoint.view_to_world_scale = None
    viewpoint.legacy_position = viewpoint.legacy_target = None


def read_camera(viewpoint: Viewpoint, root: Optional[ET._Element]) -> None:
    """Populate the camera fields of *viewpoint* from a parsed ``.bcfv`` root."""
    _reset_camera(viewpoint)
    if root is None:
        return
    camera_type, camera = _find_camera(root)
    if camera is None:
        logger.debug("No camera element in viewpoint %s", viewpoint.identifier)
        return

    viewpoint.camera_type = camera_type
    viewpoint.view_point = _triple(camera, "CameraViewPoint")
    viewpoint.direction = _triple(camera, "CameraDirection")
    viewpoint.up_vector = _triple(camera, "CameraUpVector")
    if camera_type is CameraType.PERSPECTIVE:
        viewpoint.field_of_view = _number(find_descendant(camera, "FieldOfView"))
    else:
        viewpoint.view_to_world_scale = _number(find_descendant(camera, "ViewToWorldScale"))

    if viewpoint.view_point is not None:
        viewpoint.legacy_position = viewpoint.view_point
        if viewpoint.direction is not None:
            viewpoint.legacy_target = tuple(
                p + d * LEGACY_TARGET_DISTANCE
                for p, d in zip(viewpoint.view_point, viewpoint.direction)
            )


# ---------------------------------------------------------------------------
# Both passes
# ---------------------------------------------------------------------------

def _match(viewpoints: List[Viewpoint], identifier: str, filename: str) -> Optional[Viewpoint]:
    for viewpoint in viewpoints:
        if viewpoint.identifier == identifier:
            return viewpoint
    # Declared by file name only (the usual 2.x "viewpoint.bcfv" case)
    for viewpoint in viewpoints:
        if viewpoint.source_file_name and _strip_reference(viewpoint.source_file_name) == \
                _strip_reference(filename):
            return viewpoint
    return None


def extract_viewpoints(archive: BcfArchive, topic_id: str,
                       markup_root: Optional[ET._Element]) -> Tuple[Viewpoint, ...]:
    """Run both passes for one topic and return its viewpoints."""
    viewpoints = declared_viewpoints(markup_root, topic_id)
    next_index = max((vp.order_index for vp in viewpoints), default=-1) + 1

    files = sorted(p for p in archive.folder_entries(topic_id)
                   if p.lower().endswith(VIEWPOINT_SUFFIX))
    parsed: Dict[str, bool] = {}
    for path in files:
        filename = posixpath.basename(path)
        identifier = identifier_from_filename(filename)
        viewpoint = _match(viewpoints, identifier, filename)
        if viewpoint is None:
            viewpoint = Viewpoint(identifier=identifier, source_file_name=filename,
                                  order_index=next_index)
            next_index += 1
            viewpoints.append(viewpoint)
            logger.debug("Viewpoint %s of topic %s found only as %s", identifier, topic_id, filename)
        if parsed.get(viewpoint.identifier):
            continue
        try:
            data = archive.read_bytes(path)
        except CorruptEntryError as exc:
            logger.error("Could not read %s: %s", path, exc)
            continue
        read_camera(viewpoint, parse_xml(data, path))
        parsed[viewpoint.identifier] = True

    with_camera = sum(1 for vp in viewpoints if vp.has_camera)
    logger.debug("Topic %s: %d viewpoints, %d with camera data", topic_id, len(viewpoints),
                 with_camera)
    return tuple(viewpoints)
