from __future__ import annotations

"""Helpers for presenting camera data to export collaborators."""

import logging
from typing import Dict, Iterable, Optional

from bcfsleuth.core.models import Topic, Vector3, Viewpoint
from bcfsleuth.core.viewpoints import GENERIC_VIEWPOINT_ID

logger = logging.getLogger(__name__)

__all__ = ["format_coordinate", "format_vector", "primary_viewpoint", "camera_summary"]


def format_coordinate(value: Optional[float]) -> str:
    """Three decimals, or ``""`` for a missing value."""
    if value is None:
        return ""
    return f"{value:.3f}"


def format_vector(vector: Optional[Vector3]) -> str:
    if vector is None:
        return ""
    return ", ".join(format_coordinate(v) for v in vector)


def primary_viewpoint(viewpoints: Iterable[Viewpoint]) -> Optional[Viewpoint]:
    """Choose the viewpoint that represents a topic in tabular exports.

    The generic ``viewpoint.bcfv`` wins, then the first with camera data,
    then simply the first.
    """
    candidates = list(viewpoints)
    if not candidates:
        return None
    for viewpoint in candidates:
        if viewpoint.identifier == GENERIC_VIEWPOINT_ID:
            return viewpoint
    for viewpoint in candidates:
        if viewpoint.has_camera:
            return viewpoint
    return candidates[0]


def camera_summary(topic: Topic) -> Dict[str, str]:
    """Flat, string-valued camera columns for the primary viewpoint of *topic*."""
    viewpoint = primary_viewpoint(topic.viewpoints)
    if viewpoint is None:
        return {"camera_type": "", "position": "", "target": "", "direction": "",
                "up_vector": "", "field_of_view": "", "view_to_world_scale": ""}
    return {
        "camera_type": viewpoint.camera_type.value if viewpoint.has_camera else "",
        "position": format_vector(viewpoint.legacy_position),
        "target": format_vector(viewpoint.legacy_target),
        "direction": format_vector(viewpoint.direction),
        "up_vector": format_vector(viewpoint.up_vector),
        "field_of_view": format_coordinate(viewpoint.field_of_view),
        "view_to_world_scale": format_coordinate(viewpoint.view_to_world_scale),
    }
