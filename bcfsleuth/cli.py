from __future__ import annotations

"""Command-line front-end: parse one archive and print a JSON summary."""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from bcfsleuth.core.coordinates import camera_summary
from bcfsleuth.core.exceptions import ParseError
from bcfsleuth.core.importers import BcfArchiveImporter
from bcfsleuth.core.models import BcfDocument, Topic
from bcfsleuth.logging_config import setup_logging

logger = logging.getLogger(__name__)

__all__ = ["main", "build_summary"]


def _topic_summary(topic: Topic, with_images: bool) -> Dict[str, Any]:
    summary: Dict[str, Any] = {
        "guid": topic.identifier,
        "title": topic.title,
        "status": topic.status,
        "type": topic.type,
        "priority": topic.priority,
        "labels": list(topic.labels),
        "comments": len(topic.comments),
        "viewpoints": len(topic.viewpoints),
        "camera": camera_summary(topic),
    }
    if with_images:
        summary["images"] = [
            {"viewpoint": vp.identifier, "file": vp.image.filename,
             "mime_type": vp.image.mime_type, "size": list(vp.image.size or ())}
            for vp in topic.viewpoints if vp.image is not None
        ]
    return summary


def build_summary(document: BcfDocument, with_images: bool = False) -> Dict[str, Any]:
    """Plain-data view of *document* suitable for ``json.dumps``."""
    detection = document.detection
    registry = document.custom_field_registry
    return {
        "file": document.filename,
        "project": {"name": document.project.name, "id": document.project.identifier},
        "version": document.format_version.value,
        "declared_version": detection.declared_version if detection else "",
        "version_signal": detection.signal.value if detection else "",
        "topics": [_topic_summary(topic, with_images) for topic in document.topics],
        "custom_fields": {
            "topic": sorted(registry.topic_fields),
            "comment": sorted(registry.comment_fields),
        },
    }


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="bcfsleuth",
        description="Read a BCF archive and print a JSON summary of its topics",
    )
    parser.add_argument("archive", type=Path, help="Path to a .bcf/.bcfzip file")
    parser.add_argument(
        "--images",
        action="store_true",
        help="Extract snapshot images and report which viewpoints they matched",
    )
    parser.add_argument(
        "--indent",
        type=int,
        default=2,
        help="JSON indentation (default: 2)",
    )
    args = parser.parse_args(argv)

    setup_logging()

    importer = BcfArchiveImporter()
    try:
        document = importer.import_archive(args.archive, eager_images=args.images)
    except ParseError as exc:
        logger.error("Could not import %s: %s", args.archive, exc)
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    json.dump(build_summary(document, with_images=args.images), sys.stdout,
              indent=args.indent, ensure_ascii=False)
    sys.stdout.write("\n")
    if document.image_source is not None:
        document.image_source.close()
    return 0
