"""Container extraction and normalisation engine.

Front-ends (CLI, exporters, viewers) should depend on :func:`parse`,
:func:`extract_images` and the records in :mod:`bcfsleuth.core.models`
rather than on the individual extractors.
"""

from .exceptions import BcfError, CorruptEntryError, EntryNotFoundError, ParseError
from .images import ImageSource, extract_images
from .importers import BcfArchiveImporter, parse
from .models import (
    BcfDocument,
    CameraType,
    Comment,
    CustomFieldRegistry,
    FormatVersion,
    Project,
    Topic,
    Viewpoint,
    ViewpointImage,
)

__all__ = [
    "parse",
    "extract_images",
    "ImageSource",
    "BcfArchiveImporter",
    "BcfError",
    "ParseError",
    "EntryNotFoundError",
    "CorruptEntryError",
    "BcfDocument",
    "Project",
    "Topic",
    "Comment",
    "Viewpoint",
    "ViewpointImage",
    "CameraType",
    "FormatVersion",
    "CustomFieldRegistry",
]
