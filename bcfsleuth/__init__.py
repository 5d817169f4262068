"""Top-level package for bcfsleuth.

Reads BCF collaboration archives (2.0, 2.1 and 3.0) into immutable,
version-independent records. Front-ends should only depend on the public
API exposed here rather than importing internal modules directly.
"""

from .core import (  # re-export for convenience
    BcfArchiveImporter,
    BcfDocument,
    Comment,
    FormatVersion,
    ParseError,
    Project,
    Topic,
    Viewpoint,
    extract_images,
    parse,
)

__version__ = "0.1.0"

__all__: list[str] = [
    "parse",
    "extract_images",
    "BcfArchiveImporter",
    "ParseError",
    "BcfDocument",
    "Project",
    "Topic",
    "Comment",
    "Viewpoint",
    "FormatVersion",
]
