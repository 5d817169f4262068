from __future__ import annotations

"""Import functionality for BCF containers.

Key components:
- parse: bytes in, normalised BcfDocument out
- BcfArchiveImporter: reads an archive from disk and hands it to parse
"""

from .bcf_importer import BcfArchiveImporter, parse

__all__ = ["BcfArchiveImporter", "parse"]
