from __future__ import annotations

"""Exception classes raised by the bcfsleuth core.

Only :class:`ParseError` ever crosses the public ``parse`` boundary; every
other failure inside an archive is degraded to a default value or isolated
to the topic it occurred in.
"""

from typing import Optional

__all__ = ["BcfError", "ParseError", "EntryNotFoundError", "CorruptEntryError"]


class BcfError(Exception):
    """Base exception for all archive-reading errors."""

    def __init__(self, message: str, file_path: Optional[str] = None,
                 cause: Optional[Exception] = None) -> None:
        super().__init__(message)
        self.file_path = file_path
        self.cause = cause

    def __str__(self) -> str:
        if self.file_path:
            return f"[{self.file_path}] {super().__str__()}"
        return super().__str__()


class ParseError(BcfError):
    """Raised when an archive cannot be parsed at all.

    The mandatory ``bcf.version`` descriptor being absent is the only
    structural problem that aborts a parse.
    """

    @property
    def reason(self) -> str:
        return self.args[0] if self.args else ""


class EntryNotFoundError(BcfError):
    """Raised by the container reader when an entry path does not exist."""


class CorruptEntryError(BcfError):
    """Raised by the container reader when an entry exists but cannot be decompressed."""
