"""Errors raised while talking to Sloper or reconciling its records."""
from __future__ import annotations


class SloperError(Exception):
    """Base class for Sloper sync errors."""


class AuthError(SloperError):
    """Login against the Sloper API failed; aborts the sync run."""


class FetchError(SloperError):
    """A data request failed or returned an unusable payload; aborts the sync run."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class DateFormatError(SloperError, ValueError):
    """A Sloper timestamp did not match the expected format; skips the record."""

    def __init__(self, value: object):
        super().__init__(f"Unparseable Sloper timestamp: {value!r}")
        self.value = value


class RenameDepthExceeded(SloperError):
    """A chain of duplicate-name renames ran past the configured limit."""

    def __init__(self, name: str, depth: int):
        super().__init__(f"Gave up resolving duplicate name {name!r} after {depth} renames")
        self.name = name
        self.depth = depth
