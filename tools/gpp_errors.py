#!/usr/bin/env python3
"""
gpp_errors.py - Typed errors raised by the GPP codec

Every error carries a dotted ``path`` naming the section, segment and field
being processed when it was raised (e.g. ``tcfeuv2.core.vendor_consents``).
The path is built up as the error propagates outward through the schema
interpreter and the section dispatcher.

Usage:
    from gpp_errors import GppError, TruncatedInput

    try:
        consent = decode_gpp(text)
    except TruncatedInput as e:
        print(e.path, e)
"""

from typing import Optional


class GppError(ValueError):
    """Base class for all consent string decode/encode failures."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.path = path or ''

    def prefix_path(self, segment: str) -> 'GppError':
        """Prepend a path segment and return self for re-raising."""
        if segment:
            self.path = f"{segment}.{self.path}" if self.path else segment
        return self

    def __str__(self) -> str:
        if self.path:
            return f"{self.path}: {self.message}"
        return self.message


class InvalidCharacter(GppError):
    """A character outside the expected alphabet was found."""

    def __init__(self, message: str, offset: int = -1, char: str = '',
                 path: Optional[str] = None):
        super().__init__(message, path)
        self.offset = offset
        self.char = char


class TruncatedInput(GppError):
    """A read would run past the end of the bit buffer."""

    def __init__(self, message: str, needed: int = 0, available: int = 0,
                 path: Optional[str] = None):
        super().__init__(message, path)
        self.needed = needed
        self.available = available


class ValueOutOfRange(GppError):
    """A value does not fit its declared width, or violates a range rule."""


class SegmentCountMismatch(GppError):
    """The number of ``~`` segments disagrees with the header."""

    def __init__(self, message: str, declared: int = 0, found: int = 0,
                 path: Optional[str] = None):
        super().__init__(message, path)
        self.declared = declared
        self.found = found


class UnknownSectionId(GppError):
    """The header declares a section this codec does not model (strict mode)."""

    def __init__(self, message: str, section_id: int = 0,
                 path: Optional[str] = None):
        super().__init__(message, path)
        self.section_id = section_id


class UnsupportedVersion(GppError):
    """A header or segment version outside the supported set."""

    def __init__(self, message: str, version: int = 0,
                 path: Optional[str] = None):
        super().__init__(message, path)
        self.version = version


class UnknownSegmentType(GppError):
    """An optional sub-segment has an unknown or repeated type."""


class InvalidPadding(GppError):
    """Trailing padding bits are not zero (strict padding only)."""


class SchemaError(GppError):
    """A section schema definition is malformed."""
