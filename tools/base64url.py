#!/usr/bin/env python3
"""
base64url.py - Base64url <-> bit buffer conversion for consent strings

Each character of the URL-safe alphabet (A-Z a-z 0-9 - _) carries 6 bits,
concatenated in input order. There is no '=' padding on the wire.

Decoding yields every bit the characters carry; how many of them are
meaningful is decided by the section schema, since the last character
usually contains padding.

Encoding pads explicitly, using one of the two policies found in the
reference GPP encoders:

    COMPRESSED   - pad to a byte boundary, then to a 6-bit boundary
                   (GPP header, US sections)
    TRADITIONAL  - pad to a multiple of 24 bits, the LCM of 6 and 8
                   (TCF EU v2, TCF CA v1; matches the IAB TCF library)
    NONE         - pad only to the next 6-bit boundary

Usage:
    from base64url import decode, encode, Padding

    bits = decode("DBABMA")           # BitBuffer of 36 bits
    text = encode(bits, Padding.COMPRESSED)
"""

from enum import Enum

from bit_buffer import BitBuffer
from gpp_errors import InvalidCharacter


ALPHABET = 'ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_'

DECODE_TABLE = {c: i for i, c in enumerate(ALPHABET)}


class Padding(Enum):
    NONE = 'none'
    COMPRESSED = 'compressed'
    TRADITIONAL = 'traditional'


def decode(text: str) -> BitBuffer:
    """Map each base64url character to 6 bits."""
    value = 0
    for offset, char in enumerate(text):
        sextet = DECODE_TABLE.get(char)
        if sextet is None:
            raise InvalidCharacter(
                f"Invalid base64url character {char!r} at offset {offset}",
                offset=offset, char=char)
        value = (value << 6) | sextet
    return BitBuffer(value, 6 * len(text))


def padded_length(length: int, padding: Padding) -> int:
    """Bit length after applying a padding policy."""
    if padding is Padding.TRADITIONAL:
        return length + (-length % 24)
    if padding is Padding.COMPRESSED:
        length += -length % 8
    return length + (-length % 6)


def encode(buffer: BitBuffer, padding: Padding = Padding.COMPRESSED) -> str:
    """Zero-pad ``buffer`` per ``padding`` and map 6-bit groups to characters."""
    length = padded_length(buffer.length, padding)
    value = buffer.value << (length - buffer.length)
    chars = []
    for shift in range(length - 6, -1, -6):
        chars.append(ALPHABET[(value >> shift) & 0x3F])
    return ''.join(chars)
