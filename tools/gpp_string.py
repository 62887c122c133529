#!/usr/bin/env python3
"""
gpp_string.py - GPP consent string decoder and encoder

A GPP string is a header segment followed by one ``~``-separated segment per
section the header declares, in declared order:

    DBACNY~CPXxRfAPXxRfAAfKABENB-CgAAAAAAAAAAYgAAAAAAAA~1YNN
    |      |                                            |
    header tcfeuv2 (id 2)                               uspv1 (id 6)

Header fields: type (6 bits, always 3), version (6 bits), then the section
IDs as a Fibonacci-coded range list.

Decoding runs in two steps. READ_HEADER decodes the header and splits the
remaining segments; READ_SECTIONS hands each segment to the codec
registered for its ID. Sections without a codec are kept as RawSection
(or rejected with UnknownSectionId under strict_sections).

Usage:
    from gpp_string import decode_gpp, encode_gpp

    consent = decode_gpp("DBABMA~CPXxRfAPXxRfAAfKABENB-CgAAAAAAAAAAYgAAAAAAAA")
    consent.section('tcfeuv2').core.cmp_id      # 31
    text = encode_gpp(consent)

    # Lazy access: only the header is decoded up front
    gpp = GppString.parse(text)
    tcf = gpp.decode_section(2)
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union

import structlog

import base64url
from base64url import Padding
from bit_buffer import BitReader
from field_codec import entries_from_ids
from gpp_config import DecodeOptions
from gpp_errors import (GppError, SegmentCountMismatch, UnknownSectionId,
                        UnsupportedVersion, ValueOutOfRange)
from section_codec import DEFAULT_CODECS, SectionCodec, decode_segment, encode_segment
from section_schema import SegmentInterpreter
from section_schemas import GPP_HEADER, GPP_HEADER_TYPE
from sections import RawSection, Section, TcfEuV2


logger = structlog.get_logger(__name__)

SECTION_SEPARATOR = '~'
SUPPORTED_VERSIONS = (1,)
HEADER_PREFIX_BITS = 12

HEADER = SegmentInterpreter(GPP_HEADER)


# =============================================================================
# Model
# =============================================================================

@dataclass(frozen=True)
class GppHeader:
    version: int = 1
    section_ids: Tuple[int, ...] = ()


@dataclass(frozen=True)
class ConsentString:
    """
    A decoded GPP string.

    The header is derived from ``sections``, so the declared section order
    and the section order are the same thing.
    """
    version: int = 1
    sections: Tuple[Section, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, 'sections', tuple(self.sections))

    @property
    def section_ids(self) -> Tuple[int, ...]:
        return tuple(section.section_id for section in self.sections)

    @property
    def header(self) -> GppHeader:
        return GppHeader(self.version, self.section_ids)

    def section(self, key: Union[int, str]) -> Optional[Section]:
        """Look up a section by numeric ID or by name ('tcfeuv2', 'uspv1', ...)."""
        for section in self.sections:
            if key == section.section_id or key == section.section_name:
                return section
        return None

    def __contains__(self, key: Union[int, str]) -> bool:
        return self.section(key) is not None


@dataclass
class DecodeResult:
    """Result of a non-raising decode."""
    consent: Optional[ConsentString]
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return len(self.errors) == 0


# =============================================================================
# Header
# =============================================================================

def decode_header(text: str, segment_count: int, options: DecodeOptions) -> GppHeader:
    """
    Decode the header segment.

    The number of declared sections must equal ``segment_count``; it is
    checked before any range is expanded.
    """
    try:
        reader = BitReader(base64url.decode(text))
        prefix = reader.peek_uint(HEADER_PREFIX_BITS)
    except GppError as e:
        raise e.prefix_path(HEADER.name)
    header_type, version = prefix >> 6, prefix & 0x3F
    if header_type != GPP_HEADER_TYPE:
        raise UnsupportedVersion(
            f"Not a GPP header: type {header_type}, expected {GPP_HEADER_TYPE}",
            version=header_type, path='header.type')
    if version not in SUPPORTED_VERSIONS:
        raise UnsupportedVersion(
            f"Unsupported GPP version {version} (supported: {list(SUPPORTED_VERSIONS)})",
            version=version, path='header.version')

    values = decode_segment(HEADER, reader, options)
    entries = values['section_ids']
    declared = sum(entry.last - entry.start + 1 for entry in entries)
    if declared != segment_count:
        raise SegmentCountMismatch(
            f"Header declares {declared} sections, found {segment_count} segments",
            declared=declared, found=segment_count)
    section_ids = tuple(sid for entry in entries for sid in entry.ids())
    return GppHeader(version, section_ids)


def encode_header(header: GppHeader) -> str:
    if header.version not in SUPPORTED_VERSIONS:
        raise UnsupportedVersion(f"Unsupported GPP version {header.version}",
                                 version=header.version, path='header.version')
    previous = 0
    for sid in header.section_ids:
        if sid <= previous:
            raise ValueOutOfRange(
                f"Section IDs must be strictly increasing, got {list(header.section_ids)}",
                path='header.section_ids')
        previous = sid
    values = {
        'type': GPP_HEADER_TYPE,
        'version': header.version,
        'section_ids': entries_from_ids(header.section_ids),
    }
    return encode_segment(HEADER, values, Padding.COMPRESSED)


# =============================================================================
# Lazy string
# =============================================================================

class GppString:
    """
    A GPP string with only its header decoded.

    Sections are decoded on request; each call decodes afresh.
    """

    def __init__(self, header: GppHeader, segments: Tuple[str, ...],
                 options: Optional[DecodeOptions] = None,
                 codecs: Optional[Dict[int, SectionCodec]] = None):
        self.header = header
        self.segments = dict(zip(header.section_ids, segments))
        self.options = options or DecodeOptions()
        self.codecs = DEFAULT_CODECS if codecs is None else codecs

    @classmethod
    def parse(cls, text: str, options: Optional[DecodeOptions] = None,
              codecs: Optional[Dict[int, SectionCodec]] = None) -> 'GppString':
        """Decode the header and split the section segments."""
        options = options or DecodeOptions()
        header_text, *segments = text.split(SECTION_SEPARATOR)
        header = decode_header(header_text, len(segments), options)
        return cls(header, tuple(segments), options, codecs)

    @property
    def section_ids(self) -> Tuple[int, ...]:
        return self.header.section_ids

    def segment(self, section_id: int) -> str:
        """The raw wire segment of a declared section."""
        if section_id not in self.segments:
            raise UnknownSectionId(f"Section {section_id} is not declared in the header",
                                   section_id=section_id)
        return self.segments[section_id]

    def decode_section(self, section_id: int) -> Section:
        segment = self.segment(section_id)
        codec = self.codecs.get(section_id)
        if codec is not None:
            return codec.decode(segment, self.options)
        if self.options.strict_sections:
            raise UnknownSectionId(f"Unknown section ID {section_id}",
                                   section_id=section_id, path=f"section_{section_id}")
        logger.debug('gpp.section.unknown_retained', section_id=section_id,
                     length=len(segment))
        return RawSection(section_id, segment)

    def decode_all_sections(self) -> List[Section]:
        return [self.decode_section(sid) for sid in self.section_ids]

    def to_consent(self) -> ConsentString:
        return ConsentString(self.header.version, tuple(self.decode_all_sections()))


# =============================================================================
# Decoder / encoder
# =============================================================================

class GppDecoder:
    """
    Decodes GPP strings into ConsentString values.

    Holds only options and the codec registry; one instance can be shared.
    """

    def __init__(self, options: Optional[DecodeOptions] = None,
                 codecs: Optional[Dict[int, SectionCodec]] = None):
        self.options = options or DecodeOptions()
        self.codecs = DEFAULT_CODECS if codecs is None else codecs

    def parse(self, text: str) -> GppString:
        return GppString.parse(text, self.options, self.codecs)

    def decode(self, text: str) -> ConsentString:
        return self.parse(text).to_consent()

    def try_decode(self, text: str) -> DecodeResult:
        """Decode without raising; failures are reported in ``errors``."""
        try:
            consent = self.decode(text)
        except GppError as e:
            logger.debug('gpp.decode.failed', error=e.message, path=e.path,
                         error_type=type(e).__name__)
            return DecodeResult(None, errors=[str(e)])
        warnings = [f"Section {s.section_id} has no codec; kept as raw segment"
                    for s in consent.sections if isinstance(s, RawSection)]
        return DecodeResult(consent, warnings=warnings)


class GppEncoder:
    """Encodes ConsentString values into canonical GPP strings."""

    def __init__(self, codecs: Optional[Dict[int, SectionCodec]] = None):
        self.codecs = DEFAULT_CODECS if codecs is None else codecs

    def encode(self, consent: ConsentString) -> str:
        parts = [encode_header(consent.header)]
        for section in consent.sections:
            if isinstance(section, RawSection):
                parts.append(section.segment)
                continue
            codec = self.codecs.get(section.section_id)
            if codec is None:
                raise UnknownSectionId(f"No codec for section ID {section.section_id}",
                                       section_id=section.section_id)
            parts.append(codec.encode(section))
        return SECTION_SEPARATOR.join(parts)


# =============================================================================
# Convenience functions
# =============================================================================

def decode_gpp(text: str, options: Optional[DecodeOptions] = None) -> ConsentString:
    return GppDecoder(options).decode(text)


def encode_gpp(consent: ConsentString) -> str:
    return GppEncoder().encode(consent)


def decode_tcf_eu_v2(text: str, options: Optional[DecodeOptions] = None) -> TcfEuV2:
    """Decode a bare TCF EU v2 segment (no GPP header)."""
    return DEFAULT_CODECS[TcfEuV2.section_id].decode(text, options)


def encode_tcf_eu_v2(section: TcfEuV2) -> str:
    return DEFAULT_CODECS[TcfEuV2.section_id].encode(section)
