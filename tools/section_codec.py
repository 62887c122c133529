#!/usr/bin/env python3
"""
section_codec.py - Per-section codecs and the section registry

A section codec turns one ``~`` segment of a GPP string into a section model
and back. Bit-packed sections are driven by the segment schemas in
section_schemas.py; a section's segment may carry further ``.``-separated
sub-segments:

    TCF EU v2 / TCF CA v1   core, then optional segments picked by their
                            leading 3-bit segment type
    US sections             core, then an optional GPC subsection
                            (2-bit subsection type 1 + GPC flag)
    US Privacy v1           four plain characters, no base64

Usage:
    from section_codec import DEFAULT_CODECS

    codec = DEFAULT_CODECS[2]
    section = codec.decode("CPXxRfAPXxRfAAfKABENB-CgAAAAAAAAAAYgAAAAAAAA")
    text = codec.encode(section)

    codecs = default_codecs()
    codecs[13] = load_us_section_codec(UsFl, {1: "usfl.yaml"})    # YAML-defined section
"""

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

import structlog

import base64url
from base64url import Padding
from bit_buffer import BitReader, BitWriter
from gpp_config import DecodeOptions
from gpp_errors import (GppError, InvalidCharacter, TruncatedInput, UnknownSegmentType,
                        UnsupportedVersion, ValueOutOfRange)
from section_schema import SegmentInterpreter, load_schema_file
import section_schemas as schemas
from sections import (PublisherPurposes, Section, TcfCaV1, TcfCaV1Core,
                      TcfCaV1PublisherPurposes, TcfEuV2, TcfEuV2Core, UsCa, UsCo, UsCt,
                      UsNat, UspV1, UsUt, UsVa, field_values)


logger = structlog.get_logger(__name__)

VERSION_BITS = 6
SEGMENT_TYPE_BITS = 3
SUBSECTION_TYPE_BITS = 2
GPC_SUBSECTION_TYPE = 1

DEFAULT_OPTIONS = DecodeOptions()


# =============================================================================
# Segment helpers
# =============================================================================

def decode_segment(interpreter: SegmentInterpreter, reader: BitReader,
                   options: DecodeOptions) -> Dict[str, Any]:
    """Run ``interpreter`` over ``reader`` and consume the trailing padding."""
    try:
        values = interpreter.decode(reader, drop_truncated=not options.strict_restrictions)
        remaining = reader.remaining_bits()
        if not reader.check_padding(options.strict_padding):
            logger.debug('gpp.padding.ignored', segment=interpreter.name, bits=remaining)
    except GppError as e:
        raise e.prefix_path(interpreter.name)
    return values


def encode_segment(interpreter: SegmentInterpreter, values: Dict[str, Any],
                   padding: Padding) -> str:
    writer = BitWriter()
    try:
        interpreter.encode(values, writer)
    except GppError as e:
        raise e.prefix_path(interpreter.name)
    return base64url.encode(writer.to_buffer(), padding)


def _peek(reader: BitReader, bits: int, segment: str) -> int:
    try:
        return reader.peek_uint(bits)
    except GppError as e:
        raise e.prefix_path(segment)


def _reader(text: str) -> BitReader:
    return BitReader(base64url.decode(text))


def _interpreters(schemas_by_version: Dict[int, Dict[str, Any]]) -> Dict[int, SegmentInterpreter]:
    return {version: SegmentInterpreter(schema)
            for version, schema in schemas_by_version.items()}


# =============================================================================
# Base class
# =============================================================================

class SectionCodec:
    """
    Base class for section codecs.

    Subclasses implement _decode/_encode; the public methods add the section
    name to the path of any GppError passing through.
    """

    section_id: int = 0
    section_name: str = ''
    cores: Dict[int, SegmentInterpreter]

    def decode(self, segment: str, options: Optional[DecodeOptions] = None) -> Section:
        try:
            return self._decode(segment, options or DEFAULT_OPTIONS)
        except GppError as e:
            raise e.prefix_path(self.section_name)

    def encode(self, section: Section) -> str:
        try:
            return self._encode(section)
        except GppError as e:
            raise e.prefix_path(self.section_name)

    def _core_interpreter(self, version: int) -> SegmentInterpreter:
        interpreter = self.cores.get(version)
        if interpreter is None:
            raise UnsupportedVersion(
                f"Unsupported {self.section_name} version {version} "
                f"(supported: {sorted(self.cores)})", version=version, path='core')
        return interpreter

    def _decode(self, segment: str, options: DecodeOptions) -> Section:
        raise NotImplementedError

    def _encode(self, section: Section) -> str:
        raise NotImplementedError


# =============================================================================
# TCF sections
# =============================================================================

@dataclass(frozen=True)
class OptionalSegment:
    """An optional TCF segment: model attribute plus value conversions."""
    segment_type: int
    attr: str
    interpreter: SegmentInterpreter
    to_value: Callable[[Dict[str, Any]], Any]
    to_values: Callable[[Any], Dict[str, Any]]


def _vendor_segment(segment_type: int, attr: str, schema: Dict[str, Any]) -> OptionalSegment:
    return OptionalSegment(segment_type, attr, SegmentInterpreter(schema),
                           lambda values: values['vendors'],
                           lambda vendors: {'vendors': vendors})


def _model_segment(segment_type: int, attr: str, schema: Dict[str, Any],
                   model: type) -> OptionalSegment:
    return OptionalSegment(segment_type, attr, SegmentInterpreter(schema),
                           lambda values: model(**values), field_values)


class TcfSectionCodec(SectionCodec):
    """Core segment by version, then optional segments by segment type."""

    padding = Padding.TRADITIONAL

    def __init__(self, model: type, core_model: type,
                 cores: Dict[int, Dict[str, Any]], segments: Dict[int, OptionalSegment]):
        self.model = model
        self.core_model = core_model
        self.section_id = model.section_id
        self.section_name = model.section_name
        self.cores = _interpreters(cores)
        self.segments = segments

    def _decode(self, segment: str, options: DecodeOptions) -> Section:
        core_text, *extra = segment.split('.')
        reader = _reader(core_text)
        interpreter = self._core_interpreter(_peek(reader, VERSION_BITS, 'core'))
        core = self.core_model(**decode_segment(interpreter, reader, options))

        optional = {}
        for text in extra:
            reader = _reader(text)
            segment_type = _peek(reader, SEGMENT_TYPE_BITS, 'segment')
            segment_def = self.segments.get(segment_type)
            if segment_def is None:
                raise UnknownSegmentType(f"Unknown segment type {segment_type}")
            if segment_def.attr in optional:
                raise UnknownSegmentType(f"Segment type {segment_type} appears twice")
            optional[segment_def.attr] = segment_def.to_value(
                decode_segment(segment_def.interpreter, reader, options))

        return self.model(core=core, **optional)

    def _encode(self, section: Section) -> str:
        if not isinstance(section, self.model):
            raise ValueOutOfRange(f"Expected {self.model.__name__}, got {type(section).__name__}")
        interpreter = self._core_interpreter(section.core.version)
        parts = [encode_segment(interpreter, field_values(section.core), self.padding)]
        for segment_type in sorted(self.segments):
            segment_def = self.segments[segment_type]
            value = getattr(section, segment_def.attr)
            if value is not None:
                parts.append(encode_segment(segment_def.interpreter, segment_def.to_values(value),
                                            self.padding))
        return '.'.join(parts)


# =============================================================================
# US sections
# =============================================================================

class UsSectionCodec(SectionCodec):
    """Core segment by version, then an optional GPC subsection."""

    padding = Padding.COMPRESSED

    def __init__(self, model: type, cores: Dict[int, Dict[str, Any]]):
        self.model = model
        self.section_id = model.section_id
        self.section_name = model.section_name
        self.cores = _interpreters(cores)
        self.supports_gpc = 'gpc' in {f.name for f in fields(model)}
        self.gpc = SegmentInterpreter(schemas.US_GPC_SUBSECTION)

    def _decode(self, segment: str, options: DecodeOptions) -> Section:
        core_text, *extra = segment.split('.')
        reader = _reader(core_text)
        interpreter = self._core_interpreter(_peek(reader, VERSION_BITS, 'core'))
        values = decode_segment(interpreter, reader, options)

        if extra and not self.supports_gpc:
            raise UnknownSegmentType(f"{self.section_name} has no subsections")
        if len(extra) > 1:
            raise UnknownSegmentType(f"Expected at most one subsection, found {len(extra)}")
        if extra:
            reader = _reader(extra[0])
            subsection_type = _peek(reader, SUBSECTION_TYPE_BITS, 'gpc')
            if subsection_type != GPC_SUBSECTION_TYPE:
                raise UnknownSegmentType(f"Unknown subsection type {subsection_type}")
            values.update(decode_segment(self.gpc, reader, options))

        return self.model(**values)

    def _encode(self, section: Section) -> str:
        if not isinstance(section, self.model):
            raise ValueOutOfRange(f"Expected {self.model.__name__}, got {type(section).__name__}")
        interpreter = self._core_interpreter(section.version)
        text = encode_segment(interpreter, field_values(section, exclude=('gpc',)),
                              self.padding)
        gpc = getattr(section, 'gpc', None)
        if gpc is not None:
            text += '.' + encode_segment(self.gpc, {'gpc': gpc}, self.padding)
        return text


def load_us_section_codec(model: type,
                          schema_files: Dict[int, Union[str, Path]]) -> UsSectionCodec:
    """
    Build a US-style codec whose core layouts are read from YAML schema files.

    ``model`` is a frozen dataclass with ``section_id`` and ``section_name``
    class variables and one field per output field of the schemas (plus
    ``gpc`` for a GPC subsection). ``schema_files`` maps core version to file.

        codecs = default_codecs()
        codec = load_us_section_codec(UsFl, {1: 'schemas/usfl.yaml'})
        codecs[codec.section_id] = codec
        consent = GppDecoder(codecs=codecs).decode(text)
    """
    return UsSectionCodec(model, {version: load_schema_file(path)
                                  for version, path in schema_files.items()})


# =============================================================================
# US Privacy v1
# =============================================================================

USP_FLAGS = ('Y', 'N', '-')
USP_LENGTH = 4


class UspV1Codec(SectionCodec):
    """Plain-text CCPA string, e.g. "1YNN"."""

    section_id = UspV1.section_id
    section_name = UspV1.section_name

    def _decode(self, segment: str, options: DecodeOptions) -> Section:
        if len(segment) < USP_LENGTH:
            raise TruncatedInput(
                f"US Privacy string needs {USP_LENGTH} characters, got {len(segment)}",
                needed=USP_LENGTH, available=len(segment))
        if len(segment) > USP_LENGTH:
            raise ValueOutOfRange(
                f"US Privacy string has {len(segment)} characters, expected {USP_LENGTH}")
        if segment[0] not in '0123456789':
            raise InvalidCharacter(f"Invalid version character {segment[0]!r}",
                                   offset=0, char=segment[0])
        version = int(segment[0])
        if version != 1:
            raise UnsupportedVersion(f"Unsupported US Privacy version {version}",
                                     version=version)
        for offset, char in enumerate(segment[1:], start=1):
            if char not in USP_FLAGS:
                raise InvalidCharacter(f"Invalid flag {char!r} at offset {offset}",
                                       offset=offset, char=char)
        return UspV1(version, segment[1], segment[2], segment[3])

    def _encode(self, section: Section) -> str:
        if not isinstance(section, UspV1):
            raise ValueOutOfRange(f"Expected UspV1, got {type(section).__name__}")
        if section.version != 1:
            raise UnsupportedVersion(f"Unsupported US Privacy version {section.version}",
                                     version=section.version)
        flags = (section.notice, section.opt_out_sale, section.lspa_covered)
        for flag in flags:
            if flag not in USP_FLAGS:
                raise ValueOutOfRange(f"US Privacy flag must be one of {USP_FLAGS}, got {flag!r}")
        return str(section.version) + ''.join(flags)


# =============================================================================
# Registry
# =============================================================================

def default_codecs() -> Dict[int, SectionCodec]:
    """Codecs for every section this package models, keyed by section ID."""
    codecs = [
        TcfSectionCodec(TcfEuV2, TcfEuV2Core, {2: schemas.TCF_EU_V2_CORE}, {
            1: _vendor_segment(1, 'disclosed_vendors', schemas.TCF_EU_V2_DISCLOSED_VENDORS),
            2: _vendor_segment(2, 'allowed_vendors', schemas.TCF_EU_V2_ALLOWED_VENDORS),
            3: _model_segment(3, 'publisher_purposes', schemas.TCF_EU_V2_PUBLISHER_TC,
                              PublisherPurposes),
        }),
        # Version 2 cores are seen in the wild with the v1 layout.
        TcfSectionCodec(TcfCaV1, TcfCaV1Core,
                        {1: schemas.TCF_CA_V1_CORE, 2: schemas.TCF_CA_V1_CORE}, {
            1: _vendor_segment(1, 'disclosed_vendors', schemas.TCF_CA_V1_DISCLOSED_VENDORS),
            3: _model_segment(3, 'publisher_purposes', schemas.TCF_CA_V1_PUBLISHER_PURPOSES,
                              TcfCaV1PublisherPurposes),
        }),
        UspV1Codec(),
        UsSectionCodec(UsNat, {1: schemas.US_NAT_V1_CORE, 2: schemas.US_NAT_V2_CORE}),
        UsSectionCodec(UsCa, {1: schemas.US_CA_CORE}),
        UsSectionCodec(UsVa, {1: schemas.US_VA_CORE}),
        UsSectionCodec(UsCo, {1: schemas.US_CO_CORE}),
        UsSectionCodec(UsUt, {1: schemas.US_UT_CORE}),
        UsSectionCodec(UsCt, {1: schemas.US_CT_CORE}),
    ]
    return {codec.section_id: codec for codec in codecs}


DEFAULT_CODECS = default_codecs()
