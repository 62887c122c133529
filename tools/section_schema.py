#!/usr/bin/env python3
"""
section_schema.py - Declarative segment schemas and their interpreter

A segment schema is an ordered list of field definitions, written as plain
dicts so they can live in Python modules or YAML files alike:

    name: tcfeuv2_publisher_tc
    fields:
      - name: segment_type
        type: uint
        bits: 3
        const: 3                      # written on encode, checked on decode
      - name: purpose_consents
        type: bitfield
        length: 24
      - name: num_custom_purposes
        type: uint
        bits: 6
      - name: custom_purpose_consents
        type: bitfield
        length: $num_custom_purposes  # width taken from an earlier field

Fields are evaluated strictly in declared order with decoded values threaded
forward, because later widths depend on earlier values. ``$`` references
must therefore point at an earlier field; validate_schema rejects anything
else.

Field keys:
    name          output key (required, unique)
    type          one of field_codec.FIELD_CODECS (required)
    bits/length   width parameters, int or $reference
    id_bits       ID width for range types (default 16)
    const         fixed value; excluded from decoded output
    optional_tail when the segment ends before this field, use the type's
                  default instead of failing (min_bits: bits that must remain)
    drop_truncated restrictions only: when the interpreter runs
                  with drop_truncated, restrictions after the first that are
                  cut off by the end of the segment are dropped

Usage:
    from section_schema import SegmentInterpreter, load_schema_file

    interpreter = SegmentInterpreter(schema)
    values = interpreter.decode(reader)
    interpreter.encode(values, writer)
"""

from pathlib import Path
from typing import Any, Dict, List, Union

import yaml

from bit_buffer import BitReader, BitWriter, MAX_UINT_BITS
from field_codec import FIELD_CODECS
from gpp_errors import GppError, SchemaError, ValueOutOfRange


WIDTH_PARAMS = ('bits', 'length', 'id_bits')


def _is_ref(value: Any) -> bool:
    return isinstance(value, str) and value.startswith('$')


def _schema_name(schema: Any) -> str:
    return schema.get('name', '') if isinstance(schema, dict) else ''


def validate_schema(schema: Dict[str, Any]) -> List[str]:
    """
    Check a segment schema for structural errors.

    Returns a list of error messages; empty when the schema is usable.
    """
    errors = []
    if not isinstance(schema, dict):
        return [f"Schema must be a mapping, got {type(schema).__name__}"]

    if not schema.get('name'):
        errors.append("Schema has no 'name'")

    fields = schema.get('fields')
    if not isinstance(fields, list) or not fields:
        errors.append("Schema has no 'fields' list")
        return errors

    seen = {}
    for index, field_def in enumerate(fields):
        if not isinstance(field_def, dict):
            errors.append(f"Field #{index} is not a mapping")
            continue
        name = field_def.get('name')
        label = name or f"#{index}"
        if not name:
            errors.append(f"Field #{index} has no 'name'")
        elif name in seen:
            errors.append(f"Field '{name}' is defined twice")

        field_type = field_def.get('type')
        codec = FIELD_CODECS.get(field_type)
        if codec is None:
            errors.append(f"Field '{label}': unknown type {field_type!r}")
            continue

        for param in codec.required:
            if param not in field_def:
                errors.append(f"Field '{label}': type '{field_type}' requires '{param}'")

        for param in WIDTH_PARAMS:
            if param not in field_def:
                continue
            value = field_def[param]
            if _is_ref(value):
                ref = value[1:]
                if ref not in seen:
                    errors.append(
                        f"Field '{label}': {param} references '{ref}', "
                        f"which is not an earlier field")
                elif seen[ref] != 'uint':
                    errors.append(
                        f"Field '{label}': {param} references '{ref}', "
                        f"which is not an integer field")
            elif isinstance(value, bool) or not isinstance(value, int) or value < 0:
                errors.append(f"Field '{label}': {param} must be a non-negative integer")
            elif param == 'bits' and value > MAX_UINT_BITS:
                errors.append(f"Field '{label}': {value} bits exceeds {MAX_UINT_BITS}")

        if 'drop_truncated' in field_def:
            if field_type != 'restrictions':
                errors.append(f"Field '{label}': drop_truncated is only allowed on restrictions")
            elif not isinstance(field_def['drop_truncated'], bool):
                errors.append(f"Field '{label}': drop_truncated must be true or false")

        if 'const' in field_def:
            const = field_def['const']
            if field_type not in ('uint', 'bool'):
                errors.append(f"Field '{label}': const is only allowed on uint and bool")
            elif field_type == 'uint' and isinstance(field_def.get('bits'), int):
                if isinstance(const, bool) or not isinstance(const, int) \
                        or const < 0 or const >> field_def['bits']:
                    errors.append(
                        f"Field '{label}': const {const!r} does not fit in "
                        f"{field_def['bits']} bits")

        if name:
            seen[name] = field_type

    return errors


def load_schema(text: str) -> Dict[str, Any]:
    """Parse and validate a YAML schema document."""
    try:
        schema = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise SchemaError(f"Invalid YAML: {e}")
    errors = validate_schema(schema)
    if errors:
        raise SchemaError('; '.join(errors), path=_schema_name(schema))
    return schema


def load_schema_file(path: Union[str, Path]) -> Dict[str, Any]:
    """Load a segment schema from a YAML file."""
    return load_schema(Path(path).read_text(encoding='utf-8'))


class SegmentInterpreter:
    """
    Evaluates one segment schema against a BitReader or BitWriter.

    The interpreter is immutable after construction and holds no per-call
    state, so a single instance can be shared between threads.
    """

    def __init__(self, schema: Dict[str, Any]):
        errors = validate_schema(schema)
        if errors:
            raise SchemaError('; '.join(errors), path=_schema_name(schema))
        self.schema = schema
        self.name = schema['name']
        self.fields = tuple(schema['fields'])

    @property
    def output_fields(self) -> List[str]:
        """Names of the fields that appear in decoded output."""
        return [f['name'] for f in self.fields if 'const' not in f]

    def _resolve_params(self, field_def: Dict[str, Any],
                        values: Dict[str, Any]) -> Dict[str, Any]:
        params = {}
        for param in WIDTH_PARAMS:
            if param not in field_def:
                continue
            value = field_def[param]
            if _is_ref(value):
                value = values[value[1:]]
            params[param] = value
        return params

    def decode(self, reader: BitReader, drop_truncated: bool = False) -> Dict[str, Any]:
        """
        Decode every field in order; const fields are checked, not returned.

        ``drop_truncated`` enables truncation tolerance on the fields that
        declare it.
        """
        values = {}
        result = {}
        for field_def in self.fields:
            name = field_def['name']
            codec = FIELD_CODECS[field_def['type']]
            try:
                if field_def.get('optional_tail') and \
                        reader.remaining_bits() < field_def.get('min_bits', 1):
                    value = codec.default
                else:
                    params = self._resolve_params(field_def, values)
                    if drop_truncated and field_def.get('drop_truncated'):
                        params['drop_truncated'] = True
                    value = codec.decode(reader, params)
                if 'const' in field_def and value != field_def['const']:
                    raise ValueOutOfRange(
                        f"Expected {field_def['const']}, found {value}")
            except GppError as e:
                raise e.prefix_path(name)
            values[name] = value
            if 'const' not in field_def:
                result[name] = value
        return result

    def encode(self, values: Dict[str, Any], writer: BitWriter) -> None:
        """Encode ``values`` (keyed by field name) in schema order."""
        for field_def in self.fields:
            name = field_def['name']
            codec = FIELD_CODECS[field_def['type']]
            if 'const' in field_def:
                value = field_def['const']
            elif name in values:
                value = values[name]
            else:
                raise ValueOutOfRange("Missing value", path=name)
            try:
                codec.encode(writer, self._resolve_params(field_def, values), value)
            except GppError as e:
                raise e.prefix_path(name)
