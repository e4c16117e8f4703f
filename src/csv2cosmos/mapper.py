# src/csv2cosmos/mapper.py

from __future__ import annotations

import json
import re
from enum import Enum
from typing import Iterable, Sequence

from pydantic import BaseModel, ConfigDict

QUOTED_EMPTY = '""'
DELIMITER = ","

_INTEGER = re.compile(r"\s*[+-]?[0-9]+\s*")
INT32_MIN, INT32_MAX = -(2**31), 2**31 - 1


class SchemaError(ValueError):
    pass


class FieldRole(str, Enum):
    STRING = "string"
    NUMERIC = "numeric"
    PARTITION_KEY = "partition_key"


class FieldDescriptor(BaseModel):  # type: ignore[misc]
    model_config = ConfigDict(frozen=True)

    name: str
    role: FieldRole = FieldRole.NUMERIC


def build_schema(
    field_names: Sequence[str],
    string_fields: Iterable[str] = (),
    partition_key_fields: Iterable[str] = (),
    partition_key_field_name: str = "pk",
) -> tuple[FieldDescriptor, ...]:
    """Classify each column; partition key wins over string, numeric is the default."""
    strings = set(string_fields)
    keys = set(partition_key_fields)

    seen: set[str] = set()
    schema: list[FieldDescriptor] = []
    for name in field_names:
        if name in seen:
            raise SchemaError(f"duplicate field name: {name!r}")
        seen.add(name)

        if name in keys:
            role = FieldRole.PARTITION_KEY
        elif name in strings:
            role = FieldRole.STRING
        else:
            role = FieldRole.NUMERIC
        if role is not FieldRole.PARTITION_KEY and name == partition_key_field_name:
            raise SchemaError(
                f"field {name!r} collides with the partition key field name"
            )
        schema.append(FieldDescriptor(name=name, role=role))
    return tuple(schema)


def has_partition_key(schema: Sequence[FieldDescriptor]) -> bool:
    return any(f.role is FieldRole.PARTITION_KEY for f in schema)


def split_line(line: str) -> list[str]:
    """Drop every double quote, then split on the delimiter. No CSV escaping."""
    return line.replace('"', "").split(DELIMITER)


def parse_numeric(value: str) -> float:
    # integer parse stored as double: "1.5" is rejected on purpose
    if value == "":
        return 0.0
    if not _INTEGER.fullmatch(value):
        raise ValueError(f"not an integer value: {value!r}")
    number = int(value)
    if not INT32_MIN <= number <= INT32_MAX:
        raise ValueError(f"integer out of 32-bit range: {value!r}")
    return float(number)


def map_row(
    values: Sequence[str],
    schema: Sequence[FieldDescriptor],
    partition_key_field_name: str,
) -> dict[str, object] | None:
    """Map one row onto its document, or None when the row has the wrong arity."""
    if len(values) != len(schema):
        return None

    key = ""
    doc: dict[str, object] = {}
    for field, value in zip(schema, values):
        if field.role is FieldRole.PARTITION_KEY:
            if value and value != QUOTED_EMPTY:
                key = f"{key}_{value}"
        elif field.role is FieldRole.STRING:
            doc[field.name] = value
        else:
            doc[field.name] = parse_numeric(value)

    if has_partition_key(schema):
        doc[partition_key_field_name] = key
    return doc


def to_json(doc: dict[str, object]) -> str:
    return json.dumps(doc, ensure_ascii=False, separators=(",", ":"))


def row_to_json(
    values: Sequence[str],
    schema: Sequence[FieldDescriptor],
    partition_key_field_name: str,
) -> str | None:
    doc = map_row(values, schema, partition_key_field_name)
    return None if doc is None else to_json(doc)
