"""Flattening of self-describing trees into record fields.

The flattener walks a datum together with its schema and writes every leaf
into a Record under a ``/``-joined path:

- record fields extend the path with ``/<field name>``
- map entries extend the path with ``/<key>``
- array elements stay at the same path, so repetition becomes multiple
  values of one field, in array order
- unions resolve to the single matching branch, which is walked at the
  same path so that paths do not depend on the branch taken
- enums become their symbol name and binaries raw ``bytes``
- strings, numbers and booleans pass through unchanged once they are
  checked against their declared kind
- nulls contribute nothing

Example:
    record = Record()
    extract_tree(doc, doc.schema, record)
    record.get("/name/language/code")   # ["en-us", "en", "en-gb"]
"""
import logging
from typing import Any, Mapping, Sequence

from recordpipe.pipe.core import RecordPipeRuntimeError
from recordpipe.record import Record
from recordpipe.tree.generic import (
    EnumSymbol, Fixed, GenericRecord, UnresolvedUnionError, matches, resolve_union, schema_of,
)
from recordpipe.tree.schema import Kind, Schema

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 64
MAX_DEPTH_LIMIT = 512


class FlatteningError(RecordPipeRuntimeError):
    """Raised when a tree cannot be flattened.  Always fatal."""
    pass


def extract_tree(datum: Any, schema: Schema, record: Record, prefix: str = "",
                 max_depth: int = DEFAULT_MAX_DEPTH) -> None:
    """Write datum into record as flat (path, value) entries.

    Args:
        datum: The tree value to flatten.
        schema: The schema of datum.
        record: The record that receives the values.
        prefix: The path the tree is rooted at.
        max_depth: Maximum nesting depth.  Schemas may be recursive, so
            deeper trees are rejected rather than walked without bound.

    Raises:
        FlatteningError: On an unknown schema kind, a datum that does not
            fit its schema, an unresolvable union or a tree deeper than
            max_depth.
    """
    try:
        _extract(datum, schema, record, prefix, 0, max_depth)
    except RecursionError as e:
        raise FlatteningError(f"Tree under '{prefix}' is too deep to flatten") from e


def flatten(datum: Any, prefix: str = "", max_depth: int = DEFAULT_MAX_DEPTH) -> Record:
    """Flatten a tagged datum, using its own schema, into a new Record."""
    schema = schema_of(datum)
    if schema is None:
        raise FlatteningError(f"Cannot flatten {type(datum).__name__}: it carries no schema")
    record = Record()
    extract_tree(datum, schema, record, prefix, max_depth)
    return record


def _field_value(datum: Any, field) -> Any:
    if isinstance(datum, GenericRecord):
        return datum.get(field.position)
    return datum.get(field.name)


def _check_leaf(datum: Any, schema: Schema, prefix: str) -> None:
    if schema.kind in (Kind.FLOAT, Kind.DOUBLE) and isinstance(datum, int) and not isinstance(datum, bool):
        return
    if not matches(schema, datum):
        raise FlatteningError(f"Expected {schema.kind.value} at '{prefix}', got {datum!r}")


def _extract(datum: Any, schema: Schema, record: Record, prefix: str, depth: int, max_depth: int) -> None:
    if depth > max_depth:
        raise FlatteningError(f"Tree is deeper than the maximum depth of {max_depth} at '{prefix}'")

    match getattr(schema, "kind", None):
        case Kind.RECORD:
            if not isinstance(datum, (GenericRecord, Mapping)):
                raise FlatteningError(f"Expected a record at '{prefix}', got {type(datum).__name__}")
            prefix2 = prefix + "/"
            for field in schema.fields:
                _extract(_field_value(datum, field), field.schema, record, prefix2 + field.name, depth + 1, max_depth)
        case Kind.ENUM:
            if isinstance(datum, EnumSymbol):
                if datum.schema.fullname != schema.fullname:
                    raise FlatteningError(f"Expected {schema.fullname} at '{prefix}', got {datum.schema.fullname}")
            elif not (isinstance(datum, str) and datum in schema.symbols):
                raise FlatteningError(f"Expected a symbol of {schema.fullname} at '{prefix}', got {datum!r}")
            record.put(prefix, str(datum))
        case Kind.ARRAY:
            if not isinstance(datum, Sequence) or isinstance(datum, (str, bytes, bytearray)):
                raise FlatteningError(f"Expected an array at '{prefix}', got {type(datum).__name__}")
            for item in datum:
                _extract(item, schema.items, record, prefix, depth + 1, max_depth)
        case Kind.MAP:
            if not isinstance(datum, Mapping):
                raise FlatteningError(f"Expected a map at '{prefix}', got {type(datum).__name__}")
            for key, value in datum.items():
                _extract(value, schema.values, record, prefix + "/" + str(key), depth + 1, max_depth)
        case Kind.UNION:
            try:
                index = resolve_union(schema, datum)
            except UnresolvedUnionError as e:
                raise FlatteningError(f"At '{prefix}': {e}") from e
            _extract(datum, schema.types[index], record, prefix, depth + 1, max_depth)
        case Kind.FIXED | Kind.BYTES:
            if not isinstance(datum, (bytes, bytearray, memoryview, Fixed)):
                raise FlatteningError(f"Expected binary data at '{prefix}', got {type(datum).__name__}")
            record.put(prefix, bytes(datum))
        case Kind.STRING | Kind.INT | Kind.LONG | Kind.FLOAT | Kind.DOUBLE | Kind.BOOLEAN:
            _check_leaf(datum, schema, prefix)
            record.put(prefix, datum)
        case Kind.NULL:
            _check_leaf(datum, schema, prefix)
        case unknown:
            raise FlatteningError(f"Unknown schema type: {unknown!r}")
