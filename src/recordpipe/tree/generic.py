"""Self-describing datums for tree schemas.

Records, enum symbols and fixed-size binaries carry their own schema, so a
tree built from them can be walked without any external schema lookup.
Arrays are plain sequences, maps are plain mappings with string keys, and
primitives are plain Python values.
"""
import logging
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Sequence, Union

from recordpipe.tree.schema import (
    Kind, Schema, NamedSchema, RecordSchema, EnumSchema, FixedSchema, UnionSchema,
)

logger = logging.getLogger(__name__)

INT_MIN, INT_MAX = -(1 << 31), (1 << 31) - 1
LONG_MIN, LONG_MAX = -(1 << 63), (1 << 63) - 1


class UnresolvedUnionError(ValueError):
    """Raised when a datum matches none of the branches of a union."""
    pass


class GenericRecord:
    """A record datum holding one value per field of its schema.

    Values can be read and written by field name or by position.

    Example:
        rec = GenericRecord(schema, {"docId": 10})
        rec["docId"]   # 10
        rec.get(0)     # 10
    """

    def __init__(self, schema: RecordSchema, values: Optional[Mapping[str, Any]] = None):
        if not isinstance(schema, RecordSchema):
            raise TypeError(f"GenericRecord requires a record schema, got {schema!r}")
        self._schema = schema
        self._values: List[Any] = [None] * len(schema.fields)
        for name, value in (values or {}).items():
            self.put(name, value)

    @property
    def schema(self) -> RecordSchema:
        return self._schema

    def _position(self, key: Union[str, int]) -> int:
        if isinstance(key, int):
            if not 0 <= key < len(self._values):
                raise IndexError(f"Field position {key} out of range for {self._schema.fullname}")
            return key
        field = self._schema.get_field(key)
        if field is None:
            raise KeyError(f"Not a valid schema field: {key}")
        return field.position

    def get(self, key: Union[str, int]) -> Any:
        return self._values[self._position(key)]

    def put(self, key: Union[str, int], value: Any) -> None:
        self._values[self._position(key)] = value

    __getitem__ = get
    __setitem__ = put

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, GenericRecord):
            return NotImplemented
        return self._schema is other._schema and self._values == other._values

    def __repr__(self) -> str:
        values = ", ".join(f"{f.name}={v!r}" for f, v in zip(self._schema.fields, self._values))
        return f"GenericRecord({self._schema.fullname}: {values})"


@dataclass(frozen=True)
class EnumSymbol:
    """A symbol of an enum schema."""
    schema: EnumSchema
    symbol: str

    def __post_init__(self):
        if self.symbol not in self.schema.symbols:
            raise ValueError(f"'{self.symbol}' is not a symbol of {self.schema.fullname}")

    def __str__(self) -> str:
        return self.symbol


@dataclass(frozen=True)
class Fixed:
    """A fixed-size binary value."""
    schema: FixedSchema
    data: bytes

    def __post_init__(self):
        if len(self.data) != self.schema.size:
            raise ValueError(f"{self.schema.fullname} requires {self.schema.size} bytes, got {len(self.data)}")

    def __bytes__(self) -> bytes:
        return bytes(self.data)


def schema_of(datum: Any) -> Optional[Schema]:
    """Return the schema a datum carries, or None for untagged values."""
    return getattr(datum, "schema", None) if isinstance(datum, (GenericRecord, EnumSymbol, Fixed)) else None


def _same_name(schema: Schema, datum: Any) -> bool:
    return isinstance(schema, NamedSchema) and schema.fullname == datum.schema.fullname


def matches(schema: Schema, datum: Any) -> bool:
    """Return whether datum is a value of schema, without converting it."""
    kind = schema.kind
    if kind == Kind.NULL:
        return datum is None
    if kind == Kind.BOOLEAN:
        return isinstance(datum, bool)
    if kind == Kind.INT:
        return isinstance(datum, int) and not isinstance(datum, bool) and INT_MIN <= datum <= INT_MAX
    if kind == Kind.LONG:
        return isinstance(datum, int) and not isinstance(datum, bool) and LONG_MIN <= datum <= LONG_MAX
    if kind in (Kind.FLOAT, Kind.DOUBLE):
        return isinstance(datum, float)
    if kind == Kind.STRING:
        return isinstance(datum, str)
    if kind == Kind.BYTES:
        return isinstance(datum, (bytes, bytearray, memoryview))
    if kind == Kind.RECORD:
        return isinstance(datum, GenericRecord) and _same_name(schema, datum)
    if kind == Kind.ENUM:
        return isinstance(datum, EnumSymbol) and _same_name(schema, datum)
    if kind == Kind.FIXED:
        return isinstance(datum, Fixed) and _same_name(schema, datum)
    if kind == Kind.ARRAY:
        return isinstance(datum, Sequence) and not isinstance(datum, (str, bytes, bytearray))
    if kind == Kind.MAP:
        return isinstance(datum, Mapping)
    return False


def resolve_union(union: UnionSchema, datum: Any) -> int:
    """Return the index of the branch of union that datum belongs to.

    Branches are tried in declaration order and the first match wins, so
    exactly one branch is chosen.  Python ints resolve to the first of
    ``int`` or ``long`` whose range holds them, and floats to the first of
    ``float`` or ``double``.

    Raises:
        UnresolvedUnionError: If no branch matches.
    """
    for index, branch in enumerate(union.types):
        if matches(branch, datum):
            return index
    names = ", ".join(getattr(b, "fullname", b.kind.value) for b in union.types)
    raise UnresolvedUnionError(f"Datum {datum!r} does not match any branch of union [{names}]")


def to_generic(schema: Schema, obj: Any) -> Any:
    """Convert plain JSON-like data into self-describing datums for schema.

    Dicts become GenericRecords (missing fields take their schema default),
    strings become EnumSymbols, bytes become Fixed values, and union values
    take the first branch they convert under.  Values that are already
    tagged are validated and returned unchanged.

    Raises:
        ValueError: If obj does not conform to schema.
        TypeError: If obj has the wrong Python type for schema.
    """
    kind = schema.kind
    if kind == Kind.RECORD:
        if isinstance(obj, GenericRecord):
            if obj.schema is not schema:
                raise ValueError(f"Record of type {obj.schema.fullname} given where {schema.fullname} expected")
            return obj
        if not isinstance(obj, Mapping):
            raise TypeError(f"Expected a mapping for record {schema.fullname}, got {type(obj).__name__}")
        unknown = set(obj) - {f.name for f in schema.fields}
        if unknown:
            raise ValueError(f"Unknown fields for record {schema.fullname}: {sorted(unknown)}")
        ans = GenericRecord(schema)
        for field in schema.fields:
            if field.name in obj:
                value = obj[field.name]
            elif field.has_default:
                value = field.default
            else:
                raise ValueError(f"Missing value for field {field.name} of {schema.fullname}")
            ans.put(field.position, to_generic(field.schema, value))
        return ans
    if kind == Kind.ENUM:
        if isinstance(obj, EnumSymbol):
            if obj.schema is not schema:
                raise ValueError(f"Symbol of {obj.schema.fullname} given where {schema.fullname} expected")
            return obj
        if not isinstance(obj, str):
            raise TypeError(f"Expected a symbol for enum {schema.fullname}, got {type(obj).__name__}")
        return EnumSymbol(schema, obj)
    if kind == Kind.FIXED:
        if isinstance(obj, Fixed):
            return obj
        if not isinstance(obj, (bytes, bytearray)):
            raise TypeError(f"Expected bytes for fixed {schema.fullname}, got {type(obj).__name__}")
        return Fixed(schema, bytes(obj))
    if kind == Kind.ARRAY:
        if not matches(schema, obj):
            raise TypeError(f"Expected a sequence for array, got {type(obj).__name__}")
        return [to_generic(schema.items, item) for item in obj]
    if kind == Kind.MAP:
        if not isinstance(obj, Mapping):
            raise TypeError(f"Expected a mapping for map, got {type(obj).__name__}")
        return {str(key): to_generic(schema.values, value) for key, value in obj.items()}
    if kind == Kind.UNION:
        errors = []
        for branch in schema.types:
            try:
                return to_generic(branch, obj)
            except (TypeError, ValueError) as e:
                errors.append(str(e))
        raise ValueError(f"Value {obj!r} matches no branch of union: {'; '.join(errors)}")
    if kind in (Kind.FLOAT, Kind.DOUBLE):
        if isinstance(obj, bool) or not isinstance(obj, (int, float)):
            raise TypeError(f"Expected a number for {kind.value}, got {type(obj).__name__}")
        return float(obj)
    if not matches(schema, obj):
        raise TypeError(f"Value {obj!r} is not a valid {kind.value}")
    return obj
