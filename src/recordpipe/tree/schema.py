"""Schemas for self-describing tree values.

Schemas are written in the Avro JSON schema language: primitive type names,
``record``, ``enum``, ``array``, ``map`` and ``fixed`` objects, unions as
JSON lists, and references to previously defined named types.  Because
named references are allowed, a schema may be recursive.

Example:
    schema = parse_schema('''
        {"type": "record", "name": "Doc", "fields": [
            {"name": "docId", "type": "long"},
            {"name": "tags", "type": {"type": "array", "items": "string"}}
        ]}
    ''')
    schema.kind           # Kind.RECORD
    schema.fields[1].name  # "tags"
"""
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Union

logger = logging.getLogger(__name__)


class SchemaParseError(ValueError):
    """Raised when a schema definition is malformed."""
    pass


class Kind(str, Enum):
    """The closed set of node kinds a tree schema can declare."""
    RECORD = "record"
    ENUM = "enum"
    ARRAY = "array"
    MAP = "map"
    UNION = "union"
    FIXED = "fixed"
    STRING = "string"
    BYTES = "bytes"
    INT = "int"
    LONG = "long"
    FLOAT = "float"
    DOUBLE = "double"
    BOOLEAN = "boolean"
    NULL = "null"


PRIMITIVE_KINDS = {
    kind.value: kind for kind in (
        Kind.STRING, Kind.BYTES, Kind.INT, Kind.LONG,
        Kind.FLOAT, Kind.DOUBLE, Kind.BOOLEAN, Kind.NULL,
    )
}

NO_DEFAULT = object()


class Schema:
    """Base class for schema nodes.  Every node exposes its ``kind``."""
    kind: Kind


@dataclass(frozen=True)
class PrimitiveSchema(Schema):
    kind: Kind

    @property
    def name(self) -> str:
        return self.kind.value


@dataclass(eq=False)
class NamedSchema(Schema):
    """Base for record, enum and fixed schemas, which are referenced by full name."""
    name: str
    namespace: Optional[str]

    @property
    def fullname(self) -> str:
        return f"{self.namespace}.{self.name}" if self.namespace else self.name


@dataclass(frozen=True)
class Field:
    """A field of a record schema."""
    name: str
    schema: Schema = field(repr=False)
    position: int
    default: Any = field(default=NO_DEFAULT, repr=False)

    @property
    def has_default(self) -> bool:
        return self.default is not NO_DEFAULT


@dataclass(eq=False)
class RecordSchema(NamedSchema):
    kind: ClassVar[Kind] = Kind.RECORD
    fields: List[Field] = field(default_factory=list, repr=False)

    def get_field(self, name: str) -> Optional[Field]:
        for f in self.fields:
            if f.name == name:
                return f
        return None


@dataclass(eq=False)
class EnumSchema(NamedSchema):
    kind: ClassVar[Kind] = Kind.ENUM
    symbols: Tuple[str, ...] = ()


@dataclass(eq=False)
class FixedSchema(NamedSchema):
    kind: ClassVar[Kind] = Kind.FIXED
    size: int = 0


@dataclass(eq=False)
class ArraySchema(Schema):
    kind: ClassVar[Kind] = Kind.ARRAY
    items: Schema


@dataclass(eq=False)
class MapSchema(Schema):
    kind: ClassVar[Kind] = Kind.MAP
    values: Schema


@dataclass(eq=False)
class UnionSchema(Schema):
    kind: ClassVar[Kind] = Kind.UNION
    types: Tuple[Schema, ...]


def parse_schema(schema: Union[str, Dict[str, Any], List[Any]]) -> Schema:
    """Parse a schema from a JSON string or its decoded form.

    Args:
        schema: A JSON document, a bare primitive type name, or the equivalent
            Python structure of dicts, lists and strings.

    Raises:
        SchemaParseError: If the schema is not valid.
    """
    if isinstance(schema, str) and schema.strip()[:1] in ('{', '[', '"'):
        try:
            schema = json.loads(schema)
        except json.JSONDecodeError as e:
            raise SchemaParseError(f"Schema is not valid JSON: {e}") from e
    return _SchemaParser().parse(schema, None)


class _SchemaParser:

    def __init__(self):
        self.names: Dict[str, NamedSchema] = {}

    def parse(self, obj: Any, namespace: Optional[str]) -> Schema:
        if isinstance(obj, str):
            return self._parse_reference(obj, namespace)
        if isinstance(obj, list):
            return self._parse_union(obj, namespace)
        if isinstance(obj, dict):
            return self._parse_complex(obj, namespace)
        raise SchemaParseError(f"Unexpected schema definition: {obj!r}")

    def _parse_reference(self, name: str, namespace: Optional[str]) -> Schema:
        if name in PRIMITIVE_KINDS:
            return PrimitiveSchema(PRIMITIVE_KINDS[name])
        candidates = [name] if "." in name or namespace is None else [f"{namespace}.{name}", name]
        for candidate in candidates:
            if candidate in self.names:
                return self.names[candidate]
        raise SchemaParseError(f"Undefined type name: {name}")

    def _parse_union(self, branches: List[Any], namespace: Optional[str]) -> UnionSchema:
        if not branches:
            raise SchemaParseError("A union must have at least one branch")
        types = tuple(self.parse(branch, namespace) for branch in branches)
        seen = set()
        for branch in types:
            if branch.kind == Kind.UNION:
                raise SchemaParseError("Unions may not immediately contain other unions")
            key = branch.fullname if isinstance(branch, NamedSchema) else branch.kind
            if key in seen:
                raise SchemaParseError(f"Duplicate type in union: {key}")
            seen.add(key)
        return UnionSchema(types)

    def _register(self, schema: NamedSchema) -> None:
        if schema.fullname in self.names:
            raise SchemaParseError(f"Can't redefine: {schema.fullname}")
        self.names[schema.fullname] = schema

    def _name_of(self, obj: Dict[str, Any], namespace: Optional[str]) -> Tuple[str, Optional[str]]:
        name = obj.get("name")
        if not isinstance(name, str) or not name:
            raise SchemaParseError(f"Named type requires a name: {obj!r}")
        if "." in name:
            namespace, name = name.rsplit(".", 1)
        else:
            namespace = obj.get("namespace", namespace) or None
        return name, namespace

    def _parse_complex(self, obj: Dict[str, Any], namespace: Optional[str]) -> Schema:
        type_name = obj.get("type")
        if isinstance(type_name, (dict, list)):
            return self.parse(type_name, namespace)
        if type_name in PRIMITIVE_KINDS:
            return PrimitiveSchema(PRIMITIVE_KINDS[type_name])

        if type_name in ("record", "error"):
            name, namespace = self._name_of(obj, namespace)
            schema = RecordSchema(name, namespace)
            self._register(schema)
            fields = obj.get("fields")
            if not isinstance(fields, list):
                raise SchemaParseError(f"Record {schema.fullname} requires a fields list")
            field_names = set()
            for position, field_def in enumerate(fields):
                if not isinstance(field_def, dict) or not isinstance(field_def.get("name"), str):
                    raise SchemaParseError(f"Invalid field in {schema.fullname}: {field_def!r}")
                if field_def["name"] in field_names:
                    raise SchemaParseError(f"Duplicate field {field_def['name']} in {schema.fullname}")
                field_names.add(field_def["name"])
                if "type" not in field_def:
                    raise SchemaParseError(f"Field {field_def['name']} in {schema.fullname} has no type")
                schema.fields.append(Field(
                    field_def["name"],
                    self.parse(field_def["type"], namespace),
                    position,
                    field_def.get("default", NO_DEFAULT),
                ))
            return schema

        if type_name == "enum":
            name, namespace = self._name_of(obj, namespace)
            symbols = obj.get("symbols")
            if not isinstance(symbols, list) or not all(isinstance(s, str) for s in symbols):
                raise SchemaParseError(f"Enum {name} requires a list of string symbols")
            if len(set(symbols)) != len(symbols):
                raise SchemaParseError(f"Duplicate symbol in enum {name}")
            schema = EnumSchema(name, namespace, tuple(symbols))
            self._register(schema)
            return schema

        if type_name == "fixed":
            name, namespace = self._name_of(obj, namespace)
            size = obj.get("size")
            if not isinstance(size, int) or isinstance(size, bool) or size < 0:
                raise SchemaParseError(f"Fixed {name} requires a non-negative integer size")
            schema = FixedSchema(name, namespace, size)
            self._register(schema)
            return schema

        if type_name == "array":
            if "items" not in obj:
                raise SchemaParseError("Array schema requires 'items'")
            return ArraySchema(self.parse(obj["items"], namespace))

        if type_name == "map":
            if "values" not in obj:
                raise SchemaParseError("Map schema requires 'values'")
            return MapSchema(self.parse(obj["values"], namespace))

        if isinstance(type_name, str):
            return self._parse_reference(type_name, namespace)
        raise SchemaParseError(f"Unknown schema type: {type_name!r}")
