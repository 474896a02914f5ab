import pytest

from recordpipe.record import Record
from recordpipe.tree.flatten import FlatteningError, extract_tree, flatten
from recordpipe.tree.generic import EnumSymbol, Fixed, GenericRecord, to_generic
from recordpipe.tree.schema import parse_schema


def test_worked_example(doc):
    record = flatten(doc)
    assert record.get("/docId") == [10]
    assert record.get("/name/language/country") == ["us", "gb"]
    assert record.get("/name/language/code") == ["en-us", "en", "en-gb"]
    assert record.get("/name/url") == ["http://A", "http://B"]
    assert record.get("/links/forward") == [20, 40, 60]
    assert "/links/backward" not in record
    assert sorted(record) == [
        "/docId", "/links/forward", "/name/language/code", "/name/language/country", "/name/url",
    ]


def test_prefix(doc):
    record = flatten(doc, prefix="/doc")
    assert record.get("/doc/docId") == [10]
    assert record.get("/docId") == []


def test_extract_into_existing_record(doc, doc_schema):
    record = Record({"/docId": [1]})
    extract_tree(doc, doc_schema, record)
    assert record.get("/docId") == [1, 10]


def test_deterministic(doc):
    assert flatten(doc) == flatten(doc)
    assert list(flatten(doc)) == list(flatten(doc))


def test_array_cardinality_is_preserved():
    schema = parse_schema({"type": "record", "name": "R", "fields": [
        {"name": "n", "type": {"type": "array", "items": "int"}},
    ]})
    for values in ([], [7], [3, 1, 3, 2]):
        assert flatten(to_generic(schema, {"n": values})).get("/n") == values


def test_union_path_does_not_depend_on_branch():
    branch = parse_schema("string")
    union = parse_schema(["null", "long", "string"])
    direct, via_union, other_arm = Record(), Record(), Record()
    extract_tree("x", branch, direct, "/value")
    extract_tree("x", union, via_union, "/value")
    extract_tree(5, union, other_arm, "/value")
    assert direct == via_union
    assert list(other_arm) == ["/value"]


def test_null_leaf_contributes_nothing():
    schema = parse_schema({"type": "record", "name": "R", "fields": [
        {"name": "a", "type": ["null", "string"]},
        {"name": "b", "type": "null"},
    ]})
    record = flatten(to_generic(schema, {"a": None, "b": None}))
    assert record.get("/a") == []
    assert "/a" not in record
    assert len(record) == 0


def test_map_keys_extend_the_path():
    schema = parse_schema({"type": "map", "values": {"type": "map", "values": "int"}})
    record = Record()
    extract_tree({"x": {"1": 1, "2": 2}, "y": {}}, schema, record)
    assert record.get("/x/1") == [1]
    assert record.get("/x/2") == [2]
    assert len(record) == 2


def test_scalar_leaves():
    schema = parse_schema({"type": "record", "name": "R", "fields": [
        {"name": "suit", "type": {"type": "enum", "name": "Suit", "symbols": ["HEARTS"]}},
        {"name": "hash", "type": {"type": "fixed", "name": "H", "size": 2}},
        {"name": "raw", "type": "bytes"},
        {"name": "flag", "type": "boolean"},
        {"name": "ratio", "type": "double"},
    ]})
    record = flatten(to_generic(schema, {
        "suit": "HEARTS", "hash": b"\x00\x01", "raw": bytearray(b"ab"), "flag": False, "ratio": 0.5,
    }))
    assert record.get("/suit") == ["HEARTS"]
    assert record.get("/hash") == [b"\x00\x01"]
    assert record.get("/raw") == [b"ab"]
    assert type(record.get_first_value("/raw")) is bytes
    assert record.get("/flag") == [False]
    assert record.get("/ratio") == [0.5]


def test_plain_mapping_datums_are_accepted(doc_schema):
    record = Record()
    extract_tree({"docId": 1, "links": None, "name": {"language": [], "url": []}}, doc_schema, record)
    assert record.get("/docId") == [1]
    assert len(record) == 1


@pytest.fixture
def linked_list():
    return parse_schema({"type": "record", "name": "Node", "fields": [
        {"name": "value", "type": "int"},
        {"name": "next", "type": ["null", "Node"], "default": None},
    ]})


def make_list(schema, n):
    node = None
    for value in reversed(range(n)):
        node = {"value": value, "next": node}
    return to_generic(schema, node)


def test_recursive_schema_within_depth(linked_list):
    record = flatten(make_list(linked_list, 3))
    assert record.get("/value") == [0]
    assert record.get("/next/value") == [1]
    assert record.get("/next/next/value") == [2]


def test_depth_bound(linked_list):
    datum = make_list(linked_list, 50)
    with pytest.raises(FlatteningError, match="maximum depth"):
        flatten(datum, max_depth=10)


def test_unknown_kind_is_fatal():
    class Bogus:
        kind = "bogus"

    with pytest.raises(FlatteningError, match="Unknown schema type"):
        extract_tree(1, Bogus(), Record())


def test_unresolvable_union_is_fatal():
    with pytest.raises(FlatteningError):
        extract_tree(1.5, parse_schema(["null", "string"]), Record(), "/x")


@pytest.mark.parametrize("schema, datum", [
    ({"type": "array", "items": "int"}, "not a list"),
    ({"type": "map", "values": "int"}, [1, 2]),
    ("bytes", 3),
    ({"type": "record", "name": "R", "fields": []}, 3),
    ("string", None),
    ("string", 5),
    ("int", "not-an-int"),
    ("int", 1 << 40),
    ("int", True),
    ("long", 1.5),
    ("float", "1.5"),
    ("double", None),
    ("boolean", 0),
    ("null", 0),
    ({"type": "enum", "name": "Suit", "symbols": ["HEARTS"]}, "CLUBS"),
    ({"type": "enum", "name": "Suit", "symbols": ["HEARTS"]}, 1),
])
def test_datum_schema_mismatch_is_fatal(schema, datum):
    with pytest.raises(FlatteningError):
        extract_tree(datum, parse_schema(schema), Record())


def test_flatten_requires_a_tagged_datum():
    with pytest.raises(FlatteningError):
        flatten({"docId": 1})


def test_fixed_without_record():
    schema = parse_schema({"type": "fixed", "name": "H", "size": 1})
    assert flatten(Fixed(schema, b"z"), "/h").get("/h") == [b"z"]


def test_missing_value_in_required_field_is_fatal():
    schema = parse_schema({"type": "record", "name": "R", "fields": [
        {"name": "title", "type": "string"},
        {"name": "n", "type": "int"},
    ]})
    with pytest.raises(FlatteningError, match="Expected string at '/title'"):
        flatten(GenericRecord(schema, {"n": 1}))
    with pytest.raises(FlatteningError, match="Expected int at '/n'"):
        flatten(GenericRecord(schema, {"title": "t", "n": "not-an-int"}))


def test_enum_from_another_schema_is_fatal():
    suit = parse_schema({"type": "enum", "name": "Suit", "symbols": ["HEARTS"]})
    other = parse_schema({"type": "enum", "name": "Other", "symbols": ["HEARTS"]})
    with pytest.raises(FlatteningError):
        extract_tree(EnumSymbol(other, "HEARTS"), suit, Record())


def test_ints_are_accepted_for_floating_point_leaves():
    record = Record()
    extract_tree(3, parse_schema("double"), record, "/x")
    assert record.get("/x") == [3]


def test_recursion_limit_becomes_flattening_error(linked_list):
    node = None
    for value in range(5000):
        node = GenericRecord(linked_list, {"value": value, "next": node})
    with pytest.raises(FlatteningError, match="too deep"):
        flatten(node, max_depth=100000)
