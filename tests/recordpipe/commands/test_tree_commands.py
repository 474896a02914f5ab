import pytest

from recordpipe.chain.compiler import CompileError, compile
from recordpipe.pipe.core import RecordPipeRuntimeError
from recordpipe.record import Fields, Record
from recordpipe.tree.flatten import FlatteningError


def extract_chain(context, **options):
    return compile({"id": "x", "commands": [{"extractTree": options}, {"collect": {}}]}, context)


def test_extract_tree(context, doc):
    chain = extract_chain(context)
    record = Record({Fields.ATTACHMENT_BODY: [doc], Fields.ATTACHMENT_MIME_TYPE: ["avro/java+memory"]})
    assert chain.process(record) is True
    out = chain.commands[-1].first_record
    assert out.get("/name/language/code") == ["en-us", "en", "en-gb"]
    assert out.get("/links/forward") == [20, 40, 60]
    assert out.get(Fields.ATTACHMENT_MIME_TYPE) == ["avro/java+memory"]


def test_input_record_is_not_modified(context, doc):
    chain = extract_chain(context, output_field_prefix="/doc")
    record = Record({Fields.ATTACHMENT_BODY: [doc]})
    chain.process(record)
    assert list(record) == [Fields.ATTACHMENT_BODY]
    assert chain.commands[-1].first_record.get("/doc/docId") == [10]


def test_alias(context, doc):
    chain = compile({"commands": [{"extractAvroTree": {}}]}, context)
    assert chain.commands[0].name == "extractTree"
    assert chain.process(Record({Fields.ATTACHMENT_BODY: [doc]})) is True


@pytest.mark.parametrize("body", [[], [None], [{"docId": 1}]])
def test_missing_or_untagged_payload_is_fatal(context, body):
    chain = extract_chain(context)
    with pytest.raises(RecordPipeRuntimeError):
        chain.process(Record({Fields.ATTACHMENT_BODY: body}))


def test_max_depth_option(context, doc):
    chain = extract_chain(context, max_depth=2)
    assert chain.commands[0].max_depth == 2
    with pytest.raises(FlatteningError):
        chain.process(Record({Fields.ATTACHMENT_BODY: [doc]}))


def test_max_depth_from_config(context, monkeypatch):
    monkeypatch.setenv("RECORDPIPE_FLATTEN_MAX_DEPTH", "7")
    assert extract_chain(context).commands[0].max_depth == 7


def test_max_depth_default(context):
    assert extract_chain(context).commands[0].max_depth == 64


@pytest.mark.parametrize("max_depth", [0, 513])
def test_max_depth_option_out_of_range(context, max_depth):
    with pytest.raises(CompileError):
        extract_chain(context, max_depth=max_depth)


def test_max_depth_from_config_out_of_range(context, monkeypatch):
    monkeypatch.setenv("RECORDPIPE_FLATTEN_MAX_DEPTH", "100000")
    with pytest.raises(CompileError, match="max_depth"):
        extract_chain(context)
