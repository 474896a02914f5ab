"""Shared fixtures for recordpipe tests."""
import os

import pytest

from recordpipe.pipe.core import Context, FaultTolerance
from recordpipe.tree.generic import to_generic
from recordpipe.tree.schema import parse_schema
from recordpipe.util.config import reset_config

DOC_SCHEMA = """
{"type": "record", "name": "Document", "namespace": "example.docs", "fields": [
    {"name": "docId", "type": "long"},
    {"name": "links", "type": ["null",
        {"type": "record", "name": "Links", "fields": [
            {"name": "backward", "type": {"type": "array", "items": "long"}, "default": []},
            {"name": "forward", "type": {"type": "array", "items": "long"}, "default": []}
        ]}], "default": null},
    {"name": "name", "type":
        {"type": "record", "name": "Name", "fields": [
            {"name": "language", "type": {"type": "array", "items":
                {"type": "record", "name": "Language", "fields": [
                    {"name": "code", "type": "string"},
                    {"name": "country", "type": ["null", "string"], "default": null}
                ]}}},
            {"name": "url", "type": {"type": "array", "items": "string"}}
        ]}}
]}
"""

DOC = {
    "docId": 10,
    "links": {"forward": [20, 40, 60]},
    "name": {
        "language": [
            {"code": "en-us", "country": "us"},
            {"code": "en"},
            {"code": "en-gb", "country": "gb"},
        ],
        "url": ["http://A", "http://B"],
    },
}


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep the user's ~/.recordpipe.toml and RECORDPIPE_* variables out of tests."""
    monkeypatch.setenv("HOME", str(tmp_path))
    for name in list(os.environ):
        if name.startswith("RECORDPIPE_"):
            monkeypatch.delenv(name)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def context():
    return Context(FaultTolerance())


@pytest.fixture
def doc_schema():
    return parse_schema(DOC_SCHEMA)


@pytest.fixture
def doc(doc_schema):
    return to_generic(doc_schema, DOC)
