"""The multi-valued record that flows through command chains.

A record maps each field name to an ordered list of values.  Values
accumulate inside the list rather than as repeated keys, and list order is
the order in which the values were encountered.
"""
import logging
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional

logger = logging.getLogger(__name__)


class Fields:
    """Reserved field names shared between readers and transform commands."""
    ID = "id"
    BASE_ID = "base_id"
    TIMESTAMP = "timestamp"
    MESSAGE = "message"
    ATTACHMENT_BODY = "_attachment_body"
    ATTACHMENT_MIME_TYPE = "_attachment_mimetype"
    ATTACHMENT_CHARSET = "_attachment_charset"
    ATTACHMENT_NAME = "_attachment_name"


class Record:
    """A mapping from field name to an ordered list of values.

    Missing fields are never an error: ``get`` on an unknown field returns an
    empty list.  A field whose last value is removed disappears, so "absent"
    and "empty" look the same to callers.  An explicitly stored ``None`` is
    a value like any other and is not the same as absence.

    Copying produces independent per-field lists but shares the values
    themselves, which are treated as immutable payloads.

    Examples:
        record = Record()
        record.put("/name/url", "http://A")
        record.put("/name/url", "http://B")
        record.get("/name/url")   # ["http://A", "http://B"]
        record.get("/missing")    # []
    """

    def __init__(self, fields: Optional[Mapping[str, Iterable[Any]]] = None):
        self._fields: Dict[str, List[Any]] = {}
        if fields:
            for name, values in fields.items():
                self.put_all(name, values)

    @property
    def fields(self) -> Dict[str, List[Any]]:
        """The underlying field mapping.  Mutating it mutates the record."""
        return self._fields

    def get(self, path: str) -> List[Any]:
        """Return the values at path, or an empty list if the field is absent.

        The list returned for a present field is the record's own list.
        """
        values = self._fields.get(path)
        return values if values is not None else []

    def get_first_value(self, path: str, default: Any = None) -> Any:
        values = self._fields.get(path)
        return values[0] if values else default

    def put(self, path: str, value: Any) -> None:
        """Append value to the field at path, creating the field if needed."""
        values = self._fields.get(path)
        if values is None:
            values = []
            self._fields[path] = values
        values.append(value)

    def put_all(self, path: str, values: Iterable[Any]) -> None:
        for value in values:
            self.put(path, value)

    def put_if_absent(self, path: str, value: Any) -> None:
        if value not in self.get(path):
            self.put(path, value)

    def replace_values(self, path: str, value: Any) -> None:
        self._fields[path] = [value]

    def remove_all(self, path: str) -> None:
        self._fields.pop(path, None)

    def remove(self, path: str, value: Any) -> None:
        """Remove the first value equal to value.  An emptied field is dropped."""
        values = self._fields.get(path)
        if values is None:
            return
        try:
            values.remove(value)
        except ValueError:
            return
        if not values:
            del self._fields[path]

    def copy(self) -> "Record":
        """Return a record with independent field lists sharing the same values."""
        ans = Record()
        ans._fields = {name: list(values) for name, values in self._fields.items()}
        return ans

    def __contains__(self, path: str) -> bool:
        return path in self._fields

    def __iter__(self) -> Iterator[str]:
        return iter(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, Record):
            return NotImplemented
        return self._fields == other._fields

    def __repr__(self) -> str:
        return f"Record({self._fields!r})"
