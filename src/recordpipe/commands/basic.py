"""Standard commands for editing, filtering, logging and collecting records."""

from fnmatch import fnmatchcase
from typing import Any, Dict, List, Optional
import logging

from pydantic import field_validator

from recordpipe.chain.registry import register_command
from recordpipe.pipe.core import AbstractCommand, CommandOptions, CompileError, Notification, NotificationKind
from recordpipe.record import Record

logger = logging.getLogger(__name__)


def _is_reference(value: Any) -> bool:
    return isinstance(value, str) and value.startswith("@{") and value.endswith("}")


def resolve_values(record: Record, value: Any) -> List[Any]:
    """Expand a configured value into the list of values it stands for.

    A list contributes each of its elements.  A string of the form
    ``@{name}`` stands for the values of field ``name``.  Anything else is a
    literal.
    """
    ans = []
    for item in value if isinstance(value, list) else [value]:
        if _is_reference(item):
            ans.extend(record.get(item[2:-1]))
        else:
            ans.append(item)
    return ans


class ValuesOptions(CommandOptions):
    values: Dict[str, Any]


@register_command("addValues")
class AddValues(AbstractCommand):
    """Append values to fields.

    Configuration:
        {"addValues": {"values": {"source": "crawler", "tags": ["a", "b"], "copy": "@{id}"}}}
    """

    Options = ValuesOptions

    def do_process(self, record: Record) -> bool:
        for name, value in self.options.values.items():
            record.put_all(name, resolve_values(record, value))
        return self.forward(record)


@register_command("setValues")
class SetValues(AbstractCommand):
    """Replace the values of fields.  References are resolved before any field changes."""

    Options = ValuesOptions

    def do_process(self, record: Record) -> bool:
        resolved = {name: resolve_values(record, value) for name, value in self.options.values.items()}
        for name, values in resolved.items():
            record.remove_all(name)
            record.put_all(name, values)
        return self.forward(record)


class RemoveFieldsOptions(CommandOptions):
    names: List[str]


@register_command("removeFields")
class RemoveFields(AbstractCommand):
    """Remove every field whose name matches one of the glob patterns in ``names``."""

    Options = RemoveFieldsOptions

    def do_process(self, record: Record) -> bool:
        for name in [f for f in record if any(fnmatchcase(f, p) for p in self.options.names)]:
            record.remove_all(name)
        return self.forward(record)


@register_command("contains")
class Contains(AbstractCommand):
    """Pass on only records where every named field holds at least one of the listed values.

    Records that fail the test are dropped by returning False.
    """

    Options = ValuesOptions

    def do_process(self, record: Record) -> bool:
        for name, value in self.options.values.items():
            present = record.get(name)
            wanted = value if isinstance(value, list) else [value]
            if not any(v in present for v in wanted):
                logger.debug(f"{self.location}: dropping record, {name} has none of {wanted}")
                return False
        return self.forward(record)


@register_command("dropRecord")
class DropRecord(AbstractCommand):
    """Silently drop every record."""

    def do_process(self, record: Record) -> bool:
        return False


class LogOptions(CommandOptions):
    format: str
    args: List[Any] = []
    logger: str = "recordpipe.commands.log"

    @field_validator("logger")
    @classmethod
    def _logger_not_empty(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("logger name must not be empty")
        return value


class AbstractLogCommand(AbstractCommand):
    """Log a message built from a format string and record fields, then pass the record on.

    The format uses ``{}`` placeholders, filled in order from ``args``.  An
    arg of ``@{}`` stands for the whole record, ``@{name}`` for the values of
    field ``name``, and anything else for itself.
    """

    Options = LogOptions
    level = logging.INFO

    def __init__(self, config, parent, child, context):
        super().__init__(config, parent, child, context)
        placeholders = self.options.format.count("{}")
        if placeholders != len(self.options.args):
            raise CompileError(
                f"{type(self).__name__}: format has {placeholders} placeholder(s) "
                f"but {len(self.options.args)} arg(s) were given"
            )
        self._logger = logging.getLogger(self.options.logger)
        self._format = self.options.format
        if self.options.args:
            self._format = self._format.replace("%", "%%").replace("{}", "%s")

    def _arg(self, record: Record, arg: Any) -> Any:
        if arg == "@{}":
            return record
        if _is_reference(arg):
            return record.get(arg[2:-1])
        return arg

    def do_process(self, record: Record) -> bool:
        if self._logger.isEnabledFor(self.level):
            self._logger.log(self.level, self._format, *[self._arg(record, a) for a in self.options.args])
        return self.forward(record)


@register_command("logDebug")
class LogDebug(AbstractLogCommand):
    level = logging.DEBUG


@register_command("logInfo")
class LogInfo(AbstractLogCommand):
    level = logging.INFO


@register_command("logWarn")
class LogWarn(AbstractLogCommand):
    level = logging.WARNING


@register_command("logError")
class LogError(AbstractLogCommand):
    level = logging.ERROR


@register_command("collect")
class Collector(AbstractCommand):
    """Keep a copy of every record that reaches this point, then pass it on.

    Collected records are discarded when a START_SESSION notification
    arrives.  Every notification received is kept in ``notifications``.
    """

    def __init__(self, config, parent, child, context):
        super().__init__(config, parent, child, context)
        self.records: List[Record] = []
        self.notifications: List[Notification] = []

    @property
    def first_record(self) -> Optional[Record]:
        return self.records[0] if self.records else None

    def do_process(self, record: Record) -> bool:
        self.records.append(record.copy())
        return self.forward(record)

    def do_notify(self, notification: Notification) -> None:
        self.notifications.append(notification)
        if notification.kind == NotificationKind.START_SESSION:
            self.records.clear()
