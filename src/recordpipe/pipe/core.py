"""Core definitions for command chains.

This module contains the building blocks every chain is made of: the
notifications broadcast across a chain, the Context shared by all commands
of a chain instance, the error policy applied by chain drivers, and the
abstract base class for commands.

A command receives a record, does its work and hands the (possibly new)
record to its successor, returning the successor's boolean answer.  A
``False`` answer means the record was dropped.  Exceptions are reserved for
failures that must stop the build or the run.
"""
import logging
import threading
import weakref
from abc import ABC, abstractmethod
from collections import Counter
from enum import Enum
from typing import Any, Annotated, Dict, Mapping, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict, ValidationError

from recordpipe.record import Record
from recordpipe.util.config import get_config

logger = logging.getLogger(__name__)


class RecordPipeRuntimeError(RuntimeError):
    """A fatal failure while running a chain.  Never ignored by fault tolerance."""
    pass


class CompileError(Exception):
    """Exception raised when a chain cannot be built from its configuration."""
    pass


class NotificationKind(str, Enum):
    """Lifecycle events that can be broadcast across a chain."""
    START_SESSION = "start_session"
    BEGIN_TRANSACTION = "begin_transaction"
    COMMIT_TRANSACTION = "commit_transaction"
    ROLLBACK_TRANSACTION = "rollback_transaction"
    SHUTDOWN = "shutdown"


class Notification(BaseModel):
    """An out-of-band lifecycle event.

    Notifications are delivered to every command of a chain through
    ``Context.notify``, independent of the per-record flow.  They never carry
    a record and never affect what ``process`` returns.

    Examples:
        context.notify(Notification(kind=NotificationKind.COMMIT_TRANSACTION))
        context.notify(Notification(kind=NotificationKind.START_SESSION, payload={"source": "batch-7"}))
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    kind: NotificationKind
    payload: Any = None


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes")
    return bool(value)


class FaultTolerance:
    """Error policy applied by chain drivers when processing a record raises.

    Outside production mode every exception propagates.  In production mode,
    with ignoring enabled, exceptions of a recoverable type are logged and
    the record is skipped.  RecordPipeRuntimeError is always fatal.
    """

    def __init__(self,
                 production_mode: Annotated[bool, "If True, recoverable exceptions may be ignored."] = False,
                 ignore_recoverable_exceptions: Annotated[bool, "If True (and in production mode), recoverable exceptions are logged and skipped."] = False,
                 recoverable_exceptions: Annotated[Tuple[Type[BaseException], ...], "Exception types considered recoverable."] = (Exception,)):
        self.production_mode = production_mode
        self.ignore_recoverable_exceptions = ignore_recoverable_exceptions
        self.recoverable_exceptions = tuple(recoverable_exceptions)

    @classmethod
    def from_config(cls) -> "FaultTolerance":
        """Create a policy from the ``production_mode`` and ``ignore_recoverable_exceptions`` settings."""
        config = get_config()
        return cls(production_mode=_as_bool(config.get("production_mode", False)),
                   ignore_recoverable_exceptions=_as_bool(config.get("ignore_recoverable_exceptions", False)))

    def is_recoverable(self, exc: BaseException) -> bool:
        return (not isinstance(exc, RecordPipeRuntimeError)
                and isinstance(exc, self.recoverable_exceptions))

    def handle(self, exc: BaseException, record: Optional[Record]) -> None:
        """Re-raise exc unless the policy allows the record to be skipped."""
        if self.production_mode and self.ignore_recoverable_exceptions and self.is_recoverable(exc):
            logger.warning(f"Ignoring recoverable exception while processing {record!r}: {exc!r}")
            return
        raise exc


class Context:
    """Services shared by every command of a chain instance.

    The context owns the error policy, a free-form settings mapping that
    commands may use to share services, per-command counters, and the list
    of chains that notifications are broadcast to.  It is passed explicitly
    to every command constructor.
    """

    def __init__(self,
                 fault_tolerance: Optional[FaultTolerance] = None,
                 settings: Optional[Mapping[str, Any]] = None):
        self.fault_tolerance = fault_tolerance if fault_tolerance is not None else FaultTolerance.from_config()
        self.settings: Dict[str, Any] = dict(settings or {})
        self._counters: Counter = Counter()
        self._lock = threading.Lock()
        self._chains = []

    def attach(self, chain: "AbstractCommand") -> None:
        """Register a root chain so that it receives notifications."""
        self._chains.append(chain)

    def is_attached(self, chain: "AbstractCommand") -> bool:
        return any(attached is chain for attached in self._chains)

    def notify(self, notification: Notification) -> None:
        """Broadcast a notification to every attached chain, synchronously."""
        logger.debug(f"Broadcasting {notification.kind.value} to {len(self._chains)} chain(s)")
        for chain in list(self._chains):
            chain.notify(notification)

    def increment(self, name: str, amount: int = 1) -> None:
        with self._lock:
            self._counters[name] += amount

    def counter(self, name: str) -> int:
        with self._lock:
            return self._counters[name]


class CommandOptions(BaseModel):
    """Base class for command option models.  Unknown options are rejected."""

    model_config = ConfigDict(extra="forbid", frozen=True)


class AbstractCommand(ABC):
    """Abstract base class for all commands.

    A command is one node of a chain.  Commands are built once, back to
    front, so the constructor already receives its live successor.  The
    class itself is the builder: it is called as
    ``cls(config, parent, child, context)``.

    Subclasses declare their options as a nested ``Options`` model and
    implement ``do_process``.  On success ``do_process`` must call
    ``self.forward(record)`` and return its answer; returning ``False``
    drops the record.

    Attributes:
        options: The validated options for this command.
        child: The successor command, or None at the tail of the chain.
        context: The Context shared by the whole chain.
        index: Position within the enclosing chain, assigned when the chain is built.

    Example:
        @register_command("upperCase")
        class UpperCase(AbstractCommand):
            class Options(CommandOptions):
                field: str

            def do_process(self, record):
                values = [v.upper() for v in record.get(self.options.field)]
                record.remove_all(self.options.field)
                record.put_all(self.options.field, values)
                return self.forward(record)
    """

    Options: Type[CommandOptions] = CommandOptions

    def __init__(self,
                 config: Optional[Mapping[str, Any]],
                 parent: Optional["AbstractCommand"],
                 child: Optional["AbstractCommand"],
                 context: Context):
        if context is None:
            raise CompileError(f"{type(self).__name__} requires a context")
        self._parent = weakref.ref(parent) if parent is not None else None
        self.child = child
        self.context = context
        self.index: Optional[int] = None
        self.options = self.parse_options(config)

    @classmethod
    def parse_options(cls, config: Optional[Mapping[str, Any]]) -> CommandOptions:
        """Validate a command's configuration against its Options model.

        Raises:
            CompileError: If the configuration is not a mapping, names an unknown
                option or has a value of the wrong type.
        """
        if config is None:
            config = {}
        if not isinstance(config, Mapping):
            raise CompileError(f"Options for {cls.__name__} must be a mapping, got {type(config).__name__}")
        try:
            return cls.Options.model_validate(dict(config))
        except ValidationError as e:
            raise CompileError(f"Invalid options for {cls.__name__}: {e}") from e

    @property
    def name(self) -> str:
        """The primary name this command is registered under."""
        names = getattr(type(self), "command_names", None)
        return names[0] if names else type(self).__name__

    @property
    def parent(self) -> Optional["AbstractCommand"]:
        """The enclosing chain, if it is still alive."""
        return self._parent() if self._parent is not None else None

    @property
    def predecessor(self) -> Optional["AbstractCommand"]:
        parent = self.parent
        if parent is None or not self.index:
            return None
        return parent.commands[self.index - 1]

    @property
    def location(self) -> str:
        """A path such as ``flatten/2:contains`` identifying this command."""
        parent = self.parent
        if parent is None:
            return self.name
        return f"{parent.location}/{self.index}:{self.name}"

    def process(self, record: Record) -> bool:
        """Process a record and return whether it survived the rest of the chain."""
        logger.debug(f"Running command {self.location}")
        self.context.increment(f"{self.location}.records_in")
        return self.do_process(record)

    @abstractmethod
    def do_process(self, record: Record) -> bool:
        """Do this command's work, then forward the record or return False."""

    def forward(self, record: Record) -> bool:
        """Pass the record to the successor.  At the tail of a chain, succeed."""
        if self.child is None:
            return True
        return self.child.process(record)

    def notify(self, notification: Notification) -> None:
        logger.debug(f"Notifying command {self.location} of {notification.kind.value}")
        self.do_notify(notification)

    def do_notify(self, notification: Notification) -> None:
        """Hook for session-scoped bookkeeping.  Does nothing by default."""
        pass
