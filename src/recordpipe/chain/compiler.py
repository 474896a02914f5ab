""" Compiler for command chains

These methods take a chain configuration and build it into a Chain of live
commands.  For an end user the most important methods are compile, which
takes an already loaded configuration, and compile_file, which reads one
from a TOML or YAML file.

A configuration names its commands in order:

    {"id": "flatten",
     "commands": [
         {"extractTree": {"output_field_prefix": "/doc"}},
         {"contains": {"values": {"/doc/status": "ACTIVE"}}},
         {"logDebug": {"format": "flattened {}", "args": ["@{}"]}},
     ]}
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Type, Union
import logging

import recordpipe.commands  # noqa: F401  registers the built-in commands
from recordpipe.chain.registry import command_registry, register_command
from recordpipe.pipe.core import AbstractCommand, CommandOptions, CompileError, Context, Notification
from recordpipe.record import Record
from recordpipe.util.config import configure_logger, load_chain_config

logger = logging.getLogger(__name__)

__all__ = ["Chain", "CompileError", "build_commands", "compile", "compile_file"]


def _parse_command_entry(entry: Any) -> Tuple[str, Mapping[str, Any]]:
    """ Split a command entry into its name and its options """
    if not isinstance(entry, Mapping) or len(entry) != 1:
        raise CompileError(f"A command entry must be a mapping with exactly one command name, got {entry!r}")
    name, options = next(iter(entry.items()))
    if options is None:
        options = {}
    if not isinstance(options, Mapping):
        raise CompileError(f"Options for command '{name}' must be a mapping, got {type(options).__name__}")
    return name, options


def build_commands(entries: Iterable[Any],
                   parent: AbstractCommand,
                   final_child: Optional[AbstractCommand],
                   context: Context) -> List[AbstractCommand]:
    """ Build the commands named by entries and link them into a chain

    Names are resolved in declaration order, so an unknown name fails the
    build before any command is constructed.  Commands are then constructed
    back to front, each receiving its already built successor.  The last
    command's successor is final_child.

    Returns:
        The commands in declaration order.
    """
    parsed = [_parse_command_entry(entry) for entry in entries]
    classes: List[Type[AbstractCommand]] = []
    for name, _ in parsed:
        try:
            classes.append(command_registry.get(name))
        except KeyError as e:
            raise CompileError(f"Command '{name}' not found") from e

    commands = []
    child = final_child
    for (name, options), cls in reversed(list(zip(parsed, classes))):
        logger.debug(f"Building command {name}")
        child = cls(options, parent, child, context)
        commands.append(child)
    commands.reverse()
    return commands


class ChainOptions(CommandOptions):
    id: str = "chain"
    commands: List[Dict[str, Any]] = []
    logger_levels: Union[str, Dict[str, str], None] = None
    logger_files: Union[str, Dict[str, str], None] = None


@register_command("pipe")
class Chain(AbstractCommand):
    """An ordered sequence of commands that a record flows through.

    A chain is itself a command, so chains can be nested with the ``pipe``
    command.  Records entering the chain go to its first command.  The last
    command of the chain hands records to the chain's own successor.

    Notifications sent to a chain reach its commands in declaration order.
    A root chain built with an external final child notifies that child last,
    unless the child is itself attached to the context.

    A chain configuration may also carry ``logger_levels`` and
    ``logger_files``, in the forms configure_logger accepts.  They are
    applied when the chain is built.

    Attributes:
        id: The chain's identifier, used in diagnostics.
        commands: The chain's commands in declaration order.
    """

    Options = ChainOptions

    def __init__(self, config, parent, child, context):
        super().__init__(config, parent, child, context)
        self.id = self.options.id
        if self.options.logger_levels or self.options.logger_files:
            configure_logger(self.options.logger_levels, logger_files=self.options.logger_files)
        self.commands = build_commands(self.options.commands, self, child, context)
        for index, command in enumerate(self.commands):
            command.index = index
        logger.debug(f"Built chain '{self.id}' with {len(self.commands)} command(s)")

    @property
    def location(self) -> str:
        if self.parent is None:
            return self.id
        return f"{super().location}[{self.id}]"

    @property
    def head(self) -> Optional[AbstractCommand]:
        return self.commands[0] if self.commands else None

    def do_process(self, record: Record) -> bool:
        if self.head is None:
            return self.forward(record)
        return self.head.process(record)

    def do_notify(self, notification: Notification) -> None:
        for command in self.commands:
            command.notify(notification)
        # an attached child hears the broadcast from the context directly
        if self.parent is None and self.child is not None and not self.context.is_attached(self.child):
            self.child.notify(notification)

    def run(self, records: Iterable[Record]) -> Tuple[int, int]:
        """Push each record through the chain.

        Dropped records are counted and skipped.  Exceptions are handed to the
        context's fault tolerance policy, which either re-raises them or lets
        the run continue with the next record.

        Returns:
            A (succeeded, dropped) tuple.
        """
        succeeded = dropped = 0
        for record in records:
            try:
                ok = self.process(record)
            except Exception as e:
                self.context.fault_tolerance.handle(e, record)
                ok = False
            if ok:
                succeeded += 1
            else:
                dropped += 1
                self.context.increment(f"{self.location}.records_dropped")
                logger.debug(f"Chain '{self.id}' dropped a record")
        logger.debug(f"Chain '{self.id}' finished run: {succeeded} succeeded, {dropped} dropped")
        return succeeded, dropped


def compile(config: Mapping[str, Any],
            context: Optional[Context] = None,
            final_child: Optional[AbstractCommand] = None) -> Chain:
    """ Build a chain from its configuration

    Args:
        config: The chain configuration, with an optional ``id`` and a ``commands`` list.
        context: The context shared by the chain's commands.  A new one is created if omitted.
        final_child: A command that receives every record leaving the chain.

    Raises:
        CompileError: If the configuration is malformed, names an unknown command
            or gives a command invalid options.
    """
    if not isinstance(config, Mapping):
        raise CompileError(f"A chain configuration must be a mapping, got {type(config).__name__}")
    context = context if context is not None else Context()
    chain = Chain(config, None, final_child, context)
    context.attach(chain)
    return chain


def compile_file(path: str,
                 chain_id: Optional[str] = None,
                 context: Optional[Context] = None,
                 final_child: Optional[AbstractCommand] = None) -> Chain:
    """ Load a chain configuration from a TOML or YAML file and build it """
    try:
        config = load_chain_config(path, chain_id)
    except (OSError, ValueError) as e:
        raise CompileError(f"Could not load chain configuration from {path}: {e}") from e
    return compile(config, context, final_child)
