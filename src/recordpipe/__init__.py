import logging

from recordpipe.record import Fields, Record
from recordpipe.pipe.core import (
    AbstractCommand, CommandOptions, CompileError, Context, FaultTolerance,
    Notification, NotificationKind, RecordPipeRuntimeError,
)
from recordpipe.chain.registry import command_registry, register_command
from recordpipe.chain.compiler import Chain, compile, compile_file
from recordpipe.tree.flatten import FlatteningError, extract_tree, flatten

logger = logging.getLogger(__name__)
