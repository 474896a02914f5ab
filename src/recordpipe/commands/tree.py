"""Commands that turn attached tree values into flat record fields."""
import logging
from typing import Optional

from pydantic import Field

from recordpipe.chain.registry import register_command
from recordpipe.pipe.core import AbstractCommand, CommandOptions, CompileError, RecordPipeRuntimeError
from recordpipe.record import Fields, Record
from recordpipe.tree.flatten import DEFAULT_MAX_DEPTH, MAX_DEPTH_LIMIT, extract_tree
from recordpipe.tree.generic import schema_of
from recordpipe.util.config import get_config

logger = logging.getLogger(__name__)


class ExtractTreeOptions(CommandOptions):
    output_field_prefix: str = ""
    max_depth: Optional[int] = Field(default=None, gt=0, le=MAX_DEPTH_LIMIT)


@register_command("extractTree", "extractAvroTree")
class ExtractTree(AbstractCommand):
    """Flatten the tree attached to a record into fields named by their path.

    The tree is read from the first value of ``_attachment_body`` and must
    carry its own schema (a GenericRecord, EnumSymbol or Fixed).  The input
    record is copied, every leaf of the tree is added to the copy under
    ``output_field_prefix`` + its path, and the copy is passed on.

    This mapping suits simple schemas.  For complex schemas it produces many
    fields and can be expensive.

    Options:
        output_field_prefix: Prefix for every generated field name.  Defaults to "".
        max_depth: Maximum tree depth.  Defaults to the ``flatten_max_depth``
            configuration setting, or 64.  At most 512.

    Example output for a document with nested languages and links:
        /docId                  -> [10]
        /name/language/country  -> ["us", "gb"]
        /name/language/code     -> ["en-us", "en", "en-gb"]
        /name/url               -> ["http://A", "http://B"]
        /links/forward          -> [20, 40, 60]
    """

    Options = ExtractTreeOptions

    def __init__(self, config, parent, child, context):
        super().__init__(config, parent, child, context)
        self.max_depth = self.options.max_depth or int(get_config().get("flatten_max_depth", DEFAULT_MAX_DEPTH))
        if not 0 < self.max_depth <= MAX_DEPTH_LIMIT:
            raise CompileError(f"{self.name}: max_depth must be between 1 and {MAX_DEPTH_LIMIT}, got {self.max_depth}")

    def do_process(self, record: Record) -> bool:
        datum = record.get_first_value(Fields.ATTACHMENT_BODY)
        if datum is None:
            raise RecordPipeRuntimeError(f"{self.location}: record has no {Fields.ATTACHMENT_BODY} value")
        schema = schema_of(datum)
        if schema is None:
            raise RecordPipeRuntimeError(
                f"{self.location}: {Fields.ATTACHMENT_BODY} holds a {type(datum).__name__}, "
                f"which does not carry a schema"
            )
        output = record.copy()
        extract_tree(datum, schema, output, self.options.output_field_prefix, self.max_depth)
        return self.forward(output)
