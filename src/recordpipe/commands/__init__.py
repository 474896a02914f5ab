# Importing these modules registers their commands.
from recordpipe.commands import basic, tree  # noqa: F401
