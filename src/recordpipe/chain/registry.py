"""Registry mapping command names to the classes that build them.

The registry is a closed, static mapping: it is filled when the modules
defining commands are imported (``recordpipe.commands`` and the chain
compiler itself) and is only ever consulted by exact name.  There is no
plugin or entry point discovery.
"""

from typing import Dict, Generic, List, Type, TypeVar
import logging

logger = logging.getLogger(__name__)

T = TypeVar('T')


class CommandRegistry(Generic[T]):
    """Registry of command builders keyed by name.

    A single class may be registered under several names.  Registering a
    name that is already bound to a different class is an error, so the
    mapping can never change silently once the process has started.
    """

    def __init__(self):
        self._registry: Dict[str, Type[T]] = {}

    def register(self, cls: Type[T], name: str) -> None:
        """
        Register a builder class under a name.

        Args:
            cls: The command class
            name: The registration name

        Raises:
            ValueError: If the name is already registered to a different class
        """
        existing = self._registry.get(name)
        if existing is not None and existing is not cls:
            raise ValueError(
                f"Command '{name}' already registered as "
                f"{existing.__module__}.{existing.__name__}"
            )

        self._registry[name] = cls
        logger.debug(f"Registered '{name}' → {cls.__module__}.{cls.__name__}")

    def get(self, name: str) -> Type[T]:
        """
        Get a builder class by name.

        Raises:
            KeyError: If no command is registered under the name
        """
        if name in self._registry:
            return self._registry[name]

        available = sorted(self._registry.keys())
        raise KeyError(
            f"Command '{name}' not found in registry. "
            f"Available commands: {', '.join(available[:10])}"
            f"{', ...' if len(available) > 10 else ''}"
        )

    def names_of(self, cls: Type[T]) -> List[str]:
        return [name for name, registered in self._registry.items() if registered is cls]

    @property
    def all(self) -> Dict[str, Type[T]]:
        """A copy of the name to class mapping."""
        return self._registry.copy()

    def __contains__(self, name: str) -> bool:
        return name in self._registry


command_registry = CommandRegistry()


def register_command(*names: str, name: str = None):
    """
    Decorator to register a command class under one or more names.

    Usage:
        @register_command("extractTree", "extractAvroTree")
        class ExtractTree(AbstractCommand):
            ...

        @register_command(name="dropRecord")
        class DropRecord(AbstractCommand):
            ...

    The names are also stored on the class as ``command_names`` so that a
    command knows what it is called in configuration.

    Args:
        *names: One or more names to register the command under (positional)
        name: Single name to register the command under (keyword)
    """
    if name is not None:
        if names:
            raise ValueError("Cannot specify both positional names and 'name' keyword argument")
        names = (name,)

    if not names:
        raise ValueError("At least one name must be provided")

    def wrap(cls):
        for command_name in names:
            command_registry.register(cls, name=command_name)
        cls.command_names = tuple(names)
        return cls
    return wrap
