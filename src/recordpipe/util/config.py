"""Settings, chain files and logging setup.

Settings come from ``~/.recordpipe.toml`` with ``RECORDPIPE_*`` environment
variables layered on top.  Chain files hold chain configurations in TOML or
YAML.
"""
import logging
import os
import tomllib
from logging.handlers import TimedRotatingFileHandler
from typing import Any, Dict, Mapping, Optional, Union

import yaml

logger = logging.getLogger(__name__)

_config = None

ENV_PREFIX = "RECORDPIPE_"
LOG_FORMAT = '%(asctime)s - %(levelname)s:%(name)s:%(message)s'


def parse_key_value_str(field_list: str, require_value: bool = False) -> Dict[str, str]:
    """Parse a list such as ``"recordpipe:DEBUG, root:WARNING"`` into a dict.

    Only the first ``:`` of an item separates key from value, so values may
    contain colons.  A key without a value maps to itself.

    Raises:
        ValueError: If require_value is True and a key is missing a value.
    """
    result = {}
    for item in field_list.split(","):
        key, sep, value = item.partition(":")
        key = key.strip()
        if not sep:
            if require_value:
                raise ValueError(f"Value required for property '{key}'")
            value = key
        result[key] = value.strip()
    return result


def reset_config():
    """Forget the cached settings so the next get_config() reloads them."""
    global _config
    _config = None


def _read_settings_file(path: str) -> Dict[str, Any]:
    config_path = os.path.expanduser(path)
    if not os.path.exists(config_path):
        logger.debug(f"Config file {config_path} not found, using empty config")
        return {}
    logger.info(f"Reading config from {config_path}")
    with open(config_path, 'rb') as f:
        return tomllib.load(f)


def _env_settings() -> Dict[str, str]:
    return {name[len(ENV_PREFIX):].lower(): value
            for name, value in os.environ.items() if name.startswith(ENV_PREFIX)}


def get_config(reload=False, path="~/.recordpipe.toml", ignore_env=False):
    """Return the process-wide settings.

    The TOML file at ``path`` is read first.  Unless ignore_env is set, every
    ``RECORDPIPE_<NAME>`` environment variable then sets the key ``<name>``
    (lower-cased), overriding the file.  The result is cached until
    reset_config() is called or reload is True.

    Returns:
        dict: The merged settings.  Values from the environment are strings.
    """
    global _config
    if _config is None or reload:
        logger.debug("Loading configuration")
        settings = _read_settings_file(path)
        if not ignore_env:
            overrides = _env_settings()
            if overrides:
                logger.debug(f"Settings from environment: {sorted(overrides)}")
            settings.update(overrides)
        _config = settings
    return _config


def load_chain_config(path: str, chain_id: Optional[str] = None) -> Dict[str, Any]:
    """Load a chain definition from a TOML or YAML file.

    A file holds either a single chain (``id`` and ``commands`` at the top
    level) or a ``chains`` list from which one chain is selected by id.
    Without a chain_id, the first chain of the list is used.

    Args:
        path: Path to a .toml, .yaml or .yml file.  Supports ~ notation.
        chain_id: The id of the chain to select from a ``chains`` list.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file type is not supported, the document is not a
            mapping, or no chain has the requested id.
    """
    config_path = os.path.abspath(os.path.expanduser(path))
    suffix = os.path.splitext(config_path)[1].lower()
    logger.debug(f"Loading chain configuration from {config_path}")

    if suffix == ".toml":
        with open(config_path, 'rb') as f:
            document = tomllib.load(f)
    elif suffix in (".yaml", ".yml"):
        with open(config_path, 'r', encoding='utf-8') as f:
            document = yaml.safe_load(f)
    else:
        raise ValueError(f"Unsupported chain configuration file type: {config_path}")

    if not isinstance(document, dict):
        raise ValueError(f"Chain configuration in {config_path} must be a mapping")

    if "chains" not in document:
        if chain_id is not None and document.get("id") != chain_id:
            raise ValueError(f"Chain '{chain_id}' not found in {config_path}")
        return document

    chains = document["chains"]
    if not isinstance(chains, list) or not chains:
        raise ValueError(f"'chains' in {config_path} must be a non-empty list")
    if chain_id is None:
        return chains[0]
    for chain in chains:
        if isinstance(chain, dict) and chain.get("id") == chain_id:
            return chain
    raise ValueError(f"Chain '{chain_id}' not found in {config_path}")


def _as_mapping(value: Union[str, Mapping[str, str], None]) -> Dict[str, str]:
    if not value:
        return {}
    if isinstance(value, Mapping):
        return {str(k): str(v) for k, v in value.items()}
    return parse_key_value_str(value, require_value=True)


def configure_logger(logger_levels: Union[str, Mapping[str, str], None] = None,
                     base_level="WARNING",
                     logger_files: Union[str, Mapping[str, str], None] = None):
    """Set logger levels and attach console and rotating file handlers.

    Args:
        logger_levels: Logger name to level, either as a mapping or as a
            ``"name:LEVEL,name:LEVEL"`` string.  ``root`` names the root logger.
            Defaults to the ``logger_levels`` setting.
        base_level: Level passed to ``logging.basicConfig``.
        logger_files: Logger name to log file path, in the same forms.
            Defaults to the ``logger_files`` setting.  Files rotate at midnight.

    Examples:
        >>> configure_logger("root:INFO,recordpipe.tree:DEBUG")
        >>> configure_logger({"recordpipe": "INFO"}, logger_files={"recordpipe": "/var/log/recordpipe.log"})
    """
    levels = _as_mapping(logger_levels or get_config().get("logger_levels"))
    files = _as_mapping(logger_files or get_config().get("logger_files"))

    logging.basicConfig(level=base_level.upper())
    formatter = logging.Formatter(LOG_FORMAT)

    for name, level in levels.items():
        target = logging.getLogger(None if name == "root" else name)
        target.setLevel(level.upper())
        target.handlers.clear()
        console = logging.StreamHandler()
        console.setLevel(target.level)
        console.setFormatter(formatter)
        target.addHandler(console)

    for name, file_name in files.items():
        target = logging.getLogger(None if name == "root" else name)
        file_handler = TimedRotatingFileHandler(file_name, when='midnight', backupCount=7)
        file_handler.setLevel(target.level)
        file_handler.setFormatter(formatter)
        target.addHandler(file_handler)
