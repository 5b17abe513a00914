"""User configuration.

Merge order: defaults → global config → project .tfqconfig. Lookups take a
dotted key ("cache.clean") and an optional namespace, normally the command
name, so "sq.org" wins over "org" when running sq.
"""

import json
import os
from pathlib import Path

from tfq.errors import ConfigurationError

TFQCONFIG = ".tfqconfig"
GLOBAL_CONFIG_FILE = Path.home() / ".tfq" / "config.json"
CONFIG_FILE_ENV = "TFQ_CFG_FILE"

DEFAULT_CONFIG = {
    # Optional: "host": "tfe.example.com", "org": "acme", "sq": {"org": "..."}
    "cache": {"clean": 0},
}

_MISSING = object()


def global_config_path():
    """TFQ_CFG_FILE if set, else ~/.tfq/config.json."""
    override = os.environ.get(CONFIG_FILE_ENV)
    if override:
        return Path(override)
    return GLOBAL_CONFIG_FILE


def load_global_config():
    path = global_config_path()
    if os.environ.get(CONFIG_FILE_ENV) and not path.is_file():
        raise ConfigurationError(f"config file not found at {CONFIG_FILE_ENV} path: {path}")
    if path.is_file():
        try:
            return json.loads(path.read_text())
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in {path}: {e}") from e
    return {}


def find_config(start=None):
    """Walk up from start (default cwd) to find .tfqconfig, like git finds .git."""
    current = Path(start) if start else Path.cwd()
    for parent in [current, *current.parents]:
        config_path = parent / TFQCONFIG
        if config_path.is_file():
            return config_path
    return None


def _merge(base, updates):
    merged = dict(base)
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(start=None, namespace=""):
    data = _merge(DEFAULT_CONFIG, load_global_config())

    config_path = find_config(start)
    if config_path:
        try:
            raw = json.loads(config_path.read_text())
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in {config_path}: {e}") from e
        data = _merge(data, raw)

    return Config(data, source=config_path, namespace=namespace)


class Config:
    """Read-only dotted-key view over the merged configuration."""

    def __init__(self, data=None, source=None, namespace=""):
        self.data = data or {}
        self.source = source
        self.namespace = namespace

    def _walk(self, dotted):
        current = self.data
        for part in dotted.split("."):
            if not isinstance(current, dict) or part not in current:
                return _MISSING
            current = current[part]
        return current

    def get(self, key, default=None, namespace=None):
        ns = self.namespace if namespace is None else namespace
        candidates = [f"{ns}.{key}", key] if ns else [key]
        for candidate in candidates:
            value = self._walk(candidate)
            if value is not _MISSING:
                return value
        return default

    def get_string(self, key, default=None, namespace=None):
        value = self.get(key, _MISSING, namespace)
        if value is _MISSING or value is None:
            return default
        if not isinstance(value, str):
            raise ConfigurationError(f"config value {key!r} is not a string")
        return value

    def get_int(self, key, default=None, namespace=None):
        value = self.get(key, _MISSING, namespace)
        if value is _MISSING or value is None:
            return default
        # JSON numbers may come back as float
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ConfigurationError(f"config value {key!r} is not an int")
        return int(value)

    def with_namespace(self, namespace):
        return Config(self.data, source=self.source, namespace=namespace)
