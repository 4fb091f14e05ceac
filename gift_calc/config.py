"""
Configuration Module
Persisted defaults, environment overrides and the immutable GiftConfig record
"""

import json
import logging
import math
import os
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_BASE_VALUE = 70.0
DEFAULT_VARIATION = 20.0
DEFAULT_FRIEND_SCORE = 5.0
DEFAULT_NICE_SCORE = 5.0
DEFAULT_CURRENCY = "SEK"
DEFAULT_DECIMALS = 2

CONFIG_FILENAME = ".config.json"


class Command(str, Enum):
    """Top-level commands the CLI can dispatch to"""

    CALCULATE = "calculate"
    INIT_CONFIG = "init-config"
    UPDATE_CONFIG = "update-config"
    LOG = "log"
    VERSION = "version"
    NAUGHTY_LIST = "naughty-list"
    SPENDINGS = "spendings"
    TOPLIST = "toplist"


@dataclass(frozen=True)
class GiftConfig:
    """Validated settings for a single gift calculation"""

    base_value: float = DEFAULT_BASE_VALUE
    variation: float = DEFAULT_VARIATION
    friend_score: float = DEFAULT_FRIEND_SCORE
    nice_score: float = DEFAULT_NICE_SCORE
    currency: str = DEFAULT_CURRENCY
    decimals: int = DEFAULT_DECIMALS
    use_maximum: bool = False
    use_minimum: bool = False
    copy_to_clipboard: bool = False
    log_to_file: bool = True
    recipient_name: Optional[str] = None
    match_previous: bool = False
    match_recipient_name: Optional[str] = None
    command: Command = Command.CALCULATE
    show_help: bool = False
    command_args: Tuple[str, ...] = ()

    def with_changes(self, **changes: Any) -> "GiftConfig":
        return replace(self, **changes)


# JSON key -> (GiftConfig field, converter, validator)
_PERSISTED_FIELDS: Dict[str, Tuple[str, Callable[[Any], Any], Callable[[Any], bool]]] = {
    "baseValue": ("base_value", float, lambda v: v > 0),
    "variation": ("variation", float, lambda v: 0 <= v <= 100),
    "friendScore": ("friend_score", float, lambda v: 1 <= v <= 10),
    "niceScore": ("nice_score", float, lambda v: 0 <= v <= 10),
    "currency": ("currency", lambda v: str(v).strip().upper(), lambda v: len(v.split()) == 1),
    "decimals": ("decimals", int, lambda v: 0 <= v <= 10),
}

_ENVIRONMENT_FIELDS = {
    "GIFT_CALC_BASE_VALUE": "baseValue",
    "GIFT_CALC_VARIATION": "variation",
    "GIFT_CALC_CURRENCY": "currency",
    "GIFT_CALC_DECIMALS": "decimals",
}


def get_config_dir() -> Path:
    """Directory holding the config file, naughty list and spending log"""
    override = os.getenv("GIFT_CALC_CONFIG_DIR")
    if override:
        return Path(override)
    home = os.getenv("HOME") or str(Path.home())
    return Path(home) / ".config" / "gift-calc"


def _sanitize(values: Mapping[str, Any], source: str) -> Dict[str, Any]:
    """Keep only known keys whose values convert and pass range checks"""
    clean: Dict[str, Any] = {}
    for key, (_, converter, validator) in _PERSISTED_FIELDS.items():
        if key not in values or values[key] is None:
            continue
        raw = values[key]
        if isinstance(raw, bool) or (key == "currency" and not isinstance(raw, str)):
            logger.warning("Ignoring %s in %s: unsupported type %s", key, source, type(raw).__name__)
            continue
        try:
            value = converter(raw)
        except (TypeError, ValueError):
            logger.warning("Ignoring %s in %s: %r is not a valid value", key, source, raw)
            continue
        if isinstance(value, float) and not math.isfinite(value):
            logger.warning("Ignoring %s in %s: %r is not finite", key, source, raw)
            continue
        if not validator(value):
            logger.warning("Ignoring %s in %s: %r is out of range", key, source, raw)
            continue
        clean[key] = value
    return clean


class ConfigStore:
    """JSON file of persisted default values"""

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path is not None else get_config_dir() / CONFIG_FILENAME

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> Dict[str, Any]:
        """
        Load persisted defaults

        Returns:
            Partial mapping keyed by JSON names (baseValue, variation, ...).
            Empty when the file is missing or cannot be parsed.
        """
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Could not parse config file at %s, using defaults: %s", self.path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Config file at %s is not a JSON object, using defaults", self.path)
            return {}
        return _sanitize(data, str(self.path))

    def save(self, values: Mapping[str, Any]) -> Dict[str, Any]:
        """Write sanitized values to disk and return what was written"""
        clean = _sanitize(values, "saved config")
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(clean, f, indent=2)
            f.write("\n")
        logger.info("Configuration saved to %s", self.path)
        return clean


def load_environment_overrides(environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """Read GIFT_CALC_* variables into the persisted-config shape"""
    environ = os.environ if environ is None else environ
    raw = {key: environ[name] for name, key in _ENVIRONMENT_FIELDS.items() if environ.get(name)}
    return _sanitize(raw, "environment")


def resolve_defaults(
    persisted: Optional[Mapping[str, Any]] = None,
    environment: Optional[Mapping[str, Any]] = None,
) -> GiftConfig:
    """
    Merge built-in defaults with persisted config and environment overrides

    Precedence (lowest to highest): built-in defaults, config file,
    environment. Command line flags are applied on top by the parser.
    """
    merged: Dict[str, Any] = {}
    for layer in (persisted, environment):
        if layer:
            merged.update(_sanitize(layer, "defaults"))

    changes = {_PERSISTED_FIELDS[key][0]: value for key, value in merged.items()}
    return GiftConfig(**changes)


def _prompt_value(
    key: str,
    label: str,
    current: Any,
    prompt: Callable[[str], str],
    output: Callable[[str], None],
) -> Any:
    answer = prompt(f"{label} [{current}]: ").strip()
    if not answer:
        return current
    clean = _sanitize({key: answer}, "input")
    if key not in clean:
        output(f"Invalid value for {label}: {answer!r}, keeping {current}")
        return current
    return clean[key]


def run_config_wizard(
    store: ConfigStore,
    prompt: Callable[[str], str] = input,
    output: Callable[[str], None] = print,
    update: bool = False,
) -> Dict[str, Any]:
    """
    Interactively create or update the config file

    Args:
        store: Target config store
        prompt: Callable used to ask questions (input by default)
        output: Callable used for messages (print by default)
        update: Start from the saved values instead of built-in defaults

    Returns:
        The values that were saved
    """
    current = {
        "baseValue": DEFAULT_BASE_VALUE,
        "variation": DEFAULT_VARIATION,
        "currency": DEFAULT_CURRENCY,
        "decimals": DEFAULT_DECIMALS,
    }
    if update:
        if not store.exists():
            output(f"No configuration file found at {store.path}. Creating a new one.")
        current.update(store.load())
        output("Updating gift-calc configuration. Press Enter to keep the current value.")
    else:
        output("Setting up gift-calc configuration. Press Enter to accept the default.")

    questions = (
        ("baseValue", "Base value"),
        ("variation", "Variation percentage (0-100)"),
        ("currency", "Currency code"),
        ("decimals", "Decimal places (0-10)"),
    )
    for key, label in questions:
        current[key] = _prompt_value(key, label, current[key], prompt, output)

    saved = store.save(current)
    output(f"Configuration saved to {store.path}")
    return saved
