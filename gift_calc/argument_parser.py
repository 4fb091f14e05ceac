"""
Argument Parser Module
Turns command line tokens into a validated GiftConfig
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Sequence, Tuple

from .config import Command, GiftConfig, resolve_defaults

logger = logging.getLogger(__name__)


class ArgumentError(ValueError):
    """Raised when a command line token cannot be accepted"""


@dataclass(frozen=True)
class ParseResult:
    """Outcome of parsing: a config on success, an error message otherwise"""

    success: bool
    config: Optional[GiftConfig] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class FlagSpec:
    """One command line flag: its aliases, how many values it takes and what it sets"""

    aliases: Tuple[str, ...]
    label: str
    arity: int
    apply: Callable[[str, Optional[str]], Dict[str, Any]]
    # value may be omitted; a following flag is never taken as the value
    optional: bool = False


SPECIAL_COMMANDS = {
    "init-config": Command.INIT_CONFIG,
    "update-config": Command.UPDATE_CONFIG,
    "log": Command.LOG,
    "version": Command.VERSION,
    "--version": Command.VERSION,
    "naughty-list": Command.NAUGHTY_LIST,
    "nl": Command.NAUGHTY_LIST,
    "spendings": Command.SPENDINGS,
    "s": Command.SPENDINGS,
    "toplist": Command.TOPLIST,
    "tl": Command.TOPLIST,
}


def _number(label: str, value: Optional[str]) -> float:
    if value is None or value == "":
        raise ArgumentError(f"{label} requires a numeric value")
    try:
        number = float(value)
    except ValueError:
        raise ArgumentError(f"{label} requires a numeric value") from None
    if not math.isfinite(number):
        raise ArgumentError(f"{label} requires a numeric value")
    return number


def _whole_number(label: str, value: Optional[str]) -> int:
    number = _number(label, value)
    if not number.is_integer():
        raise ArgumentError(f"{label} requires a whole number")
    return int(number)


def _bounded(label: str, number: float, low: float, high: float) -> float:
    if number < low or number > high:
        raise ArgumentError(f"{label} must be between {low:g} and {high:g}")
    return number


def _base_value(label: str, value: Optional[str]) -> Dict[str, Any]:
    number = _number(label, value)
    if number <= 0:
        raise ArgumentError(f"{label} must be greater than 0")
    return {"base_value": number}


def _variation(label: str, value: Optional[str]) -> Dict[str, Any]:
    return {"variation": _bounded(label, _number(label, value), 0, 100)}


def _friend_score(label: str, value: Optional[str]) -> Dict[str, Any]:
    return {"friend_score": _bounded(label, _number(label, value), 1, 10)}


def _nice_score(label: str, value: Optional[str]) -> Dict[str, Any]:
    return {"nice_score": _bounded(label, _number(label, value), 0, 10)}


def _decimals(label: str, value: Optional[str]) -> Dict[str, Any]:
    return {"decimals": int(_bounded(label, _whole_number(label, value), 0, 10))}


def _currency(label: str, value: Optional[str]) -> Dict[str, Any]:
    if value is None or not value.strip():
        raise ArgumentError(f"{label} requires a currency code")
    if len(value.split()) > 1:
        raise ArgumentError(f"{label} must not contain spaces")
    return {"currency": value.strip().upper()}


def _name(label: str, value: Optional[str]) -> Dict[str, Any]:
    if value is None or not value.strip():
        raise ArgumentError(f"{label} requires a recipient name")
    return {"recipient_name": value.strip()}


def _match(label: str, value: Optional[str]) -> Dict[str, Any]:
    name = value.strip() if value else None
    return {"match_previous": True, "match_recipient_name": name or None}


def _constant(**changes: Any) -> Callable[[str, Optional[str]], Dict[str, Any]]:
    return lambda label, value: dict(changes)


FLAG_SPECS: Tuple[FlagSpec, ...] = (
    FlagSpec(("-b", "--basevalue"), "-b/--basevalue", 1, _base_value),
    FlagSpec(("-v", "--variation"), "-v/--variation", 1, _variation),
    FlagSpec(("-f", "--friendscore"), "-f/--friendscore", 1, _friend_score),
    FlagSpec(("-n", "--nicescore"), "-n/--nicescore", 1, _nice_score),
    FlagSpec(("-c", "--currency"), "-c/--currency", 1, _currency),
    FlagSpec(("-d", "--decimals"), "-d/--decimals", 1, _decimals),
    FlagSpec(("--name",), "--name", 1, _name),
    FlagSpec(("-m", "--match"), "-m/--match", 1, _match, optional=True),
    FlagSpec(("--max",), "--max", 0, _constant(use_maximum=True, use_minimum=False)),
    FlagSpec(("--min",), "--min", 0, _constant(use_minimum=True, use_maximum=False)),
    FlagSpec(("--no-log",), "--no-log", 0, _constant(log_to_file=False)),
    FlagSpec(("-cp", "--copy"), "-cp/--copy", 0, _constant(copy_to_clipboard=True)),
    FlagSpec(("-h", "--help"), "-h/--help", 0, _constant(show_help=True)),
    FlagSpec(("--version",), "--version", 0, _constant(command=Command.VERSION)),
    # Joke shortcuts: lowest friend and nice scores at once
    FlagSpec(("--asshole",), "--asshole", 0, _constant(friend_score=1.0, nice_score=1.0)),
    FlagSpec(("--dickhead",), "--dickhead", 0, _constant(friend_score=1.0, nice_score=1.0)),
)


class ArgumentParser:
    """Table-driven parser for the gift calculation command line"""

    def __init__(self, flag_specs: Sequence[FlagSpec] = FLAG_SPECS):
        self.flag_specs = tuple(flag_specs)
        self._by_alias: Dict[str, FlagSpec] = {}
        for spec in self.flag_specs:
            for alias in spec.aliases:
                self._by_alias[alias] = spec

    def parse(self, tokens: Sequence[str], defaults: Optional[GiftConfig] = None) -> ParseResult:
        """
        Parse command line tokens

        Args:
            tokens: Arguments without the program name
            defaults: Pre-merged defaults (built-in + config file); built-in
                defaults are used when omitted

        Returns:
            ParseResult with the config or the first error encountered
        """
        try:
            config = self.parse_or_raise(tokens, defaults)
        except ArgumentError as e:
            logger.debug("Argument parsing failed: %s", e)
            return ParseResult(success=False, error=str(e))
        return ParseResult(success=True, config=config)

    def parse_or_raise(self, tokens: Sequence[str], defaults: Optional[GiftConfig] = None) -> GiftConfig:
        base = defaults if defaults is not None else resolve_defaults()
        tokens = list(tokens)

        if tokens and tokens[0] in SPECIAL_COMMANDS:
            return base.with_changes(
                command=SPECIAL_COMMANDS[tokens[0]],
                command_args=tuple(tokens[1:]),
            )

        changes: Dict[str, Any] = {}
        index = 0
        while index < len(tokens):
            token = tokens[index]
            spec = self._by_alias.get(token)

            if spec is None:
                if token.startswith("-"):
                    raise ArgumentError(f"Unknown flag: {token}")
                # Bare word: first one names the recipient
                if "recipient_name" not in changes and token.strip():
                    changes["recipient_name"] = token.strip()
                index += 1
                continue

            value = None
            consumed = spec.arity
            if spec.arity:
                value = tokens[index + 1] if index + 1 < len(tokens) else None
                if spec.optional and (value is None or value.startswith("-")):
                    value = None
                    consumed = 0
            changes.update(spec.apply(spec.label, value))
            index += 1 + consumed

        return base.with_changes(**changes)


def parse_arguments(tokens: Sequence[str], defaults: Optional[GiftConfig] = None) -> ParseResult:
    """Parse with the default flag table"""
    return ArgumentParser().parse(tokens, defaults)
