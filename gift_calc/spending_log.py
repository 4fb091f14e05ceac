"""
Spending Log Module
Append-only text log of calculated gift amounts
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import List, Optional, Union

from .calculator import NAUGHTY_SUFFIX, format_output
from .config import get_config_dir

logger = logging.getLogger(__name__)

LOG_FILENAME = "gift-calc.log"

_ENTRY_PATTERN = re.compile(
    r"^(?P<timestamp>\S+)\s+(?P<amount>-?\d+(?:\.\d+)?)\s+(?P<currency>\S+)"
    r"(?:\s+for\s+(?P<recipient>.+?))?\s*$"
)


@dataclass(frozen=True)
class LogEntry:
    timestamp: datetime
    amount: Decimal
    currency: str
    recipient_name: Optional[str] = None


def format_timestamp(timestamp: datetime) -> str:
    """ISO-8601 UTC with millisecond precision and a Z suffix"""
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    timestamp = timestamp.astimezone(timezone.utc)
    return timestamp.strftime("%Y-%m-%dT%H:%M:%S.") + f"{timestamp.microsecond // 1000:03d}Z"


def parse_timestamp(text: str) -> datetime:
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_log_entry(line: str) -> Optional[LogEntry]:
    """
    Parse one log line

    Returns:
        LogEntry, or None when the line does not look like a gift entry
    """
    line = line.strip()
    if line.endswith(NAUGHTY_SUFFIX.strip()):
        line = line[: -len(NAUGHTY_SUFFIX.strip())].rstrip()

    match = _ENTRY_PATTERN.match(line)
    if not match:
        return None

    try:
        timestamp = parse_timestamp(match.group("timestamp"))
        amount = Decimal(match.group("amount"))
    except (ValueError, InvalidOperation):
        return None

    return LogEntry(
        timestamp=timestamp,
        amount=amount,
        currency=match.group("currency").upper(),
        recipient_name=match.group("recipient"),
    )


class SpendingLog:
    """Text file with one '<timestamp> <amount> <CURRENCY>[ for <name>]' line per gift"""

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path is not None else get_config_dir() / LOG_FILENAME

    def exists(self) -> bool:
        return self.path.is_file()

    def append(
        self,
        amount: Union[Decimal, float],
        currency: str,
        recipient_name: Optional[str] = None,
        on_naughty_list: bool = False,
        timestamp: Optional[datetime] = None,
    ) -> str:
        """
        Append an entry

        Returns:
            The line that was written (without newline)
        """
        timestamp = timestamp or datetime.now(timezone.utc)
        line = f"{format_timestamp(timestamp)} {format_output(amount, currency, recipient_name)}"
        if on_naughty_list:
            line += NAUGHTY_SUFFIX

        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(line + "\n")
        logger.debug("Logged gift entry to %s: %s", self.path, line)
        return line

    def read_text(self) -> str:
        if not self.exists():
            return ""
        with open(self.path, "r", encoding="utf-8") as f:
            return f.read()

    def last_entry(self, recipient_name: Optional[str] = None) -> Optional[LogEntry]:
        """
        Most recent entry in file order

        Args:
            recipient_name: Only consider entries for this recipient
                (case-insensitive). Any entry matches when omitted.
        """
        entries = self.entries()
        wanted = (recipient_name or "").strip().lower()
        if wanted:
            entries = [
                entry for entry in entries
                if entry.recipient_name and entry.recipient_name.strip().lower() == wanted
            ]
        return entries[-1] if entries else None

    def entries(self) -> List[LogEntry]:
        """All parseable entries in file order; malformed lines are skipped"""
        entries = []
        for number, line in enumerate(self.read_text().splitlines(), start=1):
            if not line.strip():
                continue
            entry = parse_log_entry(line)
            if entry is None:
                logger.debug("Skipping malformed log line %d in %s", number, self.path)
                continue
            entries.append(entry)
        return entries


def format_matched_gift(entry: LogEntry) -> str:
    """'125.5 USD for Alice (2023-12-01)'"""
    return f"{format_output(entry.amount, entry.currency, entry.recipient_name)} ({entry.timestamp.date().isoformat()})"
