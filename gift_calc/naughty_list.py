"""
Naughty List Module
Persisted registry of recipients whose gift amount is always zero
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .config import get_config_dir

logger = logging.getLogger(__name__)

NAUGHTY_LIST_FILENAME = "naughty-list.json"


@dataclass(frozen=True)
class NaughtyListResult:
    success: bool
    message: str
    entry: Optional[Dict[str, str]] = None


@dataclass(frozen=True)
class NaughtyListCommand:
    """Parsed naughty-list sub-command"""

    action: Optional[str] = None  # add, remove, list, search
    name: Optional[str] = None
    search_term: Optional[str] = None
    success: bool = True
    error: Optional[str] = None


def _timestamp() -> str:
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


class NaughtyList:
    """JSON-backed naughty list; names match case-insensitively"""

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path is not None else get_config_dir() / NAUGHTY_LIST_FILENAME

    def load(self) -> List[Dict[str, str]]:
        if not self.path.exists():
            return []
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Could not parse naughty list at %s, starting with empty list: %s", self.path, e)
            return []

        entries = data.get("naughtyList") if isinstance(data, dict) else None
        if not isinstance(entries, list):
            return []
        valid = []
        for entry in entries:
            if not isinstance(entry, dict) or not isinstance(entry.get("name"), str):
                continue
            if not isinstance(entry.get("addedAt", ""), str):
                entry = {key: value for key, value in entry.items() if key != "addedAt"}
            valid.append(entry)
        return valid

    def save(self, entries: Sequence[Dict[str, str]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump({"naughtyList": list(entries)}, f, indent=2)
            f.write("\n")

    @staticmethod
    def _find(entries: Sequence[Dict[str, str]], name: str) -> Optional[int]:
        wanted = name.lower()
        for index, entry in enumerate(entries):
            if entry["name"].lower() == wanted:
                return index
        return None

    def add(self, name: Optional[str]) -> NaughtyListResult:
        name = (name or "").strip()
        if not name:
            return NaughtyListResult(False, "Name cannot be empty")

        entries = self.load()
        existing = self._find(entries, name)
        if existing is not None:
            return NaughtyListResult(False, f"{name} is already on the naughty list", entries[existing])

        entry = {"name": name, "addedAt": _timestamp()}
        entries.append(entry)
        self.save(entries)
        logger.info("Added %s to naughty list", name)
        return NaughtyListResult(True, f"{name} added to naughty list", entry)

    def remove(self, name: Optional[str]) -> NaughtyListResult:
        name = (name or "").strip()
        if not name:
            return NaughtyListResult(False, "Name cannot be empty")

        entries = self.load()
        index = self._find(entries, name)
        if index is None:
            return NaughtyListResult(False, f"{name} is not on the naughty list")

        entry = entries.pop(index)
        self.save(entries)
        logger.info("Removed %s from naughty list", name)
        return NaughtyListResult(True, f"{name} removed from naughty list", entry)

    def contains(self, name: Optional[str]) -> bool:
        name = (name or "").strip()
        if not name:
            return False
        return self._find(self.load(), name) is not None

    def list_entries(self) -> List[Dict[str, str]]:
        return self.load()

    def search(self, prefix: Optional[str]) -> List[Dict[str, str]]:
        """Entries whose name starts with prefix (case-insensitive)"""
        prefix = (prefix or "").strip().lower()
        if not prefix:
            return []
        return [entry for entry in self.load() if entry["name"].lower().startswith(prefix)]


def format_entry(entry: Dict[str, str]) -> str:
    added = entry.get("addedAt")
    if not added or not isinstance(added, str):
        return entry["name"]
    try:
        added = datetime.fromisoformat(added.replace("Z", "+00:00")).strftime("%Y-%m-%d %H:%M")
    except ValueError:
        pass
    return f"{entry['name']} (added: {added})"


def parse_naughty_list_arguments(args: Sequence[str]) -> NaughtyListCommand:
    """
    Parse tokens following 'naughty-list'

    Supported forms:
        list               show everybody
        <name>             add a person
        --remove <name>    remove a person (also -r)
        --search <term>    names starting with term
    """
    if not args:
        return NaughtyListCommand(
            success=False,
            error='No action specified. Use "list" to see all naughty people, '
                  'provide a name to add, or use --search to search.',
        )

    action = None
    name = None
    search_term = None
    remove = False

    index = 0
    while index < len(args):
        arg = args[index]
        if arg in ("--remove", "-r"):
            remove = True
        elif arg == "--search":
            next_arg = args[index + 1] if index + 1 < len(args) else None
            if not next_arg or next_arg.startswith("-"):
                return NaughtyListCommand(success=False, error="--search requires a search term")
            search_term = next_arg
            action = "search"
            index += 1
        elif arg == "list":
            action = "list"
        elif not arg.startswith("-"):
            name = arg
            action = "add"
        else:
            return NaughtyListCommand(success=False, error=f"Unknown flag: {arg}")
        index += 1

    if remove and not name:
        return NaughtyListCommand(success=False, error="No name provided to remove from naughty list")
    if remove and action == "add":
        action = "remove"

    return NaughtyListCommand(action=action or "list", name=name, search_term=search_term)
