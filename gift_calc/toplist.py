"""
Toplist Module
Ranks recipients in the spending log by total gift amount or number of gifts
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .calculator import format_amount
from .spending_log import SpendingLog
from .spendings import validate_date

SORT_TOTAL = "total"
SORT_GIFT_COUNT = "gift-count"
DEFAULT_LENGTH = 10

SORT_TITLES = {
    SORT_TOTAL: "Total Gifts",
    SORT_GIFT_COUNT: "Gift Count",
}

USAGE = """Usage:
  gift-calc toplist                                  # Top 10 by total gift amount
  gift-calc toplist --gift-count                     # Top 10 by number of gifts
  gift-calc toplist -l 20                            # Top 20 by total gift amount
  gift-calc toplist -c USD                           # Top 10 by USD gift amount
  gift-calc toplist --from 2024-01-01                # From January 1, 2024 to today
  gift-calc toplist --from 2024-01-01 --to 2024-12-31
  gift-calc toplist --list-currencies                # Show available currencies
  gcalc tl -g -l 5                                   # Short form"""


@dataclass(frozen=True)
class ToplistQuery:
    success: bool = True
    error: Optional[str] = None
    sort_by: str = SORT_TOTAL
    length: int = DEFAULT_LENGTH
    currency: Optional[str] = None
    from_date: Optional[str] = None
    to_date: Optional[str] = None
    list_currencies: bool = False


@dataclass
class PersonTotals:
    """Gift amounts and counts per currency for one recipient"""

    name: str
    totals: Dict[str, Decimal] = field(default_factory=lambda: defaultdict(Decimal))
    counts: Dict[str, int] = field(default_factory=lambda: defaultdict(int))

    def gift_count(self, currency: Optional[str] = None) -> int:
        if currency:
            return self.counts.get(currency, 0)
        return sum(self.counts.values())


@dataclass
class ToplistData:
    persons: List[PersonTotals] = field(default_factory=list)
    currencies: List[str] = field(default_factory=list)


def _failure(error: str) -> ToplistQuery:
    return ToplistQuery(success=False, error=error)


def parse_toplist_arguments(args: Sequence[str], today: Optional[date] = None) -> ToplistQuery:
    """Parse tokens following 'toplist'"""
    options: Dict[str, object] = {}

    index = 0
    while index < len(args):
        arg = args[index]
        value = args[index + 1] if index + 1 < len(args) else None

        if arg in ("-g", "--gift-count"):
            options["sort_by"] = SORT_GIFT_COUNT
            index += 1
        elif arg == "--list-currencies":
            options["list_currencies"] = True
            index += 1
        elif arg in ("-l", "--length"):
            try:
                number = float(value) if value is not None else None
            except ValueError:
                number = None
            if number is None:
                return _failure(f"{arg} requires a numeric value")
            if number <= 0 or not number.is_integer():
                return _failure(f"{arg} must be a positive number")
            options["length"] = int(number)
            index += 2
        elif arg in ("-c", "--currency"):
            if not value or not value.strip() or value.startswith("-"):
                return _failure("--currency requires a currency code")
            if len(value.split()) > 1:
                return _failure("--currency must not contain spaces")
            options["currency"] = value.strip().upper()
            index += 2
        elif arg in ("--from", "--to"):
            if not value or value.startswith("-"):
                return _failure(f"{arg} requires a date in YYYY-MM-DD format")
            bound = arg[2:]
            try:
                validate_date(value)
            except ValueError:
                return _failure(f"Invalid {bound} date: {value}. Use YYYY-MM-DD")
            options[f"{bound}_date"] = value
            index += 2
        else:
            return _failure(f"Unknown argument: {arg}")

    from_date = options.get("from_date")
    to_date = options.get("to_date")
    if from_date and not to_date:
        today = today or datetime.now(timezone.utc).date()
        options["to_date"] = to_date = today.isoformat()
    if from_date and validate_date(from_date) > validate_date(to_date):
        return _failure("From date must be before or equal to to date")

    return ToplistQuery(**options)


def summarize_toplist(
    log: SpendingLog, from_date: Optional[str] = None, to_date: Optional[str] = None
) -> ToplistData:
    """
    Per-recipient totals from the spending log

    Recipients are grouped case-insensitively under the first spelling seen.
    Entries without a recipient are skipped. Either date bound may be omitted;
    both are inclusive UTC dates.
    """
    start = validate_date(from_date) if from_date else None
    end = validate_date(to_date) if to_date else None

    persons: Dict[str, PersonTotals] = {}
    for entry in log.entries():
        if not entry.recipient_name:
            continue
        day = entry.timestamp.date()
        if (start and day < start) or (end and day > end):
            continue
        key = entry.recipient_name.strip().lower()
        person = persons.setdefault(key, PersonTotals(name=entry.recipient_name.strip()))
        person.totals[entry.currency] += entry.amount
        person.counts[entry.currency] += 1

    currencies = sorted({currency for person in persons.values() for currency in person.counts})
    return ToplistData(persons=list(persons.values()), currencies=currencies)


def _ranked(
    persons: Sequence[PersonTotals], key: Callable[[PersonTotals], object], length: int
) -> List[PersonTotals]:
    # highest first, ties alphabetical
    ordered = sorted(persons, key=lambda person: person.name.lower())
    ordered.sort(key=key, reverse=True)
    return ordered[:length]


def _section(title: str, rows: List[Tuple[str, str]]) -> str:
    lines = [f"Top {len(rows)} Persons ({title})"]
    lines.extend(f"{position}. {name}: {value}" for position, (name, value) in enumerate(rows, start=1))
    return "\n".join(lines)


def _total_section(persons: Sequence[PersonTotals], currency: str, length: int, title: str) -> str:
    holders = [person for person in persons if currency in person.counts]
    ranked = _ranked(holders, lambda person: person.totals[currency], length)
    return _section(title, [(person.name, f"{format_amount(person.totals[currency])} {currency}") for person in ranked])


def format_toplist_output(data: ToplistData, query: ToplistQuery) -> str:
    if not data.persons:
        return "No persons found in gift history."

    currency = query.currency
    if currency and currency not in data.currencies:
        return f"No persons found with gifts in {currency}."

    if query.sort_by == SORT_GIFT_COUNT:
        title = SORT_TITLES[SORT_GIFT_COUNT] + (f" - {currency}" if currency else "")
        holders = [person for person in data.persons if person.gift_count(currency)]
        ranked = _ranked(holders, lambda person: person.gift_count(currency), query.length)
        rows = []
        for person in ranked:
            count = person.gift_count(currency)
            rows.append((person.name, f"{count} gift" if count == 1 else f"{count} gifts"))
        return _section(title, rows)

    if currency:
        return _total_section(data.persons, currency, query.length, f"{SORT_TITLES[SORT_TOTAL]} - {currency}")
    if len(data.currencies) == 1:
        return _total_section(data.persons, data.currencies[0], query.length, SORT_TITLES[SORT_TOTAL])
    # amounts in different currencies are never added together
    return "\n\n".join(
        _total_section(data.persons, code, query.length, f"{SORT_TITLES[SORT_TOTAL]} - {code}")
        for code in data.currencies
    )


def format_currency_list(data: ToplistData) -> str:
    if not data.currencies:
        return "No currencies found in gift history."
    return f"Available currencies in dataset: {', '.join(data.currencies)}"
