"""
Spendings Report Module
Totals of logged gift amounts per currency over a date range
"""

import calendar
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from .calculator import format_amount
from .spending_log import LogEntry, SpendingLog

RELATIVE_UNITS = ("days", "weeks", "months", "years")

USAGE = """Usage:
  gift-calc spendings -f <from-date> -t <to-date>        # Absolute date range
  gift-calc spendings --from 2024-01-01 --to 2024-12-31  # Absolute date range
  gift-calc spendings --days 30                          # Last 30 days
  gift-calc spendings --weeks 4                          # Last 4 weeks
  gift-calc spendings --months 3                         # Last 3 months
  gift-calc spendings --years 1                          # Last year
  gcalc s --weeks 8                                      # Short alias"""


@dataclass(frozen=True)
class SpendingsQuery:
    success: bool = True
    error: Optional[str] = None
    from_date: Optional[str] = None
    to_date: Optional[str] = None
    unit: Optional[str] = None
    value: Optional[int] = None

    def date_range(self, today: Optional[date] = None) -> Tuple[str, str]:
        """Resolve to an absolute (from, to) pair of YYYY-MM-DD strings"""
        if self.from_date and self.to_date:
            return self.from_date, self.to_date
        today = today or datetime.now(timezone.utc).date()
        return calculate_relative_date(self.unit, self.value, today), today.isoformat()


@dataclass
class SpendingsSummary:
    entries: List[LogEntry] = field(default_factory=list)
    currency_totals: Dict[str, Decimal] = field(default_factory=dict)
    has_data: bool = False
    error_message: Optional[str] = None


def validate_date(text: Optional[str]) -> date:
    """
    Parse a strict YYYY-MM-DD date

    Raises:
        ValueError: With a user-facing message
    """
    if not text or len(text) != 10 or text[4] != "-" or text[7] != "-":
        raise ValueError(f"Invalid date format: {text}. Use YYYY-MM-DD")
    try:
        return datetime.strptime(text, "%Y-%m-%d").date()
    except ValueError:
        raise ValueError(f"Invalid date: {text}") from None


def _shift_months(day: date, months: int) -> date:
    month_index = day.year * 12 + (day.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def calculate_relative_date(unit: Optional[str], value: Optional[int], today: Optional[date] = None) -> str:
    """Date `value` units before today, as YYYY-MM-DD"""
    today = today or datetime.now(timezone.utc).date()
    value = value or 0
    if unit not in RELATIVE_UNITS:
        raise ValueError(f"Unknown time unit: {unit}")
    try:
        if unit == "days":
            result = today - timedelta(days=value)
        elif unit == "weeks":
            result = today - timedelta(weeks=value)
        elif unit == "months":
            result = _shift_months(today, value)
        else:
            result = _shift_months(today, value * 12)
    except (ValueError, OverflowError):
        raise ValueError(f"{value} {unit} reaches before the earliest supported date") from None
    return result.isoformat()


def parse_spendings_arguments(args: Sequence[str]) -> SpendingsQuery:
    """Parse tokens following 'spendings'"""
    from_date = None
    to_date = None
    relative: Dict[str, int] = {}

    index = 0
    while index < len(args):
        arg = args[index]
        value = args[index + 1] if index + 1 < len(args) else None

        if arg in ("-f", "--from", "-t", "--to"):
            if not value or value.startswith("-"):
                return SpendingsQuery(success=False, error=f"{arg} requires a date in YYYY-MM-DD format")
            try:
                validate_date(value)
            except ValueError as e:
                return SpendingsQuery(success=False, error=str(e))
            if arg in ("-f", "--from"):
                from_date = value
            else:
                to_date = value
            index += 2
            continue

        unit = arg[2:] if arg.startswith("--") else None
        if unit in RELATIVE_UNITS:
            try:
                number = float(value) if value is not None else None
            except ValueError:
                number = None
            if number is None:
                return SpendingsQuery(success=False, error=f"{arg} requires a numeric value")
            if number <= 0 or not number.is_integer():
                return SpendingsQuery(success=False, error=f"{arg} must be a positive number")
            try:
                calculate_relative_date(unit, int(number))
            except ValueError:
                return SpendingsQuery(success=False, error=f"{arg} {value} is too far back")
            relative[unit] = int(number)
            index += 2
            continue

        return SpendingsQuery(success=False, error=f"Unknown argument: {arg}")

    has_absolute = from_date is not None or to_date is not None
    if has_absolute and relative:
        return SpendingsQuery(success=False, error="Cannot combine absolute dates with relative periods")
    if len(relative) > 1:
        return SpendingsQuery(success=False, error="Can only specify one relative period")
    if has_absolute and (from_date is None or to_date is None):
        return SpendingsQuery(success=False, error="Both --from and --to dates are required")
    if has_absolute:
        if validate_date(from_date) > validate_date(to_date):
            return SpendingsQuery(success=False, error="From date must be before or equal to to date")
        return SpendingsQuery(from_date=from_date, to_date=to_date)
    if not relative:
        return SpendingsQuery(
            success=False,
            error="No time period specified. Use --from/--to or --days/--weeks/--months/--years",
        )

    (unit, value), = relative.items()
    return SpendingsQuery(unit=unit, value=value)


def summarize_spendings(log: SpendingLog, from_date: str, to_date: str) -> SpendingsSummary:
    """Entries between two dates (inclusive, UTC) with per-currency totals"""
    start = validate_date(from_date)
    end = validate_date(to_date)

    all_entries = log.entries()
    if not all_entries:
        return SpendingsSummary(error_message="No spending data found")

    entries = sorted(
        (entry for entry in all_entries if start <= entry.timestamp.date() <= end),
        key=lambda entry: entry.timestamp,
    )
    if not entries:
        return SpendingsSummary(error_message=f"No spending found between {from_date} and {to_date}")

    totals: Dict[str, Decimal] = defaultdict(Decimal)
    for entry in entries:
        totals[entry.currency] += entry.amount

    return SpendingsSummary(entries=entries, currency_totals=dict(totals), has_data=True)


def _entry_line(entry: LogEntry) -> str:
    line = f"{entry.timestamp.date().isoformat()}  {format_amount(entry.amount)} {entry.currency}"
    if entry.recipient_name:
        line += f" for {entry.recipient_name}"
    return line


def format_spendings_output(summary: SpendingsSummary, from_date: str, to_date: str) -> str:
    if summary.error_message:
        return summary.error_message

    header = f"Total Spending ({from_date} to {to_date}):"
    totals = summary.currency_totals

    if len(totals) == 1:
        (currency, total), = totals.items()
        lines = [f"{header} {format_amount(total)} {currency}", ""]
        lines.extend(_entry_line(entry) for entry in summary.entries)
        return "\n".join(lines)

    lines = [header]
    lines.extend(f"  {format_amount(total)} {currency}" for currency, total in sorted(totals.items()))
    for currency in sorted(totals):
        lines.append("")
        lines.append(f"{currency}:")
        lines.extend(f"  {_entry_line(entry)}" for entry in summary.entries if entry.currency == currency)
    return "\n".join(lines)
