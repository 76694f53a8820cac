"""
Next-due date derivation for recurring client maintenance.

A client is serviced on the 15th of each selected month. Month indices are
0-based (0 = January) as stored on the client record.
"""
from datetime import date
from typing import Iterable, List, Set

from pm_scheduler.services.exceptions import ValidationError

DUE_DAY = 15

# "No scheduled due date" - stored for inactive clients
NO_DUE_DATE = date(9999, 12, 31)

MONTH_ABBREVIATIONS = [
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
]


def normalize_months(months: Iterable[int]) -> List[int]:
    """Return the month indices sorted and de-duplicated, rejecting anything outside 0-11"""
    normalized = set()
    for month in months or []:
        if isinstance(month, bool) or not isinstance(month, int) or not 0 <= month <= 11:
            raise ValidationError(f"Invalid month index: {month!r} (expected 0-11)")
        normalized.add(month)
    return sorted(normalized)


def compute_next_due(selected_months: Iterable[int], inactive: bool, as_of: date) -> date:
    """Next maintenance due date for a client as of the given day.

    The current month still counts while as_of is before the 15th; from the
    15th on, the cycle for the current month is considered past.
    """
    months = sorted(set(selected_months or []))
    if inactive or not months:
        return NO_DUE_DATE

    current_month = as_of.month - 1
    if current_month in months and as_of.day < DUE_DAY:
        return date(as_of.year, as_of.month, DUE_DAY)

    later = [m for m in months if m > current_month]
    if later:
        return date(as_of.year, later[0] + 1, DUE_DAY)
    return date(as_of.year + 1, months[0] + 1, DUE_DAY)


def format_months(months: Iterable[int]) -> str:
    return ", ".join(MONTH_ABBREVIATIONS[m] for m in sorted(set(months or [])) if 0 <= m <= 11)


def parse_months(text: str) -> Set[int]:
    """Parse "Mar, Sep" back into {2, 8}; unknown names are dropped"""
    if not text:
        return set()
    months = set()
    for name in text.split(","):
        name = name.strip()
        if name in MONTH_ABBREVIATIONS:
            months.add(MONTH_ABBREVIATIONS.index(name))
    return months
