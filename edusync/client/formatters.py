"""
Display helpers for ISO-8601 timestamps: long date, relative due label, overdue check.
"""
import logging
import math
import re
from datetime import datetime, timezone, tzinfo
from typing import Optional

from dateutil import parser as dateutil_parser

logger = logging.getLogger(__name__)

MONTH_NAMES = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]

_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_timestamp(iso: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 string into an aware datetime. None for empty or invalid input.

    Date-only values are UTC midnight; naive date-times are local time.
    """
    if not iso:
        return None
    text = str(iso).strip()
    try:
        dt = dateutil_parser.isoparse(text)
    except (ValueError, OverflowError):
        # Backend sometimes sends "YYYY-MM-DD HH:MM:SS"
        try:
            dt = dateutil_parser.isoparse(text.replace(" ", "T", 1))
        except (ValueError, OverflowError):
            logger.warning(f"Unparseable timestamp: {iso!r}")
            return None
    if dt.tzinfo is None:
        if _DATE_ONLY.match(text):
            return dt.replace(tzinfo=timezone.utc)
        return dt.astimezone()
    return dt


def _js_round(value: float) -> int:
    """Round half toward positive infinity."""
    return math.floor(value + 0.5)


def _now(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.astimezone()
    return now


def format_date(iso: Optional[str], tz: Optional[tzinfo] = None) -> str:
    """'May 18, 2025, 14:30' in tz (local zone by default); 'N/A' when empty."""
    if not iso:
        return "N/A"
    dt = parse_timestamp(iso)
    if dt is None:
        return "Invalid Date"
    dt = dt.astimezone(tz) if tz is not None else dt.astimezone()
    return f"{MONTH_NAMES[dt.month - 1]} {dt.day}, {dt.year}, {dt.hour:02d}:{dt.minute:02d}"


def get_relative_time(iso: Optional[str], now: Optional[datetime] = None) -> str:
    """'due in 3 days' / '5 hours overdue'; 'No due date' when empty."""
    if not iso:
        return "No due date"
    due = parse_timestamp(iso)
    if due is None:
        return "Invalid Date"

    diff_ms = (due - _now(now)).total_seconds() * 1000
    diff_seconds = _js_round(diff_ms / 1000)
    diff_minutes = _js_round(diff_seconds / 60)
    diff_hours = _js_round(diff_minutes / 60)
    diff_days = _js_round(diff_hours / 24)

    if diff_seconds < 0:
        if abs(diff_seconds) < 60:
            return f"{abs(diff_seconds)} seconds overdue"
        if abs(diff_minutes) < 60:
            return f"{abs(diff_minutes)} minutes overdue"
        if abs(diff_hours) < 24:
            return f"{abs(diff_hours)} hours overdue"
        return f"{abs(diff_days)} days overdue"

    if diff_seconds < 60:
        return f"due in {diff_seconds} seconds"
    if diff_minutes < 60:
        return f"due in {diff_minutes} minutes"
    if diff_hours < 24:
        return f"due in {diff_hours} hours"
    return f"due in {diff_days} days"


def is_due_date_over(iso: Optional[str], now: Optional[datetime] = None) -> bool:
    """True iff now is strictly after the due instant."""
    if not iso:
        return False
    due = parse_timestamp(iso)
    if due is None:
        return False
    return _now(now) > due
