"""
Timestamp normalization for time tracker tables.

The tracker renders start/end times as ``DD-MM-YY HH:MM:SS``. Everything
downstream works on the canonical ``YYYY-MM-DDTHH:MM:SS`` form produced by
``normalize_timestamp``, and ``parse_canonical`` is the only way those strings
are turned back into datetimes.
"""
import logging
import math
import re
from datetime import datetime

logger = logging.getLogger(__name__)

CANONICAL_FORMAT = '%Y-%m-%dT%H:%M:%S'

_DATE_RE = re.compile(r'\d{2}-\d{2}-\d{2}', re.ASCII)
_TIME_RE = re.compile(r'\d{2}:\d{2}:\d{2}', re.ASCII)
_CANONICAL_RE = re.compile(r'\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}', re.ASCII)
_LEADING_FLOAT_RE = re.compile(r'\s*[-+]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][-+]?\d+)?', re.ASCII)
_LEADING_INT_RE = re.compile(r'\s*[-+]?\d+', re.ASCII)


def parse_or_default(value, default=0, low=None, high=None, integer=False):
    """Parse ``value`` as a number, falling back to ``default``, then clamp.

    Strings are read by their leading numeric portion, so ``"2em"`` is 2 and
    ``"12.5 USD"`` is 12.5. Anything unparsable or non-finite gives
    ``default``. The default itself is returned unclamped.
    """
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, str):
        match = (_LEADING_INT_RE if integer else _LEADING_FLOAT_RE).match(value)
        if not match:
            return default
        number = int(match.group()) if integer else float(match.group())
    else:
        try:
            number = float(value)
        except (TypeError, ValueError):
            return default
        if not math.isfinite(number):
            return default
        if integer:
            number = int(number)
    if not math.isfinite(number):
        return default
    if low is not None:
        number = max(number, low)
    if high is not None:
        number = min(number, high)
    return number


def normalize_timestamp(text):
    """Convert ``DD-MM-YY HH:MM:SS`` to ``YYYY-MM-DDTHH:MM:SS``.

    Returns None for anything that is not a real calendar instant. Two digit
    years below 50 land in the 2000s, the rest in the 1900s.
    """
    if not isinstance(text, str) or not text.strip():
        return None

    parts = text.split(' ')
    if len(parts) != 2:
        return None
    date_part, time_part = parts
    if not _DATE_RE.fullmatch(date_part) or not _TIME_RE.fullmatch(time_part):
        return None

    day, month, year = (int(p) for p in date_part.split('-'))
    # Day is only range checked here; per-month validity is left to strptime
    if month < 1 or month > 12 or day < 1 or day > 31:
        return None

    year += 2000 if year < 50 else 1900
    if year < 1900 or year > 2100:
        return None

    iso = f'{year:04d}-{month:02d}-{day:02d}T{time_part}'
    if parse_canonical(iso) is None:
        logger.debug('Rejected timestamp %r: %s is not a calendar date', text, iso)
        return None
    return iso


def parse_canonical(value):
    """Parse a canonical timestamp string, or return None."""
    if not isinstance(value, str) or not _CANONICAL_RE.fullmatch(value):
        return None
    try:
        return datetime.strptime(value, CANONICAL_FORMAT)
    except ValueError:
        return None


def hours_between(start, end):
    """Hours from ``start`` to ``end``; 0 when either side is missing or invalid."""
    if not start or not end:
        return 0
    start_dt = parse_canonical(start)
    end_dt = parse_canonical(end)
    if start_dt is None or end_dt is None:
        return 0
    return (end_dt - start_dt).total_seconds() / 3600


def format_display(value):
    """'Jun 15 9:30 AM' style rendering of a canonical timestamp, '-' if absent."""
    dt = parse_canonical(value) if value else None
    if dt is None:
        return '-'
    hour = dt.hour % 12 or 12
    meridiem = 'AM' if dt.hour < 12 else 'PM'
    return f"{dt:%b} {dt.day} {hour}:{dt:%M} {meridiem}"
