"""
Flatten the extracted entry envelope into invoice line items.
"""
import json
import logging
from dataclasses import dataclass
from typing import Optional

from timestamps import hours_between

logger = logging.getLogger(__name__)

INVALID_ENVELOPE_MESSAGE = 'Invalid JSON data in time tracker block'


class InvalidEnvelopeError(ValueError):
    def __init__(self, message=INVALID_ENVELOPE_MESSAGE):
        super().__init__(message)


@dataclass
class TimeEntry:
    name: Optional[str]
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    level: int = 0
    duration: float = 0


def parse_envelope(json_data):
    """Decode ``{"entries": [...]}`` and return the flattened entries."""
    try:
        data = json.loads(json_data)
    except (TypeError, ValueError) as e:
        logger.debug('Envelope decode failed: %s', e)
        raise InvalidEnvelopeError() from e
    if not isinstance(data, dict):
        raise InvalidEnvelopeError()
    entries = data.get('entries') or []
    if not isinstance(entries, list):
        raise InvalidEnvelopeError()
    return flatten_entries(entries, 0)


def flatten_entries(entries, level=0):
    """Pre-order flatten of nested entries, annotating depth and duration.

    A raw entry may carry its own ``level`` (indentation read from a flat
    table); it is added to the nesting depth. Entries are not validated, so a
    missing name comes through as None and a non-list ``subEntries`` is no
    children.
    """
    flattened = []
    stack = [(entry, level) for entry in reversed(entries)]
    while stack:
        entry, depth = stack.pop()
        if not isinstance(entry, dict):
            entry = {}
        start = entry.get('startTime')
        end = entry.get('endTime')
        indent = entry.get('level')
        if not isinstance(indent, int) or isinstance(indent, bool):
            indent = 0
        flattened.append(TimeEntry(
            name=entry.get('name'),
            start_time=start,
            end_time=end,
            level=depth + indent,
            duration=hours_between(start, end),
        ))
        children = entry.get('subEntries')
        if not isinstance(children, list):
            children = []
        stack.extend((child, depth + 1) for child in reversed(children))
    return flattened
