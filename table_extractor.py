"""
Read time tracker tables out of rendered HTML.

The tracker renders one ``.simple-time-tracker-table`` per block: a header row
followed by rows of ``name | start | end | duration``. Nesting is only visible
as a ``margin-left: <N>em`` on the name span, so that is what we read back.
"""
import json
import logging
import re

import lxml.html
from lxml import etree

from timestamps import normalize_timestamp, parse_or_default

logger = logging.getLogger(__name__)

MAX_ROWS = 1000
MAX_NAME_LENGTH = 500
MAX_LEVEL = 10
DEFAULT_NAME = 'Unknown Task'

TABLE_CLASS = 'simple-time-tracker-table'
CONTAINER_CLASS = 'simple-time-tracker-container'
BOTTOM_CLASS = 'simple-time-tracker-bottom'

_CONTROL_CHARS_RE = re.compile('[\x00-\x1f\x7f-\x9f]')
_MARGIN_LEFT_RE = re.compile(r'margin-left\s*:\s*([^;]+)', re.IGNORECASE)


def _has_class(cls):
    return f'contains(concat(" ", normalize-space(@class), " "), " {cls} ")'


def sanitize_text(text):
    if not text:
        return ''
    text = _CONTROL_CHARS_RE.sub('', text)
    text = text.replace('<', '').replace('>', '')
    return text[:MAX_NAME_LENGTH]


def _span_text(cell):
    span = cell.find('.//span')
    node = span if span is not None else cell
    return node.text_content().strip()


def _indent_level(span):
    style = span.get('style', '') if span is not None else ''
    match = _MARGIN_LEFT_RE.search(style)
    margin = match.group(1).strip() if match else '0em'
    return parse_or_default(margin.replace('em', ''), 0, 0, MAX_LEVEL, integer=True)


def extract_entries(table):
    """Return raw entry dicts for each qualifying row of ``table``.

    Row 0 is the header. At most MAX_ROWS data rows are read and rows with
    fewer than four cells are skipped.
    """
    entries = []
    rows = table.xpath('descendant-or-self::tr')
    for row in rows[1:MAX_ROWS + 1]:
        cells = row.xpath('./td')
        if len(cells) < 4:
            continue

        name_span = cells[0].find('.//span')
        raw_name = name_span.text_content().strip() if name_span is not None else ''
        entries.append({
            'name': sanitize_text(raw_name or DEFAULT_NAME),
            'startTime': normalize_timestamp(_span_text(cells[1])),
            'endTime': normalize_timestamp(_span_text(cells[2])),
            'level': _indent_level(name_span),
        })

    if len(rows) > MAX_ROWS + 1:
        logger.warning('Time tracker table has %d rows; only the first %d were read',
                       len(rows) - 1, MAX_ROWS)
    return entries


def extract_table_data(table):
    """Serialize a table into the ``{"entries": [...]}`` envelope, or None if empty."""
    entries = extract_entries(table)
    if entries:
        return json.dumps({'entries': entries})
    return None


def find_tables(root):
    tables = root.xpath(f'descendant-or-self::*[{_has_class(TABLE_CLASS)}]')
    return tables or root.xpath('descendant-or-self::table')


def extract_from_html(html):
    """Envelope for the first time tracker table in ``html``, or None."""
    if not html or not html.strip():
        return None
    root = lxml.html.fromstring(html)
    for table in find_tables(root):
        data = extract_table_data(table)
        if data:
            return data
    return None


def attach_invoice_controls(html):
    """Add a "Create Invoice" button under each time tracker block.

    Blocks that already carry a button are left alone, so running this on its
    own output changes nothing.
    """
    if not html or not html.strip():
        return html
    root = lxml.html.fromstring(html)
    attached = 0
    for bottom in root.xpath(f'descendant-or-self::*[{_has_class(BOTTOM_CLASS)}]'):
        if bottom.xpath('.//button[@data-invoice-button]'):
            continue

        containers = bottom.xpath(f'ancestor::*[{_has_class(CONTAINER_CLASS)}][1]')
        container = containers[0] if containers else bottom.getparent()
        if container is None:
            continue

        tables = container.xpath(f'.//*[{_has_class(TABLE_CLASS)}]')
        if not tables:
            continue
        data = extract_table_data(tables[0])
        if not data:
            continue

        button = etree.SubElement(bottom, 'button')
        button.text = 'Create Invoice'
        button.set('class', 'mod-cta')
        button.set('data-invoice-button', 'true')
        button.set('data-entries', data)
        attached += 1

    logger.debug('Attached %d invoice button(s)', attached)
    return lxml.html.tostring(root, encoding='unicode')
