"""
Invoice computation and PDF rendering.

One fixed template: header (company left, title and invoice details right),
the itemized time table, a summary block and the notes/terms footer.
"""
import io
import logging
import random
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path, PurePosixPath
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_LEFT, TA_RIGHT
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.platypus import Flowable, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

import config
from billing import FlatRate, HourlyRate, billing_mode
from timestamps import format_display, hours_between, parse_or_default

logger = logging.getLogger(__name__)

MAX_DURATION_HOURS = 24 * 365
MAX_INDENT_LEVEL = 10
MAX_TEXT_LENGTH = 1000
MAX_FILENAME_LENGTH = 50
NO_VALUE = '-'

PAGE_WIDTH = letter[0] - 72  # half inch margins
TABLE_HEADER = ['Task', 'Start Time', 'End Time', 'Hours', 'Rate', 'Amount']

_CONTROL_CHARS_RE = re.compile('[\x00-\x1f\x7f-\x9f]')
_UNSAFE_FILENAME_RE = re.compile(r'[<>:"/\\|?*\x00-\x1f]')
_DIRECTORY_TOKEN_RE = re.compile(r'\[([^\]]*)\]|YYYY|YY|MMMM|MMM|MM|DD')


class InvoiceGenerationError(RuntimeError):
    pass


class HLine(Flowable):
    def __init__(self, width):
        Flowable.__init__(self)
        self.width = width

    def draw(self):
        self.canv.line(0, 0, self.width, 0)


@dataclass
class InvoiceSummary:
    total_hours: float
    rate_label: str
    rate_value: float
    total_amount: float


def escape_text(text):
    """Strip control characters and cap length for anything printed on the PDF."""
    if not text:
        return ''
    return _CONTROL_CHARS_RE.sub('', str(text))[:MAX_TEXT_LENGTH]


def entry_duration(entry):
    """Hours for one line item, recomputed from its endpoints and clamped to a year."""
    hours = hours_between(entry.start_time, entry.end_time)
    return parse_or_default(hours, 0, 0, MAX_DURATION_HOURS)


def calculate_total_hours(entries):
    return sum(entry_duration(entry) for entry in entries)


def build_line_items(entries, mode):
    rows = []
    for entry in entries:
        duration = entry_duration(entry)
        level = parse_or_default(entry.level, 0, 0, MAX_INDENT_LEVEL, integer=True)
        label = escape_text('  ' * level + (entry.name or ''))
        row = [label, format_display(entry.start_time), format_display(entry.end_time), f"{duration:.2f}"]
        if isinstance(mode, FlatRate):
            row += [NO_VALUE, NO_VALUE]
        elif isinstance(mode, HourlyRate):
            row += [f"{mode.rate:.2f}", f"{duration * mode.rate:.2f}"]
        else:
            raise TypeError(f"Unknown billing mode: {mode!r}")
        rows.append(row)
    return rows


def summarize(entries, mode):
    hours = calculate_total_hours(entries)
    if isinstance(mode, FlatRate):
        return InvoiceSummary(hours, 'Project Rate:', mode.amount, mode.amount)
    if isinstance(mode, HourlyRate):
        return InvoiceSummary(hours, 'Hourly Rate:', mode.rate, hours * mode.rate)
    raise TypeError(f"Unknown billing mode: {mode!r}")


def generate_invoice_number(now=None):
    now = now or datetime.now()
    return f"{now:%Y-%m-%d}-{random.randrange(0, 9999):04d}"


def expand_directory_template(template, now=None):
    """Expand YYYY/YY/MMMM/MMM/MM/DD tokens; [bracketed] text is kept verbatim."""
    now = now or datetime.now()

    def _replace(match):
        if match.group(1) is not None:
            return match.group(1)
        return {
            'YYYY': f"{now:%Y}",
            'YY': f"{now:%y}",
            'MMMM': f"{now:%B}",
            'MMM': f"{now:%b}",
            'MM': f"{now:%m}",
            'DD': f"{now:%d}",
        }[match.group(0)]

    return _DIRECTORY_TOKEN_RE.sub(_replace, template)


def sanitize_filename(name):
    name = _UNSAFE_FILENAME_RE.sub('-', name)
    name = re.sub(r'\s+', '-', name)
    name = re.sub(r'-+', '-', name)
    name = name.strip('-')
    # truncation can expose a trailing hyphen
    return name[:MAX_FILENAME_LENGTH].rstrip('-')


def invoice_file_path(settings, invoice_number, now=None):
    """Vault relative path, e.g. ``Invoices/2024/01/Acme-invoice-2024-01-05-0042.pdf``."""
    directory = expand_directory_template(settings.invoice_directory or 'Invoices/YYYY/MM', now)
    company = sanitize_filename(settings.company_name or 'Company') or 'Company'
    filename = f"{company}-invoice-{invoice_number}.pdf"
    parts = [p for p in PurePosixPath(directory.replace('\\', '/')).parts if p not in ('/', '.', '..')]
    return str(PurePosixPath(*parts, filename))


def ensure_directory_exists(vault_dir, file_path):
    parent_parts = PurePosixPath(file_path).parent.parts
    if not parent_parts:
        return
    vault_dir = Path(vault_dir)
    if vault_dir.joinpath(*parent_parts).exists():
        return
    vault_dir.mkdir(parents=True, exist_ok=True)
    current = vault_dir
    for part in parent_parts:
        current = current / part
        if current.exists():
            continue
        try:
            current.mkdir()
        except FileExistsError:
            # created concurrently
            pass


def save_invoice(vault_dir, file_path, payload):
    ensure_directory_exists(vault_dir, file_path)
    target = Path(vault_dir).joinpath(*PurePosixPath(file_path).parts)
    target.write_bytes(payload)
    return target


def _styles():
    styles = getSampleStyleSheet()
    styles.add(ParagraphStyle(name='InvoiceTitle', parent=styles['Title'], fontSize=24, leading=28, alignment=TA_RIGHT))
    styles.add(ParagraphStyle(name='CompanyName', parent=styles['Normal'], fontSize=16, leading=20, alignment=TA_LEFT))
    styles.add(ParagraphStyle(name='RightAlign', parent=styles['Normal'], alignment=TA_RIGHT))
    styles.add(ParagraphStyle(name='LeftAlign', parent=styles['Normal'], alignment=TA_LEFT))
    styles.add(ParagraphStyle(name='Cell', parent=styles['Normal'], fontSize=9, leading=11))
    return styles


def _lines(text):
    return '<br/>'.join(escape(escape_text(line)) for line in text.split('\n'))


def _label_cell(label, style):
    # Paragraph collapses spaces, so the indent is kept as non-breaking spaces
    lead = len(label) - len(label.lstrip(' '))
    return Paragraph('&nbsp;' * lead + escape(label[lead:]), style)


def _header(settings, invoice_number, invoice_date, styles):
    company = escape(escape_text(settings.company_name or 'Your Company'))
    details = f"Invoice #: {escape(escape_text(invoice_number))}<br/>Date: {invoice_date}"
    address = _lines(settings.company_address) if settings.company_address else ''
    data = [
        [Paragraph(company, styles['CompanyName']), Paragraph('INVOICE', styles['InvoiceTitle'])],
        [Paragraph(address, styles['LeftAlign']), Paragraph(details, styles['RightAlign'])],
    ]
    table = Table(data, colWidths=[PAGE_WIDTH * 0.6, PAGE_WIDTH * 0.4])
    table.setStyle(TableStyle([
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ('LEFTPADDING', (0, 0), (-1, -1), 0),
        ('RIGHTPADDING', (0, 0), (-1, -1), 0),
    ]))
    return table


def _items_table(rows, styles):
    body = [[_label_cell(row[0], styles['Cell'])] + row[1:] for row in rows]
    table = Table([TABLE_HEADER] + body, colWidths=[150, 95, 95, 50, 65, 85], repeatRows=1)
    table.setStyle(TableStyle([
        ('FONTSIZE', (0, 0), (-1, -1), 9),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('BACKGROUND', (0, 0), (-1, 0), colors.Color(240 / 255, 240 / 255, 240 / 255)),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.black),
        ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.Color(249 / 255, 249 / 255, 249 / 255)]),
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ('ALIGN', (3, 0), (-1, -1), 'RIGHT'),
        ('TOPPADDING', (0, 0), (-1, -1), 3),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 3),
    ]))
    return table


def _summary_table(summary):
    data = [
        ['', 'Total Hours:', f"{summary.total_hours:.2f}"],
        ['', summary.rate_label, f"{summary.rate_value:.2f}"],
        ['', 'Total Amount:', f"{summary.total_amount:.2f}"],
    ]
    table = Table(data, colWidths=[PAGE_WIDTH - 200, 110, 90])
    table.setStyle(TableStyle([
        ('ALIGN', (2, 0), (2, -1), 'RIGHT'),
        ('FONTSIZE', (0, 0), (-1, -1), 10),
        ('LINEABOVE', (1, -1), (-1, -1), 1, colors.black),
        ('FONTNAME', (1, -1), (-1, -1), 'Helvetica-Bold'),
        ('FONTSIZE', (1, -1), (-1, -1), 12),
        ('TOPPADDING', (0, -1), (-1, -1), 6),
    ]))
    return table


def render_invoice_pdf(entries, settings, mode, invoice_number, invoice_date=None):
    """Lay out the invoice and return the PDF bytes."""
    invoice_date = invoice_date or datetime.now().date()
    try:
        buf = io.BytesIO()
        doc = SimpleDocTemplate(buf, pagesize=letter, rightMargin=36, leftMargin=36, topMargin=54, bottomMargin=36,
                                title=f"Invoice {invoice_number}")
        styles = _styles()
        summary = summarize(entries, mode)
        story = []

        story.append(_header(settings, invoice_number,
                             f"{invoice_date.month}/{invoice_date.day}/{invoice_date.year}", styles))
        story.append(Spacer(1, 24))

        story.append(_items_table(build_line_items(entries, mode), styles))
        story.append(Spacer(1, 20))

        story.append(_summary_table(summary))
        story.append(Spacer(1, 24))

        if settings.memo:
            story.append(Paragraph('Notes:', styles['Heading3']))
            story.append(Paragraph(_lines(settings.memo), styles['Normal']))
            story.append(Spacer(1, 12))

        story.append(HLine(PAGE_WIDTH))
        story.append(Spacer(1, 6))
        story.append(Paragraph(f"Payment Terms: {escape(escape_text(settings.billing_terms))}", styles['Normal']))
        story.append(Paragraph('Thank you for your business!', styles['Normal']))

        doc.build(story)
        return buf.getvalue()
    except Exception as e:
        raise InvoiceGenerationError(f"PDF generation failed: {e}") from e


def generate_invoice(entries, settings, flat_rate_amount=None, vault_dir=None, now=None):
    """Render the invoice and write it under the vault.

    Returns ``(relative_path, pdf_bytes)``. Nothing is written if rendering
    fails.
    """
    now = now or datetime.now()
    vault_dir = vault_dir or config.VAULT_DIR
    try:
        mode = billing_mode(settings, flat_rate_amount)
        invoice_number = generate_invoice_number(now)
        payload = render_invoice_pdf(entries, settings, mode, invoice_number, now.date())
        file_path = invoice_file_path(settings, invoice_number, now)
        save_invoice(vault_dir, file_path, payload)
    except Exception as e:
        logger.error("Error generating invoice: %s", e)
        raise InvoiceGenerationError(f"Failed to generate invoice: {e}") from e
    logger.info("Invoice saved to: %s", file_path)
    return file_path, payload
