"""
Billing settings and the hourly / flat-rate mode switch.
"""
from dataclasses import dataclass
from typing import Union

import config
from timestamps import parse_or_default


@dataclass(frozen=True)
class InvoiceSettings:
    company_name: str = ''
    company_address: str = ''
    hourly_rate: float = 100.0
    billing_terms: str = 'Net 30'
    memo: str = ''
    invoice_directory: str = 'Invoices/YYYY/MM'

    @classmethod
    def from_config(cls, source=config):
        return cls(
            company_name=getattr(source, 'COMPANY_NAME', '') or '',
            company_address=getattr(source, 'COMPANY_ADDRESS', '') or '',
            hourly_rate=parse_or_default(getattr(source, 'HOURLY_RATE', None), 0.0, low=0.0),
            billing_terms=getattr(source, 'BILLING_TERMS', '') or '',
            memo=getattr(source, 'MEMO', '') or '',
            invoice_directory=getattr(source, 'INVOICE_DIRECTORY', '') or 'Invoices/YYYY/MM',
        )


@dataclass(frozen=True)
class HourlyRate:
    rate: float


@dataclass(frozen=True)
class FlatRate:
    amount: float


BillingMode = Union[HourlyRate, FlatRate]


def parse_flat_rate(value):
    """Flat amount from the options form, or None when hourly billing applies."""
    amount = parse_or_default(value, None)
    if amount is None or amount <= 0:
        return None
    return float(amount)


def billing_mode(settings, flat_rate_amount=None):
    """Pick the billing mode for one invoice.

    Any positive finite ``flat_rate_amount`` selects flat-rate billing; blank,
    non-numeric and non-positive values all mean hourly.
    """
    amount = parse_flat_rate(flat_rate_amount)
    if amount is not None:
        return FlatRate(amount)
    return HourlyRate(settings.hourly_rate)
