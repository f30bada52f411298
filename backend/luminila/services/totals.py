"""Money arithmetic for sales, invoices, credit notes and purchase orders.

All amounts are integer paise; rates and discounts are basis points
(300 bp = 3% GST). Intra-state supply splits GST evenly into CGST and SGST,
inter-state supply charges IGST. Every write path stores what these functions
return; caller-supplied aggregates are only compared, never trusted.
"""
from __future__ import annotations
from dataclasses import dataclass, field, asdict
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Dict, Iterable, List, Mapping, Optional

from flask import abort

BP = 10_000
DEFAULT_GST_BP = 300


def round_div(numerator: int, denominator: int) -> int:
    """Integer division rounding half away from zero."""
    q, r = divmod(abs(numerator), denominator)
    if r * 2 >= denominator:
        q += 1
    return q if numerator >= 0 else -q


def is_inter_state(seller_state_code: Optional[str], buyer_state_code: Optional[str]) -> bool:
    return bool(buyer_state_code) and buyer_state_code != seller_state_code


@dataclass
class LineTotals:
    quantity: int
    unit_price_paise: int
    discount_bp: int
    gst_rate_bp: int
    subtotal_paise: int
    discount_paise: int
    taxable_paise: int
    cgst_paise: int
    sgst_paise: int
    igst_paise: int

    @property
    def tax_paise(self) -> int:
        return self.cgst_paise + self.sgst_paise + self.igst_paise

    @property
    def total_paise(self) -> int:
        return self.taxable_paise + self.tax_paise


@dataclass
class DocumentTotals:
    lines: List[LineTotals] = field(default_factory=list)
    inter_state: bool = False
    subtotal_paise: int = 0
    discount_paise: int = 0
    taxable_paise: int = 0
    cgst_paise: int = 0
    sgst_paise: int = 0
    igst_paise: int = 0
    adjustment_paise: int = 0

    @property
    def tax_paise(self) -> int:
        return self.cgst_paise + self.sgst_paise + self.igst_paise

    @property
    def total_paise(self) -> int:
        return self.taxable_paise + self.tax_paise - self.adjustment_paise

    def summary(self) -> Dict[str, int]:
        return {
            'subtotal_paise': self.subtotal_paise,
            'discount_paise': self.discount_paise,
            'taxable_paise': self.taxable_paise,
            'cgst_paise': self.cgst_paise,
            'sgst_paise': self.sgst_paise,
            'igst_paise': self.igst_paise,
            'tax_paise': self.tax_paise,
            'adjustment_paise': self.adjustment_paise,
            'total_paise': self.total_paise,
        }


def compute_line(quantity: int, unit_price_paise: int, gst_rate_bp: int = DEFAULT_GST_BP,
                 discount_bp: int = 0, inter_state: bool = False) -> LineTotals:
    if quantity <= 0:
        raise ValueError('quantity must be positive')
    if unit_price_paise < 0 or gst_rate_bp < 0 or not 0 <= discount_bp <= BP:
        raise ValueError('price, rate and discount must be within range')
    subtotal = quantity * unit_price_paise
    discount = round_div(subtotal * discount_bp, BP)
    taxable = subtotal - discount
    if inter_state:
        cgst = sgst = 0
        igst = round_div(taxable * gst_rate_bp, BP)
    else:
        cgst = sgst = round_div(taxable * gst_rate_bp, 2 * BP)
        igst = 0
    return LineTotals(quantity, unit_price_paise, discount_bp, gst_rate_bp, subtotal, discount, taxable, cgst, sgst, igst)


def compute_document(lines: Iterable[Mapping], seller_state_code: Optional[str] = None,
                     buyer_state_code: Optional[str] = None, adjustment_paise: int = 0) -> DocumentTotals:
    """Totals for a list of {'quantity','unit_price_paise','gst_rate_bp','discount_bp'} mappings.

    adjustment_paise is a post-tax reduction (loyalty redemption).
    """
    inter = is_inter_state(seller_state_code, buyer_state_code)
    doc = DocumentTotals(inter_state=inter, adjustment_paise=int(adjustment_paise or 0))
    for raw in lines:
        line = compute_line(
            int(raw['quantity']),
            int(raw['unit_price_paise']),
            int(raw.get('gst_rate_bp', DEFAULT_GST_BP)),
            int(raw.get('discount_bp', 0) or 0),
            inter,
        )
        doc.lines.append(line)
        doc.subtotal_paise += line.subtotal_paise
        doc.discount_paise += line.discount_paise
        doc.taxable_paise += line.taxable_paise
        doc.cgst_paise += line.cgst_paise
        doc.sgst_paise += line.sgst_paise
        doc.igst_paise += line.igst_paise
    if doc.adjustment_paise < 0 or doc.adjustment_paise > doc.taxable_paise + doc.tax_paise:
        raise ValueError('adjustment exceeds document total')
    return doc


def assert_client_totals(doc: DocumentTotals, claimed: Mapping) -> None:
    """400 when the caller sent an aggregate that disagrees with the recomputed one."""
    computed = doc.summary()
    mismatched = [
        key for key in ('subtotal_paise', 'discount_paise', 'tax_paise', 'total_paise', 'taxable_paise')
        if claimed.get(key) is not None and _as_int(claimed.get(key)) != computed[key]
    ]
    if mismatched:
        detail = ', '.join(f'{k} expected {computed[k]}' for k in mismatched)
        abort(400, description=f'Totals mismatch: {detail}')


def _as_int(value) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


_ONES = ['', 'One', 'Two', 'Three', 'Four', 'Five', 'Six', 'Seven', 'Eight', 'Nine', 'Ten',
         'Eleven', 'Twelve', 'Thirteen', 'Fourteen', 'Fifteen', 'Sixteen', 'Seventeen', 'Eighteen', 'Nineteen']
_TENS = ['', '', 'Twenty', 'Thirty', 'Forty', 'Fifty', 'Sixty', 'Seventy', 'Eighty', 'Ninety']


def _words(n: int) -> str:
    if n == 0:
        return ''
    if n < 20:
        return _ONES[n]
    if n < 100:
        return _TENS[n // 10] + (' ' + _ONES[n % 10] if n % 10 else '')
    if n < 1000:
        return _ONES[n // 100] + ' Hundred' + (' ' + _words(n % 100) if n % 100 else '')
    for size, label in ((10_000_000, 'Crore'), (100_000, 'Lakh'), (1000, 'Thousand')):
        if n >= size:
            return _words(n // size) + ' ' + label + (' ' + _words(n % size) if n % size else '')
    return ''


def amount_in_words(paise: int, currency: str = 'Rupees') -> str:
    """Indian numbering: 1234567 paise -> 'Twelve Thousand Three Hundred Forty Five Rupees and Sixty Seven Paise Only'."""
    if paise == 0:
        return f'Zero {currency} Only'
    rupees, rem = divmod(abs(paise), 100)
    parts = []
    if rupees:
        parts.append(f'{_words(rupees)} {currency}')
    if rem:
        parts.append(f'{_words(rem)} Paise')
    return ' and '.join(parts) + ' Only'


def line_dict(line: LineTotals) -> Dict[str, int]:
    out = asdict(line)
    out['tax_paise'] = line.tax_paise
    out['total_paise'] = line.total_paise
    return out


def to_paise(rupees) -> int:
    """'1234.5' or 1234.5 rupees -> 123450 paise, rounded half up."""
    try:
        value = Decimal(str(rupees))
    except (InvalidOperation, ValueError):
        raise ValueError(f'invalid amount: {rupees!r}')
    return int((value * 100).quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def to_rupees(paise: int) -> float:
    return int(paise) / 100
