import pytest

from luminila.services.totals import (
    amount_in_words, compute_document, compute_line, is_inter_state, round_div, to_paise, to_rupees,
)


def test_round_div_half_away_from_zero():
    assert round_div(5, 2) == 3
    assert round_div(4, 3) == 1
    assert round_div(-5, 2) == -3
    assert round_div(0, 7) == 0


def test_inter_state_needs_a_different_buyer_state():
    assert is_inter_state('27', '29') is True
    assert is_inter_state('27', '27') is False
    assert is_inter_state('27', None) is False
    assert is_inter_state('27', '') is False


def test_intra_state_line_splits_gst():
    line = compute_line(2, 100_000, gst_rate_bp=300)
    assert line.subtotal_paise == 200_000
    assert line.cgst_paise == line.sgst_paise == 3_000
    assert line.igst_paise == 0
    assert line.total_paise == 206_000


def test_inter_state_line_charges_igst():
    line = compute_line(2, 100_000, gst_rate_bp=300, discount_bp=1_000, inter_state=True)
    assert line.discount_paise == 20_000
    assert line.taxable_paise == 180_000
    assert line.igst_paise == 5_400
    assert line.cgst_paise == line.sgst_paise == 0


def test_odd_split_rounds_each_half():
    # 3% of 333 paise is 9.99; each half rounds to 5
    line = compute_line(1, 333, gst_rate_bp=300)
    assert line.cgst_paise == line.sgst_paise == 5


@pytest.mark.parametrize('args', [
    (0, 100, 300, 0),
    (1, -1, 300, 0),
    (1, 100, -5, 0),
    (1, 100, 300, 10_001),
])
def test_compute_line_rejects_bad_input(args):
    with pytest.raises(ValueError):
        compute_line(*args)


def test_document_totals_and_adjustment():
    lines = [
        {'quantity': 1, 'unit_price_paise': 50_000, 'gst_rate_bp': 300},
        {'quantity': 3, 'unit_price_paise': 10_000, 'gst_rate_bp': 500, 'discount_bp': 500},
    ]
    doc = compute_document(lines, '27', '27', adjustment_paise=1_000)
    assert doc.inter_state is False
    assert doc.subtotal_paise == 80_000
    assert doc.discount_paise == 1_500
    assert doc.taxable_paise == 78_500
    assert doc.cgst_paise == 750 + 713
    assert doc.tax_paise == 2 * (750 + 713)
    assert doc.total_paise == 78_500 + doc.tax_paise - 1_000
    summary = doc.summary()
    assert summary['adjustment_paise'] == 1_000
    assert set(summary) == {'subtotal_paise', 'discount_paise', 'taxable_paise', 'cgst_paise', 'sgst_paise',
                            'igst_paise', 'tax_paise', 'adjustment_paise', 'total_paise'}


def test_adjustment_cannot_exceed_total():
    with pytest.raises(ValueError):
        compute_document([{'quantity': 1, 'unit_price_paise': 100}], adjustment_paise=1_000)


@pytest.mark.parametrize('paise,words', [
    (0, 'Zero Rupees Only'),
    (100, 'One Rupees Only'),
    (50, 'Fifty Paise Only'),
    (1_234_567, 'Twelve Thousand Three Hundred Forty Five Rupees and Sixty Seven Paise Only'),
    (10_000_000, 'One Lakh Rupees Only'),
    (1_500_000_000, 'One Crore Fifty Lakh Rupees Only'),
])
def test_amount_in_words_indian_numbering(paise, words):
    assert amount_in_words(paise) == words


def test_rupee_paise_conversion():
    assert to_paise('1234.5') == 123_450
    assert to_paise(0.125) == 13
    assert to_rupees(123_450) == 1234.5
    with pytest.raises(ValueError):
        to_paise('twelve')
