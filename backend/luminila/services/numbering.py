from __future__ import annotations
from sqlalchemy import update

from luminila.models.settings import NumberSequence

DEFAULT_SEQUENCES = {
    'sale': ('SAL-', 5),
    'invoice': ('INV-', 5),
    'purchase_order': ('PO-', 5),
    'credit_note': ('CN-', 5),
    'delivery_challan': ('DC-', 5),
}


def ensure_sequence(session, name: str) -> None:
    if session.get(NumberSequence, name) is not None:
        return
    prefix, padding = DEFAULT_SEQUENCES.get(name, (name.upper()[:6] + '-', 5))
    session.add(NumberSequence(name=name, prefix=prefix, next_value=1, padding=padding))
    session.flush()


def next_number(session, name: str) -> str:
    """Reserve the next document number for `name` (e.g. INV-00042)."""
    ensure_sequence(session, name)
    session.flush()
    session.execute(
        update(NumberSequence)
        .where(NumberSequence.name == name)
        .values(next_value=NumberSequence.next_value + 1)
        .execution_options(synchronize_session=False)
    )
    seq = session.get(NumberSequence, name)
    session.refresh(seq)
    value = int(seq.next_value) - 1
    return f'{seq.prefix}{str(value).zfill(int(seq.padding))}'
