"""Single-statement counter updates.

Stock levels, bank balances, loyalty points and document sequences change via

    UPDATE t SET col = col + :delta WHERE pk = :id [AND col + :delta >= :floor]

so concurrent writers cannot lose each other's increments. A guarded update
that matches no row means the floor would be crossed (or the row is gone);
callers turn that into 409 Conflict.
"""
from __future__ import annotations
import logging
from typing import Any, Optional

from flask import abort
from sqlalchemy import update

logger = logging.getLogger(__name__)


def increment(session, model, pk: Any, column: str, delta: int, floor: Optional[int] = None, ceiling: Any = None) -> bool:
    """Atomically add delta to model.column for row pk. Returns False when nothing matched.

    ceiling may be a number or another column of the same row.
    """
    col = getattr(model, column)
    stmt = update(model).where(model.id == pk).values({column: col + delta})
    if floor is not None:
        stmt = stmt.where(col + delta >= floor)
    if ceiling is not None:
        stmt = stmt.where(col + delta <= ceiling)
    # Flush first so the UPDATE sees pending rows; then reload the one row touched.
    session.flush()
    result = session.execute(stmt.execution_options(synchronize_session=False))
    if result.rowcount != 1:
        return False
    instance = session.get(model, pk)
    if instance is not None:
        session.refresh(instance, attribute_names=[column])
    return True


def increment_or_conflict(session, model, pk: Any, column: str, delta: int, floor: Optional[int] = 0,
                          message: str = 'conflict', ceiling: Any = None) -> Any:
    """increment() that aborts 409 on failure and returns the refreshed instance."""
    if not increment(session, model, pk, column, delta, floor, ceiling):
        logger.info('guarded increment refused: %s.%s id=%s delta=%s', model.__tablename__, column, pk, delta)
        abort(409, description=message)
    return session.get(model, pk)


def adjust_stock(session, variant_id: int, delta: int, allow_negative: bool = False):
    from luminila.models.product import ProductVariant
    return increment_or_conflict(
        session, ProductVariant, variant_id, 'stock_level', delta,
        floor=None if allow_negative else 0,
        message=f'Insufficient stock for variant {variant_id}',
    )


def clamp_stock_decrement(session, variant_id: int, quantity: int) -> int:
    """Take up to `quantity` units without going below zero; returns units taken.

    Used for externally confirmed orders where the sale already happened.
    """
    from luminila.models.product import ProductVariant
    for _ in range(3):
        variant = session.get(ProductVariant, variant_id)
        if variant is None:
            return 0
        session.refresh(variant, attribute_names=['stock_level'])
        take = min(quantity, max(int(variant.stock_level), 0))
        if take == 0:
            return 0
        if increment(session, ProductVariant, variant_id, 'stock_level', -take, floor=0):
            return take
    return 0
