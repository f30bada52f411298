from __future__ import annotations
from typing import Any, Dict, Optional
from flask_jwt_extended import get_jwt_identity
from luminila import get_db
from luminila.models.activity import ActivityLog


def _actor_id() -> Optional[int]:
    try:
        ident = get_jwt_identity()
    except RuntimeError:
        return None  # outside a request / no verified JWT (webhooks, scripts)
    return int(ident) if ident is not None and str(ident).isdigit() else None


def add_activity(action: str, entity_type: Optional[str] = None, entity_id: Optional[Any] = None,
                 description: Optional[str] = None, meta: Optional[Dict[str, Any]] = None,
                 user_id: Optional[int] = None) -> ActivityLog:
    """Stage an activity log row in the current session.

    action: short code such as ROLE.CREATE, SALE.CANCEL, BANK.TX.CREATE
    No commit here; the caller's transaction boundary controls durability.
    """
    session = get_db()
    log = ActivityLog(
        user_id=user_id if user_id is not None else _actor_id(),
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id is not None else None,
        description=description,
        meta=dict(meta or {}),
    )
    session.add(log)
    return log
