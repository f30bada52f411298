"""Activity logging decorator for route handlers.

@activity_log('VENDOR.UPDATE', entity='Vendor', entity_id_key='id',
              diff_keys=['name'], pre_fetch=lambda a, kw: _prefetch_vendor(kw['vendor_id']))
def update_vendor(vendor_id): ...

Parameters:
  action: activity code (e.g. ROLE.CREATE)
  entity: entity label stored as entity_type
  entity_id_key: key of the returned JSON object holding the entity id
  entity_id_arg: view kwarg used when the payload has no id
  meta_keys: keys projected from the returned JSON into meta
  meta_builder: callable(data, rv, args, kwargs) -> dict, overrides meta_keys
  diff_keys/pre_fetch: snapshot before the call; changed keys land in meta['changes']

Only successful (2xx) responses are logged. Logging failures are reported to the
module logger and never alter the view's response.
"""
from __future__ import annotations
import logging
from functools import wraps
from typing import Any, Callable, Dict, Iterable, Optional

from luminila import get_db
from luminila.services.activity import add_activity

logger = logging.getLogger(__name__)


def _split_rv(rv: Any):
    """Return (data, status) for dict / (dict, status[, headers]) / Response returns."""
    if isinstance(rv, tuple) and rv:
        status = rv[1] if len(rv) > 1 and isinstance(rv[1], int) else 200
        return rv[0], status
    status = getattr(rv, 'status_code', 200)
    if hasattr(rv, 'get_json'):
        return rv.get_json(silent=True), status
    return rv, status


def activity_log(
    action: str,
    *,
    entity: Optional[str] = None,
    entity_id_key: Optional[str] = 'id',
    entity_id_arg: Optional[str] = None,
    meta_keys: Optional[Iterable[str]] = None,
    meta_builder: Optional[Callable[[dict, Any, tuple, dict], dict]] = None,
    diff_keys: Optional[Iterable[str]] = None,
    pre_fetch: Optional[Callable[[tuple, dict], Dict[str, Any]]] = None,
):
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            before = None
            if diff_keys and pre_fetch:
                try:
                    before = pre_fetch(args, kwargs)
                except Exception:
                    logger.exception('activity pre_fetch failed for %s', action)
            rv = fn(*args, **kwargs)
            try:
                data, status = _split_rv(rv)
                if status >= 300:
                    return rv
                data = data if isinstance(data, dict) else {}
                entity_id = None
                if entity_id_key and entity_id_key in data:
                    entity_id = data.get(entity_id_key)
                elif entity_id_arg and entity_id_arg in kwargs:
                    entity_id = kwargs.get(entity_id_arg)
                meta: Dict[str, Any] = {}
                if meta_builder:
                    meta = meta_builder(data, rv, args, kwargs) or {}
                elif meta_keys:
                    meta = {k: data.get(k) for k in meta_keys if k in data}
                if diff_keys and isinstance(before, dict):
                    changes = {
                        k: {'before': before.get(k), 'after': data.get(k)}
                        for k in diff_keys
                        if k in before and k in data and before.get(k) != data.get(k)
                    }
                    if changes:
                        meta['changes'] = changes
                add_activity(action, entity, entity_id, meta=meta)
                get_db().commit()
            except Exception:
                get_db().rollback()
                logger.exception('activity log failed for %s', action)
            return rv
        return wrapper
    return outer
