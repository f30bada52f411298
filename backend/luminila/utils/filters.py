from __future__ import annotations
from typing import Any, Dict
from flask import abort


def _as_bool(raw) -> bool:
    text = str(raw).strip().lower()
    if text in ('1', 'true', 'yes', 'on'):
        return True
    if text in ('0', 'false', 'no', 'off'):
        return False
    raise ValueError(raw)


def apply_filters(query, specs: Dict[str, Dict[str, Any]], params: Dict[str, Any]):
    """Apply optional query-string filters.

    specs: { param: { 'op': callable(query, value) -> query,
                      'coerce': callable (optional; 'bool' for truthy strings),
                      'validate': callable(value) -> bool (optional) } }
    Unknown or invalid values abort with 400.
    """
    for name, meta in specs.items():
        if name not in params or params[name] in (None, ''):
            continue
        val = params[name]
        coerce = meta.get('coerce')
        if coerce is not None:
            try:
                val = _as_bool(val) if coerce == 'bool' else coerce(val)
            except (TypeError, ValueError):
                abort(400, description=f'{name} invalid')
        if 'validate' in meta and not meta['validate'](val):
            abort(400, description=f'{name} invalid')
        query = meta['op'](query, val)
    return query


__all__ = ['apply_filters']
