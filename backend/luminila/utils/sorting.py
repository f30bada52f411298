from __future__ import annotations
from typing import Dict, Optional
from flask import abort


def apply_multi_sort(query, sort_expr: Optional[str], allowed: Dict[str, object], tie_breaker, default: Optional[str] = None):
    """Order by `?sort=-created_at,name` style expressions.

    allowed maps public field names to columns; tie_breaker keeps paging stable.
    """
    sort_expr = sort_expr or default
    if not sort_expr:
        return query.order_by(tie_breaker.asc())
    clauses = []
    for raw in sort_expr.split(','):
        token = raw.strip()
        if not token:
            continue
        desc = token.startswith('-')
        key = token.lstrip('-+')
        col = allowed.get(key)
        if col is None:
            abort(400, description=f'Invalid sort field {key}')
        clauses.append(col.desc() if desc else col.asc())
    clauses.append(tie_breaker.asc())
    return query.order_by(*clauses)
