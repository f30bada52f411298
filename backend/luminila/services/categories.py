"""Category reads and writes with the local-cache fallback of services.local_cache."""
from __future__ import annotations
from typing import Any, Dict, List

from sqlalchemy import select

from luminila.models.product import Category
from luminila.services.local_cache import (  # noqa: F401
    CachedResult, CachedStore, LocalCache, SyncResult, SOURCE_DATABASE, SOURCE_LOCAL_CACHE, slugify,
)

CategoryResult = CachedResult


def category_json(c: Category) -> Dict[str, Any]:
    return {
        'id': c.id,
        'name': c.name,
        'slug': c.slug,
        'description': c.description,
        'parent_id': c.parent_id,
        'sort_order': c.sort_order,
        'is_active': bool(c.is_active),
        'updated_at': c.updated_at.isoformat() if c.updated_at else None,
    }


def build_category_tree(rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Nest flat category dicts by parent_id; orphans are treated as roots."""
    nodes = {r['id']: dict(r, children=[]) for r in rows if r.get('id') is not None}
    roots: List[Dict[str, Any]] = []
    for node in nodes.values():
        parent = nodes.get(node.get('parent_id'))
        if parent is not None and parent is not node:
            parent['children'].append(node)
        else:
            roots.append(node)

    def _sort(items):
        items.sort(key=lambda n: (n.get('sort_order') or 0, (n.get('name') or '').lower()))
        for n in items:
            _sort(n['children'])
    _sort(roots)
    return roots


class CategoryStore(CachedStore):
    model = Category

    def to_json(self, obj) -> Dict[str, Any]:
        return category_json(obj)

    def prepare(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return {
            'name': payload['name'],
            'slug': payload.get('slug') or slugify(payload['name']),
            'description': payload.get('description'),
            'parent_id': payload.get('parent_id'),
            'sort_order': int(payload.get('sort_order') or 0),
            'is_active': bool(payload.get('is_active', True)),
        }

    def check(self, session, values: Dict[str, Any]) -> None:
        if session.execute(select(Category.id).where(Category.slug == values['slug'])).first():
            raise ValueError('category slug in use')
        if values['parent_id'] is not None and session.get(Category, values['parent_id']) is None:
            raise ValueError('parent category not found')
