from __future__ import annotations
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy import select

from luminila.models.product import ProductAttribute
from luminila.services.local_cache import CachedStore, slugify

TRUE_VALUES = ('true', '1', 'yes')
FALSE_VALUES = ('false', '0', 'no')


def attribute_json(a: ProductAttribute) -> Dict[str, Any]:
    return {
        'id': a.id,
        'name': a.name,
        'slug': a.slug,
        'attribute_type': a.attribute_type,
        'options': a.options or [],
        'default_value': a.default_value,
        'is_required': bool(a.is_required),
        'is_filterable': bool(a.is_filterable),
        'is_visible_on_product': bool(a.is_visible_on_product),
        'sort_order': a.sort_order,
        'is_active': bool(a.is_active),
        'updated_at': a.updated_at.isoformat() if a.updated_at else None,
    }


def checked_options(attribute_type: str, options) -> Optional[List[str]]:
    if attribute_type not in ProductAttribute.TYPES:
        raise ValueError('attribute_type invalid')
    if attribute_type != 'select':
        return None
    if not isinstance(options, list) or not options or not all(isinstance(o, str) and o.strip() for o in options):
        raise ValueError('select attributes need a non-empty options list')
    return [o.strip() for o in options]


def coerce_value(attr, raw: Any) -> str:
    """Normalise a product's value for `attr` to its stored text form."""
    kind = attr['attribute_type'] if isinstance(attr, dict) else attr.attribute_type
    slug = attr['slug'] if isinstance(attr, dict) else attr.slug
    options = (attr.get('options') if isinstance(attr, dict) else attr.options) or []
    text = str(raw).strip()
    if kind == 'number':
        try:
            float(text)
        except ValueError:
            raise ValueError(f'{slug} must be a number')
    elif kind == 'boolean':
        if text.lower() in TRUE_VALUES:
            return 'true'
        if text.lower() in FALSE_VALUES:
            return 'false'
        raise ValueError(f'{slug} must be true or false')
    elif kind == 'date':
        try:
            return date.fromisoformat(text).isoformat()
        except ValueError:
            raise ValueError(f'{slug} must be YYYY-MM-DD')
    elif kind == 'select' and text not in options:
        raise ValueError(f'{slug} must be one of: {", ".join(options)}')
    return text


class AttributeStore(CachedStore):
    model = ProductAttribute

    def to_json(self, obj) -> Dict[str, Any]:
        return attribute_json(obj)

    def prepare(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        kind = payload.get('attribute_type') or 'text'
        values = {
            'name': payload['name'],
            'slug': payload.get('slug') or slugify(payload['name'], fallback='attribute'),
            'attribute_type': kind,
            'options': checked_options(kind, payload.get('options')),
            'default_value': None,
            'is_required': bool(payload.get('is_required', False)),
            'is_filterable': bool(payload.get('is_filterable', False)),
            'is_visible_on_product': bool(payload.get('is_visible_on_product', True)),
            'sort_order': int(payload.get('sort_order') or 0),
            'is_active': bool(payload.get('is_active', True)),
        }
        if payload.get('default_value') not in (None, ''):
            values['default_value'] = coerce_value(values, payload['default_value'])
        return values

    def check(self, session, values: Dict[str, Any]) -> None:
        if session.execute(select(ProductAttribute.id).where(ProductAttribute.slug == values['slug'])).first():
            raise ValueError('attribute slug in use')
