from __future__ import annotations
from typing import Any, Dict, Optional

from luminila.models.settings import StoreSetting

# Known keys and their defaults; unknown keys are rejected by the settings API.
DEFAULTS: Dict[str, Dict[str, Any]] = {
    'store': {
        'name': 'Luminila',
        'state_code': None,
        'gstin': None,
        'address': None,
        'phone': None,
    },
    'loyalty': {
        'is_active': True,
        'points_per_100': 1,          # points earned per 100 rupees spent
        'redemption_value_paise': 100,  # value of one point
        'min_redemption_points': 100,
        'max_redemption_percent': 20,
    },
    'phonepe': {},                   # persisted gateway overrides
    'inventory': {
        'low_stock_threshold': 5,
    },
}

SECRET_FIELDS = {'phonepe': ('salt_key',)}


def get_setting(session, key: str) -> Dict[str, Any]:
    row = session.get(StoreSetting, key)
    merged = dict(DEFAULTS.get(key, {}))
    if row is not None and isinstance(row.value, dict):
        merged.update(row.value)
    return merged


def get_override(session, key: str) -> Dict[str, Any]:
    """Only what was explicitly persisted, without defaults."""
    row = session.get(StoreSetting, key)
    return dict(row.value) if row is not None and isinstance(row.value, dict) else {}


def set_setting(session, key: str, patch: Dict[str, Any], user_id: Optional[int] = None) -> Dict[str, Any]:
    row = session.get(StoreSetting, key)
    current = dict(row.value) if row is not None and isinstance(row.value, dict) else {}
    for k, v in patch.items():
        if v is None:
            current.pop(k, None)
        else:
            current[k] = v
    if row is None:
        row = StoreSetting(key=key, value=current, updated_by=user_id)
        session.add(row)
    else:
        row.value = current
        row.updated_by = user_id
    session.flush()
    return get_setting(session, key)


def mask_secret(value: Optional[str]) -> Optional[str]:
    if not value:
        return value
    return '****' + str(value)[-4:]


def public_view(key: str, values: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(values)
    for name in SECRET_FIELDS.get(key, ()):
        if out.get(name):
            out[name] = mask_secret(out[name])
    return out


def seller_state_code(session) -> str:
    """GST state of the store: the stored setting, else SELLER_STATE_CODE from config."""
    from flask import current_app
    stored = get_setting(session, 'store').get('state_code')
    return str(stored or current_app.config.get('SELLER_STATE_CODE') or '')
