from __future__ import annotations
import re

from flask import Blueprint, abort
from sqlalchemy import select

from luminila import get_db
from luminila.decorators.activity import activity_log
from luminila.decorators.auth import require_permission
from luminila.models.settings import NumberSequence
from luminila.services.numbering import DEFAULT_SEQUENCES, ensure_sequence
from luminila.services.policy import current_user_id
from luminila.services.settings_store import DEFAULTS, get_setting, set_setting, public_view
from luminila.utils.validation import json_body, parse_int

settings_bp = Blueprint('settings', __name__)

# Value checks per key; fields not listed are stored as given.
_INT_FIELDS = {
    'loyalty': ('points_per_100', 'redemption_value_paise', 'min_redemption_points', 'max_redemption_percent'),
    'inventory': ('low_stock_threshold',),
}
_STATE_CODE = re.compile(r'^\d{2}$')


def _known_key(key: str):
    if key not in DEFAULTS:
        abort(404, description=f'Unknown setting {key}')


def _clean_patch(key: str, data: dict) -> dict:
    patch = {}
    for name, value in data.items():
        if value is not None and name in _INT_FIELDS.get(key, ()):
            value = parse_int(value, name, minimum=0)
        patch[name] = value
    if key == 'loyalty':
        if 'is_active' in patch and patch['is_active'] is not None:
            patch['is_active'] = bool(patch['is_active'])
        if (patch.get('max_redemption_percent') or 0) > 100:
            abort(400, description='max_redemption_percent must be <= 100')
    if key == 'store' and patch.get('state_code') and not _STATE_CODE.match(str(patch['state_code'])):
        abort(400, description='state_code must be two digits')
    if key == 'phonepe' and patch.get('environment') and str(patch['environment']).upper() not in ('UAT', 'PROD', 'PRODUCTION'):
        abort(400, description='environment must be UAT or PROD')
    return patch


@settings_bp.get('')
@require_permission('settings', 'read')
def list_settings():
    session = get_db()
    return {'data': {key: public_view(key, get_setting(session, key)) for key in DEFAULTS}}


@settings_bp.get('/<key>')
@require_permission('settings', 'read')
def get_settings(key: str):
    _known_key(key)
    return {'key': key, 'value': public_view(key, get_setting(get_db(), key))}


@settings_bp.patch('/<key>')
@require_permission('settings', 'update')
@activity_log('SETTINGS.UPDATE', entity='StoreSetting', entity_id_key='key', meta_keys=['changed'])
def update_settings(key: str):
    """Merge the body into the stored value; a null field falls back to its default."""
    _known_key(key)
    data = json_body()
    if not data:
        abort(400, description='no fields to update')
    session = get_db()
    values = set_setting(session, key, _clean_patch(key, data), user_id=current_user_id())
    session.commit()
    return {'key': key, 'value': public_view(key, values), 'changed': sorted(data)}


# --- Document numbering ---

def _sequence_json(s: NumberSequence):
    return {
        'name': s.name,
        'prefix': s.prefix,
        'next_value': s.next_value,
        'padding': s.padding,
        'preview': f'{s.prefix}{str(s.next_value).zfill(int(s.padding))}',
    }


@settings_bp.get('/sequences')
@require_permission('settings', 'read')
def list_sequences():
    session = get_db()
    for name in DEFAULT_SEQUENCES:
        ensure_sequence(session, name)
    session.commit()
    rows = session.execute(select(NumberSequence).order_by(NumberSequence.name)).scalars().all()
    return {'data': [_sequence_json(s) for s in rows]}


@settings_bp.patch('/sequences/<name>')
@require_permission('settings', 'update')
@activity_log('SETTINGS.SEQUENCE.UPDATE', entity='NumberSequence', entity_id_key='name',
              meta_keys=['prefix', 'next_value', 'padding'])
def update_sequence(name: str):
    if name not in DEFAULT_SEQUENCES:
        abort(404, description=f'Unknown sequence {name}')
    session = get_db()
    ensure_sequence(session, name)
    seq = session.get(NumberSequence, name)
    data = json_body()
    if 'prefix' in data:
        if not data['prefix']:
            abort(400, description='prefix cannot be empty')
        seq.prefix = str(data['prefix'])
    if 'padding' in data:
        padding = parse_int(data['padding'], 'padding', minimum=1)
        if padding > 12:
            abort(400, description='padding must be <= 12')
        seq.padding = padding
    if 'next_value' in data:
        next_value = parse_int(data['next_value'], 'next_value', minimum=1)
        # numbers already issued must never be handed out again
        if next_value < seq.next_value:
            abort(400, description=f'next_value cannot go below {seq.next_value}')
        seq.next_value = next_value
    session.commit()
    return _sequence_json(seq)
