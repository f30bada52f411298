from __future__ import annotations
from datetime import datetime, time, timezone

from flask import Blueprint, request

from luminila import get_db
from luminila.decorators.auth import require_permission
from luminila.models.activity import ActivityLog
from luminila.utils.filters import apply_filters
from luminila.utils.listing import list_response
from luminila.utils.sorting import apply_multi_sort
from luminila.utils.validation import parse_date

activity_bp = Blueprint('activity', __name__)


def _activity_json(a: ActivityLog):
    return {
        'id': a.id,
        'user_id': a.user_id,
        'action': a.action,
        'entity_type': a.entity_type,
        'entity_id': a.entity_id,
        'description': a.description,
        'meta': a.meta or {},
        'created_at': a.created_at.isoformat() if a.created_at else None,
    }


ACTIVITY_FILTERS = {
    'user_id': {'coerce': int, 'op': lambda q, v: q.filter(ActivityLog.user_id == v)},
    'action': {'op': lambda q, v: q.filter(ActivityLog.action == v)},
    # ROLE.* style prefix match
    'action_prefix': {'op': lambda q, v: q.filter(ActivityLog.action.like(f'{v}%'))},
    'entity_type': {'op': lambda q, v: q.filter(ActivityLog.entity_type == v)},
    'entity_id': {'op': lambda q, v: q.filter(ActivityLog.entity_id == str(v))},
    'date_from': {'coerce': lambda v: parse_date(v, 'date_from'),
                  'op': lambda q, v: q.filter(ActivityLog.created_at >= datetime.combine(v, time.min, timezone.utc))},
    'date_to': {'coerce': lambda v: parse_date(v, 'date_to'),
                'op': lambda q, v: q.filter(ActivityLog.created_at <= datetime.combine(v, time.max, timezone.utc))},
}


@activity_bp.get('')
@require_permission('activity', 'read')
def list_activity():
    q = apply_filters(get_db().query(ActivityLog), ACTIVITY_FILTERS, request.args)
    allowed = {'created_at': ActivityLog.created_at, 'action': ActivityLog.action, 'id': ActivityLog.id}
    q = apply_multi_sort(q, request.args.get('sort'), allowed, ActivityLog.id, default='-id')
    return list_response(q, _activity_json, ts_attr='created_at')
