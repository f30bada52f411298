"""List/entity response helpers with HTTP validators.

Lists carry ETag + Last-Modified and honour If-None-Match / If-Modified-Since.
Single entities carry an ETag derived from (id, updated_at); writes may send
If-Match with it to refuse lost updates (412).
"""
from __future__ import annotations
from typing import Callable, Iterable, Optional, Tuple, Any, Dict
from flask import request, abort, make_response, jsonify
from sqlalchemy.orm import Query
from luminila.config.pagination import pagination_from_args
import hashlib
from datetime import datetime, timezone, timedelta
from email.utils import parsedate_to_datetime, format_datetime

TIMESTAMP_TOLERANCE = timedelta(seconds=1)


def canonicalize_timestamp(dt: datetime) -> datetime:
    """Return UTC tz-aware timestamp truncated to whole seconds."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.replace(microsecond=0)


def _iso(dt: Optional[datetime]) -> str:
    if not isinstance(dt, datetime):
        return ''
    return canonicalize_timestamp(dt).isoformat().replace('+00:00', 'Z')


def _http_date(dt: datetime) -> str:
    return format_datetime(canonicalize_timestamp(dt), usegmt=True)


def apply_pagination(q: Query) -> Tuple[Query, int, int, int]:
    try:
        limit, offset = pagination_from_args(request.args)
    except ValueError as e:
        abort(400, description=str(e))
    total = q.count()
    return q.offset(offset).limit(limit), total, limit, offset


def compute_etag(ids: Iterable[Any], total: int, limit: int, offset: int, latest_ts: Optional[str] = '') -> str:
    seed = f"{list(ids)}|{total}|{limit}|{offset}|{latest_ts or ''}"
    return hashlib.sha256(seed.encode()).hexdigest()[:32]


def entity_etag(entity_id: Any, updated_at: Optional[datetime]) -> str:
    return compute_etag([entity_id], 1, 1, 0, _iso(updated_at))


def build_list_payload(rows: list, total: int, limit: int, offset: int, extra: Optional[Dict[str, Any]] = None):
    payload = {
        'data': rows,
        'pagination': {
            'total': total,
            'limit': limit,
            'offset': offset,
            'returned': len(rows)
        }
    }
    if extra:
        payload.update(extra)
    return payload


def _set_validators(resp, etag: str, latest_ts: Optional[datetime]):
    resp.headers['ETag'] = etag
    if isinstance(latest_ts, datetime):
        resp.headers['Last-Modified'] = _http_date(latest_ts)
        resp.headers['X-Last-Modified-ISO'] = _iso(latest_ts)
    return resp


def make_cached_list_response(rows: list, total: int, limit: int, offset: int, latest_ts: Optional[datetime] = None, extra=None):
    ids = [r.get('id', r.get('key')) for r in rows]
    etag = compute_etag(ids, total, limit, offset, _iso(latest_ts))
    resp = make_response(build_list_payload(rows, total, limit, offset, extra))
    return _set_validators(resp, etag, latest_ts), etag


def _parse_if_modified_since(header_val: str) -> Optional[datetime]:
    if not header_val:
        return None
    try:
        dt = datetime.fromisoformat(header_val.replace('Z', '+00:00'))
    except ValueError:
        try:
            dt = parsedate_to_datetime(header_val)
        except (TypeError, ValueError):
            return None
    if dt is not None and dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def handle_conditional(etag_value: str, latest_ts: Optional[datetime]):
    """Return a 304 response when the client's validators still match, else None.

    If-None-Match takes precedence over If-Modified-Since.
    """
    inm = request.headers.get('If-None-Match')
    if inm:
        if inm.strip('"') == etag_value:
            return _set_validators(make_response('', 304), etag_value, latest_ts)
        return None
    ims = _parse_if_modified_since(request.headers.get('If-Modified-Since'))
    if ims and isinstance(latest_ts, datetime):
        if canonicalize_timestamp(latest_ts) <= canonicalize_timestamp(ims) + TIMESTAMP_TOLERANCE:
            return _set_validators(make_response('', 304), etag_value, latest_ts)
    return None


def _latest(rows, attr: str = 'updated_at') -> Optional[datetime]:
    stamps = [getattr(r, attr, None) for r in rows]
    stamps = [s for s in stamps if isinstance(s, datetime)]
    return max(stamps, key=canonicalize_timestamp) if stamps else None


def list_response(q: Query, to_json: Callable[[Any], dict], ts_attr: str = 'updated_at', extra=None):
    """Paginate q, serialize rows and answer with validators (or 304)."""
    paged_q, total, limit, offset = apply_pagination(q)
    rows = paged_q.all()
    latest_ts = _latest(rows, ts_attr)
    resp, etag = make_cached_list_response([to_json(r) for r in rows], total, limit, offset, latest_ts, extra)
    cond = handle_conditional(etag, latest_ts)
    return cond or resp


def entity_response(entity_id: Any, body: dict, updated_at: Optional[datetime], status: int = 200):
    etag = entity_etag(entity_id, updated_at)
    if status == 200:
        cond = handle_conditional(etag, updated_at)
        if cond:
            return cond
    resp = make_response(jsonify(body), status)
    return _set_validators(resp, etag, updated_at)


def check_if_match(entity_id: Any, updated_at: Optional[datetime]):
    """Abort 412 when If-Match is present and names a stale version."""
    raw = request.headers.get('If-Match')
    if not raw or raw.strip() == '*':
        return
    wanted = {tag.strip().strip('"') for tag in raw.split(',')}
    if entity_etag(entity_id, updated_at) not in wanted:
        abort(412, description='Resource was modified; reload and retry')
