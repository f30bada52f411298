"""Database-first stores with an explicit JSON file fallback.

When the database is unreachable a store serves the last good snapshot from
its cache file and says so: every result carries `source` and `degraded`.
Creates that cannot reach the database are queued in the same file with
`pending: True`; `flush_pending()` replays them once the database is back and
only then drops them from the queue.
"""
from __future__ import annotations
import json
import logging
import os
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)

SOURCE_DATABASE = 'database'
SOURCE_LOCAL_CACHE = 'local_cache'


def slugify(name: str, fallback: str = 'category') -> str:
    slug = re.sub(r'[^a-z0-9]+', '-', (name or '').lower()).strip('-')
    return slug or fallback


@dataclass
class CachedResult:
    items: List[Dict[str, Any]]
    source: str = SOURCE_DATABASE
    degraded: bool = False
    pending: List[Dict[str, Any]] = field(default_factory=list)

    def headers(self) -> Dict[str, str]:
        return {'X-Data-Source': self.source, 'X-Degraded': 'true' if self.degraded else 'false'}


@dataclass
class SyncResult:
    applied: int = 0
    skipped: int = 0
    remaining: int = 0
    error: Optional[str] = None


class LocalCache:
    """JSON snapshot of one collection plus a queue of writes not yet applied."""

    def __init__(self, directory: str, filename: str = 'categories.json'):
        self.path = os.path.join(directory, filename)

    def load(self) -> Dict[str, Any]:
        try:
            with open(self.path, 'r', encoding='utf-8') as fh:
                data = json.load(fh)
        except FileNotFoundError:
            return {'items': [], 'pending': [], 'saved_at': None}
        except (OSError, ValueError):
            logger.warning('local cache at %s unreadable; ignoring', self.path)
            return {'items': [], 'pending': [], 'saved_at': None}
        data.setdefault('items', [])
        data.setdefault('pending', [])
        return data

    def _write(self, data: Dict[str, Any]) -> None:
        os.makedirs(os.path.dirname(self.path) or '.', exist_ok=True)
        tmp = self.path + '.tmp'
        with open(tmp, 'w', encoding='utf-8') as fh:
            json.dump(data, fh)
        os.replace(tmp, self.path)

    def save_items(self, items: List[Dict[str, Any]]) -> None:
        data = self.load()
        # queued creates stay visible until they are replayed
        data['items'] = items + [i for i in data['items'] if i.get('pending')]
        data['saved_at'] = datetime.now(timezone.utc).isoformat()
        try:
            self._write(data)
        except OSError:
            logger.warning('could not refresh local cache at %s', self.path, exc_info=True)

    def queue(self, op: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        data = self.load()
        entry = {'op': op, 'payload': payload, 'pending': True,
                 'queued_at': datetime.now(timezone.utc).isoformat()}
        data['pending'].append(entry)
        if op == 'create':
            data['items'].append(dict(payload, id=None, pending=True))
        self._write(data)
        return entry

    def drop_pending(self, done: List[Dict[str, Any]]) -> None:
        """Remove replayed entries (and their placeholder items) from the queue."""
        if not done:
            return
        data = self.load()
        data['pending'] = [e for e in data['pending'] if e not in done]
        done_payloads = [e['payload'] for e in done]
        data['items'] = [
            i for i in data['items']
            if not (i.get('pending') and {k: v for k, v in i.items() if k not in ('id', 'pending')} in done_payloads)
        ]
        self._write(data)


class CachedStore:
    """Reads and creates for one model, degrading to a LocalCache.

    Subclasses set `model` and implement `to_json`, `prepare` and `check`.
    `check` raises ValueError for a request the database would refuse.
    """

    model: Any = None

    def __init__(self, session_factory: Callable[[], Any], cache: LocalCache):
        self._session_factory = session_factory
        self.cache = cache

    def to_json(self, obj) -> Dict[str, Any]:
        raise NotImplementedError

    def prepare(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    def check(self, session, values: Dict[str, Any]) -> None:
        pass

    def order_by(self):
        return (self.model.sort_order.asc(), self.model.name.asc())

    def list(self, include_inactive: bool = False) -> CachedResult:
        label = self.model.__tablename__
        try:
            session = self._session_factory()
            rows = [self.to_json(o) for o in session.execute(select(self.model).order_by(*self.order_by())).scalars().all()]
        except SQLAlchemyError:
            logger.warning('%s read failed; serving local cache', label, exc_info=True)
            self._rollback_quietly()
            data = self.cache.load()
            items = data['items'] if include_inactive else [i for i in data['items'] if i.get('is_active', True)]
            return CachedResult(items=items, source=SOURCE_LOCAL_CACHE, degraded=True, pending=data['pending'])
        self.cache.save_items(rows)
        if not include_inactive:
            rows = [r for r in rows if r['is_active']]
        return CachedResult(items=rows)

    def create(self, payload: Dict[str, Any]) -> CachedResult:
        values = self.prepare(payload)
        try:
            session = self._session_factory()
            self.check(session, values)
            obj = self.model(**values)
            session.add(obj)
            session.flush()
            out = self.to_json(obj)
        except SQLAlchemyError:
            logger.warning('%s write failed; queued in local cache', self.model.__tablename__, exc_info=True)
            self._rollback_quietly()
            entry = self.cache.queue('create', values)
            return CachedResult(items=[dict(values, id=None, pending=True)], source=SOURCE_LOCAL_CACHE,
                                degraded=True, pending=[entry])
        return CachedResult(items=[out])

    def flush_pending(self) -> int:
        """Replay queued creates and commit; returns how many rows were inserted."""
        return self.sync().applied

    def sync(self) -> SyncResult:
        pending = self.cache.load()['pending']
        result = SyncResult(remaining=len(pending))
        if not pending:
            return result
        done: List[Dict[str, Any]] = []
        try:
            session = self._session_factory()
            for entry in pending:
                if entry.get('op') != 'create':
                    logger.warning('dropping unknown queued op %r', entry.get('op'))
                    done.append(entry)
                    continue
                payload = entry['payload']
                try:
                    self.check(session, payload)
                except ValueError as e:
                    # already applied, or no longer valid: nothing to replay
                    logger.info('skipping queued %s create: %s', self.model.__tablename__, e)
                    result.skipped += 1
                    done.append(entry)
                    continue
                session.add(self.model(**payload))
                session.flush()
                result.applied += 1
                done.append(entry)
            session.commit()
        except SQLAlchemyError as e:
            logger.warning('%s replay failed; queue kept', self.model.__tablename__, exc_info=True)
            self._rollback_quietly()
            return SyncResult(remaining=len(pending), error=str(e.__class__.__name__))
        self.cache.drop_pending(done)
        result.remaining = len(pending) - len(done)
        return result

    def _rollback_quietly(self) -> None:
        try:
            self._session_factory().rollback()
        except SQLAlchemyError:
            logger.debug('rollback after %s failure also failed', self.model.__tablename__, exc_info=True)
