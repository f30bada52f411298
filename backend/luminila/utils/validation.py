"""Request payload helpers that abort with 400 and a field-specific message."""
from __future__ import annotations
from datetime import date
from typing import Any, Iterable, Mapping, Optional
from flask import abort, request


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        abort(400, description='JSON object body required')
    return data


def validate_status(new_status: str, allowed: Iterable[str], field_name: str = 'status') -> str:
    if new_status not in allowed:
        abort(400, description=f"{field_name} invalid")
    return new_status


def require_fields(data: Mapping[str, Any], *names: str):
    missing = [n for n in names if data.get(n) in (None, '')]
    if missing:
        abort(400, description=f"{', '.join(missing)} required")


def parse_int(value: Any, field_name: str, minimum: Optional[int] = None, default: Optional[int] = None) -> int:
    if value in (None, '') and default is not None:
        return default
    if isinstance(value, bool):
        abort(400, description=f'{field_name} must be int')
    try:
        out = int(value)
    except (TypeError, ValueError):
        abort(400, description=f'{field_name} must be int')
    if isinstance(value, float) and value != out:
        abort(400, description=f'{field_name} must be int')
    if minimum is not None and out < minimum:
        abort(400, description=f'{field_name} must be >= {minimum}')
    return out


def parse_date(value: Any, field_name: str, default: Optional[date] = None) -> date:
    if value in (None, ''):
        if default is not None:
            return default
        abort(400, description=f'{field_name} required')
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        abort(400, description=f'{field_name} must be YYYY-MM-DD')


__all__ = ['json_body', 'validate_status', 'require_fields', 'parse_int', 'parse_date']
