"""Reusable test helpers for lifecycle-based resources to reduce duplication.

Patterns unified:
 - Auth header creation straight from a user id (bypassing /login) or through /login.
 - Creation + transition sequencing with assertion helpers.
"""
from __future__ import annotations
from typing import Dict, Optional
from flask_jwt_extended import create_access_token

# ---------- Generic Auth Helpers ---------- #

def jwt_headers(app, user_id: int) -> Dict[str, str]:
    # Identity only; permissions are resolved server side on every request
    with app.app_context():
        token = create_access_token(identity=str(user_id))
    return {'Authorization': f'Bearer {token}'}


def login_headers(client, email: str, password: str = 'pw') -> Dict[str, str]:
    resp = client.post('/iam/auth/login', json={'email': email, 'password': password})
    assert resp.status_code == 200, resp.get_json()
    return {'Authorization': f"Bearer {resp.get_json()['access_token']}"}

# ---------- Assertion Helpers ---------- #

def assert_transition(client, url: str, headers: Dict[str, str], expected_status: int,
                      expected_body_key: str = 'status', expected_body_value: Optional[str] = None,
                      payload: Optional[dict] = None):
    resp = client.post(url, json=payload or {}, headers=headers)
    assert resp.status_code == expected_status, resp.get_json()
    if expected_status < 400 and expected_body_value is not None:
        body = resp.get_json()
        assert body[expected_body_key] == expected_body_value
    return resp


def create_resource_and_assert(client, url: str, payload: dict, headers: Dict[str, str],
                               expected_status_field: str = 'status', expected_initial_status: Optional[str] = None):
    resp = client.post(url, json=payload, headers=headers)
    assert resp.status_code == 201, resp.get_json()
    body = resp.get_json()
    if expected_initial_status:
        assert body[expected_status_field] == expected_initial_status
    return body


def error_detail(resp) -> str:
    return (resp.get_json() or {}).get('error', {}).get('detail', '')


__all__ = ['jwt_headers', 'login_headers', 'assert_transition', 'create_resource_and_assert', 'error_detail']
