from functools import wraps
from typing import Optional
from flask_jwt_extended import verify_jwt_in_request
from luminila.services.guard import AccessGuard
from luminila.services.policy import current_resolver


def require_permission(resource: str, action: str = 'read', redirect_to: Optional[str] = None):
    """Guard a view on (resource, action); the view body never runs when denied."""
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            AccessGuard(current_resolver(), resource, action, redirect_to).enforce()
            return fn(*args, **kwargs)
        # read by scripts/audit_route_rules.py
        wrapper.required_permission = (resource, action)
        return wrapper
    return outer


def public_endpoint(fn):
    """Mark a view as intentionally unguarded (login, health, signed webhooks)."""
    fn.public_endpoint = True
    return fn


def require_login(fn):
    """Any authenticated identity; the view answers about the caller itself."""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        verify_jwt_in_request()
        return fn(*args, **kwargs)
    wrapper.authenticated_only = True
    return wrapper
