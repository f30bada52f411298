"""Three-state access guard.

    guard = AccessGuard(resolver, 'invoices', 'create')
    guard.state        # 'checking' until evaluate() runs
    guard.evaluate()   # 'allowed' | 'denied'

A guard never reports allowed while checking; a resolver error denies.
"""
from __future__ import annotations
import logging
from typing import Any, Dict, Optional

from luminila.utils.errors import AccessDenied

logger = logging.getLogger(__name__)

CHECKING = 'checking'
ALLOWED = 'allowed'
DENIED = 'denied'


class AccessGuard:
    def __init__(self, resolver, resource: str, action: str = 'read', redirect_to: Optional[str] = None):
        self.resolver = resolver
        self.resource = resource
        self.action = action
        self.redirect_to = redirect_to
        self.state = CHECKING

    @property
    def allowed(self) -> bool:
        return self.state == ALLOWED

    def evaluate(self) -> str:
        if self.state != CHECKING:
            return self.state
        try:
            ok = bool(self.resolver.has_permission(self.resource, self.action))
        except Exception:
            logger.exception('access check failed for %s:%s', self.resource, self.action)
            ok = False
        self.state = ALLOWED if ok else DENIED
        return self.state

    def denial(self) -> AccessDenied:
        return AccessDenied(self.resource, self.action, self.redirect_to)

    def enforce(self):
        """Evaluate and raise AccessDenied (403) unless allowed."""
        if self.evaluate() != ALLOWED:
            raise self.denial()

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {'state': self.state, 'resource': self.resource, 'action': self.action}
        if self.state == DENIED:
            denied = self.denial()
            out['title'] = denied.name
            out['detail'] = denied.description
            out['escape'] = denied.details()['escape']
        return out


__all__ = ['AccessGuard', 'CHECKING', 'ALLOWED', 'DENIED']
