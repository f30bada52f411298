from __future__ import annotations
from typing import Any, Dict, Optional
from werkzeug.exceptions import Forbidden


class AccessDenied(Forbidden):
    """403 carrying the refused (resource, action) and an escape action for the client."""

    name = 'Access Denied'

    def __init__(self, resource: str, action: str, redirect_to: Optional[str] = None, description: Optional[str] = None):
        super().__init__(description=description or f"You don't have permission to {action} {resource}.")
        self.resource = resource
        self.action = action
        self.redirect_to = redirect_to

    def details(self) -> Dict[str, Any]:
        if self.redirect_to:
            escape = {'type': 'redirect', 'to': self.redirect_to}
        else:
            escape = {'type': 'go_back'}
        return {'resource': self.resource, 'action': self.action, 'escape': escape}


__all__ = ['AccessDenied']
