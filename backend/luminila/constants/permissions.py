"""Closed vocabularies for access control plus the built-in role presets.

Resources and actions are stored verbatim inside Role.permissions maps; never
rename one silently, add the new name and migrate role rows instead.
"""
from __future__ import annotations
from typing import Dict, List

RESOURCES = (
    'products', 'inventory', 'sales', 'invoices', 'customers', 'vendors',
    'purchase_orders', 'reports', 'settings', 'users', 'activity',
)

ACTIONS = ('create', 'read', 'update', 'delete', 'print', 'export')

# Role map key granting its actions on every resource.
ALL_RESOURCES = '*'

# Roles whose holders bypass every check.
ADMIN_ROLE_NAMES = ('Admin', 'Super Admin')

# Assigned to newly registered users when present.
DEFAULT_ROLE_NAME = 'Viewer'

_BUSINESS = ('products', 'inventory', 'sales', 'invoices', 'customers', 'vendors', 'purchase_orders')

DEFAULT_ROLES: Dict[str, Dict[str, object]] = {
    'Admin': {
        'description': 'Full access to all features',
        'is_admin_role': True,
        'permissions': {
            **{r: list(ACTIONS) for r in _BUSINESS},
            'reports': ['read', 'export'],
            'settings': ['read', 'update'],
            'users': ['create', 'read', 'update', 'delete'],
            'activity': ['read'],
        },
    },
    'Manager': {
        'description': 'Store manager with most permissions',
        'permissions': {
            **{r: ['create', 'read', 'update', 'print', 'export'] for r in _BUSINESS},
            'reports': ['read', 'export'],
            'settings': ['read'],
            'users': ['read'],
            'activity': ['read'],
        },
    },
    'Staff': {
        'description': 'Regular staff member',
        'permissions': {
            'products': ['read'],
            'inventory': ['read', 'update'],
            'sales': ['create', 'read', 'print'],
            'invoices': ['create', 'read', 'print'],
            'customers': ['create', 'read', 'update'],
            'vendors': ['read'],
            'purchase_orders': ['read'],
        },
    },
    'Cashier': {
        'description': 'Point of sale operator',
        'permissions': {
            'products': ['read'],
            'inventory': ['read'],
            'sales': ['create', 'read', 'print'],
            'invoices': ['create', 'read', 'print'],
            'customers': ['create', 'read'],
        },
    },
    'Viewer': {
        'description': 'Read-only access',
        'permissions': {
            r: ['read'] for r in _BUSINESS + ('reports',)
        },
    },
}


def is_valid_resource(name: str) -> bool:
    return name == ALL_RESOURCES or name in RESOURCES


def is_valid_action(name: str) -> bool:
    return name in ACTIONS


def validate_permission_map(raw) -> List[str]:
    """Return a list of problems found in a role permission map (empty when valid)."""
    if not isinstance(raw, dict):
        return ['permissions must be an object of resource -> [actions]']
    problems: List[str] = []
    for resource, actions in raw.items():
        if not is_valid_resource(resource):
            problems.append(f'unknown resource {resource}')
            continue
        if not isinstance(actions, (list, tuple)):
            problems.append(f'actions for {resource} must be a list')
            continue
        for action in actions:
            if not is_valid_action(action):
                problems.append(f'unknown action {action} for {resource}')
    return problems


def normalize_permission_map(raw: Dict[str, List[str]]) -> Dict[str, List[str]]:
    """Collapse duplicate actions, drop empty resources, sort for stable storage."""
    out: Dict[str, List[str]] = {}
    for resource, actions in raw.items():
        uniq = sorted({a for a in actions if is_valid_action(a)})
        if uniq and is_valid_resource(resource):
            out[resource] = uniq
    return out
