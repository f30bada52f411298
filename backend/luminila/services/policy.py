"""Permission resolution for an authenticated identity.

An identity's effective access is the union of the permission maps of every
role assigned to it. Admin identities (superuser flag, a role named "Admin" or
"Super Admin", or a role tagged is_admin_role) pass every check.

Nothing here is persisted: each request builds its own PermissionResolver, so
role edits apply from the affected user's next request. Long-lived callers
(scripts, tests) hold a resolver and call refresh() or set_identity().
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

from flask import g, abort
from flask_jwt_extended import get_jwt_identity
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from luminila.constants.permissions import ADMIN_ROLE_NAMES, ALL_RESOURCES, is_valid_action, is_valid_resource
from luminila.models.authz import Role, User, UserRole

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedAccess:
    permissions: Dict[str, List[str]] = field(default_factory=dict)
    is_admin: bool = False
    role_names: List[str] = field(default_factory=list)


NO_ACCESS = ResolvedAccess()


def normalize_identity(identity_id) -> Optional[int]:
    """JWT identities are strings; users are keyed by int. Anything else is no identity."""
    if identity_id is None or isinstance(identity_id, bool):
        return None
    if isinstance(identity_id, int):
        return identity_id
    text = str(identity_id).strip()
    if not text or not text.isdigit():
        return None
    return int(text)


def merge_permission_maps(maps: Iterable[Dict[str, Iterable[str]]]) -> Dict[str, List[str]]:
    merged: Dict[str, Set[str]] = {}
    for perm_map in maps:
        for resource, actions in (perm_map or {}).items():
            if not is_valid_resource(resource):
                continue
            bucket = merged.setdefault(resource, set())
            bucket.update(a for a in (actions or []) if is_valid_action(a))
    return {resource: sorted(actions) for resource, actions in merged.items() if actions}


def is_admin_role(role: Role) -> bool:
    return bool(role.is_admin_role) or role.name in ADMIN_ROLE_NAMES


def _session():
    from luminila import get_db
    return get_db()


def resolve_access(identity_id, session=None) -> ResolvedAccess:
    ident = normalize_identity(identity_id)
    if ident is None:
        return NO_ACCESS
    if session is None:
        session = _session()
    try:
        user = session.get(User, ident)
        if user is None or not user.is_active:
            return NO_ACCESS
        roles = session.execute(
            select(Role).join(UserRole, UserRole.role_id == Role.id).where(UserRole.user_id == ident)
        ).scalars().all()
    except SQLAlchemyError:
        # Fail closed: an unreadable grant set is no grant at all.
        logger.exception('permission resolution failed for identity %s', ident)
        return NO_ACCESS
    admin = bool(user.is_superuser) or any(is_admin_role(r) for r in roles)
    if not roles:
        return ResolvedAccess({}, admin, [])
    return ResolvedAccess(
        merge_permission_maps(r.permissions for r in roles),
        admin,
        sorted({r.name for r in roles}),
    )


def resolve_permissions(identity_id, session=None) -> Dict[str, List[str]]:
    return resolve_access(identity_id, session).permissions


def is_admin(identity_id, session=None) -> bool:
    return resolve_access(identity_id, session).is_admin


def grants(access: ResolvedAccess, resource: str, action: str) -> bool:
    if access.is_admin:
        return True
    perms = access.permissions
    return action in perms.get(resource, ()) or action in perms.get(ALL_RESOURCES, ())


class PermissionResolver:
    """Lazily resolved, explicitly refreshed view of one identity's access."""

    def __init__(self, identity_id=None, session_factory=None):
        self._identity_id = normalize_identity(identity_id)
        self._session_factory = session_factory
        self._access: Optional[ResolvedAccess] = None

    @property
    def identity_id(self) -> Optional[int]:
        return self._identity_id

    @property
    def resolved(self) -> bool:
        return self._access is not None

    def set_identity(self, identity_id):
        """Login, logout (None) and token refreshes naming another user all land here."""
        ident = normalize_identity(identity_id)
        if ident != self._identity_id:
            self._identity_id = ident
            self.invalidate()

    def invalidate(self):
        self._access = None

    def refresh(self) -> Dict[str, List[str]]:
        session = self._session_factory() if self._session_factory else None
        self._access = resolve_access(self._identity_id, session)
        return self._access.permissions

    @property
    def access(self) -> ResolvedAccess:
        if self._access is None:
            self.refresh()
        return self._access

    @property
    def permissions(self) -> Dict[str, List[str]]:
        return self.access.permissions

    def is_admin(self) -> bool:
        return self.access.is_admin

    def has_permission(self, resource: str, action: str) -> bool:
        return grants(self.access, resource, action)

    can = has_permission

    def can_create(self, resource: str) -> bool:
        return self.has_permission(resource, 'create')

    def can_read(self, resource: str) -> bool:
        return self.has_permission(resource, 'read')

    def can_update(self, resource: str) -> bool:
        return self.has_permission(resource, 'update')

    def can_delete(self, resource: str) -> bool:
        return self.has_permission(resource, 'delete')

    # Screen-level shortcuts
    def can_manage_users(self) -> bool:
        return self.is_admin() or self.can_update('users')

    def can_access_reports(self) -> bool:
        return self.can_read('reports')

    def can_manage_settings(self) -> bool:
        return self.is_admin() or self.can_update('settings')

    def can_create_invoices(self) -> bool:
        return self.can_create('invoices')

    def can_manage_inventory(self) -> bool:
        return self.can_update('inventory')


def current_resolver() -> PermissionResolver:
    """Resolver for the JWT identity of the current request (requires a verified JWT)."""
    identity = get_jwt_identity()
    resolver = g.get('permission_resolver')
    if resolver is None:
        resolver = PermissionResolver(identity)
        g.permission_resolver = resolver
    else:
        resolver.set_identity(identity)
    return resolver


def current_user_id() -> Optional[int]:
    return normalize_identity(get_jwt_identity())


def count_admin_users(session, exclude_user_id: Optional[int] = None) -> int:
    """Distinct active users holding an admin role (superusers are not counted)."""
    admin_role_ids = [r.id for r in session.execute(select(Role)).scalars() if is_admin_role(r)]
    if not admin_role_ids:
        return 0
    q = select(UserRole.user_id).join(User, User.id == UserRole.user_id).where(
        UserRole.role_id.in_(admin_role_ids), User.is_active.is_(True)
    )
    if exclude_user_id is not None:
        q = q.where(UserRole.user_id != exclude_user_id)
    return len(set(session.execute(q).scalars().all()))


def assert_not_removing_last_admin(session, target_user_id: int, new_role_ids: Set[int]):
    """Refuse a role change that would leave no admin role holder at all."""
    roles = {r.id: r for r in session.execute(select(Role)).scalars()}
    if any(rid in roles and is_admin_role(roles[rid]) for rid in new_role_ids):
        return
    current_ids = set(session.execute(select(UserRole.role_id).where(UserRole.user_id == target_user_id)).scalars())
    had_admin = any(rid in roles and is_admin_role(roles[rid]) for rid in current_ids)
    if had_admin and count_admin_users(session, exclude_user_id=target_user_id) == 0:
        abort(400, description='Cannot remove the last Admin role holder')
