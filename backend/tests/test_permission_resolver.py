import pytest
from sqlalchemy.exc import SQLAlchemyError

from luminila import get_db
from luminila.constants.permissions import DEFAULT_ROLES
from luminila.models.authz import Role, UserRole
from luminila.services.guard import AccessGuard, ALLOWED, CHECKING, DENIED
from luminila.services.policy import (
    PermissionResolver, merge_permission_maps, normalize_identity, resolve_access, grants, is_admin_role, NO_ACCESS,
)
from tests.test_utils_seed import ensure_user, ensure_role, ensure_user_role_assignment


class BrokenSession:
    def get(self, *a, **k):
        raise SQLAlchemyError('database unavailable')

    def execute(self, *a, **k):
        raise SQLAlchemyError('database unavailable')


def test_normalize_identity():
    assert normalize_identity('42') == 42
    assert normalize_identity(7) == 7
    assert normalize_identity(None) is None
    assert normalize_identity('') is None
    assert normalize_identity('abc') is None
    assert normalize_identity(True) is None


def test_merge_drops_unknown_names():
    merged = merge_permission_maps([
        {'products': ['read', 'read'], 'bogus': ['read']},
        {'products': ['update', 'fly'], 'sales': []},
    ])
    assert merged == {'products': ['read', 'update']}


def test_permissions_are_union_of_roles():
    user = ensure_user('union@test.local')
    ensure_user_role_assignment(user, ensure_role('UnionA', {'products': ['read'], 'customers': ['read']}))
    ensure_user_role_assignment(user, ensure_role('UnionB', {'products': ['update'], 'sales': ['create']}))
    resolver = PermissionResolver(str(user.id), get_db)
    assert resolver.permissions == {
        'customers': ['read'],
        'products': ['read', 'update'],
        'sales': ['create'],
    }
    assert resolver.can_read('products') and resolver.can_update('products')
    assert not resolver.can_delete('products')
    assert resolver.can_create('sales')
    assert not resolver.can_read('sales')
    assert not resolver.is_admin()
    assert resolver.access.role_names == ['UnionA', 'UnionB']


def test_no_roles_means_no_access():
    user = ensure_user('noroles@test.local')
    resolver = PermissionResolver(user.id, get_db)
    assert resolver.permissions == {}
    assert not resolver.has_permission('products', 'read')
    assert not resolver.can_access_reports()


def test_invalid_or_unknown_identity_has_no_access():
    assert PermissionResolver('not-a-number', get_db).permissions == {}
    assert PermissionResolver(None, get_db).has_permission('products', 'read') is False
    assert resolve_access(99_999_999, get_db()) == NO_ACCESS


def test_wildcard_resource_grants_action_everywhere():
    user = ensure_user('wildcard@test.local')
    ensure_user_role_assignment(user, ensure_role('Auditor', {'*': ['read']}))
    resolver = PermissionResolver(user.id, get_db)
    assert resolver.can_read('invoices')
    assert resolver.can_read('settings')
    assert not resolver.can_update('invoices')


def test_admin_role_flag_bypasses_checks():
    user = ensure_user('flagadmin@test.local')
    ensure_user_role_assignment(user, ensure_role('Owners', {}, is_admin_role=True))
    resolver = PermissionResolver(user.id, get_db)
    assert resolver.is_admin()
    assert resolver.can_delete('users')
    assert resolver.can_manage_settings()
    # keep this holder out of last-admin bookkeeping in later tests
    user.is_active = False
    get_db().commit()


def test_superuser_bypasses_checks_without_roles():
    user = ensure_user('super@test.local', is_superuser=True)
    resolver = PermissionResolver(user.id, get_db)
    assert resolver.permissions == {}
    assert resolver.is_admin()
    assert resolver.has_permission('purchase_orders', 'delete')


def test_inactive_user_has_no_access():
    user = ensure_user('inactive@test.local')
    ensure_user_role_assignment(user, ensure_role('InactiveRole', {'products': ['read']}))
    user.is_active = False
    get_db().commit()
    assert not PermissionResolver(user.id, get_db).can_read('products')


def test_resolution_failure_fails_closed():
    resolver = PermissionResolver(1, session_factory=BrokenSession)
    assert resolver.permissions == {}
    assert not resolver.is_admin()
    assert not resolver.has_permission('products', 'read')


def test_refresh_picks_up_role_edits():
    user = ensure_user('refresh@test.local')
    role = ensure_role('RefreshRole', {'products': ['read']})
    ensure_user_role_assignment(user, role)
    resolver = PermissionResolver(user.id, get_db)
    assert not resolver.can_update('products')
    ensure_role('RefreshRole', {'products': ['read', 'update']})
    # cached until refreshed
    assert not resolver.can_update('products')
    resolver.refresh()
    assert resolver.can_update('products')


def test_set_identity_invalidates_cache():
    reader = ensure_user('reader-id@test.local')
    ensure_user_role_assignment(reader, ensure_role('ReaderOnly', {'reports': ['read']}))
    nobody = ensure_user('nobody-id@test.local')
    resolver = PermissionResolver(reader.id, get_db)
    assert resolver.can_access_reports()
    resolver.set_identity(str(nobody.id))
    assert not resolver.resolved
    assert not resolver.can_access_reports()
    resolver.set_identity(None)
    assert resolver.identity_id is None
    assert resolver.permissions == {}


def test_grants_helper():
    access = resolve_access(None)
    assert grants(access, 'products', 'read') is False


# ---------- Guard ---------- #

class StubResolver:
    def __init__(self, allowed=None, error=False):
        self.allowed = allowed or set()
        self.error = error

    def has_permission(self, resource, action):
        if self.error:
            raise RuntimeError('resolver down')
        return (resource, action) in self.allowed


def test_guard_starts_checking_then_allows():
    guard = AccessGuard(StubResolver({('sales', 'read')}), 'sales', 'read')
    assert guard.state == CHECKING
    assert not guard.allowed
    assert guard.evaluate() == ALLOWED
    assert guard.allowed
    assert guard.to_dict() == {'state': ALLOWED, 'resource': 'sales', 'action': 'read'}


def test_guard_denial_carries_escape():
    guard = AccessGuard(StubResolver(), 'invoices', 'create', redirect_to='/dashboard')
    assert guard.evaluate() == DENIED
    body = guard.to_dict()
    assert body['title'] == 'Access Denied'
    assert body['escape'] == {'type': 'redirect', 'to': '/dashboard'}
    assert "permission to create invoices" in body['detail']
    no_redirect = AccessGuard(StubResolver(), 'invoices', 'create')
    no_redirect.evaluate()
    assert no_redirect.to_dict()['escape'] == {'type': 'go_back'}


def test_guard_resolver_error_denies():
    guard = AccessGuard(StubResolver(error=True), 'products', 'read')
    assert guard.evaluate() == DENIED
    with pytest.raises(Exception) as exc:
        guard.enforce()
    assert getattr(exc.value, 'code', None) == 403


@pytest.mark.parametrize('name', ['Admin', 'Super Admin'])
def test_admin_role_name_grants_everything_without_flag(name):
    assert is_admin_role(Role(name=name, is_admin_role=False, permissions={'products': ['read']}))
    session = get_db()
    role = session.query(Role).filter_by(name=name).one_or_none()
    created = role is None
    if created:
        role = Role(name=name, description=name, permissions={}, is_admin_role=False, is_system=False)
        session.add(role)
        session.commit()
    saved = (role.is_admin_role, role.permissions)
    user = ensure_user(f"named-{name.lower().replace(' ', '-')}@test.local")
    try:
        role.is_admin_role = False
        role.permissions = {'products': ['read']}
        session.commit()
        ensure_user_role_assignment(user, role)
        resolver = PermissionResolver(user.id, get_db)
        assert resolver.is_admin()
        assert resolver.can_delete('users')
        assert resolver.can_update('reports')
        assert resolver.can_manage_settings()
    finally:
        session.query(UserRole).filter_by(user_id=user.id).delete()
        if created:
            session.delete(role)
        else:
            role.is_admin_role, role.permissions = saved
        session.commit()


def test_revoking_every_role_then_refresh_leaves_nothing():
    user = ensure_user('revoked@test.local')
    ensure_user_role_assignment(user, ensure_role('RevokeA', {'products': ['read', 'update']}))
    ensure_user_role_assignment(user, ensure_role('RevokeB', {'sales': ['create']}))
    resolver = PermissionResolver(user.id, get_db)
    assert resolver.permissions == {'products': ['read', 'update'], 'sales': ['create']}
    session = get_db()
    session.query(UserRole).filter_by(user_id=user.id).delete()
    session.commit()
    assert resolver.refresh() == {}
    assert resolver.permissions == {}
    assert not resolver.can_read('products')
    assert not resolver.can_create('sales')


def test_cashier_plus_wildcard_viewer():
    user = ensure_user('cashier-viewer@test.local')
    ensure_user_role_assignment(user, ensure_role('CashierMix', DEFAULT_ROLES['Cashier']['permissions']))
    ensure_user_role_assignment(user, ensure_role('ViewerMix', {'*': ['read']}))
    resolver = PermissionResolver(user.id, get_db)
    assert resolver.can_create('sales')
    assert not resolver.can_delete('sales')
    assert resolver.can_read('reports')
    assert not resolver.can_update('reports')
    assert not resolver.is_admin()
