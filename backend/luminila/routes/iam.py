from datetime import datetime, timezone

from flask import Blueprint, request, abort
from flask_jwt_extended import create_access_token
from sqlalchemy import select, delete, func

from luminila import get_db
from luminila.constants.permissions import (
    ADMIN_ROLE_NAMES, DEFAULT_ROLE_NAME, validate_permission_map, normalize_permission_map,
)
from luminila.decorators.activity import activity_log
from luminila.decorators.auth import require_permission, require_login, public_endpoint
from luminila.models.authz import User, Role, UserRole
from luminila.services.activity import add_activity
from luminila.services.guard import AccessGuard
from luminila.services.policy import (
    current_resolver, current_user_id, assert_not_removing_last_admin, is_admin_role,
)
from luminila.utils.listing import list_response, entity_response, check_if_match
from luminila.utils.validation import json_body, require_fields, parse_int

iam_bp = Blueprint('iam', __name__)


def _role_json(r: Role):
    return {
        'id': r.id,
        'name': r.name,
        'description': r.description,
        'permissions': r.permissions or {},
        'is_system': bool(r.is_system),
        'is_admin_role': bool(r.is_admin_role),
        'updated_at': r.updated_at.isoformat() if r.updated_at else None,
    }


def _role_names(user_id: int):
    return sorted(get_db().execute(
        select(Role.name).join(UserRole, UserRole.role_id == Role.id).where(UserRole.user_id == user_id)
    ).scalars())


def _user_json(u: User):
    return {
        'id': u.id,
        'name': u.name,
        'email': u.email,
        'phone': u.phone,
        'is_active': bool(u.is_active),
        'is_superuser': bool(u.is_superuser),
        'last_login': u.last_login.isoformat() if u.last_login else None,
        'roles': _role_names(u.id),
    }


def _get_role(session, role_id: int) -> Role:
    role = session.get(Role, role_id)
    if not role:
        abort(404, description='Role not found')
    return role


def _get_user(session, user_id: int) -> User:
    user = session.get(User, user_id)
    if not user:
        abort(404, description='User not found')
    return user


def _checked_permission_map(raw):
    problems = validate_permission_map(raw)
    if problems:
        abort(400, description='; '.join(problems))
    return normalize_permission_map(raw)


def _require_admin_caller():
    """Only administrators may create, rename into, flag or hand out admin roles."""
    if not current_resolver().is_admin():
        abort(403, description='Only administrators can grant admin access')


# --- Authentication ---

@iam_bp.post('/auth/login')
@public_endpoint
def login():
    data = json_body()
    email = data.get('email'); password = data.get('password')
    if not email or not password:
        abort(400, description='email & password required')
    session = get_db()
    user = session.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if not user or not user.verify_password(password) or not user.is_active:
        abort(401, description='invalid credentials')
    user.last_login = datetime.now(timezone.utc)
    add_activity('AUTH.LOGIN', 'User', user.id, user_id=user.id)
    session.commit()
    # Identity only; permissions are resolved per request, never carried in claims
    token = create_access_token(identity=str(user.id))
    return {'access_token': token}


@iam_bp.get('/auth/me')
@require_login
def me():
    uid = current_user_id()
    if uid is None:
        abort(401, description='invalid identity')
    user = _get_user(get_db(), uid)
    resolver = current_resolver()
    out = _user_json(user)
    out.update({'permissions': resolver.permissions, 'is_admin': resolver.is_admin()})
    return out


@iam_bp.get('/auth/permissions')
@require_login
def my_permissions():
    resolver = current_resolver()
    return {
        'permissions': resolver.permissions,
        'is_admin': resolver.is_admin(),
        'roles': resolver.access.role_names,
        'can': {
            'manage_users': resolver.can_manage_users(),
            'access_reports': resolver.can_access_reports(),
            'manage_settings': resolver.can_manage_settings(),
            'create_invoices': resolver.can_create_invoices(),
            'manage_inventory': resolver.can_manage_inventory(),
        },
    }


@iam_bp.get('/auth/can')
@require_login
def can():
    resource = request.args.get('resource'); action = request.args.get('action', 'read')
    if not resource:
        abort(400, description='resource required')
    guard = AccessGuard(current_resolver(), resource, action, request.args.get('redirect_to'))
    guard.evaluate()
    return guard.to_dict()


# --- Roles ---

@iam_bp.get('/roles')
@require_permission('users', 'read')
def list_roles():
    session = get_db()
    q = session.query(Role).order_by(Role.name.asc(), Role.id.asc())
    return list_response(q, _role_json)


@iam_bp.get('/roles/<int:role_id>')
@require_permission('users', 'read')
def get_role(role_id: int):
    role = _get_role(get_db(), role_id)
    return entity_response(role.id, _role_json(role), role.updated_at)


@iam_bp.post('/roles')
@require_permission('users', 'update')
@activity_log('ROLE.CREATE', entity='Role', entity_id_key='id', meta_keys=['name'])
def create_role():
    data = json_body()
    require_fields(data, 'name')
    name = str(data['name']).strip()
    if name in ADMIN_ROLE_NAMES or data.get('is_admin_role'):
        _require_admin_caller()
    session = get_db()
    if session.execute(select(Role).where(Role.name == name)).scalar_one_or_none():
        abort(400, description='role exists')
    role = Role(
        name=name,
        description=data.get('description'),
        permissions=_checked_permission_map(data.get('permissions') or {}),
        is_system=False,
        is_admin_role=bool(data.get('is_admin_role', False)),
    )
    session.add(role)
    session.commit()
    return _role_json(role), 201


def _prefetch_role(role_id: int):
    role = get_db().get(Role, role_id)
    if not role:
        return {}
    return {'name': role.name, 'description': role.description, 'permissions': role.permissions or {}}


@iam_bp.patch('/roles/<int:role_id>')
@require_permission('users', 'update')
@activity_log(
    'ROLE.UPDATE',
    entity='Role',
    entity_id_key='id',
    diff_keys=['name', 'description', 'permissions'],
    pre_fetch=lambda a, kw: _prefetch_role(kw.get('role_id')),
)
def update_role(role_id: int):
    session = get_db()
    role = _get_role(session, role_id)
    check_if_match(role.id, role.updated_at)
    data = json_body()
    if 'name' in data:
        new_name = str(data['name'] or '').strip()
        if not new_name:
            abort(400, description='name cannot be empty')
        if role.is_system and new_name != role.name:
            abort(400, description='built-in roles cannot be renamed')
        if new_name in ADMIN_ROLE_NAMES and new_name != role.name:
            _require_admin_caller()
        clash = session.execute(select(Role).where(Role.name == new_name, Role.id != role.id)).scalar_one_or_none()
        if clash:
            abort(400, description='role name in use')
        role.name = new_name
    if 'description' in data:
        role.description = data['description']
    if 'permissions' in data:
        role.permissions = _checked_permission_map(data['permissions'] or {})
    if 'is_admin_role' in data:
        if role.is_system:
            abort(400, description='built-in roles cannot change admin capability')
        if data['is_admin_role'] and not role.is_admin_role:
            _require_admin_caller()
        role.is_admin_role = bool(data['is_admin_role'])
    session.commit()
    return _role_json(role)


@iam_bp.delete('/roles/<int:role_id>')
@require_permission('users', 'update')
@activity_log('ROLE.DELETE', entity='Role', entity_id_arg='role_id', meta_keys=['name'])
def delete_role(role_id: int):
    session = get_db()
    role = _get_role(session, role_id)
    if role.is_system:
        abort(400, description='Cannot delete system role')
    if is_admin_role(role):
        holders = session.execute(select(UserRole.user_id).where(UserRole.role_id == role.id)).scalars().all()
        for uid in holders:
            remaining = set(session.execute(
                select(UserRole.role_id).where(UserRole.user_id == uid, UserRole.role_id != role.id)
            ).scalars())
            assert_not_removing_last_admin(session, uid, remaining)
    name = role.name
    session.delete(role)
    session.commit()
    return {'status': 'deleted', 'name': name}


# --- Users ---

@iam_bp.get('/users')
@require_permission('users', 'read')
def list_users():
    session = get_db()
    q = session.query(User)
    search = request.args.get('q')
    if search:
        like = f'%{search}%'
        q = q.filter((User.name.ilike(like)) | (User.email.ilike(like)))
    if request.args.get('is_active') in ('true', 'false'):
        q = q.filter(User.is_active.is_(request.args['is_active'] == 'true'))
    return list_response(q.order_by(User.name.asc(), User.id.asc()), _user_json)


@iam_bp.get('/users/<int:user_id>')
@require_permission('users', 'read')
def get_user(user_id: int):
    user = _get_user(get_db(), user_id)
    return entity_response(user.id, _user_json(user), user.updated_at)


@iam_bp.post('/users')
@require_permission('users', 'create')
@activity_log('USER.CREATE', entity='User', entity_id_key='id', meta_keys=['email', 'roles'])
def create_user():
    data = json_body()
    require_fields(data, 'name', 'email', 'password')
    session = get_db()
    if session.execute(select(User).where(User.email == data['email'])).scalar_one_or_none():
        abort(400, description='email in use')
    user = User(name=data['name'], email=data['email'], phone=data.get('phone'), is_active=True)
    user.set_password(data['password'])
    session.add(user)
    session.flush()
    default_role = session.execute(select(Role).where(Role.name == DEFAULT_ROLE_NAME)).scalar_one_or_none()
    if default_role is not None:
        session.add(UserRole(user_id=user.id, role_id=default_role.id, assigned_by=current_user_id()))
    session.commit()
    session.refresh(user)
    return _user_json(user), 201


@iam_bp.patch('/users/<int:user_id>')
@require_permission('users', 'update')
@activity_log('USER.UPDATE', entity='User', entity_id_key='id', meta_keys=['is_active'])
def update_user(user_id: int):
    session = get_db()
    user = _get_user(session, user_id)
    check_if_match(user.id, user.updated_at)
    data = json_body()
    for key in ('name', 'phone'):
        if key in data:
            setattr(user, key, data[key])
    if 'password' in data:
        if not data['password']:
            abort(400, description='password cannot be empty')
        user.set_password(data['password'])
    if 'is_active' in data:
        active = bool(data['is_active'])
        if not active and user.is_active:
            assert_not_removing_last_admin(session, user.id, set())
        user.is_active = active
    session.commit()
    return _user_json(user)


@iam_bp.get('/users/<int:user_id>/roles')
@require_permission('users', 'read')
def get_user_roles(user_id: int):
    session = get_db()
    _get_user(session, user_id)
    roles = session.execute(
        select(Role).join(UserRole, UserRole.role_id == Role.id).where(UserRole.user_id == user_id).order_by(Role.name)
    ).scalars().all()
    return {'user_id': user_id, 'roles': [_role_json(r) for r in roles]}


def _checked_role_ids(session, raw) -> set:
    if not isinstance(raw, list) or any(isinstance(x, bool) or not isinstance(x, int) for x in raw):
        abort(400, description='role_ids must be list[int]')
    role_ids = set(raw)
    found = set(session.execute(select(Role.id).where(Role.id.in_(list(role_ids)))).scalars()) if role_ids else set()
    missing = role_ids - found
    if missing:
        abort(400, description=f'Unknown role ids: {sorted(missing)}')
    return role_ids


@iam_bp.put('/users/<int:user_id>/roles')
@require_permission('users', 'update')
@activity_log('USER.ROLES.SET', entity='User', entity_id_key='user_id', meta_keys=['role_ids'])
def set_user_roles(user_id: int):
    session = get_db()
    user = _get_user(session, user_id)
    role_ids = _checked_role_ids(session, json_body().get('role_ids') or [])
    current = set(session.execute(select(UserRole.role_id).where(UserRole.user_id == user.id)).scalars())
    added = role_ids - current
    if added and any(is_admin_role(r) for r in session.execute(select(Role).where(Role.id.in_(added))).scalars()):
        _require_admin_caller()
    assert_not_removing_last_admin(session, user.id, role_ids)
    session.execute(delete(UserRole).where(UserRole.user_id == user.id))
    for rid in role_ids:
        session.add(UserRole(user_id=user.id, role_id=rid, assigned_by=current_user_id()))
    session.commit()
    return {'user_id': user.id, 'role_ids': sorted(role_ids)}


@iam_bp.post('/users/<int:user_id>/roles')
@require_permission('users', 'update')
@activity_log('USER.ROLE.ASSIGN', entity='User', entity_id_key='user_id', meta_keys=['role_id', 'created'])
def assign_user_role(user_id: int):
    data = json_body()
    require_fields(data, 'role_id')
    session = get_db()
    user = _get_user(session, user_id)
    role = _get_role(session, parse_int(data['role_id'], 'role_id'))
    existing = session.execute(
        select(UserRole).where(UserRole.user_id == user.id, UserRole.role_id == role.id)
    ).scalar_one_or_none()
    if existing is not None:
        return {'user_id': user.id, 'role_id': role.id, 'created': False}
    if is_admin_role(role):
        _require_admin_caller()
    session.add(UserRole(user_id=user.id, role_id=role.id, assigned_by=current_user_id()))
    session.commit()
    return {'user_id': user.id, 'role_id': role.id, 'created': True}, 201


@iam_bp.delete('/users/<int:user_id>/roles/<int:role_id>')
@require_permission('users', 'update')
@activity_log('USER.ROLE.REMOVE', entity='User', entity_id_key='user_id', meta_keys=['role_id'])
def remove_user_role(user_id: int, role_id: int):
    session = get_db()
    user = _get_user(session, user_id)
    current = set(session.execute(select(UserRole.role_id).where(UserRole.user_id == user.id)).scalars())
    if role_id not in current:
        abort(404, description='Role not assigned')
    assert_not_removing_last_admin(session, user.id, current - {role_id})
    session.execute(delete(UserRole).where(UserRole.user_id == user.id, UserRole.role_id == role_id))
    session.commit()
    return {'user_id': user.id, 'role_id': role_id}


@iam_bp.get('/stats')
@require_permission('users', 'read')
def rbac_stats():
    session = get_db()
    per_role = session.execute(
        select(Role.name, func.count(UserRole.id))
        .outerjoin(UserRole, UserRole.role_id == Role.id)
        .group_by(Role.id, Role.name)
        .order_by(Role.name)
    ).all()
    return {
        'roles': session.scalar(select(func.count(Role.id))) or 0,
        'users': session.scalar(select(func.count(User.id))) or 0,
        'assignments': session.scalar(select(func.count(UserRole.id))) or 0,
        'users_per_role': {name: count for name, count in per_role},
    }
