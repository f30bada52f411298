#!/usr/bin/env python
"""Idempotent seed script for the built-in roles and the first admin user.

Usage:
    python backend/scripts/seed_roles.py               # seed normally
    python backend/scripts/seed_roles.py --show-roles  # print role -> permission summary (after ensuring seed)
    python backend/scripts/seed_roles.py --dry-run     # run logic then rollback (no DB changes)
    python backend/scripts/seed_roles.py --export-json roles.json --fail-if-changed <sha256>
"""
from __future__ import annotations
import os, sys, argparse, textwrap, json, hashlib
from sqlalchemy import select, inspect

# Allow running from repo root
sys.path.append(os.path.abspath('backend'))

from luminila import create_app, get_db  # type: ignore
from luminila.models.authz import Base, Role, User, UserRole
from luminila.constants.permissions import DEFAULT_ROLES, validate_permission_map, normalize_permission_map

EXIT_INVALID = 2
EXIT_CHECKSUM = 4


def ensure_roles(session):
    """Create missing preset roles and add preset actions missing from existing ones.

    Actions an operator granted beyond the preset are left alone.
    Returns (created, updated).
    """
    existing = {r.name: r for r in session.execute(select(Role)).scalars().all()}
    created = updated = 0
    for name, preset in DEFAULT_ROLES.items():
        desired = normalize_permission_map(preset['permissions'])
        role = existing.get(name)
        if role is None:
            session.add(Role(
                name=name,
                description=preset.get('description'),
                permissions=desired,
                is_system=True,
                is_admin_role=bool(preset.get('is_admin_role')),
            ))
            created += 1
            continue
        current = dict(role.permissions or {})
        merged = normalize_permission_map({
            res: list(current.get(res, [])) + list(desired.get(res, []))
            for res in set(current) | set(desired)
        })
        if merged != normalize_permission_map(current) or not role.is_system:
            role.permissions = merged
            role.is_system = True
            updated += 1
    session.flush()
    return created, updated


def ensure_initial_admin(session):
    admin_role = session.execute(select(Role).where(Role.name == 'Admin')).scalar_one_or_none()
    if not admin_role:
        print('[WARN] Admin role missing; skipping admin user creation')
        return None
    admin_email = os.getenv('SEED_ADMIN_EMAIL', 'admin@luminila.local')
    user = session.execute(select(User).where(User.email == admin_email)).scalar_one_or_none()
    if user is None:
        user = User(name='Administrator', email=admin_email, password_hash='', is_active=True)
        user.set_password(os.getenv('SEED_ADMIN_PASSWORD', 'ChangeMe123!'))
        session.add(user)
        session.flush()
        print(f'[INFO] Created initial admin user {admin_email} with temporary password.')
    linked = session.execute(select(UserRole).where(
        UserRole.user_id == user.id, UserRole.role_id == admin_role.id)).scalar_one_or_none()
    if linked is None:
        session.add(UserRole(user_id=user.id, role_id=admin_role.id))
        session.flush()
    return user


def build_role_permission_map(session):
    return {
        role.name: normalize_permission_map(role.permissions or {})
        for role in session.execute(select(Role).order_by(Role.name)).scalars().all()
    }


def roles_checksum(role_map) -> str:
    canonical = json.dumps(role_map, sort_keys=True, separators=(',', ':'))
    return hashlib.sha256(canonical.encode('utf-8')).hexdigest()


def validate_roles(session):
    """Problems with stored role maps plus preset roles that are missing."""
    problems = []
    names = set()
    for role in session.execute(select(Role)).scalars().all():
        names.add(role.name)
        for p in validate_permission_map(role.permissions or {}):
            problems.append(f"Role '{role.name}': {p}")
    for name in DEFAULT_ROLES:
        if name not in names:
            problems.append(f"Preset role '{name}' is missing")
    return problems


def print_role_summary(role_map):
    if not role_map:
        print('[INFO] No roles present.')
        return
    name_w = max(len(n) for n in role_map)
    print(f"{'Role'.ljust(name_w)} | Grants | Resources")
    print('-' * (name_w + 40))
    for name, perms in role_map.items():
        grants = sum(len(a) for a in perms.values())
        print(f"{name.ljust(name_w)} | {str(grants).rjust(6)} | {', '.join(sorted(perms))}")


def parse_args(argv=None):
    p = argparse.ArgumentParser(
        description='Seed built-in roles and the initial admin user',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""Examples:\n  seed normally: seed_roles.py\n  dry run: seed_roles.py --dry-run\n  show roles: seed_roles.py --show-roles\n""")
    )
    p.add_argument('--show-roles', action='store_true', help='Print role summary after seeding')
    p.add_argument('--dry-run', action='store_true', help='Rollback after operations (no commit)')
    p.add_argument('--export-json', nargs='?', const='-', metavar='FILE', help='Export role -> permissions JSON (to FILE or stdout if omitted)')
    p.add_argument('--validate', action='store_true', help='Validate stored role maps; exits 2 on problems')
    p.add_argument('--fail-if-changed', metavar='CHECKSUM', help='Exit 4 if the computed roles checksum differs')
    return p.parse_args(argv)


def run(session, args) -> int:
    created, updated = ensure_roles(session)
    ensure_initial_admin(session)
    role_map = build_role_permission_map(session)
    if args.validate:
        problems = validate_roles(session)
        if problems:
            print('\n[VALIDATION] FAIL:')
            for problem in problems:
                print(' -', problem)
            session.rollback()
            return EXIT_INVALID
        print('[VALIDATION] OK: all role maps valid.')
    checksum = roles_checksum(role_map)
    if args.fail_if_changed and checksum != args.fail_if_changed:
        print(f'[CHECKSUM] MISMATCH: expected {args.fail_if_changed} got {checksum}')
        session.rollback()
        return EXIT_CHECKSUM
    if args.dry_run:
        session.rollback()
        print(f'[DRY-RUN] (rolled back) Roles would create: {created}, update: {updated}')
    else:
        session.commit()
        print(f'[DONE] Roles created: {created}, updated: {updated}')
    if args.show_roles:
        print('\nRole Permission Summary:')
        print_role_summary(role_map)
    if args.export_json is not None:
        payload = {
            'roles': role_map,
            'meta': {
                'roles_checksum_sha256': checksum,
                'role_names_sorted': sorted(role_map),
                'dry_run': args.dry_run,
            },
        }
        if args.export_json == '-':
            print(json.dumps(payload, indent=2, sort_keys=True))
        else:
            with open(args.export_json, 'w', encoding='utf-8') as f:
                json.dump(payload, f, indent=2, sort_keys=True)
            print(f'[INFO] Exported JSON to {args.export_json}')
    return 0


def main(argv=None) -> int:
    args = parse_args(argv)
    app = create_app()
    with app.app_context():
        session = get_db()
        engine = session.get_bind()
        if not inspect(engine).has_table('roles'):
            # Bootstrap only; real environments run `alembic upgrade head`
            Base.metadata.create_all(engine)
        try:
            return run(session, args)
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


if __name__ == '__main__':
    sys.exit(main())
