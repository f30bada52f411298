#!/usr/bin/env python
"""Fail when a registered route carries no access rule.

Every view must be guarded by ``require_permission``, ``require_login`` or be
explicitly marked with ``public_endpoint``.

Usage:
    python backend/scripts/audit_route_rules.py          # exit 1 on unguarded routes
    python backend/scripts/audit_route_rules.py --list   # print every rule and its guard
"""
from __future__ import annotations
import os, sys, argparse
from typing import Optional

# Allow running from repo root
sys.path.append(os.path.abspath('backend'))

from luminila import create_app  # type: ignore

EXEMPT_ENDPOINTS = {'static', 'health'}
EXIT_UNGUARDED = 1


def describe_guard(view) -> Optional[str]:
    perm = getattr(view, 'required_permission', None)
    if perm:
        return f'{perm[0]}:{perm[1]}'
    if getattr(view, 'public_endpoint', False):
        return 'public'
    if getattr(view, 'authenticated_only', False):
        return 'login'
    return None


def audit(app):
    """(rows, unguarded) where rows are (methods, rule, endpoint, guard) sorted by rule."""
    rows, unguarded = [], []
    for rule in sorted(app.url_map.iter_rules(), key=lambda r: (r.rule, r.endpoint)):
        methods = ','.join(sorted(m for m in rule.methods if m not in ('HEAD', 'OPTIONS')))
        if rule.endpoint in EXEMPT_ENDPOINTS:
            rows.append((methods, rule.rule, rule.endpoint, 'exempt'))
            continue
        guard = describe_guard(app.view_functions[rule.endpoint])
        rows.append((methods, rule.rule, rule.endpoint, guard or 'MISSING'))
        if guard is None:
            unguarded.append(rule.rule)
    return rows, unguarded


def main(argv=None) -> int:
    p = argparse.ArgumentParser(description='Audit route access rules')
    p.add_argument('--list', action='store_true', help='Print every rule with its guard')
    args = p.parse_args(argv)
    app = create_app()
    rows, unguarded = audit(app)
    if args.list:
        width = max(len(r[1]) for r in rows)
        for methods, rule, endpoint, guard in rows:
            print(f'{rule.ljust(width)}  {methods.ljust(18)} {guard}')
    if unguarded:
        print(f'[FAIL] {len(unguarded)} route(s) without an access rule:')
        for rule in unguarded:
            print(' -', rule)
        return EXIT_UNGUARDED
    print(f'[OK] {len(rows)} routes audited, all guarded.')
    return 0


if __name__ == '__main__':
    sys.exit(main())
