import scripts.audit_route_rules as audit_mod
from luminila.constants.permissions import ACTIONS, DEFAULT_ROLES, RESOURCES, validate_permission_map
from scripts.audit_route_rules import audit, describe_guard, main


def test_every_route_is_guarded(app_instance):
    rows, unguarded = audit(app_instance)
    assert rows
    assert unguarded == []


def test_public_routes_are_login_and_push_channels(app_instance):
    rows, _ = audit(app_instance)
    public = sorted(rule for _, rule, _, guard in rows if guard == 'public')
    assert public == ['/iam/auth/login', '/webhooks/shopify', '/whatsapp/events']


def test_required_permissions_use_known_vocabulary(app_instance):
    for endpoint, view in app_instance.view_functions.items():
        perm = getattr(view, 'required_permission', None)
        if perm is None:
            continue
        resource, action = perm
        assert resource in RESOURCES, endpoint
        assert action in ACTIONS, endpoint


def test_role_presets_are_valid_maps():
    for name, preset in DEFAULT_ROLES.items():
        assert validate_permission_map(preset['permissions']) == [], name


def test_describe_guard_labels():
    def plain():
        pass
    assert describe_guard(plain) is None
    plain.authenticated_only = True
    assert describe_guard(plain) == 'login'
    plain.public_endpoint = True
    assert describe_guard(plain) == 'public'
    plain.required_permission = ('sales', 'read')
    assert describe_guard(plain) == 'sales:read'


def test_cli_lists_rules(capsys, monkeypatch, app_instance):
    monkeypatch.setattr(audit_mod, 'create_app', lambda: app_instance)
    assert main(['--list']) == 0
    out = capsys.readouterr().out
    assert '[OK]' in out
    assert '/healthz' in out
