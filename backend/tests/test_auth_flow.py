from tests.test_utils_seed import ensure_user, ensure_role, seed_user_with_permissions
from tests.test_lifecycle_helpers import jwt_headers, login_headers, error_detail


def test_login_and_me(client):
    ensure_user('login-me@test.local', name='Asha', password='secret-pw')
    headers = login_headers(client, 'login-me@test.local', 'secret-pw')
    resp = client.get('/iam/auth/me', headers=headers)
    assert resp.status_code == 200, resp.get_json()
    body = resp.get_json()
    assert body['email'] == 'login-me@test.local'
    assert body['name'] == 'Asha'
    assert body['last_login'] is not None
    assert body['permissions'] == {}
    assert body['is_admin'] is False


def test_login_rejects_bad_credentials(client):
    ensure_user('login-bad@test.local', password='right')
    resp = client.post('/iam/auth/login', json={'email': 'login-bad@test.local', 'password': 'wrong'})
    assert resp.status_code == 401
    assert error_detail(resp) == 'invalid credentials'
    resp = client.post('/iam/auth/login', json={'email': 'login-bad@test.local'})
    assert resp.status_code == 400


def test_inactive_user_cannot_login(client):
    user = ensure_user('login-inactive@test.local')
    from luminila import get_db
    user.is_active = False
    get_db().commit()
    resp = client.post('/iam/auth/login', json={'email': 'login-inactive@test.local', 'password': 'pw'})
    assert resp.status_code == 401


def test_login_is_recorded_in_activity(client, admin_headers):
    user = ensure_user('login-audit@test.local')
    login_headers(client, 'login-audit@test.local')
    resp = client.get(f'/activity?action=AUTH.LOGIN&user_id={user.id}', headers=admin_headers)
    assert resp.status_code == 200
    assert resp.get_json()['pagination']['total'] >= 1


def test_missing_token_is_401(client):
    assert client.get('/iam/auth/me').status_code == 401
    assert client.get('/catalog/products').status_code == 401


def test_permissions_summary(client, app_instance):
    user = seed_user_with_permissions('perm-summary@test.local', {
        'reports': ['read'], 'invoices': ['create'], 'inventory': ['update'],
    })
    resp = client.get('/iam/auth/permissions', headers=jwt_headers(app_instance, user.id))
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['permissions']['reports'] == ['read']
    assert body['roles'] == ['role-perm-summary@test.local']
    assert body['can'] == {
        'manage_users': False,
        'access_reports': True,
        'manage_settings': False,
        'create_invoices': True,
        'manage_inventory': True,
    }


def test_denied_route_carries_resource_action_and_escape(client, app_instance):
    user = seed_user_with_permissions('sales-reader@test.local', {'sales': ['read']})
    headers = jwt_headers(app_instance, user.id)
    assert client.get('/sales', headers=headers).status_code == 200
    resp = client.post('/sales', json={'items': []}, headers=headers)
    assert resp.status_code == 403
    err = resp.get_json()['error']
    assert err['title'] == 'Access Denied'
    assert err['resource'] == 'sales'
    assert err['action'] == 'create'
    assert err['escape'] == {'type': 'go_back'}
    assert err['detail'] == "You don't have permission to create sales."


def test_can_endpoint_reports_guard_state(client, app_instance):
    user = seed_user_with_permissions('can-check@test.local', {'products': ['read']})
    headers = jwt_headers(app_instance, user.id)
    resp = client.get('/iam/auth/can?resource=products&action=read', headers=headers)
    assert resp.get_json() == {'state': 'allowed', 'resource': 'products', 'action': 'read'}
    resp = client.get('/iam/auth/can?resource=invoices&action=create&redirect_to=/dashboard', headers=headers)
    body = resp.get_json()
    assert body['state'] == 'denied'
    assert body['escape'] == {'type': 'redirect', 'to': '/dashboard'}
    resp = client.get('/iam/auth/can', headers=headers)
    assert resp.status_code == 400
    assert error_detail(resp) == 'resource required'


def test_role_edit_applies_on_next_request(client, app_instance):
    user = seed_user_with_permissions('next-request@test.local', {'customers': ['read']}, role_name='NextRequest')
    headers = jwt_headers(app_instance, user.id)
    assert client.get('/reports/summary', headers=headers).status_code == 403
    ensure_role('NextRequest', {'customers': ['read'], 'reports': ['read']})
    assert client.get('/reports/summary', headers=headers).status_code == 200


def test_deactivated_user_token_is_denied(client, app_instance):
    user = seed_user_with_permissions('deactivated@test.local', {'customers': ['read']})
    headers = jwt_headers(app_instance, user.id)
    assert client.get('/customers', headers=headers).status_code == 200
    from luminila import get_db
    user.is_active = False
    get_db().commit()
    assert client.get('/customers', headers=headers).status_code == 403


def test_health_is_public(client):
    resp = client.get('/healthz')
    assert resp.status_code == 200
    assert resp.get_json() == {'status': 'ok'}
