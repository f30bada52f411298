import json
import uuid

import httpx
import pytest

import luminila.routes.whatsapp as wa_routes
from luminila.integrations.whatsapp import (
    STATUS_CONNECTED, STATUS_DISCONNECTED, STATUS_QR_READY, WhatsAppClient, chat_id, normalize_phone,
    parse_order_intent, phone_from_chat_id,
)
from tests.conftest import WHATSAPP_TOKEN
from tests.test_utils_seed import ensure_customer, ensure_product, unique_phone
from tests.test_lifecycle_helpers import error_detail


class FakeSidecar:
    def __init__(self, connected=True, send_ok=True):
        self.connected = connected
        self.send_ok = send_ok
        self.sent = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == '/health':
            return httpx.Response(200, json={'ok': True})
        if path.endswith('/status'):
            return httpx.Response(200, json={'connected': self.connected, 'qrReady': not self.connected})
        if path.endswith('/send-message'):
            self.sent.append(json.loads(request.content))
            return httpx.Response(200 if self.send_ok else 500, json={'success': self.send_ok})
        if path.endswith('/qrcode'):
            return httpx.Response(200, json={'qrCode': 'data:image/png;base64,QR'})
        if path.startswith('/api/luminila/messages/'):
            return httpx.Response(200, json={'messages': [
                {'id': {'_serialized': 'm1'}, 'from': '919812345678@c.us', 'body': 'hi', 't': 10, 'type': 'chat',
                 'sender': {'pushname': 'Asha', 'id': {'user': '919812345678'}}},
                {'id': 'm2', 'type': 'image', 'body': '/9j/base64blob', 'caption': 'this one'},
            ]})
        return httpx.Response(404, json={})


def _client(handler):
    return WhatsAppClient('http://wa.test', 'luminila', client=httpx.Client(transport=httpx.MockTransport(handler)))


def _down(request):
    raise httpx.ConnectError('sidecar down', request=request)


def test_phone_helpers():
    assert normalize_phone('98123 45678') == '919812345678'
    assert normalize_phone('+91-98123-45678') == '919812345678'
    assert chat_id('9812345678') == '919812345678@c.us'
    assert chat_id('12345@g.us') == '12345@g.us'
    assert chat_id('120363', is_group=True) == '120363@g.us'
    assert phone_from_chat_id('919812345678@c.us') == '919812345678'
    assert phone_from_chat_id(None) is None


@pytest.mark.parametrize('text,is_order,skus', [
    ('I want to buy the silver necklace', True, []),
    ('Is LUM-EAR-012 in stock?', True, ['LUM-EAR-012']),
    ('hello there', False, []),
    ('I need directions to the store', False, []),
])
def test_order_intent(text, is_order, skus):
    intent = parse_order_intent(text)
    assert intent['is_order'] is is_order
    assert intent['skus'] == skus


def test_client_status_and_messages():
    sidecar = FakeSidecar()
    client = _client(sidecar)
    assert client.health() is True
    assert client.get_status() == STATUS_CONNECTED
    assert _client(FakeSidecar(connected=False)).get_status() == STATUS_QR_READY
    assert client.get_qr_code() == 'data:image/png;base64,QR'
    msgs = client.get_messages('919812345678@c.us', count=5)
    assert msgs[0]['id'] == 'm1'
    assert msgs[0]['sender'] == {'name': '', 'pushname': 'Asha', 'phone': '919812345678'}
    # media bodies are base64 payloads; only the caption is text
    assert msgs[1]['body'] == 'this one'


def test_client_send_order_confirmation():
    sidecar = FakeSidecar()
    ok = _client(sidecar).send_order_confirmation('9812345678', 'SAL-00042',
                                                  [{'name': 'Hoop', 'quantity': 2, 'price_paise': 206_000}], 206_000)
    assert ok is True
    sent = sidecar.sent[0]
    assert sent['phone'] == '919812345678'
    assert 'Order ID: *SAL-00042*' in sent['message']
    assert '- Hoop x2 - Rs 2,060.00' in sent['message']


def test_client_degrades_when_sidecar_is_down():
    client = _client(_down)
    assert client.health() is False
    assert client.get_status() == STATUS_DISCONNECTED
    assert client.send_message('9812345678', 'hi') is False
    assert client.get_chats() == []
    assert client.start_session() is None
    assert client.close_session() is False
    assert _client(FakeSidecar()).send_message('', 'hi') is False


def test_events_require_token(client):
    resp = client.post('/whatsapp/events', json={'event': 'connected'})
    assert resp.status_code == 401
    resp = client.post('/whatsapp/events', json={'event': 'connected'}, headers={'X-WhatsApp-Token': 'nope'})
    assert resp.status_code == 401
    resp = client.post('/whatsapp/events', json={'event': 'exploded'}, headers={'X-WhatsApp-Token': WHATSAPP_TOKEN})
    assert error_detail(resp) == 'event invalid'


def test_inbound_message_recorded_on_customer(client, admin_headers):
    phone = unique_phone()
    customer = ensure_customer('Asha', phone=phone)
    resp = client.post('/whatsapp/events', json={'event': 'message', 'data': {
        'from': f'91{phone}@c.us', 'body': 'I want to order the gold ring', 'fromMe': False,
    }}, headers={'X-WhatsApp-Token': WHATSAPP_TOKEN})
    body = resp.get_json()
    assert body['recorded'] is True
    assert body['customer_id'] == customer.id
    assert body['intent']['is_order'] is True
    history = client.get(f'/customers/{customer.id}/interactions', headers=admin_headers).get_json()['data']
    assert history[0]['channel'] == 'whatsapp'
    assert history[0]['summary'] == '[order enquiry] I want to order the gold ring'

    resp = client.post('/whatsapp/events', json={'event': 'message', 'data': {'from': 'x@g.us', 'isGroupMsg': True,
                                                                             'body': 'group chatter'}},
                       headers={'X-WhatsApp-Token': WHATSAPP_TOKEN})
    assert resp.get_json()['recorded'] is False


def test_qr_event_feeds_qr_endpoint(client, admin_headers, monkeypatch):
    monkeypatch.setattr(wa_routes, 'make_client', lambda: _client(_down))
    client.post('/whatsapp/events', json={'event': 'qrcode', 'data': {'qrcode': 'PUSHED-QR'}},
                headers={'X-WhatsApp-Token': WHATSAPP_TOKEN})
    resp = client.get('/whatsapp/qr', headers=admin_headers)
    assert resp.get_json() == {'qr_code': 'PUSHED-QR'}
    resp = client.get('/whatsapp/status', headers=admin_headers)
    body = resp.get_json()
    assert body['server_reachable'] is False
    assert body['status'] == 'DISCONNECTED'
    assert body['last_event'] == 'qr_ready'
    client.post('/whatsapp/events', json={'event': 'connected'}, headers={'X-WhatsApp-Token': WHATSAPP_TOKEN})
    assert client.get('/whatsapp/qr', headers=admin_headers).status_code == 404


def test_send_route(client, admin_headers, monkeypatch):
    sidecar = FakeSidecar()
    monkeypatch.setattr(wa_routes, 'make_client', lambda: _client(sidecar))
    phone = unique_phone()
    customer = ensure_customer('Meera', phone=phone)
    resp = client.post('/whatsapp/send', json={'phone': phone, 'message': 'Your order shipped'}, headers=admin_headers)
    assert resp.status_code == 200, resp.get_json()
    assert resp.get_json()['customer_id'] == customer.id
    assert sidecar.sent[0]['phone'] == f'91{phone}'
    logs = client.get(f'/activity?action=WHATSAPP.SEND&entity_id={customer.id}', headers=admin_headers).get_json()['data']
    assert len(logs) == 1

    monkeypatch.setattr(wa_routes, 'make_client', lambda: _client(FakeSidecar(send_ok=False)))
    resp = client.post('/whatsapp/send', json={'phone': phone, 'message': 'again'}, headers=admin_headers)
    assert resp.status_code == 502
    resp = client.post('/whatsapp/send', json={'phone': phone}, headers=admin_headers)
    assert error_detail(resp) == 'message required'


def test_order_confirmation_route(client, admin_headers, monkeypatch):
    sidecar = FakeSidecar()
    monkeypatch.setattr(wa_routes, 'make_client', lambda: _client(sidecar))
    _, variant = ensure_product(f'WA-{uuid.uuid4().hex[:8].upper()}', stock=5)
    sale = client.post('/sales', json={'items': [{'variant_id': variant.id, 'quantity': 1}]},
                       headers=admin_headers).get_json()
    resp = client.post(f"/whatsapp/sales/{sale['id']}/confirmation", headers=admin_headers)
    assert error_detail(resp) == 'sale has no customer phone'
    resp = client.post(f"/whatsapp/sales/{sale['id']}/confirmation", json={'phone': '9812345678'},
                       headers=admin_headers)
    assert resp.status_code == 200
    assert sale['sale_number'] in sidecar.sent[0]['message']
