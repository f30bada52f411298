from __future__ import annotations
import hmac
import logging

from flask import Blueprint, request, abort, current_app
from sqlalchemy import select

from luminila import get_db
from luminila.decorators.activity import activity_log
from luminila.decorators.auth import require_permission, public_endpoint
from luminila.integrations.whatsapp import WhatsAppClient, parse_order_intent, phone_from_chat_id
from luminila.models.customer import CustomerInteraction
from luminila.models.sale import Sale, SaleItem
from luminila.routes.customers import find_by_phone
from luminila.services.policy import current_user_id
from luminila.utils.validation import json_body, require_fields, parse_int

logger = logging.getLogger(__name__)

wa_bp = Blueprint('whatsapp', __name__)

EVENTS_TOKEN_HEADER = 'X-WhatsApp-Token'
EVENT_TYPES = ('qrcode', 'connected', 'disconnected', 'message', 'ack')
CHANNEL = 'whatsapp'


def make_client() -> WhatsAppClient:
    return WhatsAppClient(current_app.config['WHATSAPP_SERVER_URL'], current_app.config['WHATSAPP_SESSION'])


def _push_state() -> dict:
    """Last connection event pushed by the sidecar for this app."""
    return current_app.extensions.setdefault('whatsapp_push', {'status': None, 'qr_code': None})


def _record_interaction(phone, summary: str, user_id=None):
    session = get_db()
    customer = find_by_phone(session, phone)
    session.add(CustomerInteraction(
        customer_id=customer.id if customer else None,
        kind=CustomerInteraction.KIND_MESSAGE,
        channel=CHANNEL,
        contact=None if customer else phone,
        summary=summary,
        created_by=user_id,
    ))
    return customer


@wa_bp.get('/status')
@require_permission('customers', 'read')
def status():
    client = make_client()
    try:
        reachable = client.health()
        state = client.get_status() if reachable else None
    finally:
        client.close()
    push = _push_state()
    return {'server_reachable': reachable, 'status': state or 'DISCONNECTED',
            'last_event': push.get('status'), 'session': current_app.config['WHATSAPP_SESSION']}


@wa_bp.post('/start')
@require_permission('customers', 'update')
def start():
    client = make_client()
    try:
        started = client.start_session()
    finally:
        client.close()
    if started is None:
        abort(502, description='WhatsApp server unavailable')
    return started


@wa_bp.get('/qr')
@require_permission('customers', 'update')
def qr_code():
    client = make_client()
    try:
        code = client.get_qr_code()
    finally:
        client.close()
    code = code or _push_state().get('qr_code')
    if not code:
        abort(404, description='No QR code available')
    return {'qr_code': code}


@wa_bp.post('/send')
@require_permission('customers', 'update')
@activity_log('WHATSAPP.SEND', entity='Customer', entity_id_key='customer_id', meta_keys=['phone'])
def send():
    data = json_body()
    require_fields(data, 'phone', 'message')
    client = make_client()
    try:
        sent = client.send_message(data['phone'], data['message'], is_group=bool(data.get('is_group')))
    finally:
        client.close()
    if not sent:
        abort(502, description='Message was not delivered to the WhatsApp server')
    customer = None
    if not data.get('is_group'):
        customer = _record_interaction(data['phone'], f"Sent: {data['message']}", current_user_id())
        get_db().commit()
    return {'sent': True, 'phone': data['phone'], 'customer_id': customer.id if customer else None}


@wa_bp.post('/send-image')
@require_permission('customers', 'update')
def send_image():
    data = json_body()
    require_fields(data, 'phone', 'image_url')
    client = make_client()
    try:
        sent = client.send_image(data['phone'], data['image_url'], data.get('caption'))
    finally:
        client.close()
    if not sent:
        abort(502, description='Image was not delivered to the WhatsApp server')
    return {'sent': True}


@wa_bp.post('/sales/<int:sale_id>/confirmation')
@require_permission('sales', 'update')
@activity_log('WHATSAPP.ORDER_CONFIRMATION', entity='Sale', entity_id_key='sale_id')
def send_order_confirmation(sale_id: int):
    session = get_db()
    sale = session.get(Sale, sale_id)
    if not sale:
        abort(404, description='Sale not found')
    phone = json_body().get('phone') or sale.customer_phone
    if not phone:
        abort(400, description='sale has no customer phone')
    items = [{'name': i.description or 'Item', 'quantity': i.quantity, 'price_paise': i.line_total_paise}
             for i in session.execute(select(SaleItem).where(SaleItem.sale_id == sale.id)).scalars()]
    client = make_client()
    try:
        sent = client.send_order_confirmation(phone, sale.sale_number, items, sale.total_paise)
    finally:
        client.close()
    if not sent:
        abort(502, description='Message was not delivered to the WhatsApp server')
    return {'sent': True, 'sale_id': sale.id}


@wa_bp.get('/chats')
@require_permission('customers', 'read')
def chats():
    client = make_client()
    try:
        return {'data': client.get_chats()}
    finally:
        client.close()


@wa_bp.get('/messages/<path:chat>')
@require_permission('customers', 'read')
def messages(chat: str):
    count = parse_int(request.args.get('count'), 'count', minimum=1, default=50)
    client = make_client()
    try:
        return {'data': client.get_messages(chat, min(count, 500))}
    finally:
        client.close()


@wa_bp.post('/close')
@require_permission('customers', 'update')
def close():
    client = make_client()
    try:
        closed = client.close_session()
    finally:
        client.close()
    _push_state().update(status='disconnected', qr_code=None)
    return {'closed': closed}


@wa_bp.post('/events')
@public_endpoint
def events():
    """Push channel from the sidecar, authenticated by the shared events token."""
    expected = current_app.config.get('WHATSAPP_EVENTS_TOKEN') or ''
    supplied = request.headers.get(EVENTS_TOKEN_HEADER) or ''
    if not expected or not hmac.compare_digest(expected.encode(), supplied.encode()):
        abort(401, description='Invalid events token')
    data = json_body()
    event = data.get('event')
    if event not in EVENT_TYPES:
        abort(400, description='event invalid')
    payload = data.get('data') or {}
    push = _push_state()
    if event == 'qrcode':
        push.update(status='qr_ready', qr_code=payload.get('qrcode') or payload.get('qrCode'))
        return {'received': True, 'event': event}
    if event in ('connected', 'disconnected'):
        push.update(status=event, qr_code=None)
        logger.info('whatsapp session %s', event)
        return {'received': True, 'event': event}
    if event == 'ack':
        return {'received': True, 'event': event}
    if payload.get('fromMe') or payload.get('isGroupMsg'):
        return {'received': True, 'event': event, 'recorded': False}
    phone = phone_from_chat_id(payload.get('from'))
    body = payload.get('body') or payload.get('caption') or ''
    if not phone or not body:
        return {'received': True, 'event': event, 'recorded': False}
    intent = parse_order_intent(body)
    summary = ('[order enquiry] ' if intent['is_order'] else '') + body
    customer = _record_interaction(phone, summary)
    get_db().commit()
    return {'received': True, 'event': event, 'recorded': True,
            'customer_id': customer.id if customer else None, 'intent': intent}
