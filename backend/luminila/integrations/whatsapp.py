"""Client for the local WhatsApp Web sidecar (WPPConnect server).

The sidecar may be down at any time; every call logs and degrades to
None / False / [] instead of raising.
"""
from __future__ import annotations
import logging
import re
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = 'http://127.0.0.1:21465'
DEFAULT_SESSION = 'luminila'
COUNTRY_CODE = '91'

STATUS_CONNECTED = 'CONNECTED'
STATUS_QR_READY = 'QR_READY'
STATUS_DISCONNECTED = 'DISCONNECTED'

MEDIA_TYPES = ('image', 'sticker', 'video', 'ptt', 'audio', 'document')

_SKU_RE = re.compile(r'LUM-[A-Z]{3}-\d{3}(?:-[A-Z0-9]+)?', re.IGNORECASE)
_ORDER_WORDS = ('order', 'buy', 'purchase', 'want', 'need', 'book', 'interested')
_PRODUCT_WORDS = ('earring', 'necklace', 'bracelet', 'ring', 'anklet', 'chain', 'pendant')


def normalize_phone(phone: str) -> str:
    """Digits only, with the country code added to bare 10 digit numbers."""
    digits = re.sub(r'\D', '', phone or '')
    if len(digits) == 10:
        digits = COUNTRY_CODE + digits
    return digits


def chat_id(phone: str, is_group: bool = False) -> str:
    if '@' in (phone or ''):
        return phone
    return f"{normalize_phone(phone)}@{'g.us' if is_group else 'c.us'}"


def phone_from_chat_id(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    return value.split('@', 1)[0] or None


def parse_order_intent(message: str) -> Dict[str, Any]:
    """Rough order detection for inbound messages: keywords plus LUM-XXX-000 SKUs."""
    lower = (message or '').lower()
    skus = [m.upper() for m in _SKU_RE.findall(message or '')]
    products = [w for w in _PRODUCT_WORDS if w in lower]
    wants = any(w in lower for w in _ORDER_WORDS)
    return {
        'is_order': bool(skus) or (wants and bool(products)),
        'skus': skus,
        'products': products,
    }


def _message_json(msg: Dict[str, Any]) -> Dict[str, Any]:
    mid = msg.get('id')
    if isinstance(mid, dict):
        mid = mid.get('_serialized')
    mtype = msg.get('type') or 'chat'
    body = (msg.get('caption') or '') if mtype in MEDIA_TYPES else (msg.get('body') or msg.get('caption') or '')
    sender = msg.get('sender') or {}
    sender_id = sender.get('id') if isinstance(sender.get('id'), dict) else {}
    return {
        'id': mid,
        'from': msg.get('from'),
        'to': msg.get('to'),
        'body': body,
        'timestamp': msg.get('t') or msg.get('timestamp') or 0,
        'is_group': bool(msg.get('isGroupMsg')),
        'from_me': bool(msg.get('fromMe')),
        'type': mtype,
        'sender': {
            'name': sender.get('name') or '',
            'pushname': sender.get('pushname') or '',
            'phone': (sender_id or {}).get('user') or '',
        },
    }


class WhatsAppClient:
    def __init__(self, base_url: str = DEFAULT_BASE_URL, session: str = DEFAULT_SESSION,
                 client: Optional[httpx.Client] = None, timeout: float = 10.0):
        self.base_url = base_url.rstrip('/')
        self.session = session
        self._client = client or httpx.Client(timeout=timeout)

    def close(self) -> None:
        self._client.close()

    def _url(self, path: str) -> str:
        return f'{self.base_url}/api/{self.session}/{path}'

    def _request(self, method: str, url: str, **kwargs) -> Optional[httpx.Response]:
        try:
            return self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning('whatsapp sidecar %s %s failed: %s', method, url, exc)
            return None

    def _json(self, resp: Optional[httpx.Response]) -> Optional[Dict[str, Any]]:
        if resp is None or not resp.is_success:
            return None
        try:
            data = resp.json()
        except ValueError:
            logger.warning('whatsapp sidecar returned non-JSON from %s', resp.request.url)
            return None
        return data if isinstance(data, dict) else None

    def health(self) -> bool:
        resp = self._request('GET', f'{self.base_url}/health')
        return resp is not None and resp.is_success

    def server_status(self) -> Optional[Dict[str, Any]]:
        return self._json(self._request('GET', f'{self.base_url}/api/status'))

    def start_session(self) -> Optional[Dict[str, Any]]:
        data = self._json(self._request('POST', self._url('start'), json={}))
        if data is None:
            logger.error('could not start whatsapp session %s', self.session)
            return None
        return {'session': self.session, 'status': data.get('status'), 'qr_code': data.get('qrcode')}

    def get_qr_code(self) -> Optional[str]:
        data = self._json(self._request('GET', self._url('qrcode')))
        return (data or {}).get('qrCode') or None

    def get_status(self) -> str:
        data = self._json(self._request('GET', self._url('status')))
        if not data:
            return STATUS_DISCONNECTED
        if data.get('connected'):
            return STATUS_CONNECTED
        if data.get('qrReady'):
            return STATUS_QR_READY
        return STATUS_DISCONNECTED

    def send_message(self, phone: str, message: str, is_group: bool = False) -> bool:
        target = phone if '@' in (phone or '') else normalize_phone(phone)
        if not target or not message:
            return False
        resp = self._request('POST', self._url('send-message'),
                             json={'phone': target, 'message': message, 'isGroup': is_group})
        return resp is not None and resp.is_success

    def send_image(self, phone: str, image_url: str, caption: Optional[str] = None) -> bool:
        data = self._json(self._request('POST', self._url('send-image'), json={
            'phone': normalize_phone(phone), 'imageUrl': image_url, 'caption': caption or '',
        }))
        return bool((data or {}).get('success'))

    def get_chats(self) -> List[Dict[str, Any]]:
        data = self._json(self._request('GET', self._url('chats')))
        chats = (data or {}).get('chats') or []
        return chats if isinstance(chats, list) else []

    def get_messages(self, chat: str, count: int = 50) -> List[Dict[str, Any]]:
        data = self._json(self._request('GET', self._url(f'messages/{quote(chat, safe="")}'),
                                        params={'count': count}))
        messages = (data or {}).get('messages') or []
        return [_message_json(m) for m in messages if isinstance(m, dict)]

    def logout(self) -> bool:
        resp = self._request('POST', self._url('logout'))
        return resp is not None and resp.is_success

    def close_session(self) -> bool:
        if self.logout():
            return True
        resp = self._request('POST', self._url('close'))
        return resp is not None and resp.is_success

    def send_order_confirmation(self, phone: str, order_number: str, items: List[Dict[str, Any]],
                                total_paise: int) -> bool:
        lines = [f"- {i['name']} x{i['quantity']} - Rs {i['price_paise'] / 100:,.2f}" for i in items]
        message = '\n'.join([
            '*Order Confirmation*',
            '',
            f'Order ID: *{order_number}*',
            '',
            '*Items:*',
            *lines,
            '',
            f'*Total: Rs {total_paise / 100:,.2f}*',
            '',
            "Thank you for your order! We'll update you when it ships.",
        ])
        return self.send_message(phone, message)
