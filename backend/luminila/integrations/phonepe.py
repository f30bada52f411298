"""PhonePe PG v1 client (PAY_PAGE flow) and the checkout polling session.

X-VERIFY checksums:

    initiate: sha256(base64(payload) + '/pg/v1/pay' + salt_key) + '###' + salt_index
    status:   sha256('/pg/v1/status/{merchant}/{txn}' + salt_key) + '###' + salt_index
"""
from __future__ import annotations
import base64
import hashlib
import json
import logging
import secrets
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional

import httpx

from luminila.services.settings_store import mask_secret

logger = logging.getLogger(__name__)

ENV_UAT = 'UAT'
ENV_PROD = 'PROD'

BASE_URLS = {
    ENV_UAT: 'https://api-preprod.phonepe.com/apis/pg-sandbox',
    ENV_PROD: 'https://api.phonepe.com/apis/hermes',
}
PAY_PATH = '/pg/v1/pay'
STATUS_PATH = '/pg/v1/status'

CODE_INITIATED = 'PAYMENT_INITIATED'
CODE_SUCCESS = 'PAYMENT_SUCCESS'
CODE_PENDING = 'PAYMENT_PENDING'
CODE_ERROR = 'PAYMENT_ERROR'
CODE_DECLINED = 'PAYMENT_DECLINED'
CODE_NOT_CONFIGURED = 'NOT_CONFIGURED'
CODE_NETWORK_ERROR = 'NETWORK_ERROR'
CODE_INVALID_AMOUNT = 'INVALID_AMOUNT'
FAILURE_CODES = (CODE_ERROR, CODE_DECLINED)

TIMEOUT_MESSAGE = 'Payment verification timed out. Please check your payment status manually.'


@dataclass(frozen=True)
class PhonePeConfig:
    merchant_id: str = ''
    salt_key: str = ''
    salt_index: str = '1'
    environment: str = ENV_UAT
    redirect_url: Optional[str] = None
    callback_url: Optional[str] = None

    @property
    def is_configured(self) -> bool:
        return bool(self.merchant_id and self.salt_key and self.salt_index)

    @property
    def base_url(self) -> str:
        return BASE_URLS[ENV_PROD if self.environment == ENV_PROD else ENV_UAT]

    def public(self) -> Dict[str, Any]:
        return {
            'merchant_id': self.merchant_id,
            'salt_key': mask_secret(self.salt_key) or '',
            'salt_index': self.salt_index,
            'environment': self.environment,
            'redirect_url': self.redirect_url,
            'callback_url': self.callback_url,
            'is_configured': self.is_configured,
        }


_FIELDS = ('merchant_id', 'salt_key', 'salt_index', 'environment', 'redirect_url', 'callback_url')


def _normalize_env(value: Optional[str]) -> str:
    v = (value or '').strip().upper()
    return ENV_PROD if v in ('PROD', 'PRODUCTION') else ENV_UAT


def resolve_config(explicit: Optional[Mapping[str, Any]] = None,
                   persisted: Optional[Mapping[str, Any]] = None,
                   environ: Optional[Mapping[str, Any]] = None) -> PhonePeConfig:
    """explicit > persisted store setting > environment defaults, field by field."""
    environ = environ or {}
    values: Dict[str, Any] = {
        'merchant_id': environ.get('PHONEPE_MERCHANT_ID') or '',
        'salt_key': environ.get('PHONEPE_SALT_KEY') or '',
        'salt_index': str(environ.get('PHONEPE_SALT_INDEX') or '1'),
        'environment': environ.get('PHONEPE_ENV') or ENV_UAT,
        'redirect_url': environ.get('PHONEPE_REDIRECT_URL') or None,
        'callback_url': environ.get('PHONEPE_CALLBACK_URL') or None,
    }
    for layer in (persisted, explicit):
        for name in _FIELDS:
            if layer and layer.get(name) not in (None, ''):
                values[name] = layer[name]
    values['salt_index'] = str(values['salt_index'])
    values['environment'] = _normalize_env(values['environment'])
    return PhonePeConfig(**values)


def _sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode('utf-8')).hexdigest()


def initiate_checksum(base64_payload: str, salt_key: str, salt_index: str) -> str:
    return f'{_sha256_hex(base64_payload + PAY_PATH + salt_key)}###{salt_index}'


def status_checksum(merchant_id: str, txn_id: str, salt_key: str, salt_index: str) -> str:
    return f'{_sha256_hex(f"{STATUS_PATH}/{merchant_id}/{txn_id}" + salt_key)}###{salt_index}'


def generate_order_id() -> str:
    stamp = format(int(time.time() * 1000), 'x').upper()
    return f'ORD_{stamp}_{secrets.token_hex(3).upper()}'


@dataclass
class PaymentResult:
    success: bool
    code: str = ''
    message: str = ''
    transaction_id: str = ''
    redirect_url: Optional[str] = None
    provider_transaction_id: Optional[str] = None
    amount_paise: Optional[int] = None
    payment_instrument: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'code': self.code,
            'message': self.message,
            'transaction_id': self.transaction_id,
            'redirect_url': self.redirect_url,
            'provider_transaction_id': self.provider_transaction_id,
            'amount_paise': self.amount_paise,
            'payment_instrument': self.payment_instrument,
        }


class PhonePeClient:
    def __init__(self, config: PhonePeConfig, client: Optional[httpx.Client] = None, timeout: float = 15.0):
        self.config = config
        self._client = client or httpx.Client(timeout=timeout)

    def close(self) -> None:
        self._client.close()

    def initiate_payment(self, order_id: str, amount_paise: int, mobile: Optional[str] = None,
                         redirect_url: Optional[str] = None, callback_url: Optional[str] = None) -> PaymentResult:
        cfg = self.config
        if not cfg.is_configured:
            return PaymentResult(False, CODE_NOT_CONFIGURED,
                                 'PhonePe is not configured. Please add credentials in Settings.')
        if int(amount_paise) <= 0:
            raise ValueError('amount_paise must be positive')
        txn_id = f'LMLA_{order_id}_{int(time.time() * 1000)}'
        redirect = redirect_url or cfg.redirect_url or ''
        payload = {
            'merchantId': cfg.merchant_id,
            'merchantTransactionId': txn_id,
            'merchantUserId': f'MUID_{order_id}',
            'amount': int(amount_paise),
            'redirectUrl': redirect,
            'redirectMode': 'REDIRECT',
            'callbackUrl': callback_url or cfg.callback_url or redirect,
            'paymentInstrument': {'type': 'PAY_PAGE'},
        }
        if mobile:
            payload['mobileNumber'] = mobile
        encoded = base64.b64encode(json.dumps(payload, separators=(',', ':')).encode('utf-8')).decode('ascii')
        headers = {
            'Content-Type': 'application/json',
            'X-VERIFY': initiate_checksum(encoded, cfg.salt_key, cfg.salt_index),
        }
        try:
            resp = self._client.post(cfg.base_url + PAY_PATH, json={'request': encoded}, headers=headers)
            data = resp.json()
        except httpx.HTTPError as exc:
            logger.warning('phonepe initiate failed for %s: %s', txn_id, exc)
            return PaymentResult(False, CODE_NETWORK_ERROR, str(exc) or 'Network error', txn_id)
        except ValueError:
            logger.warning('phonepe initiate returned non-JSON (status %s)', resp.status_code)
            return PaymentResult(False, 'INVALID_RESPONSE', 'Unexpected response from PhonePe', txn_id)
        if data.get('success') and data.get('code') == CODE_INITIATED:
            redirect_info = ((data.get('data') or {}).get('instrumentResponse') or {}).get('redirectInfo') or {}
            return PaymentResult(True, CODE_INITIATED, data.get('message') or '', txn_id,
                                 redirect_url=redirect_info.get('url'))
        return PaymentResult(False, data.get('code') or 'UNKNOWN',
                             data.get('message') or 'Payment initiation failed', txn_id)

    def check_status(self, txn_id: str) -> PaymentResult:
        cfg = self.config
        if not cfg.is_configured:
            return PaymentResult(False, CODE_NOT_CONFIGURED, 'PhonePe is not configured', txn_id)
        url = f'{cfg.base_url}{STATUS_PATH}/{cfg.merchant_id}/{txn_id}'
        headers = {
            'Content-Type': 'application/json',
            'X-VERIFY': status_checksum(cfg.merchant_id, txn_id, cfg.salt_key, cfg.salt_index),
            'X-MERCHANT-ID': cfg.merchant_id,
        }
        try:
            resp = self._client.get(url, headers=headers)
            data = resp.json()
        except httpx.HTTPError as exc:
            logger.warning('phonepe status failed for %s: %s', txn_id, exc)
            return PaymentResult(False, CODE_NETWORK_ERROR, str(exc) or 'Network error', txn_id)
        except ValueError:
            return PaymentResult(False, 'INVALID_RESPONSE', 'Unexpected response from PhonePe', txn_id)
        body = data.get('data') or {}
        if data.get('success'):
            return PaymentResult(True, data.get('code') or '', data.get('message') or '', txn_id,
                                 provider_transaction_id=body.get('transactionId'),
                                 amount_paise=body.get('amount'),
                                 payment_instrument=body.get('paymentInstrument'))
        return PaymentResult(False, data.get('code') or 'UNKNOWN', data.get('message') or 'Status check failed', txn_id)


# Checkout session states
STATE_INPUT = 'input'
STATE_INITIATING = 'initiating'
STATE_PENDING = 'pending'
STATE_SUCCESS = 'success'
STATE_FAILED = 'failed'
TERMINAL_STATES = (STATE_SUCCESS, STATE_FAILED)


@dataclass
class PaymentSession:
    """One checkout attempt: input -> initiating -> pending -> success | failed.

    retry() puts a failed session back to input. on_complete fires once per
    attempt, on the first terminal transition.
    """
    client: PhonePeClient
    amount_paise: int
    order_id: str = field(default_factory=generate_order_id)
    mobile: Optional[str] = None
    on_complete: Optional[Callable[['PaymentSession'], None]] = None
    state: str = STATE_INPUT
    transaction_id: Optional[str] = None
    redirect_url: Optional[str] = None
    error: Optional[str] = None
    result: Optional[PaymentResult] = None
    poll_count: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def _finish(self, state: str, result: Optional[PaymentResult] = None, error: Optional[str] = None) -> bool:
        if self.is_terminal:
            return False
        self.state = state
        self.result = result or self.result
        self.error = error
        logger.info('payment %s finished: %s%s', self.transaction_id or self.order_id, state,
                    f' ({error})' if error else '')
        if self.on_complete is not None:
            self.on_complete(self)
        return True

    def start(self) -> PaymentResult:
        if self.state != STATE_INPUT:
            raise RuntimeError(f'cannot start payment from state {self.state!r}')
        self.state = STATE_INITIATING
        try:
            res = self.client.initiate_payment(self.order_id, self.amount_paise, self.mobile)
        except ValueError as exc:
            res = PaymentResult(False, CODE_INVALID_AMOUNT, str(exc))
            self._finish(STATE_FAILED, res, res.message)
            return res
        self.transaction_id = res.transaction_id or None
        if res.success:
            self.state = STATE_PENDING
            self.redirect_url = res.redirect_url
        else:
            self._finish(STATE_FAILED, res, res.message or 'Payment initiation failed')
        return res

    def check_once(self) -> str:
        """One status poll; returns the state afterwards."""
        if self.state != STATE_PENDING:
            return self.state
        self.poll_count += 1
        res = self.client.check_status(self.transaction_id)
        if res.code == CODE_SUCCESS:
            self._finish(STATE_SUCCESS, res)
        elif res.code in FAILURE_CODES:
            self._finish(STATE_FAILED, res, res.message or 'Payment failed')
        return self.state

    def poll(self, max_polls: int = 40, interval: float = 3.0, sleep: Callable[[float], None] = time.sleep) -> str:
        """Poll until terminal; after max_polls without an answer, fail once with a timeout."""
        while self.state == STATE_PENDING and self.poll_count < max_polls:
            sleep(interval)
            self.check_once()
        if self.state == STATE_PENDING:
            self._finish(STATE_FAILED, error=TIMEOUT_MESSAGE)
        return self.state

    def retry(self) -> None:
        if self.state != STATE_FAILED:
            raise RuntimeError('only failed payments can be retried')
        self.state = STATE_INPUT
        self.transaction_id = None
        self.redirect_url = None
        self.error = None
        self.result = None
        self.poll_count = 0
        self.order_id = generate_order_id()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'order_id': self.order_id,
            'amount_paise': self.amount_paise,
            'state': self.state,
            'transaction_id': self.transaction_id,
            'redirect_url': self.redirect_url,
            'error': self.error,
            'poll_count': self.poll_count,
        }

