from __future__ import annotations
import logging

from flask import Blueprint, abort, current_app

from luminila import get_db
from luminila.decorators.activity import activity_log
from luminila.decorators.auth import require_permission
from luminila.integrations.phonepe import (
    PhonePeClient, PhonePeConfig, resolve_config, generate_order_id, CODE_NOT_CONFIGURED,
)
from luminila.models.sale import Sale
from luminila.services.settings_store import get_override
from luminila.utils.validation import json_body, require_fields, parse_int

logger = logging.getLogger(__name__)

pay_bp = Blueprint('payments', __name__)


def current_config() -> PhonePeConfig:
    """Persisted gateway settings over the PHONEPE_* config defaults."""
    return resolve_config(None, get_override(get_db(), 'phonepe'), current_app.config)


def make_client(config: PhonePeConfig) -> PhonePeClient:
    return PhonePeClient(config)


def _failure(result):
    if result.code == CODE_NOT_CONFIGURED:
        abort(503, description=result.message)
    abort(502, description=f'{result.code}: {result.message}')


@pay_bp.get('/phonepe/config')
@require_permission('settings', 'read')
def phonepe_config():
    return current_config().public()


@pay_bp.post('/phonepe/initiate')
@require_permission('sales', 'create')
@activity_log('PAYMENT.INITIATE', entity='Payment', entity_id_key='transaction_id',
              meta_keys=['order_id', 'amount_paise', 'code'])
def initiate():
    """Start a pay-page checkout; answers the redirect URL the customer must open."""
    data = json_body()
    require_fields(data, 'amount_paise')
    amount = parse_int(data['amount_paise'], 'amount_paise', minimum=1)
    order_id = data.get('order_id')
    if data.get('sale_id') not in (None, ''):
        sale = get_db().get(Sale, parse_int(data['sale_id'], 'sale_id'))
        if not sale:
            abort(400, description='sale not found')
        order_id = order_id or sale.sale_number
    order_id = order_id or generate_order_id()
    client = make_client(current_config())
    try:
        result = client.initiate_payment(order_id, amount, mobile=data.get('mobile'))
    finally:
        client.close()
    if not result.success:
        _failure(result)
    logger.info('phonepe checkout %s started for order %s', result.transaction_id, order_id)
    return dict(result.to_dict(), order_id=order_id, amount_paise=amount)


@pay_bp.get('/phonepe/status/<txn_id>')
@require_permission('sales', 'read')
def status(txn_id: str):
    client = make_client(current_config())
    try:
        result = client.check_status(txn_id)
    finally:
        client.close()
    if not result.success and result.code == CODE_NOT_CONFIGURED:
        _failure(result)
    return result.to_dict()
