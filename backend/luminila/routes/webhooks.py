from __future__ import annotations
import json
import logging

from flask import Blueprint, request, abort, current_app

from luminila import get_db
from luminila.decorators.auth import public_endpoint
from luminila.services.activity import add_activity
from luminila.services.shopify import verify_signature, process_webhook

logger = logging.getLogger(__name__)

webhooks_bp = Blueprint('webhooks', __name__)

SIGNATURE_HEADER = 'X-Shopify-Hmac-SHA256'
TOPIC_HEADER = 'X-Shopify-Topic'


@webhooks_bp.post('/shopify')
@public_endpoint
def shopify_webhook():
    """Signed Shopify push. The signature is checked on the raw bytes before anything is parsed."""
    raw = request.get_data(cache=True)
    if not verify_signature(current_app.config.get('SHOPIFY_WEBHOOK_SECRET'), raw,
                            request.headers.get(SIGNATURE_HEADER)):
        logger.warning('rejected shopify webhook with missing or invalid signature')
        abort(401, description='Invalid webhook signature')
    topic = request.headers.get(TOPIC_HEADER, '')
    try:
        payload = json.loads(raw.decode('utf-8') or '{}')
    except (UnicodeDecodeError, ValueError):
        abort(400, description='Webhook body must be JSON')
    if not isinstance(payload, dict):
        abort(400, description='Webhook body must be a JSON object')
    session = get_db()
    try:
        result = process_webhook(session, topic, payload)
    except ValueError as e:
        abort(400, description=str(e))
    add_activity('WEBHOOK.SHOPIFY', 'Sale' if 'sale_id' in result else None, result.get('sale_id'),
                 meta={'topic': topic, **result})
    session.commit()
    logger.info('shopify webhook %s processed: %s', topic, result)
    return {'received': True, 'topic': topic, **result}
