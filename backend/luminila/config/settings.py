"""Application settings.

Values are resolved once per app in a single order:
    built-in defaults < process environment (.env loaded via python-dotenv) < explicit overrides

Integration clients never read the environment themselves; they receive the
resolved values (see luminila.integrations.phonepe.resolve_config).
"""
from __future__ import annotations
import os
from typing import Any, Dict, Mapping, Optional

DEFAULTS: Dict[str, Any] = {
    'DATABASE_URL': 'sqlite:///dev.db',
    'JWT_SECRET_KEY': 'dev-secret',
    'LOG_LEVEL': 'INFO',
    'LOCAL_CACHE_DIR': '.luminila-cache',
    'SELLER_STATE_CODE': '27',
    'SHOPIFY_WEBHOOK_SECRET': '',
    'WHATSAPP_SERVER_URL': 'http://127.0.0.1:21465',
    'WHATSAPP_SESSION': 'luminila',
    'WHATSAPP_EVENTS_TOKEN': '',
    'PHONEPE_MERCHANT_ID': '',
    'PHONEPE_SALT_KEY': '',
    'PHONEPE_SALT_INDEX': '1',
    'PHONEPE_ENV': 'UAT',
    'PHONEPE_REDIRECT_URL': '',
    'PHONEPE_CALLBACK_URL': '',
}


def load_settings(overrides: Optional[Mapping[str, Any]] = None, environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    env = os.environ if environ is None else environ
    settings = dict(DEFAULTS)
    for key in DEFAULTS:
        if key in env and env[key] != '':
            settings[key] = env[key]
    if overrides:
        settings.update(overrides)
    return settings


__all__ = ['DEFAULTS', 'load_settings']
