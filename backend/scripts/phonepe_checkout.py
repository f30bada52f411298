#!/usr/bin/env python
"""Drive one PhonePe checkout from the terminal.

Credentials resolve the same way the API does: flags > stored `phonepe`
setting > PHONEPE_* environment.

Usage:
    python backend/scripts/phonepe_checkout.py --amount 1499.00 --mobile 9876543210
    python backend/scripts/phonepe_checkout.py --status LMLA_ORD_..._1700000000000
"""
from __future__ import annotations
import os, sys, argparse, json

# Allow running from repo root
sys.path.append(os.path.abspath('backend'))

from luminila import create_app, get_db  # type: ignore
from luminila.integrations.phonepe import (
    PhonePeClient, PaymentSession, resolve_config, STATE_SUCCESS, STATE_PENDING,
)
from luminila.services.settings_store import get_override
from luminila.services.totals import to_paise

EXIT_FAILED = 1
EXIT_NOT_CONFIGURED = 3


def parse_args(argv=None):
    p = argparse.ArgumentParser(description='Start and poll a PhonePe pay-page checkout')
    group = p.add_mutually_exclusive_group(required=True)
    group.add_argument('--amount', help='Amount in rupees, e.g. 1499.00')
    group.add_argument('--status', metavar='TXN_ID', help='Only check the status of an existing transaction')
    p.add_argument('--order-id', help='Merchant order id (generated when omitted)')
    p.add_argument('--mobile', help='Customer mobile number')
    p.add_argument('--merchant-id')
    p.add_argument('--salt-key')
    p.add_argument('--salt-index')
    p.add_argument('--env', choices=['UAT', 'PROD'])
    p.add_argument('--max-polls', type=int, default=40)
    p.add_argument('--interval', type=float, default=3.0, help='Seconds between status polls')
    p.add_argument('--no-poll', action='store_true', help='Print the redirect URL and exit')
    return p.parse_args(argv)


def explicit_config(args):
    return {
        'merchant_id': args.merchant_id,
        'salt_key': args.salt_key,
        'salt_index': args.salt_index,
        'environment': args.env,
    }


def run(client: PhonePeClient, args) -> int:
    if args.status:
        result = client.check_status(args.status)
        print(json.dumps(result.to_dict(), indent=2))
        return 0 if result.success else EXIT_FAILED

    def report(session):
        print(f'[{session.state.upper()}] {session.error or "payment confirmed"}')

    kwargs = {'order_id': args.order_id} if args.order_id else {}
    session = PaymentSession(client, to_paise(args.amount), mobile=args.mobile, on_complete=report, **kwargs)
    session.start()
    if session.state != STATE_PENDING:
        return EXIT_FAILED
    print(f'[INFO] Transaction {session.transaction_id}')
    print(f'[INFO] Open to pay: {session.redirect_url}')
    if args.no_poll:
        return 0
    session.poll(max_polls=args.max_polls, interval=args.interval)
    print(json.dumps(session.to_dict(), indent=2))
    return 0 if session.state == STATE_SUCCESS else EXIT_FAILED


def main(argv=None) -> int:
    args = parse_args(argv)
    app = create_app()
    with app.app_context():
        session = get_db()
        try:
            config = resolve_config(explicit_config(args), get_override(session, 'phonepe'), app.config)
        finally:
            session.close()
    if not config.is_configured:
        print('[ERROR] PhonePe is not configured (merchant id, salt key and salt index are required).')
        return EXIT_NOT_CONFIGURED
    print(f'[INFO] PhonePe {config.environment} merchant {config.merchant_id}')
    client = PhonePeClient(config)
    try:
        return run(client, args)
    finally:
        client.close()


if __name__ == '__main__':
    sys.exit(main())
