from flask import Flask
from werkzeug.exceptions import HTTPException
from flask_jwt_extended import JWTManager
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import sessionmaker, scoped_session
from dotenv import load_dotenv
from typing import Optional, Dict, Any

from .config.settings import load_settings
from .config.log import configure_logging

load_dotenv()

db_engine = None
SessionLocal = None
jwt = JWTManager()


def create_app(config: Optional[Dict[str, Any]] = None):
    global db_engine, SessionLocal
    app = Flask(__name__)

    # defaults < environment < explicit overrides (tests, scripts)
    app.config.update(load_settings(config))
    configure_logging(str(app.config['LOG_LEVEL']))

    # Database
    db_url = app.config['DATABASE_URL']
    if db_url.endswith(':memory:'):
        # Ensure a single shared in-memory SQLite database across all sessions
        db_engine = create_engine(
            db_url,
            echo=False,
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        db_engine = create_engine(db_url, echo=False, future=True)
    SessionLocal = scoped_session(sessionmaker(bind=db_engine, expire_on_commit=False, autoflush=False))

    jwt.init_app(app)

    from .routes.iam import iam_bp
    from .routes.catalog import cat_bp
    from .routes.customers import cust_bp
    from .routes.vendors import vendors_bp
    from .routes.purchase_orders import po_bp
    from .routes.sales import sales_bp
    from .routes.invoices import inv_bp
    from .routes.returns import ret_bp
    from .routes.banking import bank_bp
    from .routes.loyalty import loyalty_bp
    from .routes.settings import settings_bp
    from .routes.activity import activity_bp
    from .routes.reports import rpt_bp
    from .routes.webhooks import webhooks_bp
    from .routes.payments import pay_bp
    from .routes.whatsapp import wa_bp
    from .routes.challans import challans_bp
    from .routes.register import register_bp
    from .routes.discounts import discounts_bp
    app.register_blueprint(iam_bp, url_prefix='/iam')
    app.register_blueprint(cat_bp, url_prefix='/catalog')
    app.register_blueprint(cust_bp, url_prefix='/customers')
    app.register_blueprint(vendors_bp, url_prefix='/po')  # vendors under /po namespace (purchase related)
    app.register_blueprint(po_bp, url_prefix='/po')
    app.register_blueprint(sales_bp, url_prefix='/sales')
    app.register_blueprint(inv_bp, url_prefix='/invoices')
    app.register_blueprint(ret_bp, url_prefix='/returns')
    app.register_blueprint(bank_bp, url_prefix='/banking')
    app.register_blueprint(loyalty_bp, url_prefix='/loyalty')
    app.register_blueprint(settings_bp, url_prefix='/settings')
    app.register_blueprint(activity_bp, url_prefix='/activity')
    app.register_blueprint(rpt_bp, url_prefix='/reports')
    app.register_blueprint(webhooks_bp, url_prefix='/webhooks')
    app.register_blueprint(pay_bp, url_prefix='/payments')
    app.register_blueprint(wa_bp, url_prefix='/whatsapp')
    app.register_blueprint(challans_bp, url_prefix='/challans')
    app.register_blueprint(register_bp, url_prefix='/register')
    app.register_blueprint(discounts_bp, url_prefix='/discounts')

    @app.route('/healthz')
    def health():
        return {'status': 'ok'}

    # Unified error handler producing standardized JSON shape
    @app.errorhandler(Exception)
    def handle_errors(e):  # type: ignore
        # Pending writes of a failed request must never leak into the next commit
        SessionLocal.rollback()
        if isinstance(e, HTTPException):
            payload = {
                'error': {
                    'status': e.code,
                    'title': e.name,
                    'detail': e.description,
                }
            }
            details = getattr(e, 'details', None)
            if callable(details):
                payload['error'].update(details())
            return payload, e.code
        # Unhandled exception
        app.logger.exception('Unhandled exception')
        return {
            'error': {
                'status': 500,
                'title': 'Internal Server Error',
                'detail': 'Unexpected error'
            }
        }, 500

    return app


def get_db():
    return SessionLocal()
