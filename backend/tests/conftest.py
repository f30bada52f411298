import os, sys, tempfile, pytest
# Ensure the backend directory is on path so 'luminila', 'scripts' and 'tests' can be imported
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
from luminila import create_app, get_db
from luminila.models.authz import Base
# Import all model modules to ensure tables are registered before create_all
import luminila.models.activity  # noqa: F401
import luminila.models.banking  # noqa: F401
import luminila.models.challan  # noqa: F401
import luminila.models.credit_note  # noqa: F401
import luminila.models.customer  # noqa: F401
import luminila.models.discount  # noqa: F401
import luminila.models.invoice  # noqa: F401
import luminila.models.loyalty  # noqa: F401
import luminila.models.product  # noqa: F401
import luminila.models.purchase_order  # noqa: F401
import luminila.models.register  # noqa: F401
import luminila.models.sale  # noqa: F401
import luminila.models.settings  # noqa: F401
import luminila.models.vendor  # noqa: F401

SHOPIFY_SECRET = 'shpss_test_secret'
WHATSAPP_TOKEN = 'wa-events-token'


@pytest.fixture(scope='session', autouse=True)
def app_instance():
    os.environ['DATABASE_URL'] = 'sqlite+pysqlite:///:memory:'
    cache_dir = tempfile.mkdtemp(prefix='luminila-cache-')
    app = create_app({
        'TESTING': True,
        'JWT_SECRET_KEY': 'test-secret-key-with-enough-length-for-hs256',
        'LOCAL_CACHE_DIR': cache_dir,
        'SELLER_STATE_CODE': '27',
        'SHOPIFY_WEBHOOK_SECRET': SHOPIFY_SECRET,
        'WHATSAPP_EVENTS_TOKEN': WHATSAPP_TOKEN,
        'WHATSAPP_SERVER_URL': 'http://wa.test',
        'PHONEPE_MERCHANT_ID': '',
        'PHONEPE_SALT_KEY': '',
    })
    # After app and blueprints are registered, ensure all tables exist
    with app.app_context():
        engine = get_db().get_bind()
        Base.metadata.create_all(engine)
    yield app


@pytest.fixture()
def client(app_instance):
    return app_instance.test_client()


@pytest.fixture()
def admin_headers(app_instance):
    """Bearer headers for a superuser (bypasses every permission check)."""
    from tests.test_utils_seed import ensure_user
    from tests.test_lifecycle_helpers import jwt_headers
    user = ensure_user('root@test.local', name='Root', is_superuser=True)
    return jwt_headers(app_instance, user.id)
