"""Test seeding utilities to reduce duplication.

These helpers centralize creation of users, roles with permission maps, catalog
rows and customers. All of them are idempotent on their natural key so tests
sharing the in-memory database can call them freely.
"""
from typing import Dict, Iterable, Optional, Tuple
from luminila import get_db
from luminila.models.authz import User, Role, UserRole
from sqlalchemy import select


def ensure_user(email: str, name: Optional[str] = None, password: str = 'pw', is_superuser: bool = False) -> User:
    session = get_db()
    u = session.query(User).filter_by(email=email).one_or_none()
    if not u:
        u = User(name=name or email.split('@')[0], email=email, password_hash='', is_active=True,
                 is_superuser=is_superuser)
        u.set_password(password)
        session.add(u); session.commit(); session.refresh(u)
    return u


def ensure_role(name: str, permissions: Optional[Dict[str, Iterable[str]]] = None, is_admin_role: bool = False,
                is_system: bool = False) -> Role:
    session = get_db()
    role = session.query(Role).filter_by(name=name).one_or_none()
    perms = {res: sorted(set(actions)) for res, actions in (permissions or {}).items()}
    if not role:
        role = Role(name=name, description=name, permissions=perms, is_admin_role=is_admin_role,
                    is_system=is_system)
        session.add(role)
    else:
        role.permissions = perms
    session.commit()
    return role


def ensure_user_role_assignment(user: User, role: Role):
    session = get_db()
    if not session.query(UserRole).filter_by(user_id=user.id, role_id=role.id).one_or_none():
        session.add(UserRole(user_id=user.id, role_id=role.id)); session.commit()


def seed_user_with_permissions(email: str, permissions: Dict[str, Iterable[str]], role_name: Optional[str] = None) -> User:
    """User holding exactly one custom role with the given permission map."""
    user = ensure_user(email)
    role = ensure_role(role_name or f'role-{email}', permissions)
    ensure_user_role_assignment(user, role)
    return user


# ---------------- Domain helpers (Catalog / Customers) ---------------- #
def ensure_product(sku: str, name: Optional[str] = None, base_price_paise: int = 100_000, gst_rate_bp: int = 300,
                   stock: int = 10, variant_name: str = 'Default', **variant_fields) -> Tuple[object, object]:
    """Idempotently ensure a Product with one variant exists (by SKU). Returns (product, variant)."""
    from luminila.models.product import Product, ProductVariant  # lazy import to avoid test import cycles
    session = get_db()
    prod = session.execute(select(Product).where(Product.sku == sku)).scalar_one_or_none()
    if not prod:
        prod = Product(sku=sku, name=name or sku, base_price_paise=base_price_paise, cost_price_paise=0,
                       gst_rate_bp=gst_rate_bp, is_active=True)
        session.add(prod); session.flush()
    variant = session.execute(select(ProductVariant).where(
        ProductVariant.product_id == prod.id, ProductVariant.variant_name == variant_name)).scalar_one_or_none()
    if not variant:
        variant = ProductVariant(product_id=prod.id, variant_name=variant_name, stock_level=stock,
                                 price_adjustment_paise=0, low_stock_threshold=5, is_active=True, **variant_fields)
        session.add(variant)
    session.commit()
    return prod, variant


def ensure_customer(name: str, phone: Optional[str] = None, state_code: Optional[str] = None):
    from luminila.models.customer import Customer  # lazy import
    session = get_db()
    c = None
    if phone:
        c = session.execute(select(Customer).where(Customer.phone == phone)).scalar_one_or_none()
    if not c:
        c = Customer(name=name, phone=phone, state_code=state_code, total_spent_paise=0, total_orders=0,
                     is_active=True)
        session.add(c); session.commit(); session.refresh(c)
    return c


def unique_phone() -> str:
    """Ten-digit mobile number that no other test uses."""
    import uuid
    return '9' + str(uuid.uuid4().int)[:9]


def stock_of(variant_id: int) -> int:
    from luminila.models.product import ProductVariant
    return get_db().execute(select(ProductVariant.stock_level).where(ProductVariant.id == variant_id)).scalar_one()


__all__ = [
    'ensure_user', 'ensure_role', 'ensure_user_role_assignment', 'seed_user_with_permissions',
    'ensure_product', 'ensure_customer', 'stock_of', 'unique_phone',
]
