from __future__ import annotations
from flask import Blueprint, request, abort
from sqlalchemy import select, update

from luminila import get_db
from luminila.decorators.activity import activity_log
from luminila.decorators.auth import require_permission
from luminila.models.product import ProductVariant
from luminila.models.vendor import Vendor, VendorProduct
from luminila.services.policy import current_user_id
from luminila.utils.filters import apply_filters
from luminila.utils.listing import list_response, entity_response, check_if_match
from luminila.utils.sorting import apply_multi_sort
from luminila.utils.validation import json_body, validate_status, require_fields, parse_int

vendors_bp = Blueprint('vendors', __name__)

VENDOR_FIELDS = ('contact_person', 'email', 'phone', 'gstin', 'address', 'payment_terms')


def _vendor_json(v: Vendor):
    out = {'id': v.id, 'name': v.name, 'status': v.status}
    out.update({k: getattr(v, k) for k in VENDOR_FIELDS})
    return out


def _vendor_product_json(vp: VendorProduct):
    return {
        'id': vp.id,
        'vendor_id': vp.vendor_id,
        'variant_id': vp.variant_id,
        'vendor_sku': vp.vendor_sku,
        'cost_price_paise': vp.cost_price_paise,
        'lead_time_days': vp.lead_time_days,
        'is_preferred': bool(vp.is_preferred),
    }


def _get_vendor(session, vendor_id: int) -> Vendor:
    v = session.get(Vendor, vendor_id)
    if not v:
        abort(404, description='Vendor not found')
    return v


def _prefetch_vendor(vendor_id: int):
    v = get_db().get(Vendor, vendor_id)
    if not v:
        return {}
    return {'name': v.name, 'email': v.email, 'status': v.status}


@vendors_bp.get('/vendors')
@require_permission('vendors', 'read')
def list_vendors():
    session = get_db()
    q = session.query(Vendor)
    filter_specs = {
        'name': {'op': lambda qu, v: qu.filter(Vendor.name.ilike(f'%{v}%'))},
        'status': {'op': lambda qu, v: qu.filter(Vendor.status == v), 'validate': lambda v: v in Vendor.ALL_STATUSES},
        'gstin': {'op': lambda qu, v: qu.filter(Vendor.gstin == v)},
    }
    q = apply_filters(q, filter_specs, request.args)
    allowed = {
        'name': Vendor.name,
        'status': Vendor.status,
        'updated_at': Vendor.updated_at,
        'id': Vendor.id,
    }
    q = apply_multi_sort(q, request.args.get('sort'), allowed, Vendor.id)
    return list_response(q, _vendor_json)


@vendors_bp.post('/vendors')
@require_permission('vendors', 'create')
@activity_log('VENDOR.CREATE', entity='Vendor', entity_id_key='id', meta_keys=['name', 'email'])
def create_vendor():
    session = get_db()
    data = json_body()
    require_fields(data, 'name')
    if session.execute(select(Vendor).where(Vendor.name == data['name'])).scalar_one_or_none():
        abort(400, description='vendor name exists')
    v = Vendor(name=data['name'], status=Vendor.STATUS_ACTIVE, created_by=current_user_id(),
               **{k: data.get(k) for k in VENDOR_FIELDS})
    session.add(v); session.commit()
    return _vendor_json(v), 201


@vendors_bp.get('/vendors/<int:vendor_id>')
@require_permission('vendors', 'read')
def get_vendor(vendor_id: int):
    v = _get_vendor(get_db(), vendor_id)
    return entity_response(v.id, _vendor_json(v), v.updated_at)


@vendors_bp.patch('/vendors/<int:vendor_id>')
@require_permission('vendors', 'update')
@activity_log('VENDOR.UPDATE', entity='Vendor', entity_id_key='id', diff_keys=['name', 'email'],
              pre_fetch=lambda a, kw: _prefetch_vendor(kw.get('vendor_id')), meta_keys=['name', 'email'])
def update_vendor(vendor_id: int):
    session = get_db()
    v = _get_vendor(session, vendor_id)
    check_if_match(v.id, v.updated_at)
    data = json_body()
    if 'name' in data:
        if not data['name']:
            abort(400, description='name cannot be empty')
        dup = session.execute(select(Vendor).where(Vendor.name == data['name'], Vendor.id != v.id)).scalar_one_or_none()
        if dup:
            abort(400, description='vendor name exists')
        v.name = data['name']
    for key in VENDOR_FIELDS:
        if key in data:
            setattr(v, key, data[key])
    session.commit(); return _vendor_json(v)


def _set_status(vendor_id: int, status: str):
    session = get_db()
    v = _get_vendor(session, vendor_id)
    if v.status == status:
        abort(400, description=f'already {status.lower()}')
    v.status = validate_status(status, Vendor.ALL_STATUSES, 'status')
    session.commit()
    return _vendor_json(v)


@vendors_bp.post('/vendors/<int:vendor_id>/activate')
@require_permission('vendors', 'update')
@activity_log('VENDOR.ACTIVATE', entity='Vendor', entity_id_key='id', diff_keys=['status'],
              pre_fetch=lambda a, kw: _prefetch_vendor(kw.get('vendor_id')), meta_keys=['status'])
def activate_vendor(vendor_id: int):
    return _set_status(vendor_id, Vendor.STATUS_ACTIVE)


@vendors_bp.post('/vendors/<int:vendor_id>/deactivate')
@require_permission('vendors', 'delete')
@activity_log('VENDOR.DEACTIVATE', entity='Vendor', entity_id_key='id', diff_keys=['status'],
              pre_fetch=lambda a, kw: _prefetch_vendor(kw.get('vendor_id')), meta_keys=['status'])
def deactivate_vendor(vendor_id: int):
    return _set_status(vendor_id, Vendor.STATUS_INACTIVE)


# --- Supplier mapping ---

@vendors_bp.get('/vendors/<int:vendor_id>/products')
@require_permission('vendors', 'read')
def list_vendor_products(vendor_id: int):
    session = get_db()
    _get_vendor(session, vendor_id)
    q = session.query(VendorProduct).filter(VendorProduct.vendor_id == vendor_id).order_by(VendorProduct.id)
    return list_response(q, _vendor_product_json)


@vendors_bp.put('/vendors/<int:vendor_id>/products/<int:variant_id>')
@require_permission('vendors', 'update')
@activity_log('VENDOR.PRODUCT.UPSERT', entity='Vendor', entity_id_key='vendor_id',
              meta_keys=['variant_id', 'cost_price_paise', 'is_preferred'])
def upsert_vendor_product(vendor_id: int, variant_id: int):
    session = get_db()
    _get_vendor(session, vendor_id)
    if not session.get(ProductVariant, variant_id):
        abort(404, description='Variant not found')
    data = json_body()
    vp = session.execute(select(VendorProduct).where(
        VendorProduct.vendor_id == vendor_id, VendorProduct.variant_id == variant_id)).scalar_one_or_none()
    created = vp is None
    if created:
        vp = VendorProduct(vendor_id=vendor_id, variant_id=variant_id, cost_price_paise=0, is_preferred=False)
        session.add(vp)
    if 'vendor_sku' in data:
        vp.vendor_sku = data['vendor_sku']
    if 'cost_price_paise' in data:
        vp.cost_price_paise = parse_int(data['cost_price_paise'], 'cost_price_paise', minimum=0)
    if 'lead_time_days' in data:
        vp.lead_time_days = parse_int(data['lead_time_days'], 'lead_time_days', minimum=0)
    if data.get('is_preferred'):
        # One preferred supplier per variant
        session.execute(
            update(VendorProduct)
            .where(VendorProduct.variant_id == variant_id, VendorProduct.vendor_id != vendor_id)
            .values(is_preferred=False)
        )
        vp.is_preferred = True
    elif 'is_preferred' in data:
        vp.is_preferred = False
    session.commit()
    return _vendor_product_json(vp), 201 if created else 200


@vendors_bp.delete('/vendors/<int:vendor_id>/products/<int:variant_id>')
@require_permission('vendors', 'update')
@activity_log('VENDOR.PRODUCT.REMOVE', entity='Vendor', entity_id_arg='vendor_id', meta_keys=['variant_id'])
def remove_vendor_product(vendor_id: int, variant_id: int):
    session = get_db()
    vp = session.execute(select(VendorProduct).where(
        VendorProduct.vendor_id == vendor_id, VendorProduct.variant_id == variant_id)).scalar_one_or_none()
    if not vp:
        abort(404, description='Mapping not found')
    session.delete(vp)
    session.commit()
    return {'vendor_id': vendor_id, 'variant_id': variant_id}


@vendors_bp.get('/suppliers/<int:variant_id>')
@require_permission('vendors', 'read')
def suppliers_for_variant(variant_id: int):
    """Vendors supplying a variant, preferred first then cheapest."""
    session = get_db()
    rows = session.execute(
        select(VendorProduct, Vendor)
        .join(Vendor, Vendor.id == VendorProduct.vendor_id)
        .where(VendorProduct.variant_id == variant_id, Vendor.status == Vendor.STATUS_ACTIVE)
        .order_by(VendorProduct.is_preferred.desc(), VendorProduct.cost_price_paise.asc())
    ).all()
    return {'data': [dict(_vendor_product_json(vp), vendor_name=v.name) for vp, v in rows]}
