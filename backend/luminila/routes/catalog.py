from __future__ import annotations
from flask import Blueprint, request, abort, current_app, make_response
from sqlalchemy import select

from luminila import get_db
from luminila.decorators.activity import activity_log
from luminila.decorators.auth import require_permission
from luminila.models.product import Category, Product, ProductAttribute, ProductAttributeValue, ProductVariant
from luminila.services.activity import add_activity
from luminila.services.atomic import adjust_stock
from luminila.services.attributes import AttributeStore, attribute_json, checked_options, coerce_value
from luminila.services.categories import CategoryStore, LocalCache, build_category_tree, category_json, slugify
from luminila.services.csv_import import parse_csv, validate_product_rows, write_csv, PRODUCT_COLUMNS
from luminila.services.policy import current_user_id
from luminila.utils.filters import apply_filters
from luminila.utils.listing import list_response, entity_response, check_if_match
from luminila.utils.sorting import apply_multi_sort
from luminila.utils.validation import json_body, require_fields, parse_int

cat_bp = Blueprint('catalog', __name__)


def _variant_json(v: ProductVariant):
    return {
        'id': v.id,
        'product_id': v.product_id,
        'variant_name': v.variant_name,
        'sku_suffix': v.sku_suffix,
        'price_adjustment_paise': v.price_adjustment_paise,
        'unit_price_paise': v.unit_price_paise,
        'stock_level': v.stock_level,
        'low_stock_threshold': v.low_stock_threshold,
        'size': v.size,
        'color': v.color,
        'material': v.material,
        'shopify_inventory_id': v.shopify_inventory_id,
        'is_active': bool(v.is_active),
    }


def _variants_of(product_id: int, include_inactive: bool = False):
    q = select(ProductVariant).where(ProductVariant.product_id == product_id)
    if not include_inactive:
        q = q.where(ProductVariant.is_active.is_(True))
    return get_db().execute(q.order_by(ProductVariant.id)).scalars().all()


def _product_json(p: Product, with_variants: bool = False):
    out = {
        'id': p.id,
        'sku': p.sku,
        'name': p.name,
        'description': p.description,
        'category_id': p.category_id,
        'base_price_paise': p.base_price_paise,
        'cost_price_paise': p.cost_price_paise,
        'gst_rate_bp': p.gst_rate_bp,
        'hsn_code': p.hsn_code,
        'barcode': p.barcode,
        'is_active': bool(p.is_active),
        'updated_at': p.updated_at.isoformat() if p.updated_at else None,
    }
    if with_variants:
        out['variants'] = [_variant_json(v) for v in _variants_of(p.id)]
    return out


def _category_store() -> CategoryStore:
    return CategoryStore(get_db, LocalCache(current_app.config['LOCAL_CACHE_DIR']))


def _attribute_store() -> AttributeStore:
    return AttributeStore(get_db, LocalCache(current_app.config['LOCAL_CACHE_DIR'], 'attributes.json'))


def _cached_list(store, label, shape=None):
    result = store.list(include_inactive=request.args.get('include_inactive') == 'true')
    if result.degraded and request.args.get('allow_stale') == 'false':
        abort(503, description=f'{label} data unavailable')
    resp = make_response({
        'data': shape(result.items) if shape else result.items,
        'source': result.source,
        'degraded': result.degraded,
        'pending': len(result.pending),
    })
    resp.headers.update(result.headers())
    return resp


def _cached_create(store, data):
    try:
        result = store.create(data)
    except ValueError as e:
        abort(400, description=str(e))
    body = dict(result.items[0], source=result.source, degraded=result.degraded)
    if result.degraded:
        resp = make_response(body, 202)
    else:
        get_db().commit()
        resp = make_response(body, 201)
    resp.headers.update(result.headers())
    return resp


def _cached_sync(store):
    result = store.sync()
    if result.error:
        abort(503, description=f'Database unavailable; {result.remaining} queued write(s) kept')
    return {'applied': result.applied, 'skipped': result.skipped, 'remaining': result.remaining}


def _get_product(session, product_id: int) -> Product:
    p = session.get(Product, product_id)
    if not p:
        abort(404, description='Product not found')
    return p


def _get_variant(session, variant_id: int) -> ProductVariant:
    v = session.get(ProductVariant, variant_id)
    if not v:
        abort(404, description='Variant not found')
    return v


# --- Categories ---

@cat_bp.get('/categories')
@require_permission('products', 'read')
def list_categories():
    tree = build_category_tree if request.args.get('tree') == 'true' else None
    return _cached_list(_category_store(), 'Category', tree)


@cat_bp.post('/categories')
@require_permission('products', 'create')
@activity_log('CATEGORY.CREATE', entity='Category', entity_id_key='id', meta_keys=['name', 'source'])
def create_category():
    data = json_body()
    require_fields(data, 'name')
    return _cached_create(_category_store(), data)


@cat_bp.post('/categories/sync')
@require_permission('products', 'create')
@activity_log('CATEGORY.SYNC', entity='Category', entity_id_key=None, meta_keys=['applied', 'skipped', 'remaining'])
def sync_categories():
    """Replay category creates queued while the database was unreachable."""
    return _cached_sync(_category_store())


@cat_bp.patch('/categories/<int:category_id>')
@require_permission('products', 'update')
@activity_log('CATEGORY.UPDATE', entity='Category', entity_id_key='id', meta_keys=['name'])
def update_category(category_id: int):
    session = get_db()
    c = session.get(Category, category_id)
    if not c:
        abort(404, description='Category not found')
    check_if_match(c.id, c.updated_at)
    data = json_body()
    if 'parent_id' in data:
        parent_id = data['parent_id']
        if parent_id == c.id:
            abort(400, description='category cannot be its own parent')
        if parent_id is not None and not session.get(Category, parent_id):
            abort(400, description='parent category not found')
        c.parent_id = parent_id
    for key in ('name', 'description', 'sort_order', 'is_active'):
        if key in data:
            setattr(c, key, data[key])
    if 'slug' in data:
        c.slug = slugify(data['slug'])
    session.commit()
    return category_json(c)


@cat_bp.delete('/categories/<int:category_id>')
@require_permission('products', 'delete')
@activity_log('CATEGORY.DEACTIVATE', entity='Category', entity_id_key='id')
def delete_category(category_id: int):
    session = get_db()
    c = session.get(Category, category_id)
    if not c:
        abort(404, description='Category not found')
    c.is_active = False
    session.commit()
    return {'id': c.id, 'is_active': False}


# --- Attributes ---

def _get_attribute(session, attribute_id: int) -> ProductAttribute:
    a = session.get(ProductAttribute, attribute_id)
    if not a:
        abort(404, description='Attribute not found')
    return a


@cat_bp.get('/attributes')
@require_permission('products', 'read')
def list_attributes():
    return _cached_list(_attribute_store(), 'Attribute')


@cat_bp.post('/attributes')
@require_permission('products', 'create')
@activity_log('ATTRIBUTE.CREATE', entity='ProductAttribute', entity_id_key='id', meta_keys=['name', 'source'])
def create_attribute():
    data = json_body()
    require_fields(data, 'name')
    return _cached_create(_attribute_store(), data)


@cat_bp.post('/attributes/sync')
@require_permission('products', 'create')
@activity_log('ATTRIBUTE.SYNC', entity='ProductAttribute', entity_id_key=None,
              meta_keys=['applied', 'skipped', 'remaining'])
def sync_attributes():
    return _cached_sync(_attribute_store())


@cat_bp.patch('/attributes/<int:attribute_id>')
@require_permission('products', 'update')
@activity_log('ATTRIBUTE.UPDATE', entity='ProductAttribute', entity_id_key='id', meta_keys=['name'])
def update_attribute(attribute_id: int):
    session = get_db()
    a = _get_attribute(session, attribute_id)
    check_if_match(a.id, a.updated_at)
    data = json_body()
    kind = data.get('attribute_type', a.attribute_type)
    try:
        if 'attribute_type' in data or 'options' in data:
            a.options = checked_options(kind, data.get('options', a.options))
            a.attribute_type = kind
        if 'default_value' in data:
            a.default_value = None if data['default_value'] in (None, '') else coerce_value(a, data['default_value'])
    except ValueError as e:
        abort(400, description=str(e))
    for key in ('name', 'is_required', 'is_filterable', 'is_visible_on_product', 'sort_order', 'is_active'):
        if key in data:
            setattr(a, key, data[key])
    if 'slug' in data:
        slug = slugify(data['slug'], fallback='attribute')
        clash = session.execute(select(ProductAttribute.id).where(
            ProductAttribute.slug == slug, ProductAttribute.id != a.id)).first()
        if clash:
            abort(400, description='attribute slug in use')
        a.slug = slug
    session.commit()
    return attribute_json(a)


@cat_bp.delete('/attributes/<int:attribute_id>')
@require_permission('products', 'delete')
@activity_log('ATTRIBUTE.DEACTIVATE', entity='ProductAttribute', entity_id_key='id')
def delete_attribute(attribute_id: int):
    session = get_db()
    a = _get_attribute(session, attribute_id)
    a.is_active = False
    session.commit()
    return {'id': a.id, 'is_active': False}


def _product_attribute_values(session, product_id: int):
    rows = session.execute(
        select(ProductAttribute, ProductAttributeValue.value)
        .outerjoin(ProductAttributeValue, (ProductAttributeValue.attribute_id == ProductAttribute.id)
                   & (ProductAttributeValue.product_id == product_id))
        .where(ProductAttribute.is_active.is_(True))
        .order_by(ProductAttribute.sort_order, ProductAttribute.name)
    ).all()
    return {
        'product_id': product_id,
        'values': {a.slug: v for a, v in rows if v is not None},
        'attributes': [dict(attribute_json(a), value=v if v is not None else a.default_value) for a, v in rows],
    }


@cat_bp.get('/products/<int:product_id>/attributes')
@require_permission('products', 'read')
def get_product_attributes(product_id: int):
    session = get_db()
    _get_product(session, product_id)
    return _product_attribute_values(session, product_id)


@cat_bp.put('/products/<int:product_id>/attributes')
@require_permission('products', 'update')
@activity_log('PRODUCT.ATTRIBUTES.SET', entity='Product', entity_id_key='product_id',
              meta_builder=lambda data, rv, a, kw: {'slugs': sorted((data.get('values') or {}).keys())})
def set_product_attributes(product_id: int):
    """Merge {slug: value} into the product's values; null removes a value."""
    session = get_db()
    _get_product(session, product_id)
    incoming = json_body().get('values')
    if not isinstance(incoming, dict):
        abort(400, description='values must be an object')
    attrs = {a.slug: a for a in session.execute(
        select(ProductAttribute).where(ProductAttribute.is_active.is_(True))).scalars()}
    unknown = sorted(set(incoming) - set(attrs))
    if unknown:
        abort(400, description=f'Unknown attributes: {unknown}')
    existing = {v.attribute_id: v for v in session.execute(
        select(ProductAttributeValue).where(ProductAttributeValue.product_id == product_id)).scalars()}
    for slug, raw in incoming.items():
        attr = attrs[slug]
        row = existing.get(attr.id)
        if raw is None or raw == '':
            if row is not None:
                session.delete(row)
                existing.pop(attr.id)
            continue
        try:
            text = coerce_value(attr, raw)
        except ValueError as e:
            abort(400, description=str(e))
        if row is None:
            existing[attr.id] = ProductAttributeValue(product_id=product_id, attribute_id=attr.id, value=text)
            session.add(existing[attr.id])
        else:
            row.value = text
    for attr in attrs.values():
        if attr.is_required and attr.id not in existing and not attr.default_value:
            abort(400, description=f'{attr.slug} required')
    session.commit()
    return _product_attribute_values(session, product_id)


# --- Products ---

PRODUCT_FILTERS = {
    'q': {'op': lambda q, v: q.filter((Product.name.ilike(f'%{v}%')) | (Product.sku.ilike(f'%{v}%')))},
    'sku': {'op': lambda q, v: q.filter(Product.sku == v)},
    'barcode': {'op': lambda q, v: q.filter(Product.barcode == v)},
    'category_id': {'coerce': int, 'op': lambda q, v: q.filter(Product.category_id == v)},
    'is_active': {'coerce': 'bool', 'op': lambda q, v: q.filter(Product.is_active.is_(v))},
    'min_price_paise': {'coerce': int, 'op': lambda q, v: q.filter(Product.base_price_paise >= v)},
    'max_price_paise': {'coerce': int, 'op': lambda q, v: q.filter(Product.base_price_paise <= v)},
}

PRODUCT_SORTS = {
    'name': Product.name,
    'sku': Product.sku,
    'base_price_paise': Product.base_price_paise,
    'updated_at': Product.updated_at,
    'id': Product.id,
}


@cat_bp.get('/products')
@require_permission('products', 'read')
def list_products():
    session = get_db()
    q = session.query(Product)
    if 'is_active' not in request.args:
        q = q.filter(Product.is_active.is_(True))
    q = apply_filters(q, PRODUCT_FILTERS, request.args)
    q = apply_multi_sort(q, request.args.get('sort'), PRODUCT_SORTS, Product.id)
    with_variants = request.args.get('include') == 'variants'
    return list_response(q, lambda p: _product_json(p, with_variants))


@cat_bp.get('/products/<int:product_id>')
@require_permission('products', 'read')
def get_product(product_id: int):
    p = _get_product(get_db(), product_id)
    return entity_response(p.id, _product_json(p, with_variants=True), p.updated_at)


def _apply_variant_fields(v: ProductVariant, data: dict):
    for key in ('variant_name', 'sku_suffix', 'size', 'color', 'material', 'shopify_inventory_id', 'is_active'):
        if key in data:
            setattr(v, key, data[key])
    if 'price_adjustment_paise' in data:
        v.price_adjustment_paise = parse_int(data['price_adjustment_paise'], 'price_adjustment_paise')
    if 'low_stock_threshold' in data:
        v.low_stock_threshold = parse_int(data['low_stock_threshold'], 'low_stock_threshold', minimum=0)


def _new_variant(product: Product, data: dict) -> ProductVariant:
    require_fields(data, 'variant_name')
    v = ProductVariant(
        product=product,
        variant_name=data['variant_name'],
        stock_level=parse_int(data.get('stock_level'), 'stock_level', minimum=0, default=0),
        price_adjustment_paise=0,
        low_stock_threshold=5,
        is_active=True,
    )
    _apply_variant_fields(v, {k: val for k, val in data.items() if k != 'variant_name'})
    return v


@cat_bp.post('/products')
@require_permission('products', 'create')
@activity_log('PRODUCT.CREATE', entity='Product', entity_id_key='id', meta_keys=['sku', 'name'])
def create_product():
    data = json_body()
    require_fields(data, 'sku', 'name', 'base_price_paise')
    session = get_db()
    if session.execute(select(Product.id).where(Product.sku == data['sku'])).first():
        abort(400, description='sku in use')
    p = Product(
        sku=data['sku'],
        name=data['name'],
        description=data.get('description'),
        category_id=data.get('category_id'),
        base_price_paise=parse_int(data['base_price_paise'], 'base_price_paise', minimum=1),
        cost_price_paise=parse_int(data.get('cost_price_paise'), 'cost_price_paise', minimum=0, default=0),
        gst_rate_bp=parse_int(data.get('gst_rate_bp'), 'gst_rate_bp', minimum=0, default=300),
        hsn_code=data.get('hsn_code'),
        barcode=data.get('barcode'),
        is_active=True,
        created_by=current_user_id(),
    )
    session.add(p)
    variants = data.get('variants') or [{'variant_name': 'Default', 'stock_level': data.get('stock_level', 0)}]
    if not isinstance(variants, list):
        abort(400, description='variants must be a list')
    names = [str(v.get('variant_name')) for v in variants]
    if len(set(names)) != len(names):
        abort(400, description='variant names must be unique')
    for vdata in variants:
        session.add(_new_variant(p, vdata))
    session.commit()
    return _product_json(p, with_variants=True), 201


def _prefetch_product(product_id: int):
    p = get_db().get(Product, product_id)
    if not p:
        return {}
    return {'name': p.name, 'base_price_paise': p.base_price_paise, 'gst_rate_bp': p.gst_rate_bp}


@cat_bp.patch('/products/<int:product_id>')
@require_permission('products', 'update')
@activity_log(
    'PRODUCT.UPDATE',
    entity='Product',
    entity_id_key='id',
    diff_keys=['name', 'base_price_paise', 'gst_rate_bp'],
    pre_fetch=lambda a, kw: _prefetch_product(kw.get('product_id')),
)
def update_product(product_id: int):
    session = get_db()
    p = _get_product(session, product_id)
    check_if_match(p.id, p.updated_at)
    data = json_body()
    if 'sku' in data and data['sku'] != p.sku:
        if session.execute(select(Product.id).where(Product.sku == data['sku'], Product.id != p.id)).first():
            abort(400, description='sku in use')
        p.sku = data['sku']
    for key in ('name', 'description', 'category_id', 'hsn_code', 'barcode', 'is_active'):
        if key in data:
            setattr(p, key, data[key])
    if 'base_price_paise' in data:
        p.base_price_paise = parse_int(data['base_price_paise'], 'base_price_paise', minimum=1)
    if 'cost_price_paise' in data:
        p.cost_price_paise = parse_int(data['cost_price_paise'], 'cost_price_paise', minimum=0)
    if 'gst_rate_bp' in data:
        p.gst_rate_bp = parse_int(data['gst_rate_bp'], 'gst_rate_bp', minimum=0)
    session.commit()
    return _product_json(p, with_variants=True)


@cat_bp.delete('/products/<int:product_id>')
@require_permission('products', 'delete')
@activity_log('PRODUCT.DEACTIVATE', entity='Product', entity_id_key='id')
def delete_product(product_id: int):
    session = get_db()
    p = _get_product(session, product_id)
    p.is_active = False
    session.commit()
    return {'id': p.id, 'is_active': False}


# --- Variants and stock ---

@cat_bp.post('/products/<int:product_id>/variants')
@require_permission('products', 'create')
@activity_log('VARIANT.CREATE', entity='ProductVariant', entity_id_key='id', meta_keys=['variant_name'])
def create_variant(product_id: int):
    session = get_db()
    p = _get_product(session, product_id)
    data = json_body()
    exists = session.execute(select(ProductVariant.id).where(
        ProductVariant.product_id == p.id, ProductVariant.variant_name == data.get('variant_name'))).first()
    if exists:
        abort(400, description='variant name in use')
    v = _new_variant(p, data)
    session.add(v)
    session.commit()
    return _variant_json(v), 201


@cat_bp.patch('/variants/<int:variant_id>')
@require_permission('products', 'update')
@activity_log('VARIANT.UPDATE', entity='ProductVariant', entity_id_key='id')
def update_variant(variant_id: int):
    session = get_db()
    v = _get_variant(session, variant_id)
    check_if_match(v.id, v.updated_at)
    data = json_body()
    if 'stock_level' in data:
        abort(400, description='use the stock adjustment endpoint to change stock')
    _apply_variant_fields(v, data)
    session.commit()
    return _variant_json(v)


@cat_bp.delete('/variants/<int:variant_id>')
@require_permission('products', 'delete')
@activity_log('VARIANT.DEACTIVATE', entity='ProductVariant', entity_id_key='id')
def delete_variant(variant_id: int):
    session = get_db()
    v = _get_variant(session, variant_id)
    v.is_active = False
    session.commit()
    return {'id': v.id, 'is_active': False}


@cat_bp.post('/variants/<int:variant_id>/stock')
@require_permission('inventory', 'update')
@activity_log('STOCK.ADJUST', entity='ProductVariant', entity_id_key='id', meta_keys=['delta', 'reason', 'stock_level'])
def adjust_variant_stock(variant_id: int):
    session = get_db()
    _get_variant(session, variant_id)
    data = json_body()
    delta = parse_int(data.get('delta'), 'delta')
    if delta == 0:
        abort(400, description='delta must be non-zero')
    v = adjust_stock(session, variant_id, delta)
    session.commit()
    return {'id': v.id, 'delta': delta, 'reason': data.get('reason'), 'stock_level': v.stock_level}


@cat_bp.get('/inventory/low-stock')
@require_permission('inventory', 'read')
def low_stock():
    session = get_db()
    q = (
        session.query(ProductVariant)
        .join(Product, Product.id == ProductVariant.product_id)
        .filter(ProductVariant.is_active.is_(True), Product.is_active.is_(True))
        .filter(ProductVariant.stock_level <= ProductVariant.low_stock_threshold)
        .order_by(ProductVariant.stock_level.asc(), ProductVariant.id.asc())
    )
    return list_response(q, lambda v: dict(_variant_json(v), product_name=v.product.name, sku=v.product.sku))


# --- CSV import / export ---

def _csv_text() -> str:
    upload = request.files.get('file')
    if upload is not None:
        raw = upload.read()
    elif request.is_json:
        raw = (json_body().get('csv') or '').encode('utf-8')
    else:
        raw = request.get_data()
    try:
        return raw.decode('utf-8')
    except UnicodeDecodeError:
        abort(400, description='CSV must be UTF-8')


def _category_for(session, name):
    if not name:
        return None
    slug = slugify(name)
    c = session.execute(select(Category).where(Category.slug == slug)).scalar_one_or_none()
    if c is None:
        c = Category(name=name, slug=slug, sort_order=0, is_active=True)
        session.add(c)
        session.flush()
    return c.id


@cat_bp.post('/products/import')
@require_permission('products', 'create')
@activity_log('PRODUCT.IMPORT', entity='Product', entity_id_key=None,
              meta_builder=lambda data, rv, a, kw: {k: data.get(k) for k in ('created', 'updated', 'failed')})
def import_products():
    rows = parse_csv(_csv_text())
    if not rows:
        abort(400, description='CSV has no data rows')
    valid, errors = validate_product_rows(rows)
    session = get_db()
    created = updated = 0
    for row in valid:
        p = session.execute(select(Product).where(Product.sku == row['sku'])).scalar_one_or_none()
        if p is None:
            p = Product(sku=row['sku'], is_active=True, created_by=current_user_id())
            session.add(p)
            created += 1
        else:
            updated += 1
        p.name = row['name']
        p.description = row['description'] or p.description
        p.base_price_paise = row['base_price_paise']
        p.cost_price_paise = row['cost_price_paise']
        p.gst_rate_bp = row['gst_rate_bp']
        p.hsn_code = row['hsn_code'] or p.hsn_code
        p.barcode = row['barcode'] or p.barcode
        p.category_id = _category_for(session, row['category']) or p.category_id
        session.flush()
        v = session.execute(select(ProductVariant).where(
            ProductVariant.product_id == p.id, ProductVariant.variant_name == row['variant_name'])).scalar_one_or_none()
        if v is None:
            session.add(ProductVariant(product_id=p.id, variant_name=row['variant_name'], stock_level=row['stock'],
                                       price_adjustment_paise=0, low_stock_threshold=5, is_active=True))
        else:
            v.stock_level = row['stock']
    session.commit()
    failed_rows = sorted({e['row'] for e in errors})
    return {'created': created, 'updated': updated, 'failed': len(failed_rows), 'errors': errors}


@cat_bp.get('/products/export')
@require_permission('products', 'export')
def export_products():
    session = get_db()
    rows = session.execute(
        select(Product, ProductVariant, Category.name)
        .join(ProductVariant, ProductVariant.product_id == Product.id)
        .outerjoin(Category, Category.id == Product.category_id)
        .where(Product.is_active.is_(True), ProductVariant.is_active.is_(True))
        .order_by(Product.sku, ProductVariant.id)
    ).all()
    out = [{
        'sku': p.sku,
        'name': p.name,
        'description': p.description or '',
        'category': cat_name or '',
        'base_price': f'{p.base_price_paise / 100:.2f}',
        'cost_price': f'{p.cost_price_paise / 100:.2f}',
        'gst_rate': f'{p.gst_rate_bp / 100:g}',
        'hsn_code': p.hsn_code or '',
        'barcode': p.barcode or '',
        'variant_name': v.variant_name,
        'stock': v.stock_level,
    } for p, v, cat_name in rows]
    add_activity('PRODUCT.EXPORT', 'Product', None, meta={'rows': len(out)})
    session.commit()
    resp = make_response(write_csv(out, PRODUCT_COLUMNS))
    resp.headers['Content-Type'] = 'text/csv; charset=utf-8'
    resp.headers['Content-Disposition'] = 'attachment; filename=products.csv'
    return resp
