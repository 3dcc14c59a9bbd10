# Overview: Read-side catalog lookups (products, stores) used by the order engine.

from __future__ import annotations

from ..extensions import db
from ..models import Product, Store


class CatalogError(Exception):
    """Raised for invalid catalog input."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class CatalogNotFoundError(CatalogError):
    """Product or store id unknown in the caller's organization."""
    pass


def get_product_by_id(org_id: int, product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None or product.org_id != org_id:
        raise CatalogNotFoundError(f"Product {product_id} not found", {"product_id": product_id})
    return product


def get_store_by_id(org_id: int, store_id: int) -> Store:
    store = db.session.get(Store, store_id)
    if store is None or store.org_id != org_id:
        raise CatalogNotFoundError(f"Store {store_id} not found", {"store_id": store_id})
    return store


def create_product(
    *,
    org_id: int,
    sku: str,
    name: str,
    unit_price_cents: int,
    unit: str = "pcs",
    cost_price_cents: int | None = None,
    category: str | None = None,
    description: str | None = None,
    min_stock_level: int = 0,
    max_stock_level: int | None = None,
) -> Product:
    """Create a product. Caller commits."""
    if not sku or not name:
        raise CatalogError("sku and name are required")
    if unit_price_cents < 0:
        raise CatalogError("unit_price_cents must be non-negative")
    if min_stock_level < 0:
        raise CatalogError("min_stock_level must be non-negative")

    existing = db.session.query(Product).filter_by(org_id=org_id, sku=sku).first()
    if existing:
        raise CatalogError(f"SKU {sku} already exists", {"sku": sku})

    product = Product(
        org_id=org_id,
        sku=sku,
        name=name,
        unit=unit,
        unit_price_cents=unit_price_cents,
        cost_price_cents=cost_price_cents,
        category=category,
        description=description,
        min_stock_level=min_stock_level,
        max_stock_level=max_stock_level,
    )
    db.session.add(product)
    db.session.flush()
    return product


def create_store(*, org_id: int, name: str, code: str | None = None, store_type: str = "main",
                 address: str | None = None, city: str | None = None) -> Store:
    if store_type not in ("main", "sub"):
        raise CatalogError("store_type must be main or sub")

    existing = db.session.query(Store).filter_by(org_id=org_id, name=name).first()
    if existing:
        raise CatalogError(f"Store '{name}' already exists", {"name": name})

    store = Store(org_id=org_id, name=name, code=code, store_type=store_type, address=address, city=city)
    db.session.add(store)
    db.session.flush()
    return store
