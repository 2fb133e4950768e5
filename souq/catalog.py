import asyncio
import logging
import re
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

from pydantic import ValidationError

from .auth import is_admin
from .core import (
    CategoryIn, CategoryUpdateIn, ProductIn, ProductUpdateIn, SortOrderItem,
    _category_doc, _make_product_dict, _product_changes, pagination_meta,
)
from .database import CATEGORIES, PRODUCTS, DocumentStore, DuplicateKeyError, get_path
from .errors import Conflict, Forbidden, NotFound, ValidationFailed
from .models import Category, Product, as_utc

logger = logging.getLogger(__name__)

SKU_ATTEMPTS = 5
LOW_STOCK_THRESHOLD = 10

PRODUCT_SORT_FIELDS = ("created_at", "updated_at", "price", "stock", "name.en", "name.ar", "sku", "expiry_date")
CATEGORY_SORT_FIELDS = ("sort_order", "created_at", "name.en", "name.ar", "slug")


def _contains(term: str, *values: Optional[str]) -> bool:
    term = term.lower()
    return any(term in v.lower() for v in values if isinstance(v, str))


def _sort(sort_by: str, sort_order: str, allowed: Iterable[str], default: str):
    field = sort_by if sort_by in allowed else default
    return [(field, -1 if sort_order == "desc" else 1)]


def _check_model(model, doc: Dict[str, Any]) -> None:
    try:
        model(**{"id": "new", **doc})
    except ValidationError as e:
        raise ValidationFailed(errors=[err["msg"] for err in e.errors()])


# ---------------------------
# Categories
# ---------------------------
def generate_slug(name: str) -> str:
    slug = name.lower()
    slug = re.sub(r"[^a-z0-9\s-]", "", slug)
    slug = re.sub(r"\s+", "-", slug.strip())
    slug = re.sub(r"-+", "-", slug).strip("-")
    return slug or "category"


async def _name_taken(store: DocumentStore, en: Optional[str], ar: Optional[str], exclude_id: Optional[str] = None) -> bool:
    def clash(doc):
        if doc["id"] == exclude_id:
            return False
        name = doc.get("name") or {}
        return bool(
            (en and (name.get("en") or "").lower() == en.lower())
            or (ar and (name.get("ar") or "") == ar)
        )
    return await store.find_one(CATEGORIES, where=clash) is not None


async def _insert_with_slug(store: DocumentStore, doc: Dict[str, Any]) -> Dict[str, Any]:
    base = generate_slug(doc["name"]["en"] or "")
    suffix = 1
    while True:
        doc["slug"] = base if suffix == 1 else f"{base}-{suffix}"
        if await store.find_one(CATEGORIES, {"slug": doc["slug"]}) is None:
            try:
                return await store.insert_one(CATEGORIES, doc)
            except DuplicateKeyError:
                logger.debug("slug %s taken before insert", doc["slug"])
        suffix += 1


async def _category_or_404(store: DocumentStore, category_id: str) -> Dict[str, Any]:
    category = await store.get(CATEGORIES, category_id)
    if category is None:
        raise NotFound("categories.not_found")
    return category


async def _with_product_count(store: DocumentStore, category: Dict[str, Any]) -> Dict[str, Any]:
    category["product_count"] = await store.count(PRODUCTS, {"category": category["id"], "is_active": True})
    return category


async def create_category(store: DocumentStore, payload: CategoryIn, actor: Dict[str, Any]) -> Dict[str, Any]:
    if await _name_taken(store, payload.name.strip(), payload.name_ar.strip()):
        raise Conflict("categories.already_exists")
    doc = _category_doc(payload)
    doc.update({"is_active": True, "created_by": actor["id"]})
    _check_model(Category, {**doc, "slug": "placeholder"})
    category = await _insert_with_slug(store, doc)
    logger.info("category %s created (%s)", category["id"], category["slug"])
    return category


async def update_category(store: DocumentStore, category_id: str, payload: CategoryUpdateIn) -> Dict[str, Any]:
    current = await _category_or_404(store, category_id)
    given = payload.model_dump(exclude_unset=True)

    name = dict(current["name"])
    if "name" in given:
        name["en"] = given["name"].strip()
    if "name_ar" in given:
        name["ar"] = given["name_ar"].strip()
    description = dict(current.get("description") or {})
    if "description" in given:
        description["en"] = given["description"]
    if "description_ar" in given:
        description["ar"] = given["description_ar"]

    changes: Dict[str, Any] = {"name": name, "description": description}
    for field in ("sort_order", "is_active"):
        if field in given:
            changes[field] = given[field]

    if name != current["name"]:
        if await _name_taken(store, name["en"], name["ar"], exclude_id=category_id):
            raise Conflict("categories.already_exists")
        if name["en"] != current["name"].get("en"):
            slug = generate_slug(name["en"] or "")
            other = await store.find_one(CATEGORIES, {"slug": slug})
            changes["slug"] = slug if other is None or other["id"] == category_id else f"{slug}-{int(time.time())}"

    _check_model(Category, {**current, **changes})
    try:
        updated = await store.update_one(CATEGORIES, category_id, changes)
    except DuplicateKeyError:
        raise Conflict("categories.already_exists")
    return await _with_product_count(store, updated)


async def delete_category(store: DocumentStore, category_id: str) -> Dict[str, Any]:
    category = await _category_or_404(store, category_id)
    if not category["is_active"]:
        raise NotFound("categories.not_found")
    if await store.count(PRODUCTS, {"category": category_id, "is_active": True}):
        raise Conflict("categories.has_active_products")
    logger.info("category %s deactivated", category_id)
    return await store.update_one(CATEGORIES, category_id, {"is_active": False})


async def restore_category(store: DocumentStore, category_id: str) -> Dict[str, Any]:
    category = await _category_or_404(store, category_id)
    if category["is_active"]:
        raise Conflict("categories.already_active")
    return await store.update_one(CATEGORIES, category_id, {"is_active": True})


async def get_category(store: DocumentStore, category_id: str, include_inactive: bool = False) -> Dict[str, Any]:
    category = await _category_or_404(store, category_id)
    if not category["is_active"] and not include_inactive:
        raise NotFound("categories.not_found")
    return await _with_product_count(store, category)


async def list_categories(
    store: DocumentStore,
    search: Optional[str] = None,
    is_active: Optional[bool] = True,
    sort_by: str = "sort_order",
    sort_order: str = "asc",
    page: int = 1,
    limit: int = 50,
) -> Dict[str, Any]:
    filters = {} if is_active is None else {"is_active": is_active}

    where: Optional[Callable] = None
    if search:
        def where(doc):
            return _contains(search, *doc["name"].values(), *(doc.get("description") or {}).values())

    total = await store.count(CATEGORIES, filters, where)
    categories = await store.find(
        CATEGORIES, filters, where,
        sort=_sort(sort_by, sort_order, CATEGORY_SORT_FIELDS, "sort_order"),
        skip=(page - 1) * limit, limit=limit,
    )
    for category in categories:
        await _with_product_count(store, category)
    return {"categories": categories, "pagination": pagination_meta(total, page, limit)}


async def category_statistics(store: DocumentStore) -> Dict[str, Any]:
    categories = await store.find(CATEGORIES, sort=[("sort_order", 1)])
    products = await store.find(PRODUCTS, {"is_active": True})
    per_category = []
    for category in categories:
        mine = [p for p in products if p["category"] == category["id"]]
        per_category.append({
            "id": category["id"],
            "name": category["name"],
            "slug": category["slug"],
            "is_active": category["is_active"],
            "product_count": len(mine),
            "total_stock": sum(p["stock"] for p in mine),
        })
    return {
        "total_categories": len(categories),
        "active_categories": sum(1 for c in categories if c["is_active"]),
        "inactive_categories": sum(1 for c in categories if not c["is_active"]),
        "categories": per_category,
    }


async def update_sort_order(store: DocumentStore, items: List[SortOrderItem]) -> List[Dict[str, Any]]:
    for item in items:
        await _category_or_404(store, item.id)
    updated = []
    for item in items:
        updated.append(await store.update_one(CATEGORIES, item.id, {"sort_order": item.sort_order}))
    return updated


# ---------------------------
# Products
# ---------------------------
def generate_sku(name: Dict[str, Optional[str]]) -> str:
    source = name.get("en") or name.get("ar") or "PROD"
    prefix = re.sub(r"[^A-Z0-9]", "", source.upper())[:4] or "PROD"
    return f"{prefix}-{str(int(time.time() * 1000))[-6:]}"


def _normalize_dates(doc: Dict[str, Any]) -> None:
    for field in ("production_date", "expiry_date"):
        if doc.get(field) is not None:
            doc[field] = as_utc(doc[field])


async def _require_active_category(store: DocumentStore, category_id: str) -> None:
    category = await store.get(CATEGORIES, category_id)
    if category is None or not category["is_active"]:
        raise ValidationFailed("validation.category_invalid")


async def _attach_categories(store: DocumentStore, products: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    cache: Dict[str, Optional[Dict[str, Any]]] = {}
    for product in products:
        category_id = product.get("category")
        if category_id not in cache:
            category = await store.get(CATEGORIES, category_id)
            cache[category_id] = category and {
                k: category[k] for k in ("id", "name", "description", "slug", "is_active")
            }
        product["category"] = cache[category_id] or category_id
    return products


async def _product_or_404(store: DocumentStore, product_id: str) -> Dict[str, Any]:
    product = await store.get(PRODUCTS, product_id)
    if product is None:
        raise NotFound("product.not_found")
    return product


def _check_owner(product: Dict[str, Any], actor: Dict[str, Any]) -> None:
    if not (is_admin(actor) or product.get("created_by") == actor["id"]):
        raise Forbidden("product.access_denied")


async def create_product(store: DocumentStore, payload: ProductIn, actor: Dict[str, Any]) -> Dict[str, Any]:
    await _require_active_category(store, payload.category)
    doc = _make_product_dict(payload, actor["id"])
    _normalize_dates(doc)
    explicit_sku = doc["sku"] is not None

    for attempt in range(SKU_ATTEMPTS):
        if not explicit_sku:
            doc["sku"] = generate_sku(doc["name"])
        _check_model(Product, doc)
        try:
            product = await store.insert_one(PRODUCTS, doc)
            break
        except DuplicateKeyError:
            if explicit_sku:
                raise Conflict("product.sku_already_exists")
            logger.debug("generated sku %s taken (attempt %d)", doc["sku"], attempt + 1)
            await asyncio.sleep(0.001)
    else:
        raise Conflict("product.sku_already_exists")

    logger.info("product %s created by %s (sku %s)", product["id"], actor["id"], product["sku"])
    return (await _attach_categories(store, [product]))[0]


async def update_product(
    store: DocumentStore,
    product_id: str,
    payload: ProductUpdateIn,
    actor: Dict[str, Any],
) -> Dict[str, Any]:
    current = await _product_or_404(store, product_id)
    _check_owner(current, actor)
    changes = _product_changes(payload, current)
    if "category" in changes and changes["category"] != current["category"]:
        await _require_active_category(store, changes["category"])
    _normalize_dates(changes)
    _check_model(Product, {**current, **changes})
    try:
        updated = await store.update_one(PRODUCTS, product_id, changes)
    except DuplicateKeyError:
        raise Conflict("product.sku_already_exists")
    return (await _attach_categories(store, [updated]))[0]


async def delete_product(store: DocumentStore, product_id: str, actor: Dict[str, Any]) -> Dict[str, Any]:
    product = await _product_or_404(store, product_id)
    _check_owner(product, actor)
    if not product["is_active"]:
        raise NotFound("product.not_found")
    logger.info("product %s deactivated by %s", product_id, actor["id"])
    return await store.update_one(PRODUCTS, product_id, {"is_active": False})


async def restore_product(store: DocumentStore, product_id: str) -> Dict[str, Any]:
    product = await _product_or_404(store, product_id)
    if product["is_active"]:
        raise Conflict("product.already_active")
    return await store.update_one(PRODUCTS, product_id, {"is_active": True})


async def get_product(store: DocumentStore, product_id: str) -> Dict[str, Any]:
    product = await _product_or_404(store, product_id)
    if not product["is_active"]:
        raise NotFound("product.not_found")
    return (await _attach_categories(store, [product]))[0]


def _product_filter(
    search: Optional[str] = None,
    brand: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    in_stock: Optional[bool] = None,
) -> Callable[[Dict[str, Any]], bool]:
    def where(p: Dict[str, Any]) -> bool:
        if search and not _contains(
            search,
            get_path(p, "name.en"), get_path(p, "name.ar"),
            get_path(p, "description.en"), get_path(p, "description.ar"),
            p.get("sku"),
        ):
            return False
        if brand and not _contains(brand, get_path(p, "brand.en"), get_path(p, "brand.ar")):
            return False
        if min_price is not None and p["price"] < min_price:
            return False
        if max_price is not None and p["price"] > max_price:
            return False
        if in_stock is True and p["stock"] <= 0:
            return False
        if in_stock is False and p["stock"] != 0:
            return False
        return True
    return where


async def _page_of_products(
    store: DocumentStore,
    filters: Dict[str, Any],
    where: Optional[Callable] = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    page: int = 1,
    limit: int = 10,
) -> Dict[str, Any]:
    total = await store.count(PRODUCTS, filters, where)
    products = await store.find(
        PRODUCTS, filters, where,
        sort=_sort(sort_by, sort_order, PRODUCT_SORT_FIELDS, "created_at"),
        skip=(page - 1) * limit, limit=limit,
    )
    await _attach_categories(store, products)
    return {"products": products, "pagination": pagination_meta(total, page, limit)}


async def list_products(
    store: DocumentStore,
    search: Optional[str] = None,
    category: Optional[str] = None,
    brand: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    in_stock: Optional[bool] = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    page: int = 1,
    limit: int = 10,
    include_inactive: bool = False,
) -> Dict[str, Any]:
    filters: Dict[str, Any] = {} if include_inactive else {"is_active": True}
    if category:
        filters["category"] = category
    where = _product_filter(search, brand, min_price, max_price, in_stock)
    return await _page_of_products(store, filters, where, sort_by, sort_order, page, limit)


async def search_products(store: DocumentStore, term: Optional[str], **kwargs) -> Dict[str, Any]:
    if not term or not term.strip():
        raise ValidationFailed("validation.search_term_required")
    return await list_products(store, search=term.strip(), **kwargs)


async def products_by_category(store: DocumentStore, category_id: str, **kwargs) -> Dict[str, Any]:
    await _category_or_404(store, category_id)
    return await list_products(store, category=category_id, **kwargs)


async def expired_products(store: DocumentStore, page: int = 1, limit: int = 10) -> Dict[str, Any]:
    now = datetime.now(timezone.utc)

    def where(p):
        return p.get("expiry_date") is not None and p["expiry_date"] < now
    return await _page_of_products(store, {"is_active": True}, where, "expiry_date", "asc", page, limit)


async def near_expiry_products(store: DocumentStore, days: int = 30, page: int = 1, limit: int = 10) -> Dict[str, Any]:
    now = datetime.now(timezone.utc)
    horizon = now + timedelta(days=days)

    def where(p):
        return p.get("expiry_date") is not None and now <= p["expiry_date"] <= horizon
    result = await _page_of_products(store, {"is_active": True}, where, "expiry_date", "asc", page, limit)
    result["days"] = days
    return result


async def products_by_date_range(
    store: DocumentStore,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    date_field: str = "production_date",
    page: int = 1,
    limit: int = 10,
) -> Dict[str, Any]:
    if date_field not in ("production_date", "expiry_date"):
        raise ValidationFailed("validation.invalid_dates")
    start = as_utc(start) if start else None
    end = as_utc(end) if end else None

    def where(p):
        value = p.get(date_field)
        if start is None and end is None:
            return True
        if value is None:
            return False
        return (start is None or value >= start) and (end is None or value <= end)
    return await _page_of_products(store, {"is_active": True}, where, date_field, "asc", page, limit)


async def product_statistics(store: DocumentStore) -> Dict[str, Any]:
    products = await store.find(PRODUCTS)
    active = [p for p in products if p["is_active"]]

    by_category: Dict[str, Dict[str, Any]] = {}
    for p in active:
        bucket = by_category.setdefault(p["category"], {"category": p["category"], "count": 0, "total_stock": 0, "prices": []})
        bucket["count"] += 1
        bucket["total_stock"] += p["stock"]
        bucket["prices"].append(p["price"])
    category_stats = []
    for bucket in sorted(by_category.values(), key=lambda b: -b["count"]):
        prices = bucket.pop("prices")
        bucket["average_price"] = sum(prices) / len(prices)
        category_stats.append(bucket)

    low_stock = sorted((p for p in active if p["stock"] <= LOW_STOCK_THRESHOLD), key=lambda p: p["stock"])[:10]
    return {
        "overview": {
            "total_products": len(products),
            "active_products": len(active),
            "inactive_products": len(products) - len(active),
            "total_stock": sum(p["stock"] for p in products),
            "average_price": sum(p["price"] for p in products) / len(products) if products else 0,
            "total_value": sum(p["price"] * p["stock"] for p in products),
        },
        "category_stats": category_stats,
        "low_stock_products": [
            {k: p[k] for k in ("id", "name", "sku", "stock", "category")} for p in low_stock
        ],
    }
