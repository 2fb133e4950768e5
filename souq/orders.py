import logging
import random
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .auth import is_admin
from .core import pagination_meta
from .database import ORDERS, PRODUCTS, DocumentStore, DuplicateKeyError, lock_key
from .errors import Conflict, Forbidden, InvalidTransition, NotFound, ValidationFailed
from .inventory import release, reserve
from .models import Order, OrderStatus, PaymentMethod

logger = logging.getLogger(__name__)

ORDER_NUMBER_ATTEMPTS = 5

# Allowed forward moves. Anything not listed (including staying put) is rejected.
TRANSITIONS: Dict[str, frozenset] = {
    OrderStatus.PENDING.value: frozenset({OrderStatus.CONFIRMED.value, OrderStatus.CANCELLED.value}),
    OrderStatus.CONFIRMED.value: frozenset({OrderStatus.PROCESSING.value, OrderStatus.CANCELLED.value}),
    OrderStatus.PROCESSING.value: frozenset({OrderStatus.SHIPPED.value}),
    OrderStatus.SHIPPED.value: frozenset({OrderStatus.DELIVERED.value}),
    OrderStatus.DELIVERED.value: frozenset(),
    OrderStatus.CANCELLED.value: frozenset(),
}

SORTABLE_FIELDS = ("created_at", "updated_at", "total_amount", "status", "order_number")


def generate_order_number(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"ORD-{now:%Y%m%d}-{random.randint(0, 999999):06d}"


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def _check_transition(current: str, target: str) -> None:
    if not can_transition(current, target):
        raise InvalidTransition("order.invalid_transition", current=current, target=target)


def _visible_to(order: Dict[str, Any], actor: Dict[str, Any]) -> bool:
    return is_admin(actor) or order["user"] == actor["id"]


# ---------------------------
# Placement
# ---------------------------
async def create_order(
    store: DocumentStore,
    user_id: str,
    items: List[Dict[str, Any]],
    shipping_address: Optional[Dict[str, Any]] = None,
    payment_method: Optional[str] = None,
    notes: Optional[str] = None,
) -> Dict[str, Any]:
    """Reserve stock for every line and record a pending order, all or nothing.

    Every product named in ``items`` is locked for the whole placement, so a
    concurrent order for the same product waits and then sees the decremented
    stock. A line that fails validation aborts the transaction and no stock
    change or order becomes visible.
    """
    if not items:
        raise ValidationFailed("validation.validation_failed", errors=["order must contain at least one item"])
    for line in items:
        if int(line["quantity"]) < 1:
            raise ValidationFailed("validation.validation_failed", errors=["quantity must be at least 1"])

    keys = [lock_key(PRODUCTS, line["product"]) for line in items]
    async with store.transaction(*keys) as tx:
        order_items = []
        total = 0.0
        for line in items:
            quantity = int(line["quantity"])
            product = await reserve(tx, line["product"], quantity)
            subtotal = product["price"] * quantity
            order_items.append({
                "product": product["id"],
                "name": product.get("name"),
                "quantity": quantity,
                "price": product["price"],
                "subtotal": subtotal,
            })
            total += subtotal

        doc = {
            "user": user_id,
            "items": order_items,
            "total_amount": total,
            "status": OrderStatus.PENDING.value,
            "shipping_address": shipping_address or {},
            "payment_method": payment_method or PaymentMethod.CASH_ON_DELIVERY.value,
            "payment_status": "pending",
            "notes": notes,
        }

        order = None
        for attempt in range(ORDER_NUMBER_ATTEMPTS):
            doc["order_number"] = generate_order_number()
            Order(id="new", **doc)
            try:
                order = await tx.insert_one(ORDERS, doc)
                break
            except DuplicateKeyError:
                logger.warning("order number %s taken (attempt %d)", doc["order_number"], attempt + 1)
        if order is None:
            raise Conflict("order.processing_error")

    logger.info("order %s placed by %s: %d lines, total %.2f",
                order["order_number"], user_id, len(order_items), total)
    return order


# ---------------------------
# Lifecycle
# ---------------------------
async def cancel_order(store: DocumentStore, order_id: str, actor: Dict[str, Any]) -> Dict[str, Any]:
    """Cancel a pending or confirmed order and put its stock back, atomically."""
    snapshot = await store.get(ORDERS, order_id)
    if snapshot is None or not _visible_to(snapshot, actor):
        raise NotFound("order.not_found")

    keys = [lock_key(ORDERS, order_id)]
    keys += [lock_key(PRODUCTS, item["product"]) for item in snapshot["items"]]
    async with store.transaction(*keys) as tx:
        order = await tx.get(ORDERS, order_id)
        _check_transition(order["status"], OrderStatus.CANCELLED.value)
        for item in order["items"]:
            await release(tx, item["product"], item["quantity"])
        order = await tx.update_one(ORDERS, order_id, {"status": OrderStatus.CANCELLED.value})

    logger.info("order %s cancelled by %s", order["order_number"], actor["id"])
    return order


async def update_order_status(
    store: DocumentStore,
    order_id: str,
    status: str,
    actor: Dict[str, Any],
) -> Dict[str, Any]:
    try:
        target = OrderStatus(status).value
    except ValueError:
        raise ValidationFailed("validation.validation_failed", errors=[f"unknown status {status!r}"])

    snapshot = await store.get(ORDERS, order_id)
    if snapshot is None or not _visible_to(snapshot, actor):
        raise NotFound("order.not_found")
    if not is_admin(actor):
        raise Forbidden("auth.admin_access_required")

    if target == OrderStatus.CANCELLED.value:
        return await cancel_order(store, order_id, actor)

    async with store.transaction(lock_key(ORDERS, order_id)) as tx:
        order = await tx.get(ORDERS, order_id)
        _check_transition(order["status"], target)
        previous = order["status"]
        order = await tx.update_one(ORDERS, order_id, {"status": target})

    logger.info("order %s moved %s -> %s by %s", order["order_number"], previous, target, actor["id"])
    return order


# ---------------------------
# Reads
# ---------------------------
async def get_order(store: DocumentStore, order_id: str, actor: Dict[str, Any]) -> Dict[str, Any]:
    order = await store.get(ORDERS, order_id)
    if order is None or not _visible_to(order, actor):
        raise NotFound("order.not_found")
    return order


async def list_orders(
    store: DocumentStore,
    user_id: Optional[str] = None,
    status: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> Dict[str, Any]:
    """Orders of one user (``user_id``) or of everyone when it is None."""
    filters: Dict[str, Any] = {}
    if user_id:
        filters["user"] = user_id
    if status:
        filters["status"] = status
    if sort_by not in SORTABLE_FIELDS:
        sort_by = "created_at"

    total = await store.count(ORDERS, filters)
    orders = await store.find(
        ORDERS, filters,
        sort=[(sort_by, -1 if sort_order == "desc" else 1)],
        skip=(page - 1) * limit,
        limit=limit,
    )
    return {"orders": orders, "pagination": pagination_meta(total, page, limit)}


async def order_statistics(store: DocumentStore) -> Dict[str, Any]:
    orders = await store.find(ORDERS)
    by_status: Dict[str, Dict[str, Any]] = {}
    for order in orders:
        bucket = by_status.setdefault(order["status"], {"status": order["status"], "count": 0, "total_amount": 0.0})
        bucket["count"] += 1
        bucket["total_amount"] += order["total_amount"]

    revenue = sum(o["total_amount"] for o in orders)
    return {
        "status_stats": [by_status[k] for k in sorted(by_status)],
        "total_stats": {
            "total_orders": len(orders),
            "total_revenue": revenue,
            "average_order_value": revenue / len(orders) if orders else 0,
        },
    }
