import logging
from typing import Any, Dict, Optional

from .auth import is_admin
from .database import PRODUCTS, DocumentStore, Transaction
from .errors import Forbidden, InsufficientStock, NotFound, Unavailable, ValidationFailed

logger = logging.getLogger(__name__)

STOCK_OPERATIONS = ("add", "subtract", "set")


def _label(product: Dict[str, Any]) -> str:
    name = product.get("name") or {}
    return name.get("en") or name.get("ar") or product["id"]


async def reserve(tx: Transaction, product_id: str, quantity: int) -> Dict[str, Any]:
    """Take ``quantity`` units of a locked product; returns the product as it was before."""
    product = await tx.get(PRODUCTS, product_id)
    if product is None:
        raise NotFound("product.not_found")
    if not product.get("is_active", True):
        raise Unavailable("product.not_available", name=_label(product))
    if product["stock"] < quantity:
        raise InsufficientStock(
            "product.insufficient_stock",
            name=_label(product), available=product["stock"], requested=quantity,
        )
    await tx.update_one(PRODUCTS, product_id, {"stock": product["stock"] - quantity})
    return product


async def release(tx: Transaction, product_id: str, quantity: int) -> bool:
    """Return ``quantity`` units to a locked product. Missing products are skipped."""
    product = await tx.get(PRODUCTS, product_id)
    if product is None:
        logger.warning("product %s no longer exists; %d units not restocked", product_id, quantity)
        return False
    await tx.update_one(PRODUCTS, product_id, {"stock": product["stock"] + quantity})
    return True


async def adjust_stock(
    store: DocumentStore,
    product_id: str,
    amount: int,
    operation: str = "set",
    actor: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    # Plain read-modify-write, no transaction: a concurrent order placement can
    # be overwritten (last write wins).
    if operation not in STOCK_OPERATIONS:
        raise ValidationFailed("validation.operation_invalid")
    if not isinstance(amount, int) or isinstance(amount, bool) or amount < 0:
        raise ValidationFailed("validation.stock_invalid")

    product = await store.get(PRODUCTS, product_id)
    if product is None:
        raise NotFound("product.not_found")
    if actor is None or not (is_admin(actor) or product.get("created_by") == actor.get("id")):
        raise Forbidden("product.access_denied")

    previous = product["stock"]
    if operation == "add":
        current = previous + amount
        change = f"+{amount}"
    elif operation == "subtract":
        current = previous - amount
        if current < 0:
            raise InsufficientStock(
                "product.insufficient_stock",
                name=_label(product), available=previous, requested=amount,
            )
        change = f"-{amount}"
    else:
        current = amount
        change = f"set to {amount}"

    updated = await store.update_one(PRODUCTS, product_id, {"stock": current})
    if updated is None:
        raise NotFound("product.not_found")
    logger.info("stock %s for product %s: %d -> %d", operation, product_id, previous, current)
    return {
        "product": updated,
        "previous_stock": previous,
        "current_stock": current,
        "operation": operation,
        "stock_change": change,
    }
