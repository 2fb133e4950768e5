import logging
from datetime import timedelta
from typing import Any, Dict, Optional

from .auth import public_user
from .core import pagination_meta
from .database import USERS, DocumentStore, utcnow
from .errors import NotFound, ValidationFailed
from .models import Role

# Admin-side user management. Deleted users keep their record (deleted_at set)
# and disappear from every listing.

logger = logging.getLogger(__name__)

SORTABLE_FIELDS = ("created_at", "name", "email", "role")


def _not_deleted(user: Dict[str, Any]) -> bool:
    return user.get("deleted_at") is None


async def _user_or_404(store: DocumentStore, user_id: str) -> Dict[str, Any]:
    user = await store.get(USERS, user_id)
    if user is None or not _not_deleted(user):
        raise NotFound("auth.user_not_found")
    return user


async def list_users(
    store: DocumentStore,
    role: Optional[str] = None,
    is_verified: Optional[bool] = None,
    is_active: Optional[bool] = None,
    search: Optional[str] = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    page: int = 1,
    limit: int = 10,
) -> Dict[str, Any]:
    filters: Dict[str, Any] = {}
    if role:
        filters["role"] = role
    if is_verified is not None:
        filters["is_verified"] = is_verified
    if is_active is not None:
        filters["is_active"] = is_active

    def where(user):
        if not _not_deleted(user):
            return False
        if search:
            term = search.lower()
            return term in user["name"].lower() or term in user["email"]
        return True

    field = sort_by if sort_by in SORTABLE_FIELDS else "created_at"
    total = await store.count(USERS, filters, where)
    users = await store.find(
        USERS, filters, where,
        sort=[(field, -1 if sort_order == "desc" else 1)],
        skip=(page - 1) * limit, limit=limit,
    )
    return {"users": [public_user(u) for u in users], "pagination": pagination_meta(total, page, limit)}


async def get_user(store: DocumentStore, user_id: str) -> Dict[str, Any]:
    return public_user(await _user_or_404(store, user_id))


async def update_role(store: DocumentStore, user_id: str, role: str, actor: Dict[str, Any]) -> Dict[str, Any]:
    if user_id == actor["id"]:
        raise ValidationFailed("users.cannot_change_own_role")
    await _user_or_404(store, user_id)
    updated = await store.update_one(USERS, user_id, {"role": Role(role).value})
    logger.info("user %s role set to %s by %s", user_id, updated["role"], actor["id"])
    return public_user(updated)


async def update_status(store: DocumentStore, user_id: str, is_active: bool, actor: Dict[str, Any]) -> Dict[str, Any]:
    if user_id == actor["id"]:
        raise ValidationFailed("users.cannot_change_own_status")
    await _user_or_404(store, user_id)
    updated = await store.update_one(USERS, user_id, {"is_active": is_active})
    logger.info("user %s %s by %s", user_id, "activated" if is_active else "deactivated", actor["id"])
    return public_user(updated)


async def delete_user(store: DocumentStore, user_id: str, actor: Dict[str, Any]) -> None:
    if user_id == actor["id"]:
        raise ValidationFailed("users.cannot_delete_own_account")
    await _user_or_404(store, user_id)
    await store.update_one(USERS, user_id, {"is_active": False, "deleted_at": utcnow()})
    logger.info("user %s deleted by %s", user_id, actor["id"])


async def user_statistics(store: DocumentStore) -> Dict[str, Any]:
    users = await store.find(USERS, where=_not_deleted)
    since = utcnow() - timedelta(days=30)
    by_role: Dict[str, int] = {r.value: 0 for r in Role}
    for user in users:
        by_role[user["role"]] = by_role.get(user["role"], 0) + 1
    return {
        "total_users": len(users),
        "verified_users": sum(1 for u in users if u["is_verified"]),
        "unverified_users": sum(1 for u in users if not u["is_verified"]),
        "active_users": sum(1 for u in users if u["is_active"]),
        "inactive_users": sum(1 for u in users if not u["is_active"]),
        "users_by_role": by_role,
        "recent_users": sum(1 for u in users if u["created_at"] >= since),
    }
