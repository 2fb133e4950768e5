from typing import Any, Dict, Optional

from fastapi import Depends, Header, Request

from .auth import decode_token, is_admin, token_payload_user_id
from .config import Settings
from .database import USERS, DocumentStore
from .errors import Forbidden, Unauthorized
from .notify import Mailer
from .otp import OtpRateLimiter


def get_store(request: Request) -> DocumentStore:
    return request.app.state.store


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_mailer(request: Request) -> Mailer:
    return request.app.state.mailer


def get_limiter(request: Request) -> OtpRateLimiter:
    return request.app.state.limiter


def get_language(request: Request) -> Optional[str]:
    return getattr(request.state, "language", None)


async def current_user(
    authorization: Optional[str] = Header(None),
    store: DocumentStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise Unauthorized("auth.token_required")
    token = authorization[len("bearer "):].strip()
    if not token:
        raise Unauthorized("auth.token_required")

    payload = decode_token(token, settings)
    user = await store.get(USERS, token_payload_user_id(payload))
    if not user or not user.get("is_active") or user.get("deleted_at") is not None:
        raise Unauthorized("auth.user_not_found")
    if not user.get("is_verified"):
        raise Unauthorized("auth.email_not_verified")
    return user


async def require_admin(user: Dict[str, Any] = Depends(current_user)) -> Dict[str, Any]:
    if not is_admin(user):
        raise Forbidden("auth.admin_access_required")
    return user
