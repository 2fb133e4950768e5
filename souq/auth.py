import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from passlib.context import CryptContext

from .config import Settings
from .database import USERS, DocumentStore, DuplicateKeyError
from .errors import Conflict, EmailDeliveryFailed, Forbidden, NotFound, Unauthorized, ValidationFailed
from .models import Role, User
from .notify import EmailError, Mailer
from .otp import OtpRateLimiter, generate_otp, hash_otp, otp_expiry, verify_otp

# Account lifecycle: registration, OTP verification, login, password reset
# and profile changes. Endpoints in main.py are thin wrappers over these.

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

MIN_PASSWORD_LENGTH = 8

_PRIVATE_FIELDS = ("password_hash", "otp_hash", "otp_expires", "reset_otp_hash", "reset_otp_expires")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def create_access_token(user_id: str, settings: Settings, now: Optional[datetime] = None) -> str:
    issued = now or datetime.now(timezone.utc)
    claims = {
        "sub": user_id,
        "iat": issued,
        "exp": issued + timedelta(minutes=settings.jwt_expires_minutes),
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str, settings: Settings) -> Dict[str, Any]:
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise Unauthorized("auth.token_expired")
    except jwt.InvalidTokenError:
        raise Unauthorized("auth.invalid_token")


def public_user(user: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in user.items() if k not in _PRIVATE_FIELDS}


def _normalize_email(email: str) -> str:
    return email.strip().lower()


async def _find_by_email(store: DocumentStore, email: str) -> Optional[Dict[str, Any]]:
    return await store.find_one(USERS, {"email": _normalize_email(email)}, where=lambda u: u.get("deleted_at") is None)


async def create_user(
    store: DocumentStore,
    name: str,
    email: str,
    password: str,
    role: Role = Role.USER,
    is_verified: bool = False,
) -> Dict[str, Any]:
    doc = {
        "name": name.strip(),
        "email": _normalize_email(email),
        "password_hash": hash_password(password),
        "role": role,
        "is_verified": is_verified,
        "is_active": True,
        "deleted_at": None,
    }
    # validates before the write; id is a placeholder the store replaces
    User(id="new", **doc)
    doc["role"] = Role(role).value
    try:
        return await store.insert_one(USERS, doc)
    except DuplicateKeyError:
        raise Conflict("auth.email_already_exists")


async def _send(mailer: Mailer, user: Dict[str, Any], template: str, language: Optional[str], **values) -> bool:
    try:
        await mailer.send_template(user["email"], template, language, name=user["name"], **values)
    except EmailError:
        logger.warning("could not send %s email to %s", template, user["email"], exc_info=True)
        return False
    return True


# ---------------------------
# Registration / verification
# ---------------------------
async def register(
    store: DocumentStore,
    mailer: Mailer,
    limiter: OtpRateLimiter,
    settings: Settings,
    name: str,
    email: str,
    password: str,
    language: Optional[str] = None,
) -> Dict[str, Any]:
    email = _normalize_email(email)
    await limiter.consume(email)
    if await store.find_one(USERS, {"email": email}):
        raise Conflict("auth.email_already_exists")

    user = await create_user(store, name, email, password)
    otp = generate_otp()
    user = await store.update_one(USERS, user["id"], {
        "otp_hash": hash_otp(otp),
        "otp_expires": otp_expiry(settings.otp_expires_minutes),
    })

    if not await _send(mailer, user, "verification", language, otp=otp, expires_in=settings.otp_expires_minutes):
        # account exists; the user can ask for another code
        logger.warning("registered %s without a delivered verification email", email)
    logger.info("registered user %s", user["id"])
    return public_user(user)


async def verify_email(
    store: DocumentStore,
    mailer: Mailer,
    limiter: OtpRateLimiter,
    email: str,
    otp: str,
    language: Optional[str] = None,
) -> Dict[str, Any]:
    user = await _find_by_email(store, email)
    if not user:
        raise NotFound("auth.user_not_found")
    if user["is_verified"]:
        return public_user(user)
    remaining = await limiter.consume_attempt(user["email"], "verify")
    if not verify_otp(otp, user.get("otp_hash"), user.get("otp_expires")):
        if not remaining:
            await store.update_one(USERS, user["id"], {"otp_hash": None, "otp_expires": None})
            logger.warning("verification code for user %s discarded after %d wrong attempts", user["id"], limiter.max_attempts)
        raise ValidationFailed("auth.invalid_otp")

    user = await store.update_one(USERS, user["id"], {"is_verified": True, "otp_hash": None, "otp_expires": None})
    await limiter.clear(user["email"])
    await limiter.clear_attempts(user["email"], "verify")
    await _send(mailer, user, "welcome", language)
    logger.info("verified email for user %s", user["id"])
    return public_user(user)


async def resend_verification(
    store: DocumentStore,
    mailer: Mailer,
    limiter: OtpRateLimiter,
    settings: Settings,
    email: str,
    language: Optional[str] = None,
) -> None:
    email = _normalize_email(email)
    await limiter.consume(email)
    user = await _find_by_email(store, email)
    if not user:
        raise NotFound("auth.user_not_found")
    if user["is_verified"]:
        raise ValidationFailed("auth.email_already_verified")

    otp = generate_otp()
    user = await store.update_one(USERS, user["id"], {
        "otp_hash": hash_otp(otp),
        "otp_expires": otp_expiry(settings.otp_expires_minutes),
    })
    await limiter.clear_attempts(email, "verify")
    if not await _send(mailer, user, "verification", language, otp=otp, expires_in=settings.otp_expires_minutes):
        raise EmailDeliveryFailed()


# ---------------------------
# Login / password reset
# ---------------------------
async def login(store: DocumentStore, settings: Settings, email: str, password: str) -> Dict[str, Any]:
    user = await _find_by_email(store, email)
    if not user or not verify_password(password, user["password_hash"]):
        raise Unauthorized("auth.invalid_credentials")
    if not user["is_verified"]:
        raise Unauthorized("auth.email_not_verified")
    if not user["is_active"]:
        raise Forbidden("auth.account_disabled")

    logger.info("user %s logged in", user["id"])
    return {"token": create_access_token(user["id"], settings), "user": public_user(user)}


async def forgot_password(
    store: DocumentStore,
    mailer: Mailer,
    limiter: OtpRateLimiter,
    settings: Settings,
    email: str,
    language: Optional[str] = None,
) -> None:
    """Issue a reset code. Unknown emails get the same answer as known ones."""
    email = _normalize_email(email)
    await limiter.consume(email)
    user = await _find_by_email(store, email)
    if not user or not user["is_active"]:
        logger.info("password reset requested for unknown or inactive email")
        return

    otp = generate_otp()
    user = await store.update_one(USERS, user["id"], {
        "reset_otp_hash": hash_otp(otp),
        "reset_otp_expires": otp_expiry(settings.otp_expires_minutes),
    })
    await limiter.clear_attempts(email, "reset")
    if not await _send(mailer, user, "reset_password", language, otp=otp, expires_in=settings.otp_expires_minutes):
        raise EmailDeliveryFailed()


async def reset_password(
    store: DocumentStore,
    limiter: OtpRateLimiter,
    email: str,
    otp: str,
    new_password: str,
) -> None:
    user = await _find_by_email(store, email)
    if not user:
        raise NotFound("auth.user_not_found")
    remaining = await limiter.consume_attempt(user["email"], "reset")
    if not verify_otp(otp, user.get("reset_otp_hash"), user.get("reset_otp_expires")):
        if not remaining:
            await store.update_one(USERS, user["id"], {"reset_otp_hash": None, "reset_otp_expires": None})
            logger.warning("reset code for user %s discarded after %d wrong attempts", user["id"], limiter.max_attempts)
        raise ValidationFailed("auth.invalid_otp")
    if len(new_password) < MIN_PASSWORD_LENGTH:
        raise ValidationFailed("validation.password_min_length")

    await store.update_one(USERS, user["id"], {
        "password_hash": hash_password(new_password),
        "reset_otp_hash": None,
        "reset_otp_expires": None,
    })
    await limiter.clear(user["email"])
    await limiter.clear_attempts(user["email"], "reset")
    logger.info("password reset for user %s", user["id"])


# ---------------------------
# Profile
# ---------------------------
async def update_profile(store: DocumentStore, user: Dict[str, Any], name: Optional[str] = None) -> Dict[str, Any]:
    changes: Dict[str, Any] = {}
    if name is not None:
        changes["name"] = name.strip()
    if not changes:
        return public_user(user)
    updated = await store.update_one(USERS, user["id"], changes)
    if updated is None:
        raise NotFound("auth.user_not_found")
    return public_user(updated)


async def change_password(
    store: DocumentStore,
    user: Dict[str, Any],
    current_password: str,
    new_password: str,
) -> None:
    if not verify_password(current_password, user["password_hash"]):
        raise ValidationFailed("auth.current_password_incorrect")
    if len(new_password) < MIN_PASSWORD_LENGTH:
        raise ValidationFailed("validation.password_min_length")
    await store.update_one(USERS, user["id"], {"password_hash": hash_password(new_password)})
    logger.info("password changed for user %s", user["id"])


async def seed_admin(store: DocumentStore, settings: Settings) -> Optional[Dict[str, Any]]:
    if not (settings.admin_email and settings.admin_password):
        return None
    existing = await _find_by_email(store, settings.admin_email)
    if existing:
        return existing
    admin = await create_user(
        store, "Administrator", settings.admin_email, settings.admin_password,
        role=Role.ADMIN, is_verified=True,
    )
    logger.info("seeded admin account %s", admin["email"])
    return admin


def token_payload_user_id(payload: Dict[str, Any]) -> str:
    user_id = payload.get("sub")
    if not user_id:
        raise Unauthorized("auth.invalid_token")
    return user_id


def is_admin(user: Dict[str, Any]) -> bool:
    return user.get("role") == Role.ADMIN.value

