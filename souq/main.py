# souq/main.py
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from rich.logging import RichHandler
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import auth, catalog, orders, users
from .config import Settings, get_settings
from .core import (
    CategoryIn, CategoryUpdateIn, ChangePasswordIn, EmailIn, LoginIn, OrderIn, OrderStatusIn,
    ProductIn, ProductUpdateIn, ProfileUpdateIn, RegisterIn, ResetPasswordIn, RoleIn,
    SortOrderIn, StockAdjustIn, UserStatusIn, VerifyEmailIn,
)
from .database import DocumentStore, DuplicateKeyError, create_store, utcnow
from .deps import current_user, get_language, get_limiter, get_mailer, get_settings as settings_dep, get_store, require_admin
from .errors import AppError, TooManyRequests
from .i18n import detect_language, localized_response
from .inventory import adjust_stock
from .notify import Mailer, build_mailer
from .otp import CounterStore, InMemoryCounterStore, OtpRateLimiter

logger = logging.getLogger("souq")

API_PREFIX = "/api/v1"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level,
        format="%(name)s: %(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def ok(request: Request, message: str, data: Any = None, status_code: int = 200):
    payload: Dict[str, Any] = {"status": "success", "message": message}
    if data is not None:
        payload["data"] = data
    return localized_response(request, status_code, payload)


# ---------------------------
# Auth
# ---------------------------
auth_router = APIRouter(prefix="/auth", tags=["auth"])

@auth_router.post("/register", status_code=201)
async def register(
    payload: RegisterIn,
    request: Request,
    store=Depends(get_store), mailer=Depends(get_mailer), limiter=Depends(get_limiter),
    settings=Depends(settings_dep), language=Depends(get_language),
):
    user = await auth.register(store, mailer, limiter, settings, payload.name, payload.email, payload.password, language)
    return ok(request, "auth.registration_success", {"user": user}, 201)

@auth_router.post("/verify-email")
async def verify_email(
    payload: VerifyEmailIn,
    request: Request,
    store=Depends(get_store), mailer=Depends(get_mailer), limiter=Depends(get_limiter),
    settings=Depends(settings_dep), language=Depends(get_language),
):
    user = await auth.verify_email(store, mailer, limiter, payload.email, payload.otp, language)
    token = auth.create_access_token(user["id"], settings)
    return ok(request, "auth.email_verification_success", {"user": user, "token": token})

@auth_router.post("/resend-verification")
async def resend_verification(
    payload: EmailIn,
    request: Request,
    store=Depends(get_store), mailer=Depends(get_mailer), limiter=Depends(get_limiter),
    settings=Depends(settings_dep), language=Depends(get_language),
):
    await auth.resend_verification(store, mailer, limiter, settings, payload.email, language)
    return ok(request, "email.verification_sent")

@auth_router.post("/login")
async def login(payload: LoginIn, request: Request, store=Depends(get_store), settings=Depends(settings_dep)):
    result = await auth.login(store, settings, payload.email, payload.password)
    return ok(request, "auth.login_success", result)

@auth_router.post("/forgot-password")
async def forgot_password(
    payload: EmailIn,
    request: Request,
    store=Depends(get_store), mailer=Depends(get_mailer), limiter=Depends(get_limiter),
    settings=Depends(settings_dep), language=Depends(get_language),
):
    await auth.forgot_password(store, mailer, limiter, settings, payload.email, language)
    return ok(request, "auth.password_reset_otp_sent")

@auth_router.post("/reset-password")
async def reset_password(payload: ResetPasswordIn, request: Request, store=Depends(get_store), limiter=Depends(get_limiter)):
    await auth.reset_password(store, limiter, payload.email, payload.otp, payload.new_password)
    return ok(request, "auth.password_reset_success")

@auth_router.get("/profile")
async def get_profile(request: Request, user=Depends(current_user)):
    return ok(request, "auth.profile_retrieved", {"user": auth.public_user(user)})

@auth_router.put("/profile")
async def update_profile(payload: ProfileUpdateIn, request: Request, user=Depends(current_user), store=Depends(get_store)):
    updated = await auth.update_profile(store, user, payload.name)
    return ok(request, "auth.profile_updated_success", {"user": updated})

@auth_router.put("/change-password")
async def change_password(payload: ChangePasswordIn, request: Request, user=Depends(current_user), store=Depends(get_store)):
    await auth.change_password(store, user, payload.current_password, payload.new_password)
    return ok(request, "auth.password_changed_success")

@auth_router.post("/logout")
async def logout(request: Request, user=Depends(current_user)):
    # tokens are stateless; the client drops its copy
    logger.info("user %s logged out", user["id"])
    return ok(request, "auth.logout_success")

@auth_router.get("/verify-token")
async def verify_token(request: Request, user=Depends(current_user)):
    return ok(request, "auth.token_valid", {"user": auth.public_user(user)})


# ---------------------------
# Categories
# ---------------------------
categories_router = APIRouter(prefix="/categories", tags=["categories"])

@categories_router.get("")
async def list_categories(
    request: Request,
    search: Optional[str] = None,
    sort_by: str = "sort_order",
    sort_order: str = "asc",
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    store=Depends(get_store),
):
    result = await catalog.list_categories(store, search, True, sort_by, sort_order, page, limit)
    return ok(request, "categories.retrieved_successfully", result)

@categories_router.get("/admin/all")
async def list_all_categories(
    request: Request,
    search: Optional[str] = None,
    is_active: Optional[bool] = None,
    sort_by: str = "sort_order",
    sort_order: str = "asc",
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    admin=Depends(require_admin),
    store=Depends(get_store),
):
    result = await catalog.list_categories(store, search, is_active, sort_by, sort_order, page, limit)
    return ok(request, "categories.retrieved_successfully", result)

@categories_router.get("/stats")
async def category_stats(request: Request, admin=Depends(require_admin), store=Depends(get_store)):
    return ok(request, "categories.stats_retrieved_successfully", await catalog.category_statistics(store))

@categories_router.put("/sort-order")
async def update_sort_order(payload: SortOrderIn, request: Request, admin=Depends(require_admin), store=Depends(get_store)):
    updated = await catalog.update_sort_order(store, payload.categories)
    return ok(request, "categories.sort_order_updated", {"categories": updated})

@categories_router.get("/{category_id}")
async def get_category(category_id: str, request: Request, store=Depends(get_store)):
    category = await catalog.get_category(store, category_id)
    return ok(request, "categories.retrieved_successfully", {"category": category})

@categories_router.post("", status_code=201)
async def create_category(payload: CategoryIn, request: Request, admin=Depends(require_admin), store=Depends(get_store)):
    category = await catalog.create_category(store, payload, admin)
    return ok(request, "categories.created_successfully", {"category": category}, 201)

@categories_router.put("/{category_id}")
async def update_category(
    category_id: str, payload: CategoryUpdateIn, request: Request,
    admin=Depends(require_admin), store=Depends(get_store),
):
    category = await catalog.update_category(store, category_id, payload)
    return ok(request, "categories.updated_successfully", {"category": category})

@categories_router.delete("/{category_id}")
async def delete_category(category_id: str, request: Request, admin=Depends(require_admin), store=Depends(get_store)):
    await catalog.delete_category(store, category_id)
    return ok(request, "categories.deleted_successfully")

@categories_router.patch("/{category_id}/restore")
async def restore_category(category_id: str, request: Request, admin=Depends(require_admin), store=Depends(get_store)):
    category = await catalog.restore_category(store, category_id)
    return ok(request, "categories.restored_successfully", {"category": category})


# ---------------------------
# Products
# ---------------------------
products_router = APIRouter(prefix="/products", tags=["products"])

@products_router.get("")
async def list_products(
    request: Request,
    search: Optional[str] = None,
    category: Optional[str] = None,
    brand: Optional[str] = None,
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    in_stock: Optional[bool] = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    store=Depends(get_store),
):
    result = await catalog.list_products(
        store, search, category, brand, min_price, max_price, in_stock, sort_by, sort_order, page, limit,
    )
    return ok(request, "product.list_retrieved_success", result)

@products_router.get("/search")
async def search_products(
    request: Request,
    q: Optional[str] = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    store=Depends(get_store),
):
    result = await catalog.search_products(store, q, sort_by=sort_by, sort_order=sort_order, page=page, limit=limit)
    return ok(request, "product.list_retrieved_success", result)

@products_router.get("/category/{category_id}")
async def products_by_category(
    category_id: str,
    request: Request,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    store=Depends(get_store),
):
    result = await catalog.products_by_category(
        store, category_id, sort_by=sort_by, sort_order=sort_order, page=page, limit=limit,
    )
    return ok(request, "product.list_retrieved_success", result)

@products_router.get("/admin/all")
async def list_all_products(
    request: Request,
    search: Optional[str] = None,
    category: Optional[str] = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    admin=Depends(require_admin),
    store=Depends(get_store),
):
    result = await catalog.list_products(
        store, search=search, category=category, sort_by=sort_by, sort_order=sort_order,
        page=page, limit=limit, include_inactive=True,
    )
    return ok(request, "product.list_retrieved_success", result)

@products_router.get("/admin/stats")
async def product_stats(request: Request, admin=Depends(require_admin), store=Depends(get_store)):
    return ok(request, "product.stats_retrieved_success", await catalog.product_statistics(store))

@products_router.get("/admin/expired")
async def expired_products(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    admin=Depends(require_admin),
    store=Depends(get_store),
):
    return ok(request, "product.list_retrieved_success", await catalog.expired_products(store, page, limit))

@products_router.get("/admin/near-expiry")
async def near_expiry_products(
    request: Request,
    days: int = Query(30, ge=1, le=365),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    admin=Depends(require_admin),
    store=Depends(get_store),
):
    result = await catalog.near_expiry_products(store, days, page, limit)
    return ok(request, "product.list_retrieved_success", result)

@products_router.get("/admin/date-range")
async def products_by_date_range(
    request: Request,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    date_field: str = "production_date",
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    admin=Depends(require_admin),
    store=Depends(get_store),
):
    result = await catalog.products_by_date_range(store, start_date, end_date, date_field, page, limit)
    return ok(request, "product.list_retrieved_success", result)

@products_router.get("/{product_id}")
async def get_product(product_id: str, request: Request, store=Depends(get_store)):
    product = await catalog.get_product(store, product_id)
    return ok(request, "product.retrieved_success", {"product": product})

@products_router.post("", status_code=201)
async def create_product(payload: ProductIn, request: Request, admin=Depends(require_admin), store=Depends(get_store)):
    product = await catalog.create_product(store, payload, admin)
    return ok(request, "product.created_success", {"product": product}, 201)

@products_router.put("/{product_id}")
async def update_product(
    product_id: str, payload: ProductUpdateIn, request: Request,
    user=Depends(current_user), store=Depends(get_store),
):
    product = await catalog.update_product(store, product_id, payload, user)
    return ok(request, "product.updated_success", {"product": product})

@products_router.delete("/{product_id}")
async def delete_product(product_id: str, request: Request, user=Depends(current_user), store=Depends(get_store)):
    await catalog.delete_product(store, product_id, user)
    return ok(request, "product.deleted_success")

@products_router.patch("/{product_id}/restore")
async def restore_product(product_id: str, request: Request, admin=Depends(require_admin), store=Depends(get_store)):
    product = await catalog.restore_product(store, product_id)
    return ok(request, "product.restored_success", {"product": product})

@products_router.patch("/{product_id}/stock")
async def update_stock(
    product_id: str, payload: StockAdjustIn, request: Request,
    user=Depends(current_user), store=Depends(get_store),
):
    result = await adjust_stock(store, product_id, payload.stock, payload.operation, user)
    return ok(request, "product.stock_updated", result)


# ---------------------------
# Orders
# ---------------------------
orders_router = APIRouter(prefix="/orders", tags=["orders"])

@orders_router.post("", status_code=201)
async def create_order(payload: OrderIn, request: Request, user=Depends(current_user), store=Depends(get_store)):
    order = await orders.create_order(
        store,
        user["id"],
        [item.model_dump() for item in payload.items],
        payload.shipping_address.model_dump(),
        payload.payment_method.value,
        payload.notes,
    )
    return ok(request, "order.created_success", {"order": order}, 201)

@orders_router.get("")
async def list_my_orders(
    request: Request,
    status: Optional[str] = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user=Depends(current_user),
    store=Depends(get_store),
):
    result = await orders.list_orders(store, user["id"], status, page, limit, sort_by, sort_order)
    return ok(request, "order.list_retrieved_success", result)

@orders_router.get("/admin/all")
async def list_all_orders(
    request: Request,
    status: Optional[str] = None,
    user_id: Optional[str] = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    admin=Depends(require_admin),
    store=Depends(get_store),
):
    result = await orders.list_orders(store, user_id, status, page, limit, sort_by, sort_order)
    return ok(request, "order.list_retrieved_success", result)

@orders_router.get("/admin/stats")
async def order_stats(request: Request, admin=Depends(require_admin), store=Depends(get_store)):
    return ok(request, "order.stats_retrieved_success", await orders.order_statistics(store))

@orders_router.get("/{order_id}")
async def get_order(order_id: str, request: Request, user=Depends(current_user), store=Depends(get_store)):
    order = await orders.get_order(store, order_id, user)
    return ok(request, "order.retrieved_success", {"order": order})

@orders_router.put("/{order_id}/status")
async def update_order_status(
    order_id: str, payload: OrderStatusIn, request: Request,
    user=Depends(current_user), store=Depends(get_store),
):
    order = await orders.update_order_status(store, order_id, payload.status.value, user)
    return ok(request, "order.updated_success", {"order": order})

@orders_router.patch("/{order_id}/cancel")
async def cancel_order(order_id: str, request: Request, user=Depends(current_user), store=Depends(get_store)):
    order = await orders.cancel_order(store, order_id, user)
    return ok(request, "order.cancelled_success", {"order": order})


# ---------------------------
# Users (admin)
# ---------------------------
users_router = APIRouter(prefix="/users", tags=["users"])

@users_router.get("")
async def list_users(
    request: Request,
    role: Optional[str] = None,
    is_verified: Optional[bool] = None,
    is_active: Optional[bool] = None,
    search: Optional[str] = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    admin=Depends(require_admin),
    store=Depends(get_store),
):
    result = await users.list_users(store, role, is_verified, is_active, search, sort_by, sort_order, page, limit)
    return ok(request, "users.retrieved_successfully", result)

@users_router.get("/stats")
async def user_stats(request: Request, admin=Depends(require_admin), store=Depends(get_store)):
    return ok(request, "users.statistics_retrieved", await users.user_statistics(store))

@users_router.get("/{user_id}")
async def get_user(user_id: str, request: Request, admin=Depends(require_admin), store=Depends(get_store)):
    return ok(request, "users.user_retrieved_successfully", {"user": await users.get_user(store, user_id)})

@users_router.put("/{user_id}/role")
async def update_user_role(
    user_id: str, payload: RoleIn, request: Request,
    admin=Depends(require_admin), store=Depends(get_store),
):
    user = await users.update_role(store, user_id, payload.role.value, admin)
    return ok(request, "users.role_updated_successfully", {"user": user})

@users_router.put("/{user_id}/status")
async def update_user_status(
    user_id: str, payload: UserStatusIn, request: Request,
    admin=Depends(require_admin), store=Depends(get_store),
):
    user = await users.update_status(store, user_id, payload.is_active, admin)
    message = "users.user_activated_successfully" if payload.is_active else "users.user_deactivated_successfully"
    return ok(request, message, {"user": user})

@users_router.delete("/{user_id}")
async def delete_user(user_id: str, request: Request, admin=Depends(require_admin), store=Depends(get_store)):
    await users.delete_user(store, user_id, admin)
    return ok(request, "users.user_deleted_successfully")


# ---------------------------
# Error handlers
# ---------------------------
def _error_body(code: str, status: str, key: str, errors=None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"status": status, "code": code, "error": key}
    if errors:
        body["errors"] = errors
    return body

async def app_error_handler(request: Request, exc: AppError):
    response = localized_response(
        request, exc.status_code, _error_body(exc.code, exc.status, exc.message_key, exc.errors), exc.params,
    )
    if isinstance(exc, TooManyRequests) and exc.retry_after:
        response.headers["Retry-After"] = str(exc.retry_after)
    return response

async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = []
    for err in exc.errors():
        where = ".".join(str(part) for part in err["loc"] if part != "body")
        errors.append(f"{where}: {err['msg']}" if where else err["msg"])
    return localized_response(request, 400, _error_body("VALIDATION_FAILED", "fail", "validation.validation_failed", errors))

async def duplicate_key_handler(request: Request, exc: DuplicateKeyError):
    return localized_response(
        request, 409, _error_body("CONFLICT", "fail", "validation.duplicate_field", [f"{exc.field} already exists"]),
    )

async def http_error_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404:
        return localized_response(request, 404, _error_body("NOT_FOUND", "fail", "common.route_not_found"))
    status = "fail" if exc.status_code < 500 else "error"
    return localized_response(request, exc.status_code, _error_body("HTTP_ERROR", status, str(exc.detail)))

async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("unhandled error on %s %s", request.method, request.url.path)
    return localized_response(request, 500, _error_body("INTERNAL_ERROR", "error", "common.internal_server_error"))


# ---------------------------
# App factory
# ---------------------------
def create_app(
    settings: Optional[Settings] = None,
    store: Optional[DocumentStore] = None,
    mailer: Optional[Mailer] = None,
    counters: Optional[CounterStore] = None,
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await auth.seed_admin(app.state.store, app.state.settings)
        yield

    app = FastAPI(title=f"{settings.app_name} (bilingual store API)", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store or create_store()
    app.state.mailer = mailer or build_mailer(settings)
    app.state.limiter = OtpRateLimiter(
        counters or InMemoryCounterStore(),
        max_requests=settings.otp_max_requests,
        window_minutes=settings.otp_window_minutes,
        max_attempts=settings.otp_max_attempts,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def detect_request_language(request: Request, call_next):
        request.state.language = detect_language(request.headers.get("accept-language"))
        return await call_next(request)

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(DuplicateKeyError, duplicate_key_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    for router in (auth_router, categories_router, products_router, orders_router, users_router):
        app.include_router(router, prefix=API_PREFIX)

    @app.get("/health")
    async def health(request: Request):
        return ok(request, "common.server_running", {"app": settings.app_name, "timestamp": utcnow()})

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("souq.main:app", host="0.0.0.0", port=get_settings().port, reload=False)
