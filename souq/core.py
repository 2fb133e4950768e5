import math
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, EmailStr, Field

from .models import Bilingual, OrderStatus, PaymentMethod, Role

# Request bodies. Field names are snake_case; bilingual inputs come in as a
# pair of flat fields (``name`` / ``name_ar``) and are folded into {en, ar}.

# ---------------------------
# Auth
# ---------------------------
class RegisterIn(BaseModel):
    name: str = Field(..., min_length=2, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=8)

class VerifyEmailIn(BaseModel):
    email: EmailStr
    otp: str = Field(..., min_length=6, max_length=6)

class EmailIn(BaseModel):
    email: EmailStr

class LoginIn(BaseModel):
    email: EmailStr
    password: str

class ResetPasswordIn(BaseModel):
    email: EmailStr
    otp: str = Field(..., min_length=6, max_length=6)
    new_password: str = Field(..., min_length=8)

class ProfileUpdateIn(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=50)

class ChangePasswordIn(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=8)

# ---------------------------
# Catalog
# ---------------------------
class CategoryIn(BaseModel):
    name: str = Field(..., min_length=2, max_length=50)
    name_ar: str = Field(..., min_length=2, max_length=50)
    description: Optional[str] = Field(None, max_length=500)
    description_ar: Optional[str] = Field(None, max_length=500)
    sort_order: int = Field(0, ge=0)

class CategoryUpdateIn(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=50)
    name_ar: Optional[str] = Field(None, min_length=2, max_length=50)
    description: Optional[str] = Field(None, max_length=500)
    description_ar: Optional[str] = Field(None, max_length=500)
    sort_order: Optional[int] = Field(None, ge=0)
    is_active: Optional[bool] = None

class SortOrderItem(BaseModel):
    id: str
    sort_order: int = Field(..., ge=0)

class SortOrderIn(BaseModel):
    categories: List[SortOrderItem] = Field(..., min_length=1)

class ProductIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    name_ar: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    description_ar: Optional[str] = Field(None, max_length=1000)
    brand: Optional[Union[str, Bilingual]] = None
    brand_ar: Optional[str] = None
    price: float = Field(..., ge=0)
    stock: int = Field(..., ge=0)
    sku: Optional[str] = Field(None, pattern=r"^[A-Za-z0-9_-]+$")
    category: str
    unit_weight: Optional[float] = Field(None, ge=0)
    production_date: Optional[datetime] = None
    expiry_date: Optional[datetime] = None

class ProductUpdateIn(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    name_ar: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    description_ar: Optional[str] = Field(None, max_length=1000)
    brand: Optional[Union[str, Bilingual]] = None
    brand_ar: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    stock: Optional[int] = Field(None, ge=0)
    sku: Optional[str] = Field(None, pattern=r"^[A-Za-z0-9_-]+$")
    category: Optional[str] = None
    unit_weight: Optional[float] = Field(None, ge=0)
    is_active: Optional[bool] = None
    production_date: Optional[datetime] = None
    expiry_date: Optional[datetime] = None

class StockAdjustIn(BaseModel):
    stock: int = Field(..., ge=0)
    operation: Literal["add", "subtract", "set"] = "set"

# ---------------------------
# Orders
# ---------------------------
class OrderItemIn(BaseModel):
    product: str
    quantity: int = Field(..., ge=1)

class ShippingAddressIn(BaseModel):
    street: str
    city: str
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None

class OrderIn(BaseModel):
    items: List[OrderItemIn] = Field(..., min_length=1)
    shipping_address: ShippingAddressIn
    payment_method: PaymentMethod = PaymentMethod.CASH_ON_DELIVERY
    notes: Optional[str] = Field(None, max_length=500)

class OrderStatusIn(BaseModel):
    status: OrderStatus

# ---------------------------
# Users (admin)
# ---------------------------
class RoleIn(BaseModel):
    role: Role

class UserStatusIn(BaseModel):
    is_active: bool


def _bilingual(en: Optional[str], ar: Optional[str]) -> Dict[str, Optional[str]]:
    return {"en": en, "ar": ar}


def _merge_brand(brand: Union[None, str, Bilingual], brand_ar: Optional[str]) -> Optional[Dict[str, Optional[str]]]:
    if brand is None and not brand_ar:
        return None
    if isinstance(brand, Bilingual):
        merged = {"en": brand.en or "", "ar": brand.ar or ""}
    else:
        merged = {"en": brand or "", "ar": ""}
    if brand_ar:
        merged["ar"] = brand_ar
    return merged


def _make_product_dict(p: ProductIn, created_by: str) -> Dict[str, Any]:
    return {
        "name": _bilingual(p.name, p.name_ar),
        "description": _bilingual(p.description, p.description_ar),
        "brand": _merge_brand(p.brand, p.brand_ar),
        "price": p.price,
        "stock": p.stock,
        "sku": p.sku.upper() if p.sku else None,
        "category": p.category,
        "unit_weight": p.unit_weight,
        "is_active": True,
        "created_by": created_by,
        "production_date": p.production_date,
        "expiry_date": p.expiry_date,
    }


def _product_changes(p: ProductUpdateIn, current: Dict[str, Any]) -> Dict[str, Any]:
    """Fold a partial product update into store-level changes."""
    given = p.model_dump(exclude_unset=True)
    changes: Dict[str, Any] = {}
    for field, ar_field in (("name", "name_ar"), ("description", "description_ar")):
        if field in given or ar_field in given:
            merged = dict(current.get(field) or {})
            if field in given:
                merged["en"] = given[field]
            if ar_field in given:
                merged["ar"] = given[ar_field]
            changes[field] = merged
    if "brand" in given or "brand_ar" in given:
        brand = p.brand if "brand" in given else Bilingual(**(current.get("brand") or {}))
        changes["brand"] = _merge_brand(brand, given.get("brand_ar"))
    for field in ("price", "stock", "category", "unit_weight", "is_active", "production_date", "expiry_date"):
        if field in given:
            changes[field] = given[field]
    if given.get("sku"):
        changes["sku"] = given["sku"].upper()
    return changes


def _category_doc(c: CategoryIn) -> Dict[str, Any]:
    return {
        "name": _bilingual(c.name.strip(), c.name_ar.strip()),
        "description": _bilingual(c.description, c.description_ar),
        "sort_order": c.sort_order,
    }


def pagination_meta(total: int, page: int, limit: int) -> Dict[str, Any]:
    total_pages = math.ceil(total / limit) if limit else 0
    return {
        "current_page": page,
        "total_pages": total_pages,
        "total_items": total,
        "items_per_page": limit,
        "has_next_page": page < total_pages,
        "has_prev_page": page > 1,
    }
