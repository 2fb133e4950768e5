# souq/models.py
import math
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentMethod(str, Enum):
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    PAYPAL = "paypal"
    CASH_ON_DELIVERY = "cash_on_delivery"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class Bilingual(BaseModel):
    en: Optional[str] = None
    ar: Optional[str] = None


class User(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    id: str
    name: str = Field(..., min_length=2, max_length=50)
    email: EmailStr
    password_hash: str
    role: Role = Role.USER
    is_verified: bool = False
    is_active: bool = True
    deleted_at: Optional[datetime] = None
    otp_hash: Optional[str] = None
    otp_expires: Optional[datetime] = None
    reset_otp_hash: Optional[str] = None
    reset_otp_expires: Optional[datetime] = None


class Category(BaseModel):
    id: str
    name: Bilingual
    description: Bilingual = Field(default_factory=Bilingual)
    slug: str = Field(..., pattern=r"^[a-z0-9-]+$")
    is_active: bool = True
    sort_order: int = Field(0, ge=0)
    created_by: str


class Product(BaseModel):
    id: str
    name: Bilingual
    description: Bilingual = Field(default_factory=Bilingual)
    brand: Optional[Bilingual] = None
    price: float = Field(..., ge=0)
    stock: int = Field(..., ge=0)
    sku: str = Field(..., pattern=r"^[A-Z0-9_-]+$")
    category: str
    unit_weight: Optional[float] = Field(None, ge=0)
    is_active: bool = True
    created_by: str
    production_date: Optional[datetime] = None
    expiry_date: Optional[datetime] = None

    @model_validator(mode="after")
    def _check_dates(self):
        if self.production_date is not None:
            produced = as_utc(self.production_date)
            if produced > datetime.now(timezone.utc):
                raise ValueError("production_date cannot be in the future")
            if self.expiry_date is not None and as_utc(self.expiry_date) <= produced:
                raise ValueError("expiry_date must be after production_date")
        return self


class OrderItem(BaseModel):
    product: str
    name: Optional[Bilingual] = None
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0)
    subtotal: float = Field(..., ge=0)

    @model_validator(mode="after")
    def _check_subtotal(self):
        if not math.isclose(self.subtotal, self.price * self.quantity):
            raise ValueError("subtotal must equal price * quantity")
        return self


class ShippingAddress(BaseModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None


class Order(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    id: str
    user: str
    items: List[OrderItem] = Field(..., min_length=1)
    total_amount: float = Field(..., ge=0)
    status: OrderStatus = OrderStatus.PENDING
    shipping_address: ShippingAddress = Field(default_factory=ShippingAddress)
    payment_method: PaymentMethod = PaymentMethod.CASH_ON_DELIVERY
    payment_status: PaymentStatus = PaymentStatus.PENDING
    order_number: str
    notes: Optional[str] = Field(None, max_length=500)

    @model_validator(mode="after")
    def _check_total(self):
        if not math.isclose(self.total_amount, sum(item.subtotal for item in self.items)):
            raise ValueError("total_amount must equal the sum of item subtotals")
        return self


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
