"""
Database Schemas for Rong Chapa

Each Pydantic model in the first half represents a collection in MongoDB.
Collection name is the snake_case of the class name. The second half holds
the request bodies accepted by the API.
"""
from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional, Union

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from pricing import ColorMode, DeliveryLocation, DeliveryZone, PaperSize, Sides, coerce_amount


class Role(str, Enum):
    ADMIN = "admin"
    CUSTOMER = "customer"


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class CancelStatus(str, Enum):
    NONE = "none"
    PENDING = "pending"
    APPROVED = "approved"
    DECLINED = "declined"


class _Document(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True, use_enum_values=True)


# Collections

class User(_Document):
    name: Optional[str] = Field(None, description="Full name")
    email: str = Field(..., description="Email address, stored lowercased")
    password_hash: str = Field(..., description="bcrypt hash")
    role: Role = Role.CUSTOMER
    phone: Optional[str] = None
    organization: Optional[str] = None
    address: Optional[str] = None
    last_login_at: Optional[datetime] = None


class Category(_Document):
    name: str = Field(...)
    slug: str = Field(..., description="URL-safe identifier")
    description: Optional[str] = None


class ProductOption(BaseModel):
    label: str
    price_modifier: float = 0.0


class Product(_Document):
    name: str
    slug: str
    description: Optional[str] = None
    base_price: float = Field(..., ge=0)
    categories: List[ObjectId] = []
    sizes: List[ProductOption] = []
    paper_types: List[ProductOption] = []
    quantity_options: List[int] = []
    image_url: Optional[str] = None
    is_active: bool = True


class Billing(_Document):
    number: Optional[str] = None
    amount: Optional[float] = Field(None, ge=0)
    notes: Optional[str] = None
    generated_at: Optional[datetime] = None


class CancelRequest(_Document):
    status: CancelStatus = CancelStatus.NONE
    reason: Optional[str] = None
    requested_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[ObjectId] = None
    admin_note: Optional[str] = None


class Order(_Document):
    customer_name: str
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    user: Optional[ObjectId] = None
    product: ObjectId
    quantity: int = Field(..., ge=1)
    size: Optional[str] = None
    paper_type: Optional[str] = None
    notes: Optional[str] = None
    shipping_address: str = Field(..., min_length=1)
    delivery_zone: DeliveryZone
    delivery_charge: float = Field(..., ge=0)
    status: OrderStatus = OrderStatus.PENDING
    billing: Billing = Field(default_factory=Billing)
    cancel_request: CancelRequest = Field(default_factory=CancelRequest)
    batch_id: Optional[str] = None


class PrintOrder(_Document):
    user: ObjectId
    description: str
    file_link: Optional[str] = None
    color_mode: ColorMode
    sides: Sides
    paper_size: PaperSize
    quantity: int = Field(..., ge=1)
    collection_time: datetime
    delivery_location: DeliveryLocation
    delivery_address: Optional[str] = None
    payment_transaction: str
    status: OrderStatus = OrderStatus.PENDING
    security_amount: float = Field(0, ge=0)
    billing: Billing = Field(default_factory=Billing)


# Request bodies

class _Request(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)


class RegisterRequest(_Request):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)
    phone: Optional[str] = None
    organization: Optional[str] = None
    address: Optional[str] = None


class LoginRequest(_Request):
    email: EmailStr
    password: str = Field(..., min_length=1)


class ProfileUpdate(_Request):
    name: Optional[str] = Field(None, min_length=1)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    organization: Optional[str] = None
    address: Optional[str] = None
    current_password: Optional[str] = Field(None, min_length=1)
    new_password: Optional[str] = Field(None, min_length=6)

    @model_validator(mode="after")
    def _at_least_one_field(self):
        if not self.model_fields_set:
            raise ValueError("Provide at least one field to update")
        return self


class CategoryIn(_Request):
    name: str = Field(..., min_length=1)
    slug: str = Field(..., min_length=1)
    description: Optional[str] = None


class CategoryUpdate(_Request):
    name: Optional[str] = Field(None, min_length=1)
    slug: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None


class ProductIn(_Request):
    name: str = Field(..., min_length=1)
    slug: str = Field(..., min_length=1)
    description: Optional[str] = None
    base_price: float = Field(..., ge=0)
    categories: List[str] = []
    sizes: List[ProductOption] = []
    paper_types: List[ProductOption] = []
    quantity_options: List[int] = []
    image_url: Optional[str] = None
    is_active: bool = True

    @field_validator("quantity_options")
    @classmethod
    def _positive_quantities(cls, value: List[int]) -> List[int]:
        if any(q < 1 for q in value):
            raise ValueError("Quantity options must be at least 1")
        return value


class ProductUpdate(_Request):
    name: Optional[str] = Field(None, min_length=1)
    slug: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    base_price: Optional[float] = Field(None, ge=0)
    categories: Optional[List[str]] = None
    sizes: Optional[List[ProductOption]] = None
    paper_types: Optional[List[ProductOption]] = None
    quantity_options: Optional[List[int]] = None
    image_url: Optional[str] = None
    is_active: Optional[bool] = None


class OrderCreate(_Request):
    customer_name: str = Field(..., min_length=1)
    customer_email: Optional[EmailStr] = None
    customer_phone: Optional[str] = None
    product: str
    quantity: int = Field(..., ge=1)
    size: Optional[str] = None
    paper_type: Optional[str] = None
    notes: Optional[str] = None
    shipping_address: str = Field(..., min_length=1, description="Delivery address is required")
    delivery_zone: Optional[str] = None
    delivery_charge: Optional[float] = Field(None, ge=0)
    account_password: Optional[str] = Field(None, min_length=6)
    invoice_number: Optional[str] = None
    batch_id: Optional[str] = None
    billing_amount: Optional[float] = Field(None, ge=0)


class CheckoutItem(_Request):
    product: str
    quantity: int = Field(..., ge=1)
    size: Optional[str] = None
    paper_type: Optional[str] = None


class CheckoutRequest(_Request):
    customer_name: str = Field(..., min_length=1)
    customer_email: Optional[EmailStr] = None
    customer_phone: Optional[str] = None
    notes: Optional[str] = None
    shipping_address: str = Field(..., min_length=1)
    delivery_zone: Optional[str] = None
    account_password: Optional[str] = Field(None, min_length=6)
    items: List[CheckoutItem] = Field(..., min_length=1)


class CancelRequestIn(_Request):
    reason: str = Field(..., min_length=10, description="Please share a short note (at least 10 characters).")


class CancelReviewIn(_Request):
    action: Literal["approve", "decline"]
    admin_note: Optional[str] = None


class StatusUpdate(BaseModel):
    status: OrderStatus


class BillingPatch(_Request):
    """Partial billing update; unset fields are left alone, null clears a field."""

    number: Optional[str] = None
    amount: Optional[Union[float, str]] = None
    notes: Optional[str] = None

    @field_validator("amount")
    @classmethod
    def _non_negative(cls, value):
        number = coerce_amount(value)
        if number is not None and number < 0:
            raise ValueError("Amount must be zero or greater")
        return value


class PrintOrderCreate(_Request):
    description: str = Field(..., min_length=1)
    file_link: Optional[str] = None
    color_mode: ColorMode
    sides: Sides
    paper_size: PaperSize
    quantity: int = Field(..., ge=1)
    collection_time: datetime
    delivery_location: DeliveryLocation
    delivery_address: Optional[str] = None
    payment_transaction: str = Field(..., min_length=1)

    @model_validator(mode="after")
    def _address_for_other(self):
        if self.delivery_location == DeliveryLocation.OTHER and not self.delivery_address:
            raise ValueError("Delivery address is required for other locations")
        return self
