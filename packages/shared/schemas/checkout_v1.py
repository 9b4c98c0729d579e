"""Shared checkout payload schema (v1).

The storefront backend speaks camelCase JSON; the checkout API speaks snake_case. These
models accept either spelling and apply defaults for missing fields once, here, so the
rest of the code never has to guess whether a field was sent.
"""

from __future__ import annotations

from enum import Enum

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DiscountTypeV1(str, Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED_AMOUNT = "FIXED_AMOUNT"


class PaymentMethodV1(str, Enum):
    COD = "COD"
    CARD = "CARD"


class CheckoutStatusV1(str, Enum):
    LOADING = "LOADING"
    READY = "READY"
    FAILED = "FAILED"
    CALCULATING_SHIPPING = "CALCULATING_SHIPPING"
    APPLYING_COUPON = "APPLYING_COUPON"
    SUBMITTING = "SUBMITTING"
    SUBMITTED = "SUBMITTED"
    ABANDONED = "ABANDONED"


class IssueKindV1(str, Enum):
    LOAD_ERROR = "LOAD_ERROR"
    SHIPPING_FEE_ERROR = "SHIPPING_FEE_ERROR"
    COUPON_ERROR = "COUPON_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    ORDER_CREATION_ERROR = "ORDER_CREATION_ERROR"
    ADDRESS_ERROR = "ADDRESS_ERROR"
    CONFIRMATION_DECLINED = "CONFIRMATION_DECLINED"


class CartLineV1(_WireModel):
    id: int | None = None
    dish_id: int
    dish_name: str = ""
    dish_image: str | None = None
    # Backend calls the list price "price".
    unit_price: int = Field(
        default=0, ge=0, validation_alias=AliasChoices("price", "unitPrice", "unit_price")
    )
    discount_price: int | None = None
    quantity: int = Field(default=1, ge=0)
    subtotal: int = 0
    merchant_id: int | None = None


class AddressV1(_WireModel):
    id: int
    contact_name: str = ""
    phone: str = ""
    province: str = ""
    district: str = ""
    ward: str = ""
    street: str = ""
    building: str | None = None
    is_default: bool = False
    full_address: str = ""
    address_type: str = ""

    province_id: int | None = None
    district_id: int | None = None
    ward_code: str | None = None


class AddressRequestV1(_WireModel):
    contact_name: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)
    province: str
    district: str
    ward: str
    street: str
    building: str | None = None
    is_default: bool = False

    province_id: int | None = None
    district_id: int | None = None
    ward_code: str | None = None


class CouponV1(_WireModel):
    id: int | None = None
    code: str
    description: str = ""
    discount_type: DiscountTypeV1
    discount_value: int = Field(..., ge=0)
    min_order_value: int = Field(default=0, ge=0)


class CheckoutInfoV1(_WireModel):
    """Response shape of both "get checkout info" and "apply coupon"."""

    merchant_id: int | None = None
    merchant_name: str = ""
    merchant_address: str = ""
    merchant_phone: str = ""

    items: list[CartLineV1] = Field(default_factory=list)
    total_items: int = 0

    addresses: list[AddressV1] = Field(default_factory=list)
    default_address_id: int | None = None

    items_total: int = 0
    discount_amount: int = 0
    service_fee: int = 0
    shipping_fee: int = 0
    total_amount: int = 0

    applied_coupon_code: str | None = None
    can_use_coupon: bool = True
    available_coupons: list[CouponV1] = Field(default_factory=list)

    notes: str | None = None


class FeeComponentsV1(BaseModel):
    items_total: int
    discount_amount: int
    service_fee: int
    shipping_fee: int
    total_amount: int


class CreateOrderRequestV1(_WireModel):
    dish_ids: list[int]
    address_id: int
    payment_method: PaymentMethodV1
    coupon_code: str | None = None
    notes: str | None = None
    shipping_fee: int


class OrderItemV1(_WireModel):
    id: int | None = None
    dish_id: int
    dish_name: str = ""
    quantity: int
    unit_price: int
    total_price: int


class OrderV1(_WireModel):
    id: int
    order_number: str = ""
    status: str = "PENDING"
    payment_method: PaymentMethodV1
    payment_status: str = "PENDING"

    merchant_id: int | None = None
    merchant_name: str = ""

    items: list[OrderItemV1] = Field(default_factory=list)

    items_total: int = 0
    discount_amount: int = 0
    service_fee: int = 0
    shipping_fee: int = 0
    total_amount: int = 0

    coupon_code: str | None = None
    notes: str | None = None
    order_date: str | None = None


class CheckoutIssueV1(BaseModel):
    kind: IssueKindV1
    message: str
    redirect_to: str | None = None


class CheckoutViewV1(BaseModel):
    version: str = "1"
    session_id: str
    status: CheckoutStatusV1

    merchant_id: int | None = None
    merchant_name: str = ""
    merchant_address: str = ""

    items: list[CartLineV1] = Field(default_factory=list)
    addresses: list[AddressV1] = Field(default_factory=list)
    selected_address_id: int | None = None

    fees: FeeComponentsV1
    shipping_fee_calculated: bool = False

    applied_coupon_code: str | None = None
    available_coupons: list[CouponV1] = Field(default_factory=list)

    issue: CheckoutIssueV1 | None = None
    warnings: list[str] = Field(default_factory=list, max_length=8)
    order: OrderV1 | None = None
