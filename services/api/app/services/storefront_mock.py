from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

from packages.shared.schemas.checkout_v1 import (
    AddressRequestV1,
    AddressV1,
    CartLineV1,
    CheckoutInfoV1,
    CouponV1,
    CreateOrderRequestV1,
    DiscountTypeV1,
    OrderItemV1,
    OrderV1,
)
from services.api.app.services.pricing import (
    DEFAULT_SHIPPING_FEE,
    coupon_discount,
    format_vnd,
    items_total,
    line_subtotal,
    reprice_lines,
    total_amount,
)
from services.api.app.services.storefront_base import StorefrontRejectedError


@dataclass(frozen=True, slots=True)
class MockMerchant:
    id: int
    name: str
    address: str
    phone: str


@dataclass(frozen=True, slots=True)
class MockCoupon:
    coupon: CouponV1
    expired: bool = False


def _default_merchants() -> dict[int, MockMerchant]:
    return {
        1: MockMerchant(1, "Pho Thin", "13 Lo Duc, Hai Ba Trung, Ha Noi", "02439712345"),
        2: MockMerchant(2, "Com Tam Ba Ghien", "84 Dang Van Ngu, Phu Nhuan, TP HCM", "02838441234"),
    }


def _default_cart() -> list[CartLineV1]:
    return [
        CartLineV1(
            id=1,
            dish_id=101,
            dish_name="Pho bo tai",
            unit_price=55000,
            discount_price=50000,
            quantity=2,
            merchant_id=1,
        ),
        CartLineV1(
            id=2, dish_id=102, dish_name="Banh mi pate", unit_price=25000, quantity=2, merchant_id=1
        ),
        CartLineV1(
            id=3, dish_id=201, dish_name="Com tam suon", unit_price=45000, quantity=1, merchant_id=2
        ),
    ]


def _default_coupons() -> dict[str, MockCoupon]:
    coupons = [
        MockCoupon(
            CouponV1(
                id=1,
                code="SUMMER10",
                description="10% off orders from 100.000đ",
                discount_type=DiscountTypeV1.PERCENTAGE,
                discount_value=10,
                min_order_value=100000,
            )
        ),
        MockCoupon(
            CouponV1(
                id=2,
                code="FREESHIP20K",
                description="20.000đ off any order",
                discount_type=DiscountTypeV1.FIXED_AMOUNT,
                discount_value=20000,
                min_order_value=0,
            )
        ),
        MockCoupon(
            CouponV1(
                id=3,
                code="BIGORDER50K",
                description="50.000đ off orders from 500.000đ",
                discount_type=DiscountTypeV1.FIXED_AMOUNT,
                discount_value=50000,
                min_order_value=500000,
            )
        ),
        MockCoupon(
            CouponV1(
                id=4,
                code="EXPIRED15",
                description="15% off (spring campaign)",
                discount_type=DiscountTypeV1.PERCENTAGE,
                discount_value=15,
                min_order_value=0,
            ),
            expired=True,
        ),
    ]
    return {c.coupon.code: c for c in coupons}


def _default_addresses() -> dict[int, AddressV1]:
    return {
        1: AddressV1(
            id=1,
            contact_name="Nguyen Van An",
            phone="0912345678",
            province="Ha Noi",
            district="Dong Da",
            ward="Lang Thuong",
            street="25 Chua Lang",
            is_default=True,
            full_address="25 Chua Lang, Lang Thuong, Dong Da, Ha Noi",
            address_type="Default",
            province_id=201,
            district_id=1444,
            ward_code="1A0807",
        ),
        2: AddressV1(
            id=2,
            contact_name="Nguyen Van An",
            phone="0912345678",
            province="Ha Noi",
            district="Cau Giay",
            ward="Dich Vong",
            street="144 Xuan Thuy",
            building="Toa E3",
            is_default=False,
            full_address="Toa E3, 144 Xuan Thuy, Dich Vong, Cau Giay, Ha Noi",
            address_type="Office",
            province_id=201,
            district_id=1443,
            ward_code="1A0603",
        ),
    }


@dataclass
class MockStorefrontBackend:
    """Deterministic in-memory storefront.

    Coupons are priced per request and never stick to the cart, so "get checkout info"
    always answers with no discount. That is what lets coupon removal be a plain re-fetch.
    """

    name = "MOCK"

    merchants: dict[int, MockMerchant] = field(default_factory=_default_merchants)
    cart: list[CartLineV1] = field(default_factory=_default_cart)
    coupons: dict[str, MockCoupon] = field(default_factory=_default_coupons)
    addresses: dict[int, AddressV1] = field(default_factory=_default_addresses)
    service_fee: int = 5000
    # dish_id -> portions left; dishes not listed are unlimited.
    stock: dict[int, int] = field(default_factory=dict)
    closed_merchant_ids: set[int] = field(default_factory=set)
    orders: list[OrderV1] = field(default_factory=list)

    _next_address_id: int = 100
    _next_order_id: int = 1001

    async def get_checkout_info(self, dish_ids: list[int] | None) -> CheckoutInfoV1:
        return self._checkout_info(dish_ids)

    async def apply_coupon(self, code: str, dish_ids: list[int] | None) -> CheckoutInfoV1:
        info = self._checkout_info(dish_ids)
        coupon = self._valid_coupon(code, info.items_total)
        discount = coupon_discount(coupon, info.items_total)
        return info.model_copy(
            update={
                "discount_amount": discount,
                "applied_coupon_code": coupon.code,
                "total_amount": total_amount(
                    items_total=info.items_total,
                    service_fee=info.service_fee,
                    shipping_fee=info.shipping_fee,
                    discount_amount=discount,
                ),
            }
        )

    async def list_addresses(self) -> list[AddressV1]:
        return sorted(self.addresses.values(), key=lambda a: (not a.is_default, a.id))

    async def create_address(self, payload: AddressRequestV1) -> AddressV1:
        address_id = self._next_address_id
        self._next_address_id += 1

        make_default = payload.is_default or not self.addresses
        address = self._address_from_request(address_id, payload, is_default=make_default)
        if make_default:
            self._clear_default()
        self.addresses[address_id] = address
        return address

    async def update_address(self, address_id: int, payload: AddressRequestV1) -> AddressV1:
        current = self._get_address(address_id)
        make_default = payload.is_default or current.is_default
        if make_default:
            self._clear_default()
        address = self._address_from_request(address_id, payload, is_default=make_default)
        self.addresses[address_id] = address
        return address

    async def delete_address(self, address_id: int) -> None:
        removed = self._get_address(address_id)
        del self.addresses[address_id]
        if removed.is_default and self.addresses:
            first_id = min(self.addresses)
            self.addresses[first_id] = self.addresses[first_id].model_copy(
                update={"is_default": True}
            )

    async def set_default_address(self, address_id: int) -> AddressV1:
        address = self._get_address(address_id)
        self._clear_default()
        address = address.model_copy(update={"is_default": True})
        self.addresses[address_id] = address
        return address

    async def create_order(self, payload: CreateOrderRequestV1) -> OrderV1:
        if payload.address_id not in self.addresses:
            raise StorefrontRejectedError("Delivery address not found", 404)

        lines = [line for line in self.cart if line.dish_id in set(payload.dish_ids)]
        if not lines:
            raise StorefrontRejectedError("Your cart is empty")

        merchant = self.merchants.get(lines[0].merchant_id or 0)
        if merchant is None or merchant.id in self.closed_merchant_ids:
            name = merchant.name if merchant else "The restaurant"
            raise StorefrontRejectedError(f"{name} is closed and cannot take orders right now", 409)

        for line in lines:
            left = self.stock.get(line.dish_id)
            if left is not None and left < line.quantity:
                raise StorefrontRejectedError(
                    f"{line.dish_name} only has {left} portion(s) left", 409
                )

        subtotal = items_total(lines)
        discount = 0
        if payload.coupon_code:
            coupon = self._valid_coupon(payload.coupon_code, subtotal)
            discount = coupon_discount(coupon, subtotal)

        for line in lines:
            if line.dish_id in self.stock:
                self.stock[line.dish_id] -= line.quantity

        order_id = self._next_order_id
        self._next_order_id += 1
        now = datetime.now(timezone.utc)

        order = OrderV1(
            id=order_id,
            order_number=f"FH{now:%Y%m%d}{order_id:05d}",
            status="PENDING",
            payment_method=payload.payment_method,
            payment_status="PENDING",
            merchant_id=merchant.id,
            merchant_name=merchant.name,
            items=[
                OrderItemV1(
                    id=line.id,
                    dish_id=line.dish_id,
                    dish_name=line.dish_name,
                    quantity=line.quantity,
                    unit_price=line_subtotal(line) // max(line.quantity, 1),
                    total_price=line_subtotal(line),
                )
                for line in lines
            ],
            items_total=subtotal,
            discount_amount=discount,
            service_fee=self.service_fee,
            shipping_fee=payload.shipping_fee,
            total_amount=total_amount(
                items_total=subtotal,
                service_fee=self.service_fee,
                shipping_fee=payload.shipping_fee,
                discount_amount=discount,
            ),
            coupon_code=payload.coupon_code,
            notes=payload.notes,
            order_date=now.isoformat(),
        )
        self.orders.append(order)
        return order

    def _checkout_info(self, dish_ids: list[int] | None) -> CheckoutInfoV1:
        lines = reprice_lines(self.cart)
        if dish_ids:
            wanted = set(dish_ids)
            lines = [line for line in lines if line.dish_id in wanted]

        merchant = self.merchants.get(lines[0].merchant_id or 0) if lines else None
        addresses = sorted(self.addresses.values(), key=lambda a: (not a.is_default, a.id))
        default_id = next((a.id for a in addresses if a.is_default), None)

        subtotal = items_total(lines)
        shipping_fee = DEFAULT_SHIPPING_FEE if addresses else 0
        return CheckoutInfoV1(
            merchant_id=merchant.id if merchant else None,
            merchant_name=merchant.name if merchant else "",
            merchant_address=merchant.address if merchant else "",
            merchant_phone=merchant.phone if merchant else "",
            items=lines,
            total_items=sum(line.quantity for line in lines),
            addresses=addresses,
            default_address_id=default_id,
            items_total=subtotal,
            discount_amount=0,
            service_fee=self.service_fee,
            shipping_fee=shipping_fee,
            total_amount=total_amount(
                items_total=subtotal,
                service_fee=self.service_fee,
                shipping_fee=shipping_fee,
                discount_amount=0,
            ),
            applied_coupon_code=None,
            can_use_coupon=bool(lines),
            available_coupons=[c.coupon for c in self.coupons.values() if not c.expired],
        )

    def _valid_coupon(self, code: str, order_value: int) -> CouponV1:
        entry = self.coupons.get(code.strip().upper())
        if entry is None:
            raise StorefrontRejectedError(f"Coupon code {code!r} does not exist", 404)
        if entry.expired:
            raise StorefrontRejectedError(f"Coupon {entry.coupon.code} has expired")
        if order_value < entry.coupon.min_order_value:
            raise StorefrontRejectedError(
                f"Order must be at least {format_vnd(entry.coupon.min_order_value)} "
                f"to use coupon {entry.coupon.code}"
            )
        return entry.coupon

    def _get_address(self, address_id: int) -> AddressV1:
        address = self.addresses.get(address_id)
        if address is None:
            raise StorefrontRejectedError("Address not found", 404)
        return address

    def _clear_default(self) -> None:
        for address_id, address in list(self.addresses.items()):
            if address.is_default:
                self.addresses[address_id] = address.model_copy(update={"is_default": False})

    @staticmethod
    def _address_from_request(
        address_id: int, payload: AddressRequestV1, *, is_default: bool
    ) -> AddressV1:
        parts = [payload.building, payload.street, payload.ward, payload.district, payload.province]
        return AddressV1(
            id=address_id,
            contact_name=payload.contact_name,
            phone=payload.phone,
            province=payload.province,
            district=payload.district,
            ward=payload.ward,
            street=payload.street,
            building=payload.building,
            is_default=is_default,
            full_address=", ".join(p for p in parts if p),
            address_type="Default" if is_default else "Home",
            province_id=payload.province_id,
            district_id=payload.district_id,
            ward_code=payload.ward_code,
        )
