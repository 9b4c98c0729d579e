"""Checkout pricing reconciler.

One instance per checkout session. It holds the latest known value of each fee component
and rederives the total from them on every read:

    total_amount = items_total + service_fee + shipping_fee - discount_amount

Shipping fees and coupon discounts come from two services that know nothing about each
other, so no endpoint's own total is ever taken as-is. Each operation returns a
``CheckoutOutcome``; domain failures are reported as a ``CheckoutIssue`` on the outcome
instead of being raised.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from packages.shared.schemas.checkout_v1 import (
    AddressRequestV1,
    AddressV1,
    CartLineV1,
    CheckoutInfoV1,
    CheckoutStatusV1,
    CouponV1,
    CreateOrderRequestV1,
    FeeComponentsV1,
    IssueKindV1,
    OrderV1,
    PaymentMethodV1,
)
from services.api.app.services import pricing
from services.api.app.services.shipping_base import ShippingFeeError, ShippingRateService
from services.api.app.services.storefront_base import (
    StorefrontBackend,
    StorefrontBackendError,
    StorefrontRejectedError,
)

logger = logging.getLogger(__name__)

NOTES_MAX_LENGTH = 500
CART_PATH = "/cart"
HOME_PATH = "/"


@dataclass(frozen=True, slots=True)
class CheckoutIssue:
    kind: IssueKindV1
    message: str
    redirect_to: str | None = None


@dataclass(frozen=True, slots=True)
class ShippingQuote:
    address_id: int
    fee: int
    calculated: bool
    error: str | None = None


@dataclass(frozen=True, slots=True)
class OrderPreview:
    """What the user is asked to confirm before the order is sent."""

    address_id: int
    payment_method: PaymentMethodV1
    coupon_code: str | None
    notes: str | None
    fees: FeeComponentsV1


@dataclass(frozen=True, slots=True)
class CheckoutOutcome:
    status: CheckoutStatusV1
    fees: FeeComponentsV1
    issue: CheckoutIssue | None = None
    order: OrderV1 | None = None
    # True when a shipping or coupon response arrived after a newer request replaced it.
    superseded: bool = False

    @property
    def ok(self) -> bool:
        return self.issue is None


ConfirmOrder = Callable[[OrderPreview], bool | Awaitable[bool]]


def _user_message(e: StorefrontBackendError, fallback: str) -> str:
    if isinstance(e, StorefrontRejectedError):
        return e.message
    return fallback


class CheckoutReconciler:
    def __init__(
        self,
        backend: StorefrontBackend,
        shipping: ShippingRateService,
        *,
        dish_ids: list[int] | None = None,
        shipping_timeout: float = 5.0,
        shipping_attempts: int = 1,
        shipping_retry_delay: float = 1.0,
    ) -> None:
        self._backend = backend
        self._shipping = shipping
        self._shipping_timeout = shipping_timeout
        self._shipping_attempts = max(1, shipping_attempts)
        self._shipping_retry_delay = max(0.0, shipping_retry_delay)

        self.dish_ids = list(dish_ids) if dish_ids is not None else None

        self.merchant_id: int | None = None
        self.merchant_name = ""
        self.merchant_address = ""

        self.lines: list[CartLineV1] = []
        self.addresses: list[AddressV1] = []
        self.selected_address_id: int | None = None
        self.available_coupons: list[CouponV1] = []

        self.items_total = 0
        self.discount_amount = 0
        self.service_fee = 0
        self.shipping_fee = 0
        self.shipping_fee_calculated = False
        self.shipping_warning: str | None = None
        self.applied_coupon_code: str | None = None

        self.payment_method: PaymentMethodV1 | None = None
        self.notes: str | None = None
        self.order: OrderV1 | None = None
        self.load_issue: CheckoutIssue | None = None

        self._loaded = False
        self._abandoned = False
        self._submitting = False
        self._coupon_token = 0
        self._pending_coupon_token: int | None = None
        self._shipping_token = 0
        self._pending_shipping_token: int | None = None

    # Derived state

    @property
    def storefront_name(self) -> str:
        return self._backend.name

    @property
    def total_amount(self) -> int:
        return pricing.total_amount(
            items_total=self.items_total,
            service_fee=self.service_fee,
            shipping_fee=self.shipping_fee,
            discount_amount=self.discount_amount,
        )

    @property
    def fees(self) -> FeeComponentsV1:
        return FeeComponentsV1(
            items_total=self.items_total,
            discount_amount=self.discount_amount,
            service_fee=self.service_fee,
            shipping_fee=self.shipping_fee,
            total_amount=self.total_amount,
        )

    @property
    def status(self) -> CheckoutStatusV1:
        if self.load_issue is not None:
            return CheckoutStatusV1.FAILED
        if self._abandoned:
            return CheckoutStatusV1.ABANDONED
        if not self._loaded:
            return CheckoutStatusV1.LOADING
        if self.order is not None:
            return CheckoutStatusV1.SUBMITTED
        if self._submitting:
            return CheckoutStatusV1.SUBMITTING
        if self._pending_shipping_token is not None:
            return CheckoutStatusV1.CALCULATING_SHIPPING
        if self._pending_coupon_token is not None:
            return CheckoutStatusV1.APPLYING_COUPON
        return CheckoutStatusV1.READY

    # Operations

    async def load_initial(self) -> CheckoutOutcome:
        try:
            info = await self._backend.get_checkout_info(self.dish_ids)
        except StorefrontBackendError as e:
            logger.warning("Checkout info could not be loaded: %s", e)
            return self._fail(_user_message(e, "Could not load checkout information"), HOME_PATH)

        lines = info.items
        if self.dish_ids is not None:
            wanted = set(self.dish_ids)
            lines = [line for line in lines if line.dish_id in wanted]

        if not lines:
            return self._fail("Your cart has no items to check out", CART_PATH)

        merchant_ids = {line.merchant_id for line in lines if line.merchant_id is not None}
        if len(merchant_ids) > 1:
            return self._fail(
                "Dishes from different restaurants must be checked out separately", CART_PATH
            )

        self.lines = pricing.reprice_lines(lines)
        self.items_total = pricing.items_total(self.lines)
        self.service_fee = max(0, info.service_fee)
        self.shipping_fee = max(0, info.shipping_fee)
        self.applied_coupon_code = info.applied_coupon_code
        self.discount_amount = max(0, info.discount_amount) if info.applied_coupon_code else 0
        self._take_merchant_and_coupons(info)
        self.addresses = list(info.addresses)
        self._loaded = True

        address_id = self._default_address_id(info)
        if address_id is None:
            return self._outcome()

        self.selected_address_id = address_id
        return await self._resolve_shipping(address_id)

    async def select_address(self, address_id: int) -> CheckoutOutcome:
        blocked = self._blocked()
        if blocked is not None:
            return blocked

        if not any(a.id == address_id for a in self.addresses):
            return self._outcome(
                CheckoutIssue(
                    IssueKindV1.VALIDATION_ERROR, "Please choose one of your saved addresses"
                )
            )

        self.selected_address_id = address_id
        return await self._resolve_shipping(address_id)

    async def apply_coupon(self, code: str) -> CheckoutOutcome:
        blocked = self._blocked()
        if blocked is not None:
            return blocked

        code = (code or "").strip().upper()
        if not code:
            return self._outcome(
                CheckoutIssue(IssueKindV1.COUPON_ERROR, "Please enter a coupon code")
            )

        token = self._next_coupon_token()
        try:
            info = await self._backend.apply_coupon(code, self.dish_ids)
        except StorefrontBackendError as e:
            if token != self._coupon_token:
                return self._stale_coupon(token, code)
            self._pending_coupon_token = None
            logger.info("Coupon %s rejected: %s", code, e)
            message = _user_message(e, "Could not apply the coupon")
            return self._outcome(CheckoutIssue(IssueKindV1.COUPON_ERROR, message))

        if token != self._coupon_token:
            return self._stale_coupon(token, code)
        self._pending_coupon_token = None

        # Only the discount is taken from this response; shipping stays whatever the
        # shipping-rate service last told us for the selected address.
        self.discount_amount = max(0, info.discount_amount)
        self.applied_coupon_code = info.applied_coupon_code or code
        return self._outcome()

    async def remove_coupon(self) -> CheckoutOutcome:
        blocked = self._blocked()
        if blocked is not None:
            return blocked

        if self.applied_coupon_code is None:
            if self._pending_coupon_token is not None:
                # Nothing committed yet; outdating the pending apply is the whole removal.
                self._coupon_token += 1
                self._pending_coupon_token = None
            return self._outcome()

        token = self._next_coupon_token()
        try:
            info = await self._backend.get_checkout_info(self.dish_ids)
        except StorefrontBackendError as e:
            if token != self._coupon_token:
                return self._stale_coupon(token, None)
            self._pending_coupon_token = None
            logger.warning("Coupon %s could not be removed: %s", self.applied_coupon_code, e)
            message = _user_message(e, "Could not remove the coupon")
            return self._outcome(CheckoutIssue(IssueKindV1.COUPON_ERROR, message))

        if token != self._coupon_token:
            return self._stale_coupon(token, None)
        self._pending_coupon_token = None

        self.applied_coupon_code = info.applied_coupon_code
        self.discount_amount = max(0, info.discount_amount) if info.applied_coupon_code else 0
        self.available_coupons = list(info.available_coupons)
        return self._outcome()

    async def add_address(self, payload: AddressRequestV1) -> CheckoutOutcome:
        blocked = self._blocked()
        if blocked is not None:
            return blocked

        try:
            created = await self._backend.create_address(payload)
            self.addresses = await self._backend.list_addresses()
        except StorefrontBackendError as e:
            return self._address_issue(e, "Could not add the address")

        self.selected_address_id = created.id
        return await self._resolve_shipping(created.id)

    async def edit_address(self, address_id: int, payload: AddressRequestV1) -> CheckoutOutcome:
        blocked = self._blocked()
        if blocked is not None:
            return blocked

        try:
            await self._backend.update_address(address_id, payload)
            self.addresses = await self._backend.list_addresses()
        except StorefrontBackendError as e:
            return self._address_issue(e, "Could not update the address")

        if self.selected_address_id == address_id:
            return await self._resolve_shipping(address_id)
        return self._outcome()

    async def delete_address(self, address_id: int) -> CheckoutOutcome:
        blocked = self._blocked()
        if blocked is not None:
            return blocked

        try:
            await self._backend.delete_address(address_id)
            self.addresses = await self._backend.list_addresses()
        except StorefrontBackendError as e:
            return self._address_issue(e, "Could not delete the address")

        if self.selected_address_id == address_id:
            self.selected_address_id = None
            # Any fee still in flight belongs to the deleted address.
            self._shipping_token += 1
            self._pending_shipping_token = None
        return self._outcome()

    async def set_default_address(self, address_id: int) -> CheckoutOutcome:
        blocked = self._blocked()
        if blocked is not None:
            return blocked

        try:
            await self._backend.set_default_address(address_id)
            self.addresses = await self._backend.list_addresses()
        except StorefrontBackendError as e:
            return self._address_issue(e, "Could not set the default address")
        return self._outcome()

    async def place_order(
        self,
        payment_method: PaymentMethodV1 | None,
        notes: str | None,
        confirm: ConfirmOrder,
    ) -> CheckoutOutcome:
        blocked = self._blocked()
        if blocked is not None:
            return blocked

        notes = (notes or "").strip() or None
        address_id = self.selected_address_id
        if address_id is None:
            return self._invalid("Please choose a delivery address")
        if payment_method is None:
            return self._invalid("Please choose a payment method")
        problem = self._order_problem(notes)
        if problem is not None:
            return self._invalid(problem)

        self.payment_method = payment_method
        self.notes = notes

        preview = OrderPreview(
            address_id=address_id,
            payment_method=payment_method,
            coupon_code=self.applied_coupon_code,
            notes=notes,
            fees=self.fees,
        )
        decision = confirm(preview)
        if inspect.isawaitable(decision):
            decision = await decision
        if not decision:
            return self._outcome(
                CheckoutIssue(IssueKindV1.CONFIRMATION_DECLINED, "Order was not confirmed")
            )

        request = CreateOrderRequestV1(
            dish_ids=[line.dish_id for line in self.lines],
            address_id=preview.address_id,
            payment_method=payment_method,
            coupon_code=self.applied_coupon_code,
            notes=notes,
            shipping_fee=self.shipping_fee,
        )

        self._submitting = True
        try:
            order = await self._backend.create_order(request)
        except StorefrontBackendError as e:
            logger.warning("Order creation rejected: %s", e)
            return self._outcome(
                CheckoutIssue(
                    IssueKindV1.ORDER_CREATION_ERROR,
                    _user_message(e, "Could not place the order. Please try again."),
                )
            )
        finally:
            self._submitting = False

        self.order = order
        logger.info("Order %s placed, total %s", order.order_number or order.id, order.total_amount)
        return self._outcome(order=order)

    def abandon(self) -> None:
        """End the session without an order. Responses still in flight are discarded."""

        self._abandoned = True
        self._shipping_token += 1
        self._pending_shipping_token = None
        self._coupon_token += 1
        self._pending_coupon_token = None

    # Internals

    async def _resolve_shipping(self, address_id: int) -> CheckoutOutcome:
        self._shipping_token += 1
        token = self._shipping_token
        self._pending_shipping_token = token

        quote = await self._quote(address_id)

        if token != self._shipping_token:
            logger.debug(
                "Discarding shipping fee %s for address %s (request %s superseded by %s)",
                quote.fee,
                address_id,
                token,
                self._shipping_token,
            )
            return self._outcome(superseded=True)

        self._pending_shipping_token = None
        self.shipping_fee = quote.fee
        self.shipping_fee_calculated = quote.calculated
        self.shipping_warning = quote.error

        if quote.error is not None:
            return self._outcome(CheckoutIssue(IssueKindV1.SHIPPING_FEE_ERROR, quote.error))
        return self._outcome()

    async def _quote(self, address_id: int) -> ShippingQuote:
        error = "Could not calculate the shipping fee"
        for attempt in range(1, self._shipping_attempts + 1):
            try:
                fee = await asyncio.wait_for(
                    self._shipping.calculate_fee(address_id), timeout=self._shipping_timeout
                )
            except asyncio.TimeoutError:
                error = "Shipping fee calculation timed out"
            except ShippingFeeError as e:
                error = str(e)
            else:
                if pricing.is_valid_shipping_fee(fee):
                    return ShippingQuote(address_id=address_id, fee=int(fee), calculated=True)
                error = f"Shipping service returned an invalid fee: {fee!r}"

            logger.warning(
                "Shipping fee attempt %d/%d for address %s failed: %s",
                attempt,
                self._shipping_attempts,
                address_id,
                error,
            )
            if attempt < self._shipping_attempts:
                await asyncio.sleep(self._shipping_retry_delay)

        logger.warning(
            "Using default shipping fee %s for address %s", pricing.DEFAULT_SHIPPING_FEE, address_id
        )
        return ShippingQuote(
            address_id=address_id,
            fee=pricing.DEFAULT_SHIPPING_FEE,
            calculated=False,
            error=error,
        )

    def _next_coupon_token(self) -> int:
        self._coupon_token += 1
        self._pending_coupon_token = self._coupon_token
        return self._coupon_token

    def _stale_coupon(self, token: int, code: str | None) -> CheckoutOutcome:
        logger.debug(
            "Discarding coupon response for %s (request %s superseded by %s)",
            code or "removal",
            token,
            self._coupon_token,
        )
        return self._outcome(superseded=True)

    def _order_problem(self, notes: str | None) -> str | None:
        if notes is not None and len(notes) > NOTES_MAX_LENGTH:
            return f"Notes must be at most {NOTES_MAX_LENGTH} characters"
        if self._pending_shipping_token is not None:
            return "The shipping fee is still being calculated"
        if self._pending_coupon_token is not None:
            return "The coupon is still being applied"
        return None

    def _invalid(self, message: str) -> CheckoutOutcome:
        return self._outcome(CheckoutIssue(IssueKindV1.VALIDATION_ERROR, message))

    def _blocked(self) -> CheckoutOutcome | None:
        if self.load_issue is not None or self._abandoned or not self._loaded:
            message = "Checkout is not available for this session"
        elif self.order is not None:
            message = "This order has already been placed"
        elif self._submitting:
            message = "Your order is being submitted"
        else:
            return None
        return self._outcome(CheckoutIssue(IssueKindV1.VALIDATION_ERROR, message))

    def _fail(self, message: str, redirect_to: str) -> CheckoutOutcome:
        self.load_issue = CheckoutIssue(IssueKindV1.LOAD_ERROR, message, redirect_to=redirect_to)
        return self._outcome(self.load_issue)

    def _address_issue(self, e: StorefrontBackendError, fallback: str) -> CheckoutOutcome:
        logger.warning("%s: %s", fallback, e)
        return self._outcome(CheckoutIssue(IssueKindV1.ADDRESS_ERROR, _user_message(e, fallback)))

    def _take_merchant_and_coupons(self, info: CheckoutInfoV1) -> None:
        self.merchant_id = info.merchant_id
        if self.merchant_id is None and self.lines:
            self.merchant_id = self.lines[0].merchant_id
        self.merchant_name = info.merchant_name
        self.merchant_address = info.merchant_address
        self.available_coupons = list(info.available_coupons)

    def _default_address_id(self, info: CheckoutInfoV1) -> int | None:
        known = {a.id for a in self.addresses}
        if info.default_address_id is not None and info.default_address_id in known:
            return info.default_address_id
        flagged = next((a.id for a in self.addresses if a.is_default), None)
        if flagged is not None:
            return flagged
        return self.addresses[0].id if self.addresses else None

    def _outcome(
        self,
        issue: CheckoutIssue | None = None,
        *,
        order: OrderV1 | None = None,
        superseded: bool = False,
    ) -> CheckoutOutcome:
        return CheckoutOutcome(
            status=self.status,
            fees=self.fees,
            issue=issue,
            order=order,
            superseded=superseded,
        )
