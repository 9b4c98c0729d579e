from __future__ import annotations

import asyncio

from packages.shared.schemas.checkout_v1 import CheckoutStatusV1, IssueKindV1, PaymentMethodV1
from services.api.app.services.reconciler import CheckoutReconciler
from services.api.app.services.shipping_base import ShippingFeeError
from services.api.app.services.storefront_mock import MockStorefrontBackend


class _GatedShipping:
    """Shipping service whose answers can be held back per address."""

    name = "GATED"

    def __init__(self, fees: dict[int, object]) -> None:
        self.fees = fees
        self.calls: list[int] = []
        self._gates: dict[int, asyncio.Event] = {}

    def hold(self, address_id: int) -> asyncio.Event:
        gate = asyncio.Event()
        self._gates[address_id] = gate
        return gate

    async def calculate_fee(self, address_id: int) -> int:
        self.calls.append(address_id)
        gate = self._gates.pop(address_id, None)
        if gate is not None:
            await gate.wait()
        return self.fees[address_id]  # type: ignore[return-value]


class _SlowShipping:
    name = "SLOW"

    async def calculate_fee(self, address_id: int) -> int:
        await asyncio.sleep(5)
        return 30000


class _FlakyShipping:
    name = "FLAKY"

    def __init__(self, failures: int) -> None:
        self.failures = failures
        self.calls = 0

    async def calculate_fee(self, address_id: int) -> int:
        self.calls += 1
        if self.calls <= self.failures:
            raise ShippingFeeError("carrier busy")
        return 28000


def _reconciler(shipping: object, **kwargs: float) -> CheckoutReconciler:
    return CheckoutReconciler(
        MockStorefrontBackend(),
        shipping,  # type: ignore[arg-type]
        dish_ids=[101, 102],
        **kwargs,
    )


def test_newest_address_wins_when_older_quote_arrives_late() -> None:
    async def scenario() -> tuple[CheckoutReconciler, object, object, object]:
        shipping = _GatedShipping({1: 25000, 2: 32000})
        reconciler = _reconciler(shipping)
        await reconciler.load_initial()

        gate = shipping.hold(2)
        slow = asyncio.create_task(reconciler.select_address(2))
        await asyncio.sleep(0)
        status_while_pending = reconciler.status

        fast = await reconciler.select_address(1)
        gate.set()
        stale = await slow
        return reconciler, status_while_pending, fast, stale

    reconciler, status_while_pending, fast, stale = asyncio.run(scenario())

    assert status_while_pending == CheckoutStatusV1.CALCULATING_SHIPPING
    assert fast.ok and not fast.superseded
    assert stale.superseded
    assert reconciler.selected_address_id == 1
    assert reconciler.shipping_fee == 25000
    assert reconciler.total_amount == 180000
    assert reconciler.status == CheckoutStatusV1.READY


def test_in_order_responses_keep_the_last_selection() -> None:
    async def scenario() -> CheckoutReconciler:
        reconciler = _reconciler(_GatedShipping({1: 25000, 2: 32000}))
        await reconciler.load_initial()
        await reconciler.select_address(2)
        await reconciler.select_address(1)
        await reconciler.select_address(2)
        return reconciler

    reconciler = asyncio.run(scenario())

    assert reconciler.selected_address_id == 2
    assert reconciler.shipping_fee == 32000


def test_order_is_refused_while_shipping_is_calculating() -> None:
    async def scenario() -> tuple[object, object]:
        shipping = _GatedShipping({1: 25000, 2: 32000})
        reconciler = _reconciler(shipping)
        await reconciler.load_initial()

        gate = shipping.hold(2)
        pending = asyncio.create_task(reconciler.select_address(2))
        await asyncio.sleep(0)
        refused = await reconciler.place_order(PaymentMethodV1.COD, None, lambda _p: True)
        gate.set()
        return refused, await pending

    refused, resolved = asyncio.run(scenario())

    assert refused.issue is not None
    assert refused.issue.kind == IssueKindV1.VALIDATION_ERROR
    assert refused.issue.message == "The shipping fee is still being calculated"
    assert resolved.ok


def test_deleting_the_selected_address_discards_its_pending_quote() -> None:
    async def scenario() -> tuple[CheckoutReconciler, object]:
        shipping = _GatedShipping({1: 25000, 2: 32000})
        reconciler = _reconciler(shipping)
        await reconciler.load_initial()

        gate = shipping.hold(2)
        pending = asyncio.create_task(reconciler.select_address(2))
        await asyncio.sleep(0)
        await reconciler.delete_address(2)
        gate.set()
        return reconciler, await pending

    reconciler, stale = asyncio.run(scenario())

    assert stale.superseded
    assert reconciler.selected_address_id is None
    assert reconciler.shipping_fee == 25000
    assert reconciler.status == CheckoutStatusV1.READY


def test_timeout_falls_back_to_default_fee() -> None:
    reconciler = _reconciler(_SlowShipping(), shipping_timeout=0.01)

    outcome = asyncio.run(reconciler.load_initial())

    assert outcome.issue is not None
    assert outcome.issue.kind == IssueKindV1.SHIPPING_FEE_ERROR
    assert outcome.issue.message == "Shipping fee calculation timed out"
    assert reconciler.shipping_fee == 25000
    assert reconciler.shipping_fee_calculated is False
    assert reconciler.total_amount == 180000
    assert reconciler.status == CheckoutStatusV1.READY


def test_invalid_fee_values_fall_back_to_default_fee() -> None:
    for bad in (0, -1000, 1.5, None, "30000"):
        reconciler = _reconciler(_GatedShipping({1: bad}))

        outcome = asyncio.run(reconciler.load_initial())

        assert outcome.issue is not None
        assert outcome.issue.kind == IssueKindV1.SHIPPING_FEE_ERROR
        assert reconciler.shipping_fee == 25000
        assert reconciler.shipping_fee_calculated is False


def test_fallback_fee_still_allows_ordering() -> None:
    reconciler = _reconciler(_GatedShipping({1: 0}))
    asyncio.run(reconciler.load_initial())

    outcome = asyncio.run(reconciler.place_order(PaymentMethodV1.COD, None, lambda _p: True))

    assert outcome.order is not None
    assert outcome.order.shipping_fee == 25000
    assert outcome.order.total_amount == 180000


def test_retries_recover_a_shipping_quote() -> None:
    shipping = _FlakyShipping(failures=1)
    reconciler = _reconciler(shipping, shipping_attempts=2, shipping_retry_delay=0)

    outcome = asyncio.run(reconciler.load_initial())

    assert outcome.ok
    assert shipping.calls == 2
    assert reconciler.shipping_fee == 28000
    assert reconciler.shipping_fee_calculated is True


def test_exhausted_retries_report_the_last_error() -> None:
    shipping = _FlakyShipping(failures=5)
    reconciler = _reconciler(shipping, shipping_attempts=3, shipping_retry_delay=0)

    outcome = asyncio.run(reconciler.load_initial())

    assert shipping.calls == 3
    assert outcome.issue is not None
    assert outcome.issue.message == "carrier busy"
    assert reconciler.shipping_fee == 25000
    assert reconciler.shipping_warning == "carrier busy"


def test_successful_requote_clears_the_fallback_warning() -> None:
    shipping = _GatedShipping({1: 0, 2: 32000})
    reconciler = _reconciler(shipping)
    asyncio.run(reconciler.load_initial())
    assert reconciler.shipping_warning is not None

    outcome = asyncio.run(reconciler.select_address(2))

    assert outcome.ok
    assert reconciler.shipping_warning is None
    assert reconciler.shipping_fee_calculated is True
    assert reconciler.shipping_fee == 32000
