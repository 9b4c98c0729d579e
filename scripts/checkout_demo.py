from __future__ import annotations

import argparse
import asyncio
import logging

from packages.shared.schemas.checkout_v1 import PaymentMethodV1
from services.api.app.services.auth_context import AuthContext
from services.api.app.services.checkout_factory import build_reconciler
from services.api.app.services.pricing import format_vnd
from services.api.app.services.reconciler import CheckoutOutcome, CheckoutReconciler


def _print_totals(label: str, reconciler: CheckoutReconciler, outcome: CheckoutOutcome) -> None:
    fees = reconciler.fees
    print(f"== {label} [{outcome.status.value}]")
    print(f"   items     {format_vnd(fees.items_total)}")
    print(f"   service   {format_vnd(fees.service_fee)}")
    shipping_note = "" if reconciler.shipping_fee_calculated else " (default)"
    print(f"   shipping  {format_vnd(fees.shipping_fee)}{shipping_note}")
    print(f"   discount -{format_vnd(fees.discount_amount)}")
    print(f"   total     {format_vnd(fees.total_amount)}")
    if outcome.issue is not None:
        print(f"   {outcome.issue.kind.value}: {outcome.issue.message}")


async def _run(args: argparse.Namespace) -> int:
    auth = AuthContext.from_authorization_header(
        f"Bearer {args.token}" if args.token else None
    )
    reconciler = build_reconciler(auth, args.dish_ids or None)

    outcome = await reconciler.load_initial()
    _print_totals("loaded", reconciler, outcome)
    if reconciler.load_issue is not None:
        return 1

    if args.address_id is not None:
        outcome = await reconciler.select_address(args.address_id)
        _print_totals(f"address {args.address_id}", reconciler, outcome)

    if args.coupon:
        outcome = await reconciler.apply_coupon(args.coupon)
        _print_totals(f"coupon {args.coupon.upper()}", reconciler, outcome)

    if not args.place:
        return 0

    outcome = await reconciler.place_order(
        PaymentMethodV1(args.payment_method), args.notes, lambda _preview: True
    )
    _print_totals("order", reconciler, outcome)
    if outcome.order is None:
        return 1

    print(f"Placed order {outcome.order.order_number or outcome.order.id}")
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Walk one checkout through the adapters")
    parser.add_argument("--dish-id", dest="dish_ids", type=int, action="append", default=[])
    parser.add_argument("--address-id", type=int, default=None)
    parser.add_argument("--coupon", default="")
    parser.add_argument(
        "--payment-method", choices=[m.value for m in PaymentMethodV1], default="COD"
    )
    parser.add_argument("--notes", default=None)
    parser.add_argument("--token", default=None, help="Storefront access token")
    parser.add_argument("--place", action="store_true", help="Actually place the order")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)
    return asyncio.run(_run(args))


if __name__ == "__main__":
    raise SystemExit(main())
