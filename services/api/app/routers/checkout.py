from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from fastapi import APIRouter, Depends, HTTPException, Response
from packages.shared.schemas.checkout_v1 import (
    AddressRequestV1,
    CheckoutIssueV1,
    CheckoutViewV1,
    IssueKindV1,
)
from packages.shared.schemas.events import EntityTypeV1, EventTypeV1
from services.api.app.db.deps import get_auth_context, get_db
from services.api.app.db.models import CheckoutSession, EventLog, PlacedOrder
from services.api.app.models.checkout import (
    ApplyCouponRequest,
    PlaceOrderRequest,
    SelectAddressRequest,
    StartCheckoutRequest,
)
from services.api.app.services.auth_context import AuthContext
from services.api.app.services.checkout_factory import build_reconciler
from services.api.app.services.reconciler import CheckoutIssue, CheckoutOutcome, OrderPreview
from services.api.app.services.store import SessionRecord, store
from sqlalchemy.orm import Session

router = APIRouter()

# Issues that stop the request. Everything else is display-only and rides along in the view.
_BLOCKING_ISSUE_STATUS = {
    IssueKindV1.LOAD_ERROR: 409,
    IssueKindV1.VALIDATION_ERROR: 422,
    IssueKindV1.ORDER_CREATION_ERROR: 409,
}


def _issue_out(issue: CheckoutIssue) -> CheckoutIssueV1:
    return CheckoutIssueV1(kind=issue.kind, message=issue.message, redirect_to=issue.redirect_to)


def _raise_issue_http_error(outcome: CheckoutOutcome) -> None:
    issue = outcome.issue
    if issue is None or issue.kind not in _BLOCKING_ISSUE_STATUS:
        return

    raise HTTPException(
        status_code=_BLOCKING_ISSUE_STATUS[issue.kind],
        detail=_issue_out(issue).model_dump(mode="json"),
    )


def _get_record(session_id: str) -> SessionRecord:
    record = store.get_session(session_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Checkout session not found")
    return record


def _view(record: SessionRecord, outcome: CheckoutOutcome | None = None) -> CheckoutViewV1:
    r = record.reconciler

    warnings: list[str] = []
    if r.shipping_warning and not r.shipping_fee_calculated:
        warnings.append(f"{r.shipping_warning} (using the default shipping fee)")

    issue = outcome.issue if outcome is not None else None
    return CheckoutViewV1(
        session_id=record.session_id,
        status=r.status,
        merchant_id=r.merchant_id,
        merchant_name=r.merchant_name,
        merchant_address=r.merchant_address,
        items=r.lines,
        addresses=r.addresses,
        selected_address_id=r.selected_address_id,
        fees=r.fees,
        shipping_fee_calculated=r.shipping_fee_calculated,
        applied_coupon_code=r.applied_coupon_code,
        available_coupons=r.available_coupons,
        issue=_issue_out(issue) if issue is not None else None,
        warnings=warnings,
        order=r.order,
    )


def _log_event(
    db: Session,
    *,
    session_id: str,
    event_type: EventTypeV1,
    event_payload: dict,
    entity_type: EntityTypeV1 = EntityTypeV1.CHECKOUT_SESSION,
    entity_id: str | None = None,
) -> None:
    db.add(
        EventLog(
            id=uuid4().hex,
            session_id=session_id,
            entity_type=entity_type.value,
            entity_id=entity_id or session_id,
            event_type=event_type.value,
            event_payload_json=event_payload,
        )
    )


def _log_shipping(db: Session, record: SessionRecord, outcome: CheckoutOutcome) -> None:
    r = record.reconciler
    if outcome.superseded or r.selected_address_id is None:
        return

    payload = {"address_id": r.selected_address_id, "shipping_fee": r.shipping_fee}
    if outcome.issue is not None and outcome.issue.kind == IssueKindV1.SHIPPING_FEE_ERROR:
        payload["error"] = outcome.issue.message
        _log_event(
            db,
            session_id=record.session_id,
            event_type=EventTypeV1.SHIPPING_FEE_FALLBACK,
            event_payload=payload,
        )
    elif outcome.issue is None:
        _log_event(
            db,
            session_id=record.session_id,
            event_type=EventTypeV1.SHIPPING_FEE_RESOLVED,
            event_payload=payload,
        )


def _log_validation(db: Session, record: SessionRecord, outcome: CheckoutOutcome) -> None:
    if outcome.issue is not None and outcome.issue.kind == IssueKindV1.VALIDATION_ERROR:
        _log_event(
            db,
            session_id=record.session_id,
            event_type=EventTypeV1.VALIDATION_FAILED,
            event_payload={"message": outcome.issue.message},
        )


def _touch_session(db: Session, record: SessionRecord) -> None:
    row = db.get(CheckoutSession, record.session_id)
    if row is None:
        return
    row.status = record.reconciler.status.value
    row.total_amount = record.reconciler.total_amount
    row.updated_at = datetime.now(timezone.utc)


@router.post("/v1/checkout", response_model=CheckoutViewV1, response_model_by_alias=False)
async def start_checkout(
    payload: StartCheckoutRequest,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
) -> CheckoutViewV1:
    try:
        reconciler = build_reconciler(auth, payload.dish_ids)
    except ValueError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e

    record = SessionRecord(session_id=uuid4().hex, auth=auth, reconciler=reconciler)
    outcome = await reconciler.load_initial()

    db.add(
        CheckoutSession(
            id=record.session_id,
            storefront=reconciler.storefront_name,
            dish_ids_json=payload.dish_ids,
            status=reconciler.status.value,
            total_amount=None if reconciler.load_issue else reconciler.total_amount,
        )
    )

    if reconciler.load_issue is not None:
        _log_event(
            db,
            session_id=record.session_id,
            event_type=EventTypeV1.LOAD_FAILED,
            event_payload={
                "message": reconciler.load_issue.message,
                "redirect_to": reconciler.load_issue.redirect_to,
            },
        )
        db.commit()
        _raise_issue_http_error(outcome)

    store.save_session(record)
    _log_event(
        db,
        session_id=record.session_id,
        event_type=EventTypeV1.SESSION_STARTED,
        event_payload={
            "dish_ids": [line.dish_id for line in reconciler.lines],
            "merchant_id": reconciler.merchant_id,
            "fees": reconciler.fees.model_dump(mode="json"),
        },
    )
    _log_shipping(db, record, outcome)
    db.commit()

    return _view(record, outcome)


@router.get(
    "/v1/checkout/{session_id}", response_model=CheckoutViewV1, response_model_by_alias=False
)
async def get_checkout(session_id: str) -> CheckoutViewV1:
    return _view(_get_record(session_id))


@router.post(
    "/v1/checkout/{session_id}/address",
    response_model=CheckoutViewV1,
    response_model_by_alias=False,
)
async def select_address(
    session_id: str,
    payload: SelectAddressRequest,
    db: Session = Depends(get_db),
) -> CheckoutViewV1:
    record = _get_record(session_id)
    outcome = await record.reconciler.select_address(payload.address_id)

    if outcome.ok or outcome.issue.kind == IssueKindV1.SHIPPING_FEE_ERROR:
        _log_event(
            db,
            session_id=session_id,
            event_type=EventTypeV1.ADDRESS_SELECTED,
            event_payload={"address_id": payload.address_id},
        )
        _log_shipping(db, record, outcome)
    _log_validation(db, record, outcome)
    _touch_session(db, record)
    db.commit()

    _raise_issue_http_error(outcome)
    return _view(record, outcome)


def _address_change(
    db: Session,
    record: SessionRecord,
    outcome: CheckoutOutcome,
    *,
    action: str,
    address_id: int | None,
) -> CheckoutViewV1:
    if outcome.issue is None or outcome.issue.kind == IssueKindV1.SHIPPING_FEE_ERROR:
        _log_event(
            db,
            session_id=record.session_id,
            event_type=EventTypeV1.ADDRESS_CHANGED,
            event_payload={"action": action, "address_id": address_id},
        )
        if action in ("create", "update") and address_id == record.reconciler.selected_address_id:
            _log_shipping(db, record, outcome)
    _log_validation(db, record, outcome)
    _touch_session(db, record)
    db.commit()

    _raise_issue_http_error(outcome)
    return _view(record, outcome)


@router.post(
    "/v1/checkout/{session_id}/addresses",
    response_model=CheckoutViewV1,
    response_model_by_alias=False,
)
async def add_address(
    session_id: str,
    payload: AddressRequestV1,
    db: Session = Depends(get_db),
) -> CheckoutViewV1:
    record = _get_record(session_id)
    outcome = await record.reconciler.add_address(payload)
    return _address_change(
        db, record, outcome, action="create", address_id=record.reconciler.selected_address_id
    )


@router.put(
    "/v1/checkout/{session_id}/addresses/{address_id}",
    response_model=CheckoutViewV1,
    response_model_by_alias=False,
)
async def edit_address(
    session_id: str,
    address_id: int,
    payload: AddressRequestV1,
    db: Session = Depends(get_db),
) -> CheckoutViewV1:
    record = _get_record(session_id)
    outcome = await record.reconciler.edit_address(address_id, payload)
    return _address_change(db, record, outcome, action="update", address_id=address_id)


@router.delete(
    "/v1/checkout/{session_id}/addresses/{address_id}",
    response_model=CheckoutViewV1,
    response_model_by_alias=False,
)
async def delete_address(
    session_id: str,
    address_id: int,
    db: Session = Depends(get_db),
) -> CheckoutViewV1:
    record = _get_record(session_id)
    outcome = await record.reconciler.delete_address(address_id)
    return _address_change(db, record, outcome, action="delete", address_id=address_id)


@router.post(
    "/v1/checkout/{session_id}/addresses/{address_id}/default",
    response_model=CheckoutViewV1,
    response_model_by_alias=False,
)
async def set_default_address(
    session_id: str,
    address_id: int,
    db: Session = Depends(get_db),
) -> CheckoutViewV1:
    record = _get_record(session_id)
    outcome = await record.reconciler.set_default_address(address_id)
    return _address_change(
        db, record, outcome, action="set_default", address_id=address_id
    )


@router.post(
    "/v1/checkout/{session_id}/coupon",
    response_model=CheckoutViewV1,
    response_model_by_alias=False,
)
async def apply_coupon(
    session_id: str,
    payload: ApplyCouponRequest,
    db: Session = Depends(get_db),
) -> CheckoutViewV1:
    record = _get_record(session_id)
    outcome = await record.reconciler.apply_coupon(payload.code)

    # A superseded apply changed nothing; the newer request logs its own result.
    if outcome.ok and not outcome.superseded:
        _log_event(
            db,
            session_id=session_id,
            event_type=EventTypeV1.COUPON_APPLIED,
            event_payload={
                "code": record.reconciler.applied_coupon_code,
                "discount_amount": record.reconciler.discount_amount,
            },
        )
    elif outcome.issue is not None and outcome.issue.kind == IssueKindV1.COUPON_ERROR:
        _log_event(
            db,
            session_id=session_id,
            event_type=EventTypeV1.COUPON_REJECTED,
            event_payload={"code": payload.code, "message": outcome.issue.message},
        )
    _log_validation(db, record, outcome)
    _touch_session(db, record)
    db.commit()

    _raise_issue_http_error(outcome)
    return _view(record, outcome)


@router.delete(
    "/v1/checkout/{session_id}/coupon",
    response_model=CheckoutViewV1,
    response_model_by_alias=False,
)
async def remove_coupon(session_id: str, db: Session = Depends(get_db)) -> CheckoutViewV1:
    record = _get_record(session_id)
    removed_code = record.reconciler.applied_coupon_code
    outcome = await record.reconciler.remove_coupon()

    if outcome.ok and not outcome.superseded and removed_code is not None:
        _log_event(
            db,
            session_id=session_id,
            event_type=EventTypeV1.COUPON_REMOVED,
            event_payload={"code": removed_code},
        )
    _log_validation(db, record, outcome)
    _touch_session(db, record)
    db.commit()

    _raise_issue_http_error(outcome)
    return _view(record, outcome)


@router.post(
    "/v1/checkout/{session_id}/order",
    response_model=CheckoutViewV1,
    response_model_by_alias=False,
)
async def place_order(
    session_id: str,
    payload: PlaceOrderRequest,
    db: Session = Depends(get_db),
) -> CheckoutViewV1:
    record = _get_record(session_id)

    # The client confirms up front; the preview it saw is the current view.
    def _confirm(_preview: OrderPreview) -> bool:
        return payload.confirmed

    outcome = await record.reconciler.place_order(payload.payment_method, payload.notes, _confirm)

    if outcome.order is not None:
        order = outcome.order
        _log_event(
            db,
            session_id=session_id,
            entity_type=EntityTypeV1.ORDER,
            entity_id=str(order.id),
            event_type=EventTypeV1.ORDER_PLACED,
            event_payload={
                "order_id": order.id,
                "order_number": order.order_number,
                "total_amount": order.total_amount,
                "fees": outcome.fees.model_dump(mode="json"),
            },
        )
        db.add(
            PlacedOrder(
                id=uuid4().hex,
                session_id=session_id,
                order_id=order.id,
                order_number=order.order_number,
                payment_method=order.payment_method.value,
                total_amount=order.total_amount,
                order_payload_json=order.model_dump(mode="json"),
            )
        )
        store.discard_session(session_id)
    elif outcome.issue is not None and outcome.issue.kind == IssueKindV1.CONFIRMATION_DECLINED:
        _log_event(
            db,
            session_id=session_id,
            event_type=EventTypeV1.ORDER_DECLINED,
            event_payload={"fees": outcome.fees.model_dump(mode="json")},
        )
    elif outcome.issue is not None and outcome.issue.kind == IssueKindV1.ORDER_CREATION_ERROR:
        _log_event(
            db,
            session_id=session_id,
            event_type=EventTypeV1.ORDER_REJECTED,
            event_payload={"message": outcome.issue.message},
        )
    _log_validation(db, record, outcome)
    _touch_session(db, record)
    db.commit()

    _raise_issue_http_error(outcome)
    return _view(record, outcome)


@router.delete("/v1/checkout/{session_id}", status_code=204)
async def abandon_checkout(session_id: str, db: Session = Depends(get_db)) -> Response:
    record = _get_record(session_id)
    record.reconciler.abandon()
    store.discard_session(session_id)

    _log_event(
        db,
        session_id=session_id,
        event_type=EventTypeV1.SESSION_ABANDONED,
        event_payload={"fees": record.reconciler.fees.model_dump(mode="json")},
    )
    _touch_session(db, record)
    db.commit()

    return Response(status_code=204)
