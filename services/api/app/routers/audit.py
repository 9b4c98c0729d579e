from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from packages.shared.schemas.events import EntityTypeV1, EventTypeV1, EventV1
from services.api.app.db.deps import get_db
from services.api.app.db.models import CheckoutSession, EventLog, PlacedOrder
from services.api.app.models.audit import CheckoutSessionOut, PlacedOrderOut
from sqlalchemy.orm import Session

router = APIRouter()


def _placed_order_out(row: PlacedOrder) -> PlacedOrderOut:
    return PlacedOrderOut(
        id=row.id,
        session_id=row.session_id,
        order_id=row.order_id,
        order_number=row.order_number,
        payment_method=row.payment_method,
        total_amount=row.total_amount,
        created_at=row.created_at.isoformat(),
        order_payload_json=row.order_payload_json,
    )


@router.get("/v1/checkout-sessions/{session_id}", response_model=CheckoutSessionOut)
def get_checkout_session(session_id: str, db: Session = Depends(get_db)) -> CheckoutSessionOut:
    row = db.get(CheckoutSession, session_id)
    if row is None:
        raise HTTPException(status_code=404, detail="Checkout session not found")

    return CheckoutSessionOut(
        session_id=row.id,
        storefront=row.storefront,
        status=row.status,
        dish_ids=row.dish_ids_json,
        total_amount=row.total_amount,
        created_at=row.created_at.isoformat(),
        updated_at=row.updated_at.isoformat(),
    )


@router.get("/v1/checkout/{session_id}/events", response_model=list[EventV1])
def list_session_events(session_id: str, db: Session = Depends(get_db)) -> list[EventV1]:
    if db.get(CheckoutSession, session_id) is None:
        raise HTTPException(status_code=404, detail="Checkout session not found")

    rows = (
        db.query(EventLog)
        .filter(EventLog.session_id == session_id)
        .order_by(EventLog.created_at.asc())
        .all()
    )

    return [
        EventV1(
            id=r.id,
            session_id=r.session_id,
            entity_type=EntityTypeV1(r.entity_type),
            entity_id=r.entity_id,
            event_type=EventTypeV1(r.event_type),
            payload=r.event_payload_json,
            created_at=r.created_at.isoformat(),
        )
        for r in rows
    ]


@router.get("/v1/orders", response_model=list[PlacedOrderOut])
def list_placed_orders(
    session_id: str | None = None, db: Session = Depends(get_db)
) -> list[PlacedOrderOut]:
    query = db.query(PlacedOrder)
    if session_id is not None:
        query = query.filter(PlacedOrder.session_id == session_id)

    rows = query.order_by(PlacedOrder.created_at.desc()).limit(200).all()
    return [_placed_order_out(r) for r in rows]
