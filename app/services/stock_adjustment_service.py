import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import StockAdjustmentError
from app.core.id_utils import generate_id
from app.core.observability import log_event
from app.core.security_current import ActorContext
from app.models.stock import Stock, StockMovement

ADJUSTMENT_MOVEMENT_TYPE = "adjustment"


class AdjustmentReason(str, Enum):
    PHYSICAL_INVENTORY = "physical_inventory"
    DAMAGED_GOODS = "damaged_goods"
    EXPIRED_GOODS = "expired_goods"
    DATA_ENTRY_ERROR = "data_entry_error"
    THEFT_OR_LOSS = "theft_or_loss"
    SUPPLIER_RETURN = "supplier_return"
    OTHER = "other"

    @property
    def label(self) -> str:
        return ADJUSTMENT_REASON_LABELS[self]


ADJUSTMENT_REASON_LABELS: dict[AdjustmentReason, str] = {
    AdjustmentReason.PHYSICAL_INVENTORY: "Physical inventory",
    AdjustmentReason.DAMAGED_GOODS: "Damaged goods",
    AdjustmentReason.EXPIRED_GOODS: "Expired goods",
    AdjustmentReason.DATA_ENTRY_ERROR: "Data-entry error",
    AdjustmentReason.THEFT_OR_LOSS: "Theft/Loss",
    AdjustmentReason.SUPPLIER_RETURN: "Supplier return",
    AdjustmentReason.OTHER: "Other",
}


@dataclass(frozen=True)
class AdjustmentResult:
    stock: Stock
    movement: StockMovement | None
    delta: int


def compute_delta(target_quantity: int, current_quantity: int) -> int:
    return target_quantity - (current_quantity or 0)


def build_adjustment_notes(reason: AdjustmentReason, note: str | None = None) -> str:
    cleaned = (note or "").strip()
    if cleaned:
        return f"{reason.label} - {cleaned}"
    return reason.label


def build_adjustment_reference(now: datetime, prefix: str | None = None) -> str:
    # Millisecond resolution: two adjustments in the same tick share a reference.
    return f"{prefix or settings.adjustment_reference_prefix}-{int(now.timestamp() * 1000)}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def apply_stock_adjustment(
    db: Session,
    actor: ActorContext,
    stock: Stock,
    *,
    new_quantity: int,
    reason: AdjustmentReason,
    note: str | None = None,
) -> AdjustmentResult:
    """
    Overwrite a stock quantity, logging an "adjustment" movement first when it changes.

    The movement and the quantity are committed separately: a failed movement insert
    aborts before the quantity is touched, while a failed quantity write leaves the
    already committed movement in place. Concurrent adjustments are last-writer-wins.
    """
    now = _utcnow()
    stock_id = stock.id
    delta = compute_delta(new_quantity, stock.quantity)
    movement: StockMovement | None = None
    movement_id: str | None = None

    if delta != 0:
        movement_id = generate_id()
        movement = StockMovement(
            id=movement_id,
            company_id=actor.company_id,
            activity_id=stock.activity_id,
            stock_id=stock_id,
            product_id=stock.product_id,
            movement_type=ADJUSTMENT_MOVEMENT_TYPE,
            quantity=abs(delta),
            reference=build_adjustment_reference(now),
            notes=build_adjustment_notes(reason, note),
            created_by=actor.user_id,
            created_at=now,
        )
        try:
            db.add(movement)
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            log_event(
                "stock.adjustment_failed",
                level=logging.ERROR,
                stage="movement",
                stock_id=stock_id,
                error=str(exc),
            )
            raise StockAdjustmentError(f"Could not record the stock movement: {exc}") from exc

    try:
        stock.quantity = new_quantity
        stock.last_updated = now
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        log_event(
            "stock.adjustment_orphan_movement" if movement is not None else "stock.adjustment_failed",
            level=logging.ERROR,
            stage="quantity",
            stock_id=stock_id,
            movement_id=movement_id,
            error=str(exc),
        )
        raise StockAdjustmentError(f"Could not update the stock quantity: {exc}") from exc

    db.refresh(stock)
    log_event(
        "stock.adjusted",
        stock_id=stock_id,
        actor_user_id=actor.user_id,
        delta=delta,
        new_quantity=new_quantity,
        reason=reason.value,
        movement_id=movement_id,
    )
    return AdjustmentResult(stock=stock, movement=movement, delta=delta)
