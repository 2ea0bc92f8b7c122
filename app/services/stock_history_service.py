import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.observability import log_event
from app.models.stock import StockMovement
from app.services.stock_service import StockRow

MOVEMENT_TYPE_LABELS = {
    "in": "Stock in",
    "out": "Stock out",
    "adjustment": "Adjustment",
}


@dataclass(frozen=True)
class StockSummary:
    quantity: int
    reserved_quantity: int
    available: int
    min_stock_level: int


def movement_label(movement_type: str) -> str:
    return MOVEMENT_TYPE_LABELS.get(movement_type, movement_type)


def summarize_stock(row: StockRow) -> StockSummary:
    return StockSummary(
        quantity=row.quantity,
        reserved_quantity=row.reserved_quantity,
        available=row.available,
        min_stock_level=row.min_stock_level or 0,
    )


def load_stock_history(db: Session, stock_id: str, *, limit: int | None = None) -> list[StockMovement]:
    stmt = (
        select(StockMovement)
        .where(StockMovement.stock_id == stock_id)
        .order_by(StockMovement.created_at.desc())
        .limit(limit or settings.stock_history_limit)
    )
    try:
        return list(db.execute(stmt).scalars().all())
    except SQLAlchemyError as exc:
        db.rollback()
        log_event(
            "stock.history_load_failed",
            level=logging.ERROR,
            stock_id=stock_id,
            error=str(exc),
        )
        return []
