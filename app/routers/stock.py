from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.api_docs import error_responses
from app.core.config import settings
from app.core.deps import get_db
from app.core.permissions import require_permission
from app.core.security_current import ActorContext
from app.models.stock import Stock, StockMovement
from app.schemas.common import PageMeta
from app.schemas.stock import (
    AdjustmentReasonListOut,
    AdjustmentReasonOut,
    StockAdjustIn,
    StockAdjustOut,
    StockHistoryOut,
    StockItemOut,
    StockListOut,
    StockMovementOut,
    StockStatsOut,
    StockSummaryOut,
)
from app.services.stock_adjustment_service import AdjustmentReason, apply_stock_adjustment
from app.services.stock_history_service import load_stock_history, movement_label, summarize_stock
from app.services.stock_service import (
    StockRow,
    StockStatus,
    compute_stock_stats,
    filter_stock_rows,
    get_stock_row,
    list_categories,
    load_stock_rows,
    paginate_stock_rows,
    resolve_activity_scope,
)

router = APIRouter(prefix="/stock", tags=["stock"])


def _stock_item_out(row: StockRow) -> StockItemOut:
    return StockItemOut(
        id=row.id,
        activity_id=row.activity_id,
        product_id=row.product_id,
        product_code=row.product_code,
        product_name=row.product_name,
        unit=row.unit,
        category=row.category,
        quantity=row.quantity,
        reserved_quantity=row.reserved_quantity,
        available=row.available,
        min_stock_level=row.min_stock_level or 0,
        status=row.status.value,
        purchase_price=float(row.purchase_price) if row.purchase_price is not None else None,
        sale_price=float(row.sale_price) if row.sale_price is not None else None,
        last_updated=row.last_updated,
    )


def _movement_out(movement: StockMovement) -> StockMovementOut:
    return StockMovementOut(
        id=movement.id,
        stock_id=movement.stock_id,
        product_id=movement.product_id,
        movement_type=movement.movement_type,
        movement_label=movement_label(movement.movement_type),
        quantity=movement.quantity,
        reference=movement.reference,
        notes=movement.notes,
        created_by=movement.created_by,
        created_at=movement.created_at,
    )


def _stock_row_or_404(db: Session, actor: ActorContext, stock_id: str) -> StockRow:
    row = get_stock_row(db, actor, stock_id)
    if not row:
        raise HTTPException(status_code=404, detail="Stock record not found")
    return row


@router.get(
    "",
    response_model=StockListOut,
    summary="List stock levels",
    description=(
        "Loads every stock record visible to the caller, then filters and paginates in memory. "
        "Statistics are computed over the unfiltered set."
    ),
    responses=error_responses(401, 403, 422, 500),
)
def list_stock(
    search: str | None = Query(default=None, description="Case-insensitive match on product name or code"),
    category: str | None = Query(default=None),
    status: str | None = Query(default=None, description="out_of_stock, low or normal"),
    activity_id: str | None = Query(default=None, description="Owner-only activity selector"),
    page: int = Query(default=1, ge=1),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_permission("stock.read")),
):
    try:
        wanted_status = StockStatus.parse(status)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    rows = load_stock_rows(db, actor, activity_id=activity_id)
    filtered = filter_stock_rows(rows, search=search, category=category, status=wanted_status)
    page_data = paginate_stock_rows(filtered, page=page, page_size=settings.stock_page_size)
    stats = compute_stock_stats(rows)

    return StockListOut(
        items=[_stock_item_out(row) for row in page_data.items],
        pagination=PageMeta(
            page=page_data.page,
            page_size=page_data.page_size,
            total=page_data.total,
            total_pages=page_data.total_pages,
            count=len(page_data.items),
            has_next=page_data.has_next,
        ),
        stats=StockStatsOut(
            total_products=stats.total_products,
            low_stock_items=stats.low_stock_items,
            out_of_stock_items=stats.out_of_stock_items,
            total_value=stats.total_value,
        ),
        categories=list_categories(rows),
        activity_id=resolve_activity_scope(actor, activity_id),
    )


@router.get(
    "/adjustment-reasons",
    response_model=AdjustmentReasonListOut,
    summary="List stock adjustment reasons",
    responses=error_responses(401, 403, 500, path="/stock/adjustment-reasons"),
)
def list_adjustment_reasons(
    actor: ActorContext = Depends(require_permission("stock.adjust")),
):
    return AdjustmentReasonListOut(
        items=[AdjustmentReasonOut(key=reason.value, label=reason.label) for reason in AdjustmentReason]
    )


@router.get(
    "/{stock_id}",
    response_model=StockItemOut,
    summary="Get one stock record",
    responses=error_responses(401, 403, 404, 500, path="/stock/{stock_id}"),
)
def get_stock(
    stock_id: str,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_permission("stock.read")),
):
    return _stock_item_out(_stock_row_or_404(db, actor, stock_id))


@router.post(
    "/{stock_id}/adjust",
    response_model=StockAdjustOut,
    summary="Adjust a stock quantity",
    description=(
        "Replaces the stored quantity with the counted one. When the quantity changes an "
        "`adjustment` movement carrying the absolute difference is logged first."
    ),
    responses=error_responses(401, 403, 404, 422, 500, path="/stock/{stock_id}/adjust"),
)
def adjust_stock(
    stock_id: str,
    payload: StockAdjustIn,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_permission("stock.adjust")),
):
    _stock_row_or_404(db, actor, stock_id)
    stock = db.execute(
        select(Stock).where(Stock.id == stock_id, Stock.company_id == actor.company_id)
    ).scalar_one()

    result = apply_stock_adjustment(
        db,
        actor,
        stock,
        new_quantity=payload.new_quantity,
        reason=payload.reason,
        note=payload.note,
    )
    row = _stock_row_or_404(db, actor, result.stock.id)
    return StockAdjustOut(
        stock=_stock_item_out(row),
        movement=_movement_out(result.movement) if result.movement is not None else None,
        delta=result.delta,
    )


@router.get(
    "/{stock_id}/history",
    response_model=StockHistoryOut,
    summary="Recent movements of a stock record",
    responses=error_responses(401, 403, 404, 500, path="/stock/{stock_id}/history"),
)
def get_stock_history(
    stock_id: str,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_permission("stock.history")),
):
    row = _stock_row_or_404(db, actor, stock_id)
    movements = load_stock_history(db, row.id)
    summary = summarize_stock(row)
    return StockHistoryOut(
        stock=_stock_item_out(row),
        summary=StockSummaryOut(
            quantity=summary.quantity,
            reserved_quantity=summary.reserved_quantity,
            available=summary.available,
            min_stock_level=summary.min_stock_level,
        ),
        items=[_movement_out(movement) for movement in movements],
        is_empty=not movements,
    )
