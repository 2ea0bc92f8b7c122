import logging
import math
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Iterable, Sequence, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.money import ZERO_MONEY, line_value, to_money
from app.core.observability import log_event
from app.core.roles import can_select_activity, can_view_all_activities
from app.core.security_current import ActorContext
from app.models.product import Product
from app.models.stock import Stock

T = TypeVar("T")


class StockStatus(str, Enum):
    OUT_OF_STOCK = "out_of_stock"
    LOW = "low"
    NORMAL = "normal"

    @classmethod
    def parse(cls, value: "str | StockStatus | None") -> "StockStatus | None":
        if value is None or isinstance(value, StockStatus):
            return value
        normalized = value.strip().lower().replace("-", "_")
        if not normalized:
            return None
        normalized = _LEGACY_STATUS_LABELS.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError as exc:
            raise ValueError(f"Unknown stock status: {value}") from exc


_LEGACY_STATUS_LABELS = {"rupture": "out_of_stock", "faible": "low"}


@dataclass
class StockRow:
    """A stock record joined with the product fields the listing needs."""

    id: str
    company_id: str
    activity_id: str
    product_id: str
    quantity: int
    reserved_quantity: int
    last_updated: datetime | None
    product_code: str = ""
    product_name: str = ""
    unit: str | None = None
    category: str | None = None
    min_stock_level: int | None = 0
    purchase_price: Decimal | None = None
    sale_price: Decimal | None = None

    @property
    def available(self) -> int:
        return available_quantity(self.quantity, self.reserved_quantity)

    @property
    def status(self) -> StockStatus:
        return classify_stock_status(self.available, self.min_stock_level)


@dataclass(frozen=True)
class StockPage:
    items: list[StockRow]
    page: int
    page_size: int
    total: int
    total_pages: int

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages


@dataclass(frozen=True)
class StockStats:
    total_products: int
    low_stock_items: int
    out_of_stock_items: int
    total_value: Decimal


def available_quantity(quantity: int, reserved_quantity: int) -> int:
    return (quantity or 0) - (reserved_quantity or 0)


def classify_stock_status(available: int, min_stock_level: int | None) -> StockStatus:
    if available <= 0:
        return StockStatus.OUT_OF_STOCK
    if available <= (min_stock_level or 0):
        return StockStatus.LOW
    return StockStatus.NORMAL


def resolve_activity_scope(actor: ActorContext, requested_activity_id: str | None = None) -> str | None:
    """
    Activity the listing is restricted to, or None for every activity of the company.
    Owners may narrow through the selector, admins always see everything, and other
    roles are pinned to their own activity when they have one.
    """
    requested = (requested_activity_id or "").strip() or None
    if can_select_activity(actor.role):
        return requested
    if can_view_all_activities(actor.role):
        return None
    return actor.activity_id


def _row_from(stock: Stock, product: Product | None) -> StockRow:
    row = StockRow(
        id=stock.id,
        company_id=stock.company_id,
        activity_id=stock.activity_id,
        product_id=stock.product_id,
        quantity=stock.quantity,
        reserved_quantity=stock.reserved_quantity,
        last_updated=stock.last_updated,
    )
    if product is not None:
        row.product_code = product.code
        row.product_name = product.name
        row.unit = product.unit
        row.category = product.category
        row.min_stock_level = product.min_stock_level
        row.purchase_price = product.purchase_price
        row.sale_price = product.sale_price
    return row


def _scoped_stock_query(actor: ActorContext, activity_id: str | None):
    stmt = (
        select(Stock, Product)
        .outerjoin(Product, Product.id == Stock.product_id)
        .where(Stock.company_id == actor.company_id)
    )
    if activity_id:
        stmt = stmt.where(Stock.activity_id == activity_id)
    return stmt


def load_stock_rows(
    db: Session,
    actor: ActorContext,
    *,
    activity_id: str | None = None,
) -> list[StockRow]:
    scope = resolve_activity_scope(actor, activity_id)
    stmt = _scoped_stock_query(actor, scope).order_by(Stock.last_updated.desc())
    try:
        rows = db.execute(stmt).all()
    except SQLAlchemyError as exc:
        db.rollback()
        log_event(
            "stock.load_failed",
            level=logging.ERROR,
            company_id=actor.company_id,
            activity_id=scope,
            error=str(exc),
        )
        return []
    return [_row_from(stock, product) for stock, product in rows]


def get_stock_row(db: Session, actor: ActorContext, stock_id: str) -> StockRow | None:
    scope = resolve_activity_scope(actor)
    row = db.execute(_scoped_stock_query(actor, scope).where(Stock.id == stock_id)).first()
    if not row:
        return None
    return _row_from(row[0], row[1])


def _matches_search(row: StockRow, term: str) -> bool:
    return term in (row.product_name or "").lower() or term in (row.product_code or "").lower()


def filter_stock_rows(
    rows: Iterable[StockRow],
    *,
    search: str | None = None,
    category: str | None = None,
    status: "StockStatus | str | None" = None,
) -> list[StockRow]:
    term = (search or "").strip().lower()
    wanted_status = StockStatus.parse(status)
    result = []
    for row in rows:
        if term and not _matches_search(row, term):
            continue
        if category and row.category != category:
            continue
        if wanted_status is not None and row.status != wanted_status:
            continue
        result.append(row)
    return result


def paginate(items: Sequence[T], *, page: int, page_size: int) -> tuple[list[T], int]:
    """Slice one 1-based page. Out-of-range pages come back empty; callers reset the index."""
    if page_size < 1:
        raise ValueError("page_size must be positive")
    total_pages = math.ceil(len(items) / page_size)
    start = (max(page, 1) - 1) * page_size
    return list(items[start : start + page_size]), total_pages


def paginate_stock_rows(rows: Sequence[StockRow], *, page: int, page_size: int) -> StockPage:
    items, total_pages = paginate(rows, page=page, page_size=page_size)
    return StockPage(
        items=items,
        page=page,
        page_size=page_size,
        total=len(rows),
        total_pages=total_pages,
    )


def compute_stock_stats(rows: Iterable[StockRow]) -> StockStats:
    total_products = 0
    low_stock_items = 0
    out_of_stock_items = 0
    total_value = ZERO_MONEY
    for row in rows:
        total_products += 1
        available = row.available
        if available <= (row.min_stock_level or 0):
            low_stock_items += 1
        if available <= 0:
            out_of_stock_items += 1
        total_value += line_value(row.quantity, row.purchase_price)
    return StockStats(
        total_products=total_products,
        low_stock_items=low_stock_items,
        out_of_stock_items=out_of_stock_items,
        total_value=to_money(total_value),
    )


def list_categories(rows: Iterable[StockRow]) -> list[str]:
    return sorted({row.category for row in rows if row.category and row.category.strip()})
