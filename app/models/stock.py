from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class Stock(Base):
    """
    Quantity of one product at one activity. Only `quantity` and `last_updated`
    are written here; `reserved_quantity` is owned by the order workflows.
    """
    __tablename__ = "stocks"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    company_id: Mapped[str] = mapped_column(String(36), ForeignKey("companies.id"), nullable=False, index=True)
    activity_id: Mapped[str] = mapped_column(String(36), ForeignKey("activities.id"), nullable=False, index=True)
    product_id: Mapped[str] = mapped_column(String(36), ForeignKey("products.id"), nullable=False, index=True)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    reserved_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("ix_stocks_company_activity_last_updated", "company_id", "activity_id", "last_updated"),
        Index("ux_stocks_activity_product", "activity_id", "product_id", unique=True),
    )


class StockMovement(Base):
    """
    Append-only log of quantity changes. `quantity` is always a magnitude;
    direction lives in `movement_type` ("in", "out") or in `notes` for "adjustment".
    """
    __tablename__ = "stock_movements"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    company_id: Mapped[str] = mapped_column(String(36), ForeignKey("companies.id"), nullable=False, index=True)
    activity_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("activities.id"), nullable=True)
    stock_id: Mapped[str] = mapped_column(String(36), ForeignKey("stocks.id"), nullable=False, index=True)
    product_id: Mapped[str] = mapped_column(String(36), ForeignKey("products.id"), nullable=False)

    movement_type: Mapped[str] = mapped_column(String(20), nullable=False)  # "in", "out", "adjustment"
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    reference: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("users.id"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("ix_stock_movements_stock_created_at", "stock_id", "created_at"),
    )
