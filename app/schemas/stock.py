from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.schemas.common import PageMeta
from app.services.stock_adjustment_service import AdjustmentReason


class StockItemOut(BaseModel):
    id: str
    activity_id: str
    product_id: str
    product_code: str
    product_name: str
    unit: str | None = None
    category: str | None = None
    quantity: int
    reserved_quantity: int
    available: int
    min_stock_level: int
    status: str
    purchase_price: float | None = None
    sale_price: float | None = None
    last_updated: datetime | None = None


class StockStatsOut(BaseModel):
    total_products: int
    low_stock_items: int
    out_of_stock_items: int
    total_value: Decimal


class StockListOut(BaseModel):
    items: list[StockItemOut]
    pagination: PageMeta
    stats: StockStatsOut
    categories: list[str]
    activity_id: str | None = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "items": [
                    {
                        "id": "stock-id",
                        "activity_id": "activity-id",
                        "product_id": "product-id",
                        "product_code": "W1",
                        "product_name": "Widget",
                        "unit": "piece",
                        "category": "A",
                        "quantity": 12,
                        "reserved_quantity": 7,
                        "available": 5,
                        "min_stock_level": 10,
                        "status": "low",
                        "purchase_price": 2.5,
                        "sale_price": 4.0,
                        "last_updated": "2026-10-18T10:00:00Z",
                    }
                ],
                "pagination": {
                    "page": 1,
                    "page_size": 10,
                    "total": 1,
                    "total_pages": 1,
                    "count": 1,
                    "has_next": False,
                },
                "stats": {
                    "total_products": 1,
                    "low_stock_items": 1,
                    "out_of_stock_items": 0,
                    "total_value": "30.00",
                },
                "categories": ["A"],
                "activity_id": None,
            }
        }
    )


class StockAdjustIn(BaseModel):
    new_quantity: int = Field(ge=0, description="Counted quantity that replaces the stored one.")
    reason: AdjustmentReason
    note: Optional[str] = Field(default=None, max_length=255)

    @field_validator("reason", mode="before")
    @classmethod
    def normalize_reason(cls, value):
        if isinstance(value, str):
            cleaned = value.strip().lower()
            if not cleaned:
                raise ValueError("reason is required")
            return cleaned
        return value

    @field_validator("note", mode="before")
    @classmethod
    def normalize_note(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        cleaned = str(value).strip()
        return cleaned or None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "new_quantity": 48,
                "reason": "physical_inventory",
                "note": "Monthly count, shelf B",
            }
        }
    )


class StockMovementOut(BaseModel):
    id: str
    stock_id: str
    product_id: str
    movement_type: str
    movement_label: str
    quantity: int
    reference: str | None = None
    notes: str | None = None
    created_by: str | None = None
    created_at: datetime


class StockAdjustOut(BaseModel):
    stock: StockItemOut
    movement: StockMovementOut | None = None
    delta: int


class AdjustmentReasonOut(BaseModel):
    key: str
    label: str


class AdjustmentReasonListOut(BaseModel):
    items: list[AdjustmentReasonOut]


class StockSummaryOut(BaseModel):
    quantity: int
    reserved_quantity: int
    available: int
    min_stock_level: int


class StockHistoryOut(BaseModel):
    stock: StockItemOut
    summary: StockSummaryOut
    items: list[StockMovementOut]
    is_empty: bool
