from datetime import datetime
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from app.schemas.common import PaginationMeta


def _clean_optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    cleaned = str(value).strip()
    return cleaned or None


class ActivityCreateIn(BaseModel):
    name: str = Field(min_length=2, max_length=120)
    address: Optional[str] = Field(default=None, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=50)
    manager_name: Optional[str] = Field(default=None, max_length=120)
    is_active: bool = True

    @field_validator("name")
    @classmethod
    def normalize_name(cls, value: str) -> str:
        cleaned = value.strip()
        if len(cleaned) < 2:
            raise ValueError("name must be at least 2 characters")
        return cleaned

    @field_validator("address", "phone", "manager_name", mode="before")
    @classmethod
    def normalize_optional_strings(cls, value: Optional[str]) -> Optional[str]:
        return _clean_optional(value)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "name": "Boutique Plateau",
                "address": "Rue 10, Plateau",
                "phone": "+221 33 821 00 00",
                "manager_name": "Moussa Ba",
                "is_active": True,
            }
        }
    )


class ActivityUpdateIn(BaseModel):
    name: Optional[str] = Field(default=None, max_length=120)
    address: Optional[str] = Field(default=None, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=50)
    manager_name: Optional[str] = Field(default=None, max_length=120)
    is_active: Optional[bool] = Field(default=None, validation_alias=AliasChoices("is_active", "isActive"))

    @field_validator("name")
    @classmethod
    def normalize_name(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        cleaned = value.strip()
        if len(cleaned) < 2:
            raise ValueError("name must be at least 2 characters")
        return cleaned

    @field_validator("address", "phone", "manager_name", mode="before")
    @classmethod
    def normalize_optional_strings(cls, value: Optional[str]) -> Optional[str]:
        return _clean_optional(value)

    @model_validator(mode="after")
    def validate_any_field_present(self) -> "ActivityUpdateIn":
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided")
        return self

    model_config = ConfigDict(populate_by_name=True)


class ActivityOut(BaseModel):
    id: str
    name: str
    address: str | None = None
    phone: str | None = None
    manager_name: str | None = None
    is_active: bool
    created_at: datetime
    updated_at: datetime


class ActivityListOut(BaseModel):
    items: list[ActivityOut]
    pagination: PaginationMeta
