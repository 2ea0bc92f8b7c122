from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator


class CompanyOut(BaseModel):
    id: str
    name: str
    address: str | None = None
    phone: str | None = None
    email: str | None = None
    tax_number: str | None = None
    is_active: bool
    created_at: datetime
    updated_at: datetime


class CompanyUpdateIn(BaseModel):
    name: Optional[str] = Field(default=None, max_length=255)
    address: Optional[str] = Field(default=None, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=50)
    email: Optional[EmailStr] = None
    tax_number: Optional[str] = Field(default=None, max_length=100)

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("name cannot be empty")
        return cleaned

    @field_validator("address", "phone", "tax_number", mode="before")
    @classmethod
    def normalize_optional_strings(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        cleaned = str(value).strip()
        return cleaned or None

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        cleaned = str(value).strip().lower()
        return cleaned or None

    @model_validator(mode="after")
    def validate_any_field_present(self) -> "CompanyUpdateIn":
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided")
        return self

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "name": "Diallo Distribution SARL",
                "address": "12 Avenue Bourguiba, Dakar",
                "phone": "+221 33 800 00 00",
                "email": "contact@diallo.example",
                "tax_number": "SN-2024-000123",
            }
        }
    )
