from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from app.core.roles import Role
from app.schemas.common import PaginationMeta


class UserCreateIn(BaseModel):
    email: EmailStr
    password: str
    first_name: str = Field(max_length=100)
    last_name: str = Field(max_length=100)
    phone: Optional[str] = Field(default=None, max_length=50)
    role: Role = Role.SELLER
    activity_id: Optional[str] = None
    is_active: bool = True

    @field_validator("first_name", "last_name")
    @classmethod
    def validate_required_text(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("value is required")
        return cleaned

    @field_validator("password")
    @classmethod
    def validate_password(cls, value: str) -> str:
        if len(value) < 8:
            raise ValueError("password must be at least 8 characters")
        return value

    @field_validator("role", mode="before")
    @classmethod
    def normalize_role(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("phone", "activity_id", mode="before")
    @classmethod
    def normalize_optional_strings(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        cleaned = str(value).strip()
        return cleaned or None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "email": "seller@example.com",
                "password": "password123",
                "first_name": "Fatou",
                "last_name": "Ndiaye",
                "phone": "+221 77 111 22 33",
                "role": "seller",
                "activity_id": "activity-id",
                "is_active": True,
            }
        }
    )


class UserUpdateIn(BaseModel):
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=50)
    role: Optional[Role] = None
    activity_id: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator("first_name", "last_name")
    @classmethod
    def validate_required_text(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("value cannot be empty")
        return cleaned

    @field_validator("role", mode="before")
    @classmethod
    def normalize_role(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("phone", "activity_id", mode="before")
    @classmethod
    def normalize_optional_strings(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        cleaned = str(value).strip()
        return cleaned or None

    @model_validator(mode="after")
    def validate_any_field_present(self) -> "UserUpdateIn":
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided")
        return self


class UserOut(BaseModel):
    id: str
    email: EmailStr
    first_name: str
    last_name: str
    phone: str | None = None
    role: str
    activity_id: str | None = None
    is_active: bool
    created_at: datetime


class UserListOut(BaseModel):
    items: list[UserOut]
    pagination: PaginationMeta
