from pydantic import BaseModel


class RoleOut(BaseModel):
    key: str
    label: str
    description: str
    permissions: list[str]
    is_system: bool = True
    user_count: int


class RoleListOut(BaseModel):
    items: list[RoleOut]
