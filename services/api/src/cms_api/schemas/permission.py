"""角色与权限管理请求结构。"""

from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

PermissionActionLiteral = Literal[
    "create", "read", "update", "delete", "update_own", "delete_own", "publish", "unpublish"
]
StatusLiteral = Literal["active", "inactive"]


def _dedupe(value: list[UUID] | None) -> list[UUID] | None:
    if value is None:
        return None
    return list(dict.fromkeys(value))


class RoleCreateRequest(BaseModel):
    """创建角色请求体。"""

    name: str = Field(min_length=2, max_length=64, pattern=r"^[a-z0-9_-]+$", examples=["reviewer"])
    display_name: str = Field(min_length=1, max_length=128, examples=["Reviewer"])
    description: str | None = Field(default=None, max_length=2000)
    status: StatusLiteral = Field(default="active")
    permission_ids: list[UUID] = Field(default_factory=list, description="初始权限 ID 列表。")

    @field_validator("permission_ids")
    @classmethod
    def dedupe_permission_ids(cls, value: list[UUID]) -> list[UUID]:
        return _dedupe(value) or []


class RoleUpdateRequest(BaseModel):
    """更新角色请求体；permission_ids 传入时整体替换权限集合。"""

    display_name: str | None = Field(default=None, min_length=1, max_length=128)
    description: str | None = Field(default=None, max_length=2000)
    status: StatusLiteral | None = None
    permission_ids: list[UUID] | None = None

    @field_validator("permission_ids")
    @classmethod
    def dedupe_permission_ids(cls, value: list[UUID] | None) -> list[UUID] | None:
        return _dedupe(value)


class PermissionCreateRequest(BaseModel):
    """创建权限请求体，name 由 entity.action 推导。"""

    entity: str = Field(min_length=1, max_length=64, pattern=r"^[a-z0-9_]+$", examples=["banners"])
    action: PermissionActionLiteral = Field(examples=["read"])
    display_name: str = Field(min_length=1, max_length=128, examples=["Read Banners"])
    description: str | None = Field(default=None, max_length=2000)
    status: StatusLiteral = Field(default="active")


class PermissionUpdateRequest(BaseModel):
    """更新权限请求体；entity/action 变化时重新推导 name。"""

    entity: str | None = Field(default=None, min_length=1, max_length=64, pattern=r"^[a-z0-9_]+$")
    action: PermissionActionLiteral | None = None
    display_name: str | None = Field(default=None, min_length=1, max_length=128)
    description: str | None = Field(default=None, max_length=2000)
    status: StatusLiteral | None = None
