"""用户管理请求结构。"""

from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field

UserStatusLiteral = Literal["active", "inactive", "banned"]


class UserCreateRequest(BaseModel):
    """创建用户请求体；创建者自动记为当前登录用户。"""

    email: str = Field(min_length=3, max_length=256, examples=["alice@example.com"])
    password: str = Field(min_length=6, max_length=128)
    first_name: str = Field(default="", max_length=64)
    last_name: str = Field(default="", max_length=64)
    role_id: UUID | None = None
    status: UserStatusLiteral = "active"
    affiliate_ids: list[UUID] | None = Field(default=None, description="可见站点，需为创建者可见站点的子集。")


class UserUpdateRequest(BaseModel):
    """更新用户请求体。"""

    email: str | None = Field(default=None, min_length=3, max_length=256)
    password: str | None = Field(default=None, min_length=6, max_length=128)
    first_name: str | None = Field(default=None, max_length=64)
    last_name: str | None = Field(default=None, max_length=64)
    role_id: UUID | None = None
    status: UserStatusLiteral | None = None
    affiliate_ids: list[UUID] | None = None
