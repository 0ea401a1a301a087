"""菜单请求结构。"""

from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field

PlatformLiteral = Literal["Web", "Android", "iOS"]


class MenuCreateRequest(BaseModel):
    """创建菜单请求体。links 可为节点数组或其 JSON 文本。"""

    title: str = Field(min_length=1, max_length=255, examples=["Main Menu"])
    platform: PlatformLiteral = "Web"
    status: Literal["active", "inactive"] = "active"
    sort_order: int = 0
    category_id: UUID | None = None
    links: str | list[Any] | None = None


class MenuUpdateRequest(BaseModel):
    """更新菜单请求体；links 传入时整体覆盖菜单树。"""

    title: str | None = Field(default=None, min_length=1, max_length=255)
    platform: PlatformLiteral | None = None
    status: Literal["active", "inactive"] | None = None
    sort_order: int | None = None
    category_id: UUID | None = None
    links: str | list[Any] | None = None
