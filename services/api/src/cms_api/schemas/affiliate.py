"""站点相关请求结构。"""

from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field

_COLOR_PATTERN = r"^#[0-9a-fA-F]{3,8}$"


class AffiliateCreateRequest(BaseModel):
    """创建站点请求体；slug 缺省时按名称生成。"""

    name: str = Field(min_length=2, max_length=128, examples=["Daily News"])
    slug: str | None = Field(default=None, min_length=2, max_length=128, pattern=r"^[a-z0-9-]+$")
    description: str | None = Field(default=None, max_length=2000)
    domain: str | None = Field(default=None, max_length=255)
    logo_url: str | None = Field(default=None, max_length=512)
    primary_color: str | None = Field(default=None, pattern=_COLOR_PATTERN)
    secondary_color: str | None = Field(default=None, pattern=_COLOR_PATTERN)
    settings: dict[str, Any] | None = None
    status: Literal["active", "inactive"] = "active"
    sort_order: int = 0


class AffiliateUpdateRequest(BaseModel):
    """更新站点请求体。"""

    name: str | None = Field(default=None, min_length=2, max_length=128)
    slug: str | None = Field(default=None, min_length=2, max_length=128, pattern=r"^[a-z0-9-]+$")
    description: str | None = Field(default=None, max_length=2000)
    domain: str | None = Field(default=None, max_length=255)
    logo_url: str | None = Field(default=None, max_length=512)
    primary_color: str | None = Field(default=None, pattern=_COLOR_PATTERN)
    secondary_color: str | None = Field(default=None, pattern=_COLOR_PATTERN)
    settings: dict[str, Any] | None = None
    status: Literal["active", "inactive"] | None = None
    sort_order: int | None = None


class AffiliateUserIdsRequest(BaseModel):
    """站点用户批量操作请求体。"""

    user_ids: list[UUID] = Field(description="目标用户 ID 列表。")


class AffiliateMemberFlags(BaseModel):
    """委托能力开关，未传入的字段保持不变。"""

    can_use: bool | None = None
    can_copy: bool | None = None
    can_assign: bool | None = None
    access_publishers: bool | None = None


class AffiliateMemberCreateRequest(BaseModel):
    """新增站点委托关系请求体。"""

    to_affiliate_id: UUID
    permissions: AffiliateMemberFlags = Field(default_factory=AffiliateMemberFlags)


class AffiliateMemberUpdateRequest(BaseModel):
    """更新站点委托能力请求体。"""

    permissions: AffiliateMemberFlags
