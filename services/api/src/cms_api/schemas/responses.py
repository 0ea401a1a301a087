"""接口成功响应 `data` 字段结构定义。

说明：
1. 所有业务接口统一返回 `SuccessResponse[data=...]`。
2. 本文件专注于定义各接口在 `data` 中的业务字段，字段描述直接用于 Swagger 展示。
3. 路由层通过 `model_validate(orm).model_dump()` 生成 data，保证与文档一致。
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import Field

from cms_api.schemas.common import AffiliateOwnedData, BaseSchema, DeletedData


class HealthStatusData(BaseSchema):
    """健康检查返回结构。"""

    status: str = Field(description="存活探针为 ok，就绪探针为 ready。")
    service: str | None = Field(default=None, description="服务名称，仅存活探针返回。")
    env: str | None = Field(default=None, description="运行环境标识，仅存活探针返回。")
    permission_count: int | None = Field(default=None, description="已初始化的权限数量，仅就绪探针返回。")


class UserData(BaseSchema):
    """用户基础资料。"""

    id: UUID
    email: str
    first_name: str
    last_name: str
    full_name: str
    status: str = Field(description="active / inactive / banned。")
    role_id: UUID | None = None
    created_by: UUID | None = Field(default=None, description="创建者（上级）用户 ID。")
    last_login_at: datetime | None = None
    created_at: datetime | None = None


class UserDetailData(UserData):
    """用户详情，附带可见站点。"""

    affiliate_ids: list[UUID] = Field(default_factory=list)


class TeamData(BaseSchema):
    """`/admin/users/my-team` 返回结构。"""

    current_user: UserData = Field(alias="currentUser")
    superior: UserData | None = Field(default=None, description="创建者；森林根节点无上级。")
    siblings: list[UserData] = Field(default_factory=list, description="同一创建者的其他用户，不含本人。")
    subordinates: list[UserData] = Field(default_factory=list, description="本人直接创建的用户。")


class RoleData(BaseSchema):
    id: UUID
    name: str
    display_name: str
    description: str | None = None
    status: str
    is_system: bool
    created_at: datetime | None = None


class PermissionData(BaseSchema):
    id: UUID
    name: str = Field(description="entity.action")
    display_name: str
    description: str | None = None
    entity: str
    action: str
    status: str
    is_system: bool


class RoleDetailData(RoleData):
    """角色详情，含权限集合与在用人数。"""

    permissions: list[PermissionData] = Field(default_factory=list)
    user_count: int = 0


class AuthMeData(BaseSchema):
    """`/auth/me` 接口返回的数据结构。"""

    user: UserData
    role: RoleData | None = Field(default=None, description="未分配角色时为空（零权限）。")
    permissions: list[str] = Field(default_factory=list, description="当前角色持有的权限名。")
    affiliate_ids: list[UUID] = Field(default_factory=list, description="当前用户可见站点。")
    session_affiliate_id: UUID | None = Field(default=None, description="令牌绑定站点。")


class AffiliateData(BaseSchema):
    id: UUID
    name: str
    slug: str
    description: str | None = None
    domain: str | None = None
    logo_url: str | None = None
    primary_color: str | None = None
    secondary_color: str | None = None
    settings: dict[str, Any] = Field(default_factory=dict)
    status: str
    sort_order: int


class AffiliateMemberData(BaseSchema):
    id: UUID
    from_affiliate_id: UUID
    to_affiliate_id: UUID
    can_use: bool
    can_copy: bool
    can_assign: bool
    access_publishers: bool


class AffiliateUserIdsData(BaseSchema):
    affiliate_id: UUID
    user_ids: list[UUID]


class MenuData(AffiliateOwnedData):
    category_id: UUID | None = None
    title: str
    platform: str
    status: str
    sort_order: int
    links: list[dict[str, Any]] = Field(default_factory=list, description="规范化后的节点树。")
    total_items: int = Field(default=0, description="全部层级节点总数。")
    updated_at: datetime | None = None


class ContentData(AffiliateOwnedData):
    author_id: UUID
    title: str
    slug: str
    status: str
    content: str | None = None
    sort_order: int
    published_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class SlugCheckData(BaseSchema):
    """slug 可用性查询结果。"""

    slug: str = Field(description="规范化后的 slug。")
    available: bool
    suggested: str | None = Field(default=None, description="不可用时建议的带后缀 slug。")


class PublicContentData(BaseSchema):
    """公开接口返回的已发布内容，不含作者 ID 与状态等后台字段。"""

    id: UUID
    title: str
    slug: str
    content: str | None = None
    sort_order: int
    published_at: datetime | None = None
    updated_at: datetime | None = None


class StoryMetaData(BaseSchema):
    """稿件页面 SEO 元信息。"""

    title: str
    author: str = Field(description="作者姓名，作者已删除时为空串。")
    published_time: datetime | None = None
    modified_time: datetime | None = None
    url: str = Field(description="前台稿件地址 `/story/<slug>`。")
    type: str = "article"
    story: PublicContentData


__all__ = [
    "AffiliateData",
    "AffiliateMemberData",
    "AffiliateUserIdsData",
    "AuthMeData",
    "ContentData",
    "DeletedData",
    "HealthStatusData",
    "MenuData",
    "PermissionData",
    "PublicContentData",
    "RoleData",
    "RoleDetailData",
    "SlugCheckData",
    "StoryMetaData",
    "TeamData",
    "UserData",
    "UserDetailData",
]
