"""响应包裹结构与各实体共用的字段组。"""

from typing import Any, Generic, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class BaseSchema(BaseModel):
    # 允许直接从 ORM 对象校验，并同时接受别名与字段名。
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class PaginationMeta(BaseSchema):
    """列表接口 `meta.pagination`。"""

    page: int = Field(description="当前页码，从 1 开始。")
    limit: int = Field(description="每页条数。")
    total: int = Field(description="过滤后的总记录数。")
    pages: int = Field(description="总页数，total 为 0 时为 0。")


class ErrorPayload(BaseSchema):
    code: str = Field(description="错误码，例如 INSUFFICIENT_PERMISSION / AFFILIATE_ACCESS_DENIED。")
    message: str = Field(description="可直接展示给后台用户的信息。")
    details: dict[str, Any] = Field(default_factory=dict, description="请求方法、路径及错误相关字段。")


class ErrorResponse(BaseSchema):
    success: bool = Field(default=False)
    request_id: str = Field(description="与响应头 X-Request-Id 一致。")
    error: ErrorPayload


T = TypeVar("T")


class SuccessResponse(BaseSchema, Generic[T]):
    success: bool = Field(default=True)
    request_id: str = Field(description="与响应头 X-Request-Id 一致。")
    data: T
    meta: dict[str, Any] = Field(default_factory=dict, description="提示信息与耗时；列表接口另含 pagination。")


class AffiliateOwnedData(BaseSchema):
    """归属站点的记录共有字段。"""

    id: UUID
    affiliate_id: UUID


class DeletedData(BaseSchema):
    id: UUID
    deleted: bool = True
