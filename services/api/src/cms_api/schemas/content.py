"""内容实体请求结构。"""

from typing import Literal

from pydantic import BaseModel, Field

ContentStatusLiteral = Literal["draft", "published", "archived"]


class ContentCreateRequest(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    slug: str | None = Field(default=None, max_length=255)
    status: ContentStatusLiteral = "draft"
    content: str | None = Field(default=None, description="块编辑器序列化 JSON 文本。")
    sort_order: int = 0


class ContentUpdateRequest(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    slug: str | None = Field(default=None, max_length=255)
    status: ContentStatusLiteral | None = None
    content: str | None = None
    sort_order: int | None = None
