"""内容实体模型（稿件、页面、模块、分类）。

四类实体结构一致，统一受站点过滤与作者归属约束。
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import DateTime, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from cms_api.models.base import AffiliateOwnedMixin, Base, SortableMixin, TimestampMixin, UUIDPrimaryKeyMixin
from cms_api.models.enums import ContentStatus


class ContentMixin(AffiliateOwnedMixin, SortableMixin):
    """内容实体公共字段。"""

    # slug 在站点内唯一，公开接口按 slug 取数。
    @declared_attr.directive
    def __table_args__(cls):
        return (UniqueConstraint("affiliate_id", "slug", name=f"uk_{cls.__tablename__}_affiliate_slug"),)

    # *_own 权限按作者归属判断。
    author_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=ContentStatus.DRAFT)
    # 块编辑器序列化后的 JSON 文本，本服务不解析。
    content: Mapped[str | None] = mapped_column(Text)
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class Story(Base, UUIDPrimaryKeyMixin, TimestampMixin, ContentMixin):
    __tablename__ = "stories"


class Page(Base, UUIDPrimaryKeyMixin, TimestampMixin, ContentMixin):
    __tablename__ = "pages"


class Module(Base, UUIDPrimaryKeyMixin, TimestampMixin, ContentMixin):
    __tablename__ = "modules"


class Category(Base, UUIDPrimaryKeyMixin, TimestampMixin, ContentMixin):
    __tablename__ = "categories"
