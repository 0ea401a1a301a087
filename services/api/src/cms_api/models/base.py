"""对象映射基类与内容模型共用的混入。"""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import JSON, DateTime, Integer, MetaData, Uuid, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# PostgreSQL 落 JSONB，SQLite 等其他方言使用通用 JSON。
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    # 表之间只保存 ID 引用，不建外键；关联清理由服务层负责。
    metadata = MetaData(
        naming_convention={
            "pk": "pk_%(table_name)s",
            "ix": "ix_%(table_name)s_%(column_0_name)s",
            "uq": "uk_%(table_name)s_%(column_0_name)s",
            "ck": "ck_%(table_name)s_%(constraint_name)s",
        }
    )


class UUIDPrimaryKeyMixin:
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)


class CreatedAtMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class TimestampMixin(CreatedAtMixin):
    """创建时间与更新时间，更新时间随每次 UPDATE 刷新。"""

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class AffiliateOwnedMixin:
    """归属单个站点的记录。

    `affiliate_id` 在写入时由站点上下文盖章，请求体中的同名字段一律忽略。
    """

    affiliate_id: Mapped[UUID] = mapped_column(nullable=False, index=True)


class SortableMixin:
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
