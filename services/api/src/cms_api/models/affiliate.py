"""站点（租户）与站点关系模型。"""

from typing import Any
from uuid import UUID

from sqlalchemy import Boolean, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from cms_api.models.base import Base, JSONType, SortableMixin, TimestampMixin, UUIDPrimaryKeyMixin
from cms_api.models.enums import AffiliateCapability, RecordStatus


class Affiliate(Base, UUIDPrimaryKeyMixin, TimestampMixin, SortableMixin):
    """站点实体，系统的数据隔离边界。"""

    __tablename__ = "affiliates"

    name: Mapped[str] = mapped_column(String(128), nullable=False)
    # 全局唯一短标识。
    slug: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text)
    domain: Mapped[str | None] = mapped_column(String(255))
    logo_url: Mapped[str | None] = mapped_column(String(512))
    primary_color: Mapped[str | None] = mapped_column(String(16))
    secondary_color: Mapped[str | None] = mapped_column(String(16))
    settings: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=RecordStatus.ACTIVE)


class UserAffiliate(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """用户可见站点关系，决定用户能看到哪些站点的数据。"""

    __tablename__ = "user_affiliates"
    __table_args__ = (UniqueConstraint("user_id", "affiliate_id", name="uk_user_affiliate"),)

    user_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    affiliate_id: Mapped[UUID] = mapped_column(nullable=False, index=True)


class AffiliateMember(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """站点间能力委托关系。

    `from_affiliate_id` 授予 `to_affiliate_id` 一组能力；与 UserAffiliate 完全独立，
    不参与用户可见性判断。
    """

    __tablename__ = "affiliate_members"
    __table_args__ = (
        UniqueConstraint("from_affiliate_id", "to_affiliate_id", name="uk_affiliate_member_pair"),
    )

    from_affiliate_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    to_affiliate_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    can_use: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    can_copy: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    can_assign: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    access_publishers: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def has_capability(self, capability: str) -> bool:
        """判断委托关系是否包含指定能力，未知能力一律返回 False。"""
        flags = {
            AffiliateCapability.USE: self.can_use,
            AffiliateCapability.COPY: self.can_copy,
            AffiliateCapability.ASSIGN: self.can_assign,
            AffiliateCapability.PUBLISHERS: self.access_publishers,
        }
        return bool(flags.get(capability, False))
