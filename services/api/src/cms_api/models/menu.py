"""菜单模型。"""

from uuid import UUID

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from cms_api.models.base import AffiliateOwnedMixin, Base, SortableMixin, TimestampMixin, UUIDPrimaryKeyMixin
from cms_api.models.enums import MenuPlatform, RecordStatus


class Menu(Base, UUIDPrimaryKeyMixin, TimestampMixin, AffiliateOwnedMixin, SortableMixin):
    """站点菜单。

    `links` 以 JSON 文本保存整棵菜单树，保存时整体覆盖（后写入者胜出）。
    """

    __tablename__ = "menus"

    category_id: Mapped[UUID | None] = mapped_column(index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    platform: Mapped[str] = mapped_column(String(16), nullable=False, default=MenuPlatform.WEB)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=RecordStatus.ACTIVE)
    # 节点数组：{id, title, url, target, icon, description, children}。
    links: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
