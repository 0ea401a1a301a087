"""用户模型。"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from cms_api.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from cms_api.models.enums import UserStatus


class User(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """后台用户。

    `created_by` 指向创建者，构成无环的创建森林（金字塔团队视图的基础）：
    创建者即上级，同一创建者的其他用户为同级，本人创建的用户为下级。
    """

    __tablename__ = "users"

    # 登录邮箱，系统内全局唯一。
    email: Mapped[str] = mapped_column(String(256), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(256), nullable=False)
    first_name: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    last_name: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=UserStatus.ACTIVE)
    # 未分配角色视为零权限，而非错误。
    role_id: Mapped[UUID | None] = mapped_column(index=True)
    # 创建者用户 ID，为空表示森林根节点。
    created_by: Mapped[UUID | None] = mapped_column(index=True)
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
