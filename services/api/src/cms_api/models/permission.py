"""角色与权限模型。"""

from uuid import UUID

from sqlalchemy import Boolean, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from cms_api.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from cms_api.models.enums import RecordStatus


class Role(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """角色，持有一组扁平权限。"""

    __tablename__ = "roles"

    # 角色唯一键（admin/editor/author/viewer 或自定义）。
    name: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    display_name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=RecordStatus.ACTIVE)
    # 系统内置角色不可删除。
    is_system: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class Permission(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """权限点。

    说明：
    1. name 始终由 `entity.action` 推导，全局唯一。
    2. 系统权限不可删除。
    """

    __tablename__ = "permissions"

    name: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    display_name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    # 资源实体，例如 stories / menus。
    entity: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    # 动作，取值见 PermissionActionType。
    action: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=RecordStatus.ACTIVE)
    is_system: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class RolePermission(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """角色与权限的多对多映射。"""

    __tablename__ = "role_permissions"
    __table_args__ = (UniqueConstraint("role_id", "permission_id", name="uk_role_permission"),)

    role_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    permission_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
