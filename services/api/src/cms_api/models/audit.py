"""审计日志模型。"""

from typing import Any
from uuid import UUID

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from cms_api.models.base import Base, CreatedAtMixin, JSONType, UUIDPrimaryKeyMixin


class AuditLog(Base, UUIDPrimaryKeyMixin, CreatedAtMixin):
    """后台写操作的审计记录，只追加不修改。"""

    __tablename__ = "audit_logs"

    # 对应响应中的 request_id，便于从接口错误反查审计记录。
    request_id: Mapped[str | None] = mapped_column(String(64), index=True)
    # 角色、权限等全局操作为空。
    affiliate_id: Mapped[UUID | None] = mapped_column(index=True)
    actor_user_id: Mapped[UUID | None] = mapped_column(index=True)
    # 例如 role.delete / menu.update / story.publish。
    action: Mapped[str] = mapped_column(String(128), nullable=False)
    resource_type: Mapped[str] = mapped_column(String(64), nullable=False)
    resource_id: Mapped[str] = mapped_column(String(128), nullable=False)
    before_json: Mapped[dict[str, Any] | None] = mapped_column(JSONType)
    after_json: Mapped[dict[str, Any] | None] = mapped_column(JSONType)
    ip: Mapped[str | None] = mapped_column(String(64))
    user_agent: Mapped[str | None] = mapped_column(Text)
