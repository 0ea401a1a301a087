"""审计服务。

审计记录与业务写入共用同一事务；调用方提交后才落库，回滚时一起撤销。
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from fastapi import Request
from sqlalchemy.orm import Session

from cms_api.models.audit import AuditLog

logger = logging.getLogger("cms_api.audit")


def _client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None


def _jsonable(value: Any) -> Any:
    """把快照中的 UUID、时间、枚举转换为可写入 JSON 列的值。"""
    if isinstance(value, dict):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_jsonable(item) for item in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def audit_log(
    db: Session,
    request: Request,
    *,
    affiliate_id: UUID | None,
    actor_user_id: UUID | None,
    action: str,
    resource_id: str,
    resource_type: str | None = None,
    before_json: dict[str, Any] | None = None,
    after_json: dict[str, Any] | None = None,
) -> AuditLog:
    """追加一条审计记录。

    `action` 形如 `menu.update`；未显式给出资源类型时取点号前的部分。
    """
    entry = AuditLog(
        request_id=getattr(request.state, "request_id", None),
        affiliate_id=affiliate_id,
        actor_user_id=actor_user_id,
        action=action,
        resource_type=resource_type or action.split(".", 1)[0],
        resource_id=resource_id,
        before_json=_jsonable(before_json) if before_json is not None else None,
        after_json=_jsonable(after_json) if after_json is not None else None,
        ip=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    db.add(entry)
    logger.debug("audit action=%s resource=%s actor=%s", action, resource_id, actor_user_id)
    return entry
