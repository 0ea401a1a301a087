"""权限管理接口。

权限名始终由 `entity.action` 推导，接口不接受直接指定 name。
"""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request, status
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from cms_api.core.config import get_settings
from cms_api.db.session import get_db
from cms_api.dependencies import AuthContext, require_permission
from cms_api.models.permission import Permission
from cms_api.schemas.common import ErrorResponse, SuccessResponse
from cms_api.schemas.permission import PermissionActionLiteral, PermissionCreateRequest, PermissionUpdateRequest
from cms_api.schemas.responses import DeletedData, PermissionData
from cms_api.services.audit import audit_log
from cms_api.services.permissions import delete_permission, ensure_permission_name_available, permission_name
from cms_api.utils.pagination import like_pattern, paginate
from cms_api.utils.response import pagination_meta, success

router = APIRouter(prefix="/admin/permissions", tags=["permissions"])
settings = get_settings()


def _get_permission_or_404(db: Session, permission_id: UUID) -> Permission:
    permission = db.get(Permission, permission_id)
    if permission is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="permission not found")
    return permission


@router.get(
    "",
    summary="查询权限列表",
    response_model=SuccessResponse[list[PermissionData]],
    responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)
def list_permissions(
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=settings.pagination_max_limit, ge=1, le=settings.pagination_max_limit),
    entity: str | None = Query(default=None, max_length=64),
    action: PermissionActionLiteral | None = Query(default=None),
    search: str | None = Query(default=None, max_length=128),
    ctx: AuthContext = Depends(require_permission("permissions.read")),
    db: Session = Depends(get_db),
):
    stmt = select(Permission)
    if entity:
        stmt = stmt.where(Permission.entity == entity)
    if action:
        stmt = stmt.where(Permission.action == action)
    if search and search.strip():
        pattern = like_pattern(search)
        stmt = stmt.where(
            or_(
                Permission.name.ilike(pattern, escape="\\"),
                Permission.display_name.ilike(pattern, escape="\\"),
            )
        )
    stmt = stmt.order_by(Permission.entity.asc(), Permission.action.asc())
    rows, total = paginate(db, stmt, page=page, limit=limit)
    return success(
        request,
        [PermissionData.model_validate(item).model_dump() for item in rows],
        meta=pagination_meta(page=page, limit=limit, total=total),
    )


@router.get(
    "/{permission_id}",
    summary="查询权限详情",
    response_model=SuccessResponse[PermissionData],
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def get_permission(
    request: Request,
    permission_id: UUID = Path(..., description="权限 ID。"),
    ctx: AuthContext = Depends(require_permission("permissions.read")),
    db: Session = Depends(get_db),
):
    permission = _get_permission_or_404(db, permission_id)
    return success(request, PermissionData.model_validate(permission).model_dump())


@router.post(
    "",
    summary="创建权限",
    status_code=status.HTTP_201_CREATED,
    response_model=SuccessResponse[PermissionData],
    responses={403: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
def create_permission(
    payload: PermissionCreateRequest,
    request: Request,
    ctx: AuthContext = Depends(require_permission("permissions.create")),
    db: Session = Depends(get_db),
):
    name = permission_name(payload.entity, payload.action)
    ensure_permission_name_available(db, name)
    permission = Permission(
        name=name,
        display_name=payload.display_name,
        description=payload.description,
        entity=payload.entity,
        action=payload.action,
        status=payload.status,
        is_system=False,
    )
    db.add(permission)
    db.flush()
    audit_log(
        db,
        request,
        affiliate_id=None,
        actor_user_id=ctx.user_id,
        action="permission.create",
        resource_type="permission",
        resource_id=str(permission.id),
        after_json={"name": name},
    )
    db.commit()
    return success(request, PermissionData.model_validate(permission).model_dump())


@router.put(
    "/{permission_id}",
    summary="更新权限",
    response_model=SuccessResponse[PermissionData],
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
def update_permission(
    payload: PermissionUpdateRequest,
    request: Request,
    permission_id: UUID = Path(..., description="权限 ID。"),
    ctx: AuthContext = Depends(require_permission("permissions.update")),
    db: Session = Depends(get_db),
):
    permission = _get_permission_or_404(db, permission_id)
    before = {"name": permission.name, "status": permission.status}

    entity = payload.entity or permission.entity
    action = payload.action or permission.action
    name = permission_name(entity, action)
    if name != permission.name:
        ensure_permission_name_available(db, name, exclude_id=permission.id)
    permission.entity = entity
    permission.action = action
    permission.name = name
    for field_name in ("display_name", "description", "status"):
        value = getattr(payload, field_name)
        if value is not None:
            setattr(permission, field_name, value)

    audit_log(
        db,
        request,
        affiliate_id=None,
        actor_user_id=ctx.user_id,
        action="permission.update",
        resource_type="permission",
        resource_id=str(permission.id),
        before_json=before,
        after_json={"name": permission.name, "status": permission.status},
    )
    db.commit()
    return success(request, PermissionData.model_validate(permission).model_dump())


@router.delete(
    "/{permission_id}",
    summary="删除权限",
    description="系统权限不可删除；仍分配给角色的权限拒绝删除（409，返回引用角色数）。",
    response_model=SuccessResponse[DeletedData],
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
def remove_permission(
    request: Request,
    permission_id: UUID = Path(..., description="权限 ID。"),
    ctx: AuthContext = Depends(require_permission("permissions.delete")),
    db: Session = Depends(get_db),
):
    permission = _get_permission_or_404(db, permission_id)
    name = permission.name
    delete_permission(db, permission)
    audit_log(
        db,
        request,
        affiliate_id=None,
        actor_user_id=ctx.user_id,
        action="permission.delete",
        resource_type="permission",
        resource_id=str(permission_id),
        before_json={"name": name},
    )
    db.commit()
    return success(request, {"id": permission_id, "deleted": True})
