"""角色管理接口。"""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request, status
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from cms_api.core.config import get_settings
from cms_api.db.session import get_db
from cms_api.dependencies import AuthContext, require_permission
from cms_api.models.permission import Permission, Role, RolePermission
from cms_api.schemas.common import ErrorResponse, SuccessResponse
from cms_api.schemas.permission import RoleCreateRequest, RoleUpdateRequest
from cms_api.schemas.responses import DeletedData, PermissionData, RoleData, RoleDetailData
from cms_api.services.audit import audit_log
from cms_api.services.permissions import count_role_users, delete_role, set_role_permissions
from cms_api.utils.pagination import like_pattern, paginate
from cms_api.utils.response import pagination_meta, success

router = APIRouter(prefix="/admin/roles", tags=["roles"])
settings = get_settings()


def _get_role_or_404(db: Session, role_id: UUID) -> Role:
    role = db.get(Role, role_id)
    if role is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="role not found")
    return role


def _role_detail(db: Session, role: Role) -> dict:
    permissions = (
        db.execute(
            select(Permission)
            .join(RolePermission, RolePermission.permission_id == Permission.id)
            .where(RolePermission.role_id == role.id)
            .order_by(Permission.entity.asc(), Permission.action.asc())
        )
        .scalars()
        .all()
    )
    data = RoleData.model_validate(role).model_dump()
    data["permissions"] = [PermissionData.model_validate(item).model_dump() for item in permissions]
    data["user_count"] = count_role_users(db, role.id)
    return data


@router.get(
    "",
    summary="查询角色列表",
    response_model=SuccessResponse[list[RoleData]],
    responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)
def list_roles(
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=settings.pagination_default_limit, ge=1, le=settings.pagination_max_limit),
    search: str | None = Query(default=None, max_length=128),
    ctx: AuthContext = Depends(require_permission("roles.read")),
    db: Session = Depends(get_db),
):
    stmt = select(Role)
    if search and search.strip():
        pattern = like_pattern(search)
        stmt = stmt.where(
            or_(
                Role.name.ilike(pattern, escape="\\"),
                Role.display_name.ilike(pattern, escape="\\"),
                Role.description.ilike(pattern, escape="\\"),
            )
        )
    stmt = stmt.order_by(Role.name.asc())
    rows, total = paginate(db, stmt, page=page, limit=limit)
    return success(
        request,
        [RoleData.model_validate(item).model_dump() for item in rows],
        meta=pagination_meta(page=page, limit=limit, total=total),
    )


@router.get(
    "/{role_id}",
    summary="查询角色详情",
    response_model=SuccessResponse[RoleDetailData],
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def get_role(
    request: Request,
    role_id: UUID = Path(..., description="角色 ID。"),
    ctx: AuthContext = Depends(require_permission("roles.read")),
    db: Session = Depends(get_db),
):
    return success(request, _role_detail(db, _get_role_or_404(db, role_id)))


@router.post(
    "",
    summary="创建角色",
    description="创建角色并设置初始权限集合（两步写入，非原子）。",
    status_code=status.HTTP_201_CREATED,
    response_model=SuccessResponse[RoleDetailData],
    responses={403: {"model": ErrorResponse}, 409: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
def create_role(
    payload: RoleCreateRequest,
    request: Request,
    ctx: AuthContext = Depends(require_permission("roles.create")),
    db: Session = Depends(get_db),
):
    if db.execute(select(Role.id).where(Role.name == payload.name)).first():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"code": "ROLE_NAME_EXISTS", "message": f"Role '{payload.name}' already exists."},
        )
    role = Role(
        name=payload.name,
        display_name=payload.display_name,
        description=payload.description,
        status=payload.status,
        is_system=False,
    )
    db.add(role)
    db.commit()

    set_role_permissions(db, role, payload.permission_ids)
    audit_log(
        db,
        request,
        affiliate_id=None,
        actor_user_id=ctx.user_id,
        action="role.create",
        resource_type="role",
        resource_id=str(role.id),
        after_json={"name": role.name, "permission_ids": [str(item) for item in payload.permission_ids]},
    )
    db.commit()
    return success(request, _role_detail(db, role))


@router.put(
    "/{role_id}",
    summary="更新角色",
    response_model=SuccessResponse[RoleDetailData],
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
def update_role(
    payload: RoleUpdateRequest,
    request: Request,
    role_id: UUID = Path(..., description="角色 ID。"),
    ctx: AuthContext = Depends(require_permission("roles.update")),
    db: Session = Depends(get_db),
):
    role = _get_role_or_404(db, role_id)
    before = {"display_name": role.display_name, "status": role.status}
    for name in ("display_name", "description", "status"):
        value = getattr(payload, name)
        if value is not None:
            setattr(role, name, value)
    if payload.permission_ids is not None:
        set_role_permissions(db, role, payload.permission_ids)

    audit_log(
        db,
        request,
        affiliate_id=None,
        actor_user_id=ctx.user_id,
        action="role.update",
        resource_type="role",
        resource_id=str(role.id),
        before_json=before,
        after_json={"display_name": role.display_name, "status": role.status},
    )
    db.commit()
    return success(request, _role_detail(db, role))


@router.delete(
    "/{role_id}",
    summary="删除角色",
    description="仍分配给用户的角色拒绝删除（409，返回引用人数）；系统角色不可删除。",
    response_model=SuccessResponse[DeletedData],
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
def remove_role(
    request: Request,
    role_id: UUID = Path(..., description="角色 ID。"),
    ctx: AuthContext = Depends(require_permission("roles.delete")),
    db: Session = Depends(get_db),
):
    role = _get_role_or_404(db, role_id)
    role_name = role.name
    delete_role(db, role)
    audit_log(
        db,
        request,
        affiliate_id=None,
        actor_user_id=ctx.user_id,
        action="role.delete",
        resource_type="role",
        resource_id=str(role_id),
        before_json={"name": role_name},
    )
    db.commit()
    return success(request, {"id": role_id, "deleted": True})
