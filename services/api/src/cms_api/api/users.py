"""用户管理与团队视图接口。"""

from typing import Literal
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request, status
from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from cms_api.core.config import get_settings
from cms_api.db.session import get_db
from cms_api.dependencies import AuthContext, get_affiliate_scope, get_auth_context, require_permission
from cms_api.models.affiliate import UserAffiliate
from cms_api.models.permission import Role
from cms_api.models.user import User
from cms_api.schemas.common import ErrorResponse, SuccessResponse
from cms_api.schemas.responses import DeletedData, TeamData, UserData, UserDetailData
from cms_api.schemas.user import UserCreateRequest, UserUpdateRequest
from cms_api.services.affiliate_scope import AffiliateScope, list_user_affiliate_ids
from cms_api.services.affiliates import replace_user_affiliates
from cms_api.services.audit import audit_log
from cms_api.services.local_auth import hash_password, normalize_email
from cms_api.services.team import is_in_team_scope, load_subordinates, load_team
from cms_api.utils.pagination import like_pattern, paginate
from cms_api.utils.response import pagination_meta, success

router = APIRouter(prefix="/admin/users", tags=["users"])
settings = get_settings()


def _user_data(user: User) -> dict:
    return UserData.model_validate(user).model_dump()


def _user_detail(db: Session, user: User) -> dict:
    data = UserDetailData.model_validate(user).model_dump()
    data["affiliate_ids"] = list_user_affiliate_ids(db, user.id)
    return data


def _get_user_or_404(db: Session, user_id: UUID) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="user not found")
    return user


def _user_in_scope(db: Session, scope: AffiliateScope, user_id: UUID) -> bool:
    stmt = scope.apply(select(UserAffiliate.id).where(UserAffiliate.user_id == user_id), UserAffiliate.affiliate_id)
    return db.execute(stmt.limit(1)).first() is not None


def _ensure_user_visible(db: Session, scope: AffiliateScope, ctx: AuthContext, user: User) -> None:
    """目标用户需与当前范围共享站点，或位于当前用户的团队范围内。"""
    if _user_in_scope(db, scope, user.id):
        return
    if is_in_team_scope(db, viewer_id=ctx.user_id, target_id=user.id):
        return
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="user not found")


def _ensure_role_exists(db: Session, role_id: UUID | None) -> None:
    if role_id is not None and db.get(Role, role_id) is None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_CONTENT,
            detail={"code": "ROLE_NOT_FOUND", "message": "Role does not exist.", "details": {"role_id": str(role_id)}},
        )


def _ensure_email_available(db: Session, email: str, *, exclude_id: UUID | None = None) -> None:
    stmt = select(User.id).where(User.email == email)
    if exclude_id is not None:
        stmt = stmt.where(User.id != exclude_id)
    if db.execute(stmt).first():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"code": "EMAIL_EXISTS", "message": "User with this email already exists."},
        )


def _ensure_assignable_affiliates(db: Session, ctx: AuthContext, affiliate_ids: list[UUID]) -> list[UUID]:
    """只能把用户分配到自己可见的站点。"""
    wanted = list(dict.fromkeys(affiliate_ids))
    visible = set(list_user_affiliate_ids(db, ctx.user_id))
    denied = [str(item) for item in wanted if item not in visible]
    if denied:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "code": "AFFILIATE_ACCESS_DENIED",
                "message": "Cannot assign affiliates you do not belong to.",
                "details": {"affiliate_ids": denied},
            },
        )
    return wanted


@router.get(
    "",
    summary="查询用户列表",
    description="单站点模式按当前站点过滤；`global=true` 或未指定站点时按全部可见站点并集过滤。",
    response_model=SuccessResponse[list[UserData]],
    responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def list_users(
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=settings.pagination_default_limit, ge=1, le=settings.pagination_max_limit),
    search: str | None = Query(default=None, max_length=128),
    role_id: UUID | None = Query(default=None),
    user_status: Literal["active", "inactive", "banned"] | None = Query(default=None, alias="status"),
    scope: AffiliateScope = Depends(get_affiliate_scope),
    ctx: AuthContext = Depends(require_permission("users.read")),
    db: Session = Depends(get_db),
):
    visible_ids = scope.apply(select(UserAffiliate.user_id), UserAffiliate.affiliate_id)
    stmt = select(User).where(User.id.in_(visible_ids))
    if search and search.strip():
        pattern = like_pattern(search)
        stmt = stmt.where(
            or_(
                User.first_name.ilike(pattern, escape="\\"),
                User.last_name.ilike(pattern, escape="\\"),
                User.email.ilike(pattern, escape="\\"),
            )
        )
    if role_id is not None:
        stmt = stmt.where(User.role_id == role_id)
    if user_status:
        stmt = stmt.where(User.status == user_status)
    stmt = stmt.order_by(User.created_at.desc(), User.email.asc())

    rows, total = paginate(db, stmt, page=page, limit=limit)
    return success(
        request,
        [_user_data(item) for item in rows],
        meta=pagination_meta(page=page, limit=limit, total=total),
    )


@router.get(
    "/my-team",
    summary="查询我的团队",
    description="返回当前用户、上级（创建者）、同级与直属下级；更深层级通过 subordinates 接口按需展开。",
    response_model=SuccessResponse[TeamData],
    responses={401: {"model": ErrorResponse}},
)
def my_team(
    request: Request,
    load_level: Literal["direct"] = Query(default="direct", alias="loadLevel"),
    ctx: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    snapshot = load_team(db, ctx.user_id, load_level)
    data = {
        "currentUser": _user_data(snapshot.current_user),
        "superior": _user_data(snapshot.superior) if snapshot.superior else None,
        "siblings": [_user_data(item) for item in snapshot.siblings],
        "subordinates": [_user_data(item) for item in snapshot.subordinates],
    }
    return success(request, data)


@router.get(
    "/{user_id}/subordinates",
    summary="展开用户下级",
    description="按需加载指定用户的下一代下级；目标需在本人团队范围内，否则要求 users.read。",
    response_model=SuccessResponse[list[UserData]],
    responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def subordinates(
    request: Request,
    user_id: UUID = Path(..., description="待展开的用户 ID。"),
    level: Literal["direct"] = Query(default="direct"),
    ctx: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    _get_user_or_404(db, user_id)
    if not ctx.can("users.read") and not is_in_team_scope(db, viewer_id=ctx.user_id, target_id=user_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="forbidden")
    return success(request, [_user_data(item) for item in load_subordinates(db, user_id, level)])


@router.get(
    "/{user_id}",
    summary="查询用户详情",
    description="详情要求唯一站点上下文，全局模式下返回 400。",
    response_model=SuccessResponse[UserDetailData],
    responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def get_user(
    request: Request,
    user_id: UUID = Path(..., description="目标用户 ID。"),
    scope: AffiliateScope = Depends(get_affiliate_scope),
    ctx: AuthContext = Depends(require_permission("users.read")),
    db: Session = Depends(get_db),
):
    scope.require_single()
    user = _get_user_or_404(db, user_id)
    if not _user_in_scope(db, scope, user.id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="user not found")
    return success(request, _user_detail(db, user))


@router.post(
    "",
    summary="创建用户",
    description="创建者自动记为当前用户（上级）；未指定 affiliate_ids 时在单站点模式下归入当前站点。",
    status_code=status.HTTP_201_CREATED,
    response_model=SuccessResponse[UserDetailData],
    responses={403: {"model": ErrorResponse}, 409: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
def create_user(
    payload: UserCreateRequest,
    request: Request,
    scope: AffiliateScope = Depends(get_affiliate_scope),
    ctx: AuthContext = Depends(require_permission("users.create")),
    db: Session = Depends(get_db),
):
    email = normalize_email(payload.email)
    _ensure_email_available(db, email)
    _ensure_role_exists(db, payload.role_id)
    if payload.affiliate_ids is not None:
        affiliate_ids = _ensure_assignable_affiliates(db, ctx, payload.affiliate_ids)
    elif not scope.is_global and scope.affiliate_id is not None:
        affiliate_ids = [scope.affiliate_id]
    else:
        affiliate_ids = []

    user = User(
        email=email,
        password_hash=hash_password(payload.password),
        first_name=payload.first_name.strip(),
        last_name=payload.last_name.strip(),
        role_id=payload.role_id,
        status=payload.status,
        created_by=ctx.user_id,
    )
    db.add(user)
    db.flush()
    replace_user_affiliates(db, user_id=user.id, affiliate_ids=affiliate_ids)
    audit_log(
        db,
        request,
        affiliate_id=scope.affiliate_id,
        actor_user_id=ctx.user_id,
        action="user.create",
        resource_type="user",
        resource_id=str(user.id),
        after_json={"email": email, "affiliate_ids": [str(item) for item in affiliate_ids]},
    )
    db.commit()
    return success(request, _user_detail(db, user))


@router.put(
    "/{user_id}",
    summary="更新用户",
    response_model=SuccessResponse[UserDetailData],
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
def update_user(
    payload: UserUpdateRequest,
    request: Request,
    user_id: UUID = Path(..., description="目标用户 ID。"),
    scope: AffiliateScope = Depends(get_affiliate_scope),
    ctx: AuthContext = Depends(require_permission("users.update")),
    db: Session = Depends(get_db),
):
    user = _get_user_or_404(db, user_id)
    _ensure_user_visible(db, scope, ctx, user)
    before = {"email": user.email, "status": user.status, "role_id": str(user.role_id) if user.role_id else None}

    if payload.email is not None:
        email = normalize_email(payload.email)
        _ensure_email_available(db, email, exclude_id=user.id)
        user.email = email
    if payload.password:
        user.password_hash = hash_password(payload.password)
    if payload.first_name is not None:
        user.first_name = payload.first_name.strip()
    if payload.last_name is not None:
        user.last_name = payload.last_name.strip()
    if "role_id" in payload.model_fields_set:
        _ensure_role_exists(db, payload.role_id)
        user.role_id = payload.role_id
    if payload.status is not None:
        user.status = payload.status
    if payload.affiliate_ids is not None:
        # 调用者看不到的站点关系不受影响。
        replace_user_affiliates(
            db,
            user_id=user.id,
            affiliate_ids=_ensure_assignable_affiliates(db, ctx, payload.affiliate_ids),
            within=list_user_affiliate_ids(db, ctx.user_id),
        )

    audit_log(
        db,
        request,
        affiliate_id=scope.affiliate_id,
        actor_user_id=ctx.user_id,
        action="user.update",
        resource_type="user",
        resource_id=str(user.id),
        before_json=before,
        after_json={"email": user.email, "status": user.status, "role_id": str(user.role_id) if user.role_id else None},
    )
    db.commit()
    return success(request, _user_detail(db, user))


@router.delete(
    "/{user_id}",
    summary="删除用户",
    description="不能删除自己；被删用户的直属下级改挂到其上级，保持创建森林连通。",
    response_model=SuccessResponse[DeletedData],
    responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def delete_user(
    request: Request,
    user_id: UUID = Path(..., description="目标用户 ID。"),
    scope: AffiliateScope = Depends(get_affiliate_scope),
    ctx: AuthContext = Depends(require_permission("users.delete")),
    db: Session = Depends(get_db),
):
    if user_id == ctx.user_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "CANNOT_DELETE_SELF", "message": "You cannot delete your own account."},
        )
    user = _get_user_or_404(db, user_id)
    _ensure_user_visible(db, scope, ctx, user)
    email = user.email

    db.execute(update(User).where(User.created_by == user.id).values(created_by=user.created_by))
    replace_user_affiliates(db, user_id=user.id, affiliate_ids=[])
    db.delete(user)
    audit_log(
        db,
        request,
        affiliate_id=scope.affiliate_id,
        actor_user_id=ctx.user_id,
        action="user.delete",
        resource_type="user",
        resource_id=str(user_id),
        before_json={"email": email},
    )
    db.commit()
    return success(request, {"id": user_id, "deleted": True})
