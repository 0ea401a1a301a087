"""站点管理接口。

站点本身即租户，路径中的 `{affiliate_id}` 需是当前用户可见站点；
`members` 为站点间能力委托关系，与 `users`（用户可见关系）互不混用。
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, Request, status
from sqlalchemy import delete, or_, select
from sqlalchemy.orm import Session

from cms_api.core.config import get_settings
from cms_api.db.session import get_db
from cms_api.dependencies import AuthContext, require_permission
from cms_api.models.affiliate import Affiliate, AffiliateMember, UserAffiliate
from cms_api.schemas.affiliate import (
    AffiliateCreateRequest,
    AffiliateMemberCreateRequest,
    AffiliateMemberUpdateRequest,
    AffiliateUpdateRequest,
    AffiliateUserIdsRequest,
)
from cms_api.schemas.common import ErrorResponse, SuccessResponse
from cms_api.schemas.responses import AffiliateData, AffiliateMemberData, AffiliateUserIdsData, DeletedData
from cms_api.services.affiliate_scope import resolve_affiliate_scope
from cms_api.services.affiliates import (
    MEMBER_FLAGS,
    add_affiliate_users,
    add_member,
    create_affiliate_with_defaults,
    ensure_slug_available,
    list_affiliate_user_ids,
    list_members,
    normalize_affiliate_slug,
    remove_affiliate_users,
    remove_member,
    replace_affiliate_users,
    update_member,
)
from cms_api.services.audit import audit_log
from cms_api.utils.pagination import like_pattern, paginate
from cms_api.utils.response import pagination_meta, success

router = APIRouter(prefix="/admin/affiliates", tags=["affiliates"])
settings = get_settings()
logger = logging.getLogger("cms_api.affiliates")


def _affiliate_data(affiliate: Affiliate) -> dict:
    return AffiliateData.model_validate(affiliate).model_dump()


def _parse_ids(raw: str) -> list[UUID]:
    """解析逗号分隔的站点 ID，非法片段直接忽略。"""
    result: list[UUID] = []
    for part in raw.split(","):
        text = part.strip()
        if not text:
            continue
        try:
            result.append(UUID(text))
        except ValueError:
            continue
    return list(dict.fromkeys(result))


def _visible_affiliate(db: Session, ctx: AuthContext, affiliate_id: UUID) -> Affiliate:
    """加载路径中的站点：不存在返回 404，不可见返回 403。"""
    scope = resolve_affiliate_scope(db, user_id=ctx.user_id, candidate_id=affiliate_id)
    return scope.affiliate


def _visible_affiliates_stmt(ctx: AuthContext):
    return (
        select(Affiliate)
        .join(UserAffiliate, UserAffiliate.affiliate_id == Affiliate.id)
        .where(UserAffiliate.user_id == ctx.user_id)
    )


def _user_ids_data(affiliate_id: UUID, user_ids: list[UUID]) -> dict:
    return AffiliateUserIdsData(affiliate_id=affiliate_id, user_ids=user_ids).model_dump()


@router.get(
    "",
    summary="查询站点列表",
    description="传入 `ids=a,b,c` 时按 ID 批量查询（供多选组件回显），否则返回当前用户可见站点（分页）。",
    response_model=SuccessResponse[list[AffiliateData]],
    responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)
def list_affiliates(
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=settings.pagination_default_limit, ge=1, le=settings.pagination_max_limit),
    search: str | None = Query(default=None, max_length=128),
    ids: str | None = Query(default=None, description="逗号分隔的站点 ID。"),
    ctx: AuthContext = Depends(require_permission("affiliates.read")),
    db: Session = Depends(get_db),
):
    stmt = _visible_affiliates_stmt(ctx).order_by(Affiliate.sort_order.asc(), Affiliate.name.asc())
    if ids is not None:
        wanted = _parse_ids(ids)
        if not wanted:
            return success(request, [])
        rows = db.execute(stmt.where(Affiliate.id.in_(wanted))).scalars().all()
        return success(request, [_affiliate_data(item) for item in rows])

    if search and search.strip():
        pattern = like_pattern(search)
        stmt = stmt.where(
            or_(
                Affiliate.name.ilike(pattern, escape="\\"),
                Affiliate.slug.ilike(pattern, escape="\\"),
                Affiliate.description.ilike(pattern, escape="\\"),
            )
        )
    rows, total = paginate(db, stmt, page=page, limit=limit)
    return success(
        request,
        [_affiliate_data(item) for item in rows],
        meta=pagination_meta(page=page, limit=limit, total=total),
    )


@router.get(
    "/{affiliate_id}",
    summary="查询站点详情",
    response_model=SuccessResponse[AffiliateData],
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def get_affiliate(
    request: Request,
    affiliate_id: UUID = Path(..., description="站点 ID。"),
    ctx: AuthContext = Depends(require_permission("affiliates.read")),
    db: Session = Depends(get_db),
):
    return success(request, _affiliate_data(_visible_affiliate(db, ctx, affiliate_id)))


@router.post(
    "",
    summary="创建站点",
    description="创建站点并初始化：创建者可见关系、页眉/页脚模块、系统页面与空的 Main Menu。",
    status_code=status.HTTP_201_CREATED,
    response_model=SuccessResponse[AffiliateData],
    responses={403: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
def create_affiliate(
    payload: AffiliateCreateRequest,
    request: Request,
    ctx: AuthContext = Depends(require_permission("affiliates.create")),
    db: Session = Depends(get_db),
):
    affiliate, menu = create_affiliate_with_defaults(
        db,
        creator_user_id=ctx.user_id,
        values=payload.model_dump(),
    )
    audit_log(
        db,
        request,
        affiliate_id=affiliate.id,
        actor_user_id=ctx.user_id,
        action="affiliate.create",
        resource_type="affiliate",
        resource_id=str(affiliate.id),
        after_json={"name": affiliate.name, "slug": affiliate.slug, "menu_id": str(menu.id)},
    )
    db.commit()
    logger.info("affiliate created id=%s slug=%s by=%s", affiliate.id, affiliate.slug, ctx.user_id)
    return success(request, _affiliate_data(affiliate))


@router.put(
    "/{affiliate_id}",
    summary="更新站点",
    response_model=SuccessResponse[AffiliateData],
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
def update_affiliate(
    payload: AffiliateUpdateRequest,
    request: Request,
    affiliate_id: UUID = Path(..., description="站点 ID。"),
    ctx: AuthContext = Depends(require_permission("affiliates.update")),
    db: Session = Depends(get_db),
):
    affiliate = _visible_affiliate(db, ctx, affiliate_id)
    before = {"name": affiliate.name, "slug": affiliate.slug, "status": affiliate.status}
    values = payload.model_dump(exclude_none=True)
    if "slug" in values:
        slug = normalize_affiliate_slug(values.pop("slug"))
        ensure_slug_available(db, slug, exclude_id=affiliate.id)
        affiliate.slug = slug
    for name, value in values.items():
        setattr(affiliate, name, value)

    audit_log(
        db,
        request,
        affiliate_id=affiliate.id,
        actor_user_id=ctx.user_id,
        action="affiliate.update",
        resource_type="affiliate",
        resource_id=str(affiliate.id),
        before_json=before,
        after_json={"name": affiliate.name, "slug": affiliate.slug, "status": affiliate.status},
    )
    db.commit()
    return success(request, _affiliate_data(affiliate))


@router.delete(
    "/{affiliate_id}",
    summary="删除站点",
    description="同时清理用户可见关系与两个方向的委托关系；站点内容数据不做级联删除。",
    response_model=SuccessResponse[DeletedData],
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def delete_affiliate(
    request: Request,
    affiliate_id: UUID = Path(..., description="站点 ID。"),
    ctx: AuthContext = Depends(require_permission("affiliates.delete")),
    db: Session = Depends(get_db),
):
    affiliate = _visible_affiliate(db, ctx, affiliate_id)
    slug = affiliate.slug
    db.execute(delete(UserAffiliate).where(UserAffiliate.affiliate_id == affiliate_id))
    db.execute(
        delete(AffiliateMember).where(
            or_(
                AffiliateMember.from_affiliate_id == affiliate_id,
                AffiliateMember.to_affiliate_id == affiliate_id,
            )
        )
    )
    db.delete(affiliate)
    audit_log(
        db,
        request,
        affiliate_id=affiliate_id,
        actor_user_id=ctx.user_id,
        action="affiliate.delete",
        resource_type="affiliate",
        resource_id=str(affiliate_id),
        before_json={"slug": slug},
    )
    db.commit()
    return success(request, {"id": affiliate_id, "deleted": True})


@router.get(
    "/{affiliate_id}/users",
    summary="查询站点用户",
    response_model=SuccessResponse[AffiliateUserIdsData],
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def get_affiliate_users(
    request: Request,
    affiliate_id: UUID = Path(..., description="站点 ID。"),
    ctx: AuthContext = Depends(require_permission("affiliates.read")),
    db: Session = Depends(get_db),
):
    _visible_affiliate(db, ctx, affiliate_id)
    return success(request, _user_ids_data(affiliate_id, list_affiliate_user_ids(db, affiliate_id)))


def _write_users(
    db: Session,
    request: Request,
    ctx: AuthContext,
    *,
    affiliate_id: UUID,
    user_ids: list[UUID],
    mode: str,
) -> dict:
    _visible_affiliate(db, ctx, affiliate_id)
    if mode == "add":
        result = add_affiliate_users(db, affiliate_id=affiliate_id, user_ids=user_ids)
    elif mode == "replace":
        result = replace_affiliate_users(db, affiliate_id=affiliate_id, user_ids=user_ids)
    else:
        result = remove_affiliate_users(db, affiliate_id=affiliate_id, user_ids=user_ids)
    audit_log(
        db,
        request,
        affiliate_id=affiliate_id,
        actor_user_id=ctx.user_id,
        action=f"affiliate.users.{mode}",
        resource_type="affiliate",
        resource_id=str(affiliate_id),
        after_json={"user_ids": [str(item) for item in user_ids]},
    )
    db.commit()
    return _user_ids_data(affiliate_id, result)


@router.post(
    "/{affiliate_id}/users",
    summary="追加站点用户",
    response_model=SuccessResponse[AffiliateUserIdsData],
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
def add_users(
    payload: AffiliateUserIdsRequest,
    request: Request,
    affiliate_id: UUID = Path(..., description="站点 ID。"),
    ctx: AuthContext = Depends(require_permission("affiliates.update")),
    db: Session = Depends(get_db),
):
    data = _write_users(db, request, ctx, affiliate_id=affiliate_id, user_ids=payload.user_ids, mode="add")
    return success(request, data)


@router.put(
    "/{affiliate_id}/users",
    summary="整体替换站点用户",
    response_model=SuccessResponse[AffiliateUserIdsData],
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
def replace_users(
    payload: AffiliateUserIdsRequest,
    request: Request,
    affiliate_id: UUID = Path(..., description="站点 ID。"),
    ctx: AuthContext = Depends(require_permission("affiliates.update")),
    db: Session = Depends(get_db),
):
    data = _write_users(db, request, ctx, affiliate_id=affiliate_id, user_ids=payload.user_ids, mode="replace")
    return success(request, data)


@router.delete(
    "/{affiliate_id}/users",
    summary="移除站点用户",
    response_model=SuccessResponse[AffiliateUserIdsData],
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def remove_users(
    payload: AffiliateUserIdsRequest,
    request: Request,
    affiliate_id: UUID = Path(..., description="站点 ID。"),
    ctx: AuthContext = Depends(require_permission("affiliates.update")),
    db: Session = Depends(get_db),
):
    data = _write_users(db, request, ctx, affiliate_id=affiliate_id, user_ids=payload.user_ids, mode="remove")
    return success(request, data)


@router.get(
    "/{affiliate_id}/members",
    summary="查询委托站点",
    response_model=SuccessResponse[list[AffiliateMemberData]],
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def get_members(
    request: Request,
    affiliate_id: UUID = Path(..., description="站点 ID。"),
    ctx: AuthContext = Depends(require_permission("affiliates.read")),
    db: Session = Depends(get_db),
):
    _visible_affiliate(db, ctx, affiliate_id)
    members = list_members(db, affiliate_id)
    return success(request, [AffiliateMemberData.model_validate(item).model_dump() for item in members])


@router.get(
    "/{affiliate_id}/available-members",
    summary="查询可委托站点",
    description="候选为当前用户可见站点中除本站点以外的全部站点。",
    response_model=SuccessResponse[list[AffiliateData]],
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def available_members(
    request: Request,
    affiliate_id: UUID = Path(..., description="站点 ID。"),
    ctx: AuthContext = Depends(require_permission("affiliates.read")),
    db: Session = Depends(get_db),
):
    _visible_affiliate(db, ctx, affiliate_id)
    stmt = (
        _visible_affiliates_stmt(ctx)
        .where(Affiliate.id != affiliate_id)
        .order_by(Affiliate.sort_order.asc(), Affiliate.name.asc())
    )
    return success(request, [_affiliate_data(item) for item in db.execute(stmt).scalars().all()])


@router.post(
    "/{affiliate_id}/members",
    summary="新增委托站点",
    status_code=status.HTTP_201_CREATED,
    response_model=SuccessResponse[AffiliateMemberData],
    responses={
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
    },
)
def create_member(
    payload: AffiliateMemberCreateRequest,
    request: Request,
    affiliate_id: UUID = Path(..., description="站点 ID。"),
    ctx: AuthContext = Depends(require_permission("affiliates.update")),
    db: Session = Depends(get_db),
):
    _visible_affiliate(db, ctx, affiliate_id)
    member = add_member(
        db,
        affiliate_id=affiliate_id,
        to_affiliate_id=payload.to_affiliate_id,
        flags=payload.permissions.model_dump(),
    )
    data = AffiliateMemberData.model_validate(member).model_dump()
    audit_log(
        db,
        request,
        affiliate_id=affiliate_id,
        actor_user_id=ctx.user_id,
        action="affiliate.member.create",
        resource_type="affiliate_member",
        resource_id=str(member.id),
        after_json={key: data[key] for key in MEMBER_FLAGS},
    )
    db.commit()
    return success(request, data)


@router.put(
    "/{affiliate_id}/members/{member_id}",
    summary="更新委托能力",
    description="`member_id` 为被委托站点 ID；未传入的能力开关保持不变。",
    response_model=SuccessResponse[AffiliateMemberData],
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def change_member(
    payload: AffiliateMemberUpdateRequest,
    request: Request,
    affiliate_id: UUID = Path(..., description="站点 ID。"),
    member_id: UUID = Path(..., description="被委托站点 ID。"),
    ctx: AuthContext = Depends(require_permission("affiliates.update")),
    db: Session = Depends(get_db),
):
    _visible_affiliate(db, ctx, affiliate_id)
    member = update_member(
        db,
        affiliate_id=affiliate_id,
        to_affiliate_id=member_id,
        flags=payload.permissions.model_dump(),
    )
    data = AffiliateMemberData.model_validate(member).model_dump()
    audit_log(
        db,
        request,
        affiliate_id=affiliate_id,
        actor_user_id=ctx.user_id,
        action="affiliate.member.update",
        resource_type="affiliate_member",
        resource_id=str(member.id),
        after_json={key: data[key] for key in MEMBER_FLAGS},
    )
    db.commit()
    return success(request, data)


@router.delete(
    "/{affiliate_id}/members/{member_id}",
    summary="移除委托站点",
    response_model=SuccessResponse[DeletedData],
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def delete_member(
    request: Request,
    affiliate_id: UUID = Path(..., description="站点 ID。"),
    member_id: UUID = Path(..., description="被委托站点 ID。"),
    ctx: AuthContext = Depends(require_permission("affiliates.update")),
    db: Session = Depends(get_db),
):
    _visible_affiliate(db, ctx, affiliate_id)
    remove_member(db, affiliate_id=affiliate_id, to_affiliate_id=member_id)
    audit_log(
        db,
        request,
        affiliate_id=affiliate_id,
        actor_user_id=ctx.user_id,
        action="affiliate.member.delete",
        resource_type="affiliate_member",
        resource_id=str(member_id),
    )
    db.commit()
    return success(request, {"id": member_id, "deleted": True})
