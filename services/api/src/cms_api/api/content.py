"""内容实体（稿件、页面、模块、分类）通用 CRUD 接口。

四类实体结构一致，由 `build_content_router` 按实体生成同一套路由：
列表按站点范围过滤，详情与写操作要求唯一站点，修改/删除按
「完整权限 或 *_own 权限 + 作者本人」校验。
"""

from datetime import datetime, timezone
from typing import Literal
from uuid import UUID, uuid4

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request, status
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from cms_api.core.config import get_settings
from cms_api.db.session import get_db
from cms_api.dependencies import AuthContext, get_affiliate_scope, get_auth_context, require_permission
from cms_api.models.content import Category, Module, Page, Story
from cms_api.models.enums import ContentStatus
from cms_api.schemas.common import ErrorResponse, SuccessResponse
from cms_api.schemas.content import ContentCreateRequest, ContentStatusLiteral, ContentUpdateRequest
from cms_api.schemas.responses import ContentData, DeletedData, SlugCheckData
from cms_api.services.affiliate_scope import AffiliateScope
from cms_api.services.audit import audit_log
from cms_api.services.content import assign_content_slug, check_content_slug
from cms_api.services.permissions import ensure_can_modify, require_modify_permission
from cms_api.utils.pagination import like_pattern, paginate
from cms_api.utils.response import pagination_meta, success

settings = get_settings()


def build_content_router(
    entity: str,
    model,
    *,
    resource_type: str,
    label: str,
    publishable: bool = False,
) -> APIRouter:
    """为单个内容实体生成路由；entity 同时作为路径前缀与权限实体名。"""
    router = APIRouter(prefix=f"/admin/{entity}", tags=[entity])

    def _data(record) -> dict:
        return ContentData.model_validate(record).model_dump()

    def _get_scoped(db: Session, scope: AffiliateScope, record_id: UUID):
        affiliate_id = scope.require_single()
        record = db.get(model, record_id)
        if record is None or record.affiliate_id != affiliate_id:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{resource_type} not found")
        return record

    @router.get(
        "",
        summary=f"查询{label}列表",
        response_model=SuccessResponse[list[ContentData]],
        responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    )
    def list_records(
        request: Request,
        page: int = Query(default=1, ge=1),
        limit: int = Query(default=settings.pagination_default_limit, ge=1, le=settings.pagination_max_limit),
        search: str | None = Query(default=None, max_length=128),
        record_status: ContentStatusLiteral | None = Query(default=None, alias="status"),
        author_id: UUID | None = Query(default=None),
        scope: AffiliateScope = Depends(get_affiliate_scope),
        ctx: AuthContext = Depends(require_permission(f"{entity}.read")),
        db: Session = Depends(get_db),
    ):
        stmt = scope.apply(select(model), model.affiliate_id)
        if search and search.strip():
            pattern = like_pattern(search)
            stmt = stmt.where(or_(model.title.ilike(pattern, escape="\\"), model.slug.ilike(pattern, escape="\\")))
        if record_status:
            stmt = stmt.where(model.status == record_status)
        if author_id is not None:
            stmt = stmt.where(model.author_id == author_id)
        stmt = stmt.order_by(model.sort_order.asc(), model.created_at.desc())

        rows, total = paginate(db, stmt, page=page, limit=limit)
        return success(
            request,
            [_data(item) for item in rows],
            meta=pagination_meta(page=page, limit=limit, total=total),
        )

    @router.get(
        "/check-slug/{slug}",
        summary=f"检查{label} slug 是否可用",
        description="按当前站点判断；不可用时返回带数字后缀的建议值。",
        response_model=SuccessResponse[SlugCheckData],
        responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
    )
    def check_slug(
        request: Request,
        slug: str = Path(..., max_length=255),
        exclude_id: UUID | None = Query(default=None, description="编辑已有记录时排除自身。"),
        scope: AffiliateScope = Depends(get_affiliate_scope),
        ctx: AuthContext = Depends(require_permission(f"{entity}.read")),
        db: Session = Depends(get_db),
    ):
        result = check_content_slug(
            db, model, affiliate_id=scope.require_single(), slug=slug, exclude_id=exclude_id
        )
        return success(request, result)

    @router.get(
        "/{record_id}",
        summary=f"查询{label}详情",
        response_model=SuccessResponse[ContentData],
        responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    )
    def get_record(
        request: Request,
        record_id: UUID = Path(...),
        scope: AffiliateScope = Depends(get_affiliate_scope),
        ctx: AuthContext = Depends(require_permission(f"{entity}.read")),
        db: Session = Depends(get_db),
    ):
        return success(request, _data(_get_scoped(db, scope, record_id)))

    @router.post(
        "",
        summary=f"创建{label}",
        description="写入当前唯一站点，作者记为当前用户。",
        status_code=status.HTTP_201_CREATED,
        response_model=SuccessResponse[ContentData],
        responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
    )
    def create_record(
        payload: ContentCreateRequest,
        request: Request,
        scope: AffiliateScope = Depends(get_affiliate_scope),
        ctx: AuthContext = Depends(require_permission(f"{entity}.create")),
        db: Session = Depends(get_db),
    ):
        values = scope.stamp(payload.model_dump())
        values["id"] = uuid4()
        values["slug"] = assign_content_slug(
            db,
            model,
            affiliate_id=values["affiliate_id"],
            record_id=values["id"],
            resource_type=resource_type,
            title=values["title"],
            requested=values.get("slug"),
        )
        values["author_id"] = ctx.user_id
        if values["status"] == ContentStatus.PUBLISHED:
            values["published_at"] = datetime.now(timezone.utc)
        record = model(**values)
        db.add(record)
        db.flush()
        audit_log(
            db,
            request,
            affiliate_id=record.affiliate_id,
            actor_user_id=ctx.user_id,
            action=f"{resource_type}.create",
            resource_type=resource_type,
            resource_id=str(record.id),
            after_json={"title": record.title, "status": record.status},
        )
        db.commit()
        return success(request, _data(record))

    @router.put(
        "/{record_id}",
        summary=f"更新{label}",
        description=f"需 {entity}.update，或 {entity}.update_own 且为作者本人。",
        response_model=SuccessResponse[ContentData],
        responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    )
    def update_record(
        payload: ContentUpdateRequest,
        request: Request,
        record_id: UUID = Path(...),
        scope: AffiliateScope = Depends(get_affiliate_scope),
        ctx: AuthContext = Depends(get_auth_context),
        db: Session = Depends(get_db),
    ):
        require_modify_permission(ctx.permissions, entity=entity, action="update")
        record = _get_scoped(db, scope, record_id)
        ensure_can_modify(
            ctx.permissions,
            entity=entity,
            action="update",
            record_author_id=record.author_id,
            user_id=ctx.user_id,
        )
        before = {"title": record.title, "status": record.status}
        values = payload.model_dump(exclude_none=True)
        if "slug" in values:
            values["slug"] = assign_content_slug(
                db,
                model,
                affiliate_id=record.affiliate_id,
                record_id=record.id,
                resource_type=resource_type,
                title=values.get("title", record.title),
                requested=values["slug"],
            )
        if values.get("status") == ContentStatus.PUBLISHED and record.published_at is None:
            values["published_at"] = datetime.now(timezone.utc)
        for name, value in values.items():
            setattr(record, name, value)

        audit_log(
            db,
            request,
            affiliate_id=record.affiliate_id,
            actor_user_id=ctx.user_id,
            action=f"{resource_type}.update",
            resource_type=resource_type,
            resource_id=str(record.id),
            before_json=before,
            after_json={"title": record.title, "status": record.status},
        )
        db.commit()
        return success(request, _data(record))

    @router.delete(
        "/{record_id}",
        summary=f"删除{label}",
        description=f"需 {entity}.delete，或 {entity}.delete_own 且为作者本人。",
        response_model=SuccessResponse[DeletedData],
        responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    )
    def delete_record(
        request: Request,
        record_id: UUID = Path(...),
        scope: AffiliateScope = Depends(get_affiliate_scope),
        ctx: AuthContext = Depends(get_auth_context),
        db: Session = Depends(get_db),
    ):
        require_modify_permission(ctx.permissions, entity=entity, action="delete")
        record = _get_scoped(db, scope, record_id)
        ensure_can_modify(
            ctx.permissions,
            entity=entity,
            action="delete",
            record_author_id=record.author_id,
            user_id=ctx.user_id,
        )
        affiliate_id = record.affiliate_id
        title = record.title
        db.delete(record)
        audit_log(
            db,
            request,
            affiliate_id=affiliate_id,
            actor_user_id=ctx.user_id,
            action=f"{resource_type}.delete",
            resource_type=resource_type,
            resource_id=str(record_id),
            before_json={"title": title},
        )
        db.commit()
        return success(request, {"id": record_id, "deleted": True})

    if not publishable:
        return router

    def _set_published(
        db: Session,
        request: Request,
        ctx: AuthContext,
        scope: AffiliateScope,
        record_id: UUID,
        action: Literal["publish", "unpublish"],
    ) -> dict:
        record = _get_scoped(db, scope, record_id)
        before = {"status": record.status}
        if action == "publish":
            record.status = ContentStatus.PUBLISHED
            record.published_at = datetime.now(timezone.utc)
        else:
            record.status = ContentStatus.DRAFT
        audit_log(
            db,
            request,
            affiliate_id=record.affiliate_id,
            actor_user_id=ctx.user_id,
            action=f"{resource_type}.{action}",
            resource_type=resource_type,
            resource_id=str(record.id),
            before_json=before,
            after_json={"status": record.status},
        )
        db.commit()
        return _data(record)

    @router.post(
        "/{record_id}/publish",
        summary=f"发布{label}",
        response_model=SuccessResponse[ContentData],
        responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    )
    def publish_record(
        request: Request,
        record_id: UUID = Path(...),
        scope: AffiliateScope = Depends(get_affiliate_scope),
        ctx: AuthContext = Depends(require_permission(f"{entity}.publish")),
        db: Session = Depends(get_db),
    ):
        return success(request, _set_published(db, request, ctx, scope, record_id, "publish"))

    @router.post(
        "/{record_id}/unpublish",
        summary=f"撤回{label}",
        description="状态回到 draft，保留原发布时间。",
        response_model=SuccessResponse[ContentData],
        responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    )
    def unpublish_record(
        request: Request,
        record_id: UUID = Path(...),
        scope: AffiliateScope = Depends(get_affiliate_scope),
        ctx: AuthContext = Depends(require_permission(f"{entity}.unpublish")),
        db: Session = Depends(get_db),
    ):
        return success(request, _set_published(db, request, ctx, scope, record_id, "unpublish"))

    return router


stories_router = build_content_router("stories", Story, resource_type="story", label="稿件", publishable=True)
pages_router = build_content_router("pages", Page, resource_type="page", label="页面", publishable=True)
modules_router = build_content_router("modules", Module, resource_type="module", label="模块")
categories_router = build_content_router("categories", Category, resource_type="category", label="分类")
