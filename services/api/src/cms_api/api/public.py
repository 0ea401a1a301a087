"""前台公开读取接口：按站点返回已发布内容，无需登录。

站点由 `affiliate_id` 参数或 `x-affiliate-id` 头指定，停用或不存在的站点返回 404。
"""

from datetime import datetime, timezone
from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException, Path, Query, Request, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from cms_api.core.config import get_settings
from cms_api.db.session import get_db
from cms_api.models.affiliate import Affiliate
from cms_api.models.content import Category, Module, Page, Story
from cms_api.models.enums import ContentStatus, RecordStatus
from cms_api.models.user import User
from cms_api.schemas.common import ErrorResponse, SuccessResponse
from cms_api.schemas.responses import PublicContentData, StoryMetaData
from cms_api.services.affiliate_scope import AFFILIATE_CONTEXT_REQUIRED, resolve_candidate_affiliate_id
from cms_api.utils.pagination import like_pattern, paginate
from cms_api.utils.response import pagination_meta, success

router = APIRouter(prefix="/public", tags=["public"])
settings = get_settings()

_ERRORS = {400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}}


def get_public_affiliate(
    db: Session = Depends(get_db),
    affiliate_id: str | None = Query(default=None, description="站点 ID。"),
    x_affiliate_id: str | None = Header(default=None, alias="x-affiliate-id"),
) -> Affiliate:
    """解析公开请求的站点；公开接口不校验成员关系，只要求站点存在且启用。"""
    candidate = resolve_candidate_affiliate_id(None, affiliate_id, x_affiliate_id)
    if candidate is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=AFFILIATE_CONTEXT_REQUIRED)
    affiliate = db.get(Affiliate, candidate)
    if affiliate is None or affiliate.status != RecordStatus.ACTIVE:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="affiliate not found")
    return affiliate


def _published(model, affiliate_id: UUID):
    stmt = select(model).where(model.affiliate_id == affiliate_id).where(model.status == ContentStatus.PUBLISHED)
    if model is Story:
        # 定时发布的稿件在发布时间之前不可见。
        stmt = stmt.where(Story.published_at.is_not(None)).where(Story.published_at <= datetime.now(timezone.utc))
    return stmt


def _get_published(db: Session, model, affiliate_id: UUID, slug: str, resource_type: str):
    record = db.execute(_published(model, affiliate_id).where(model.slug == slug)).scalar_one_or_none()
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{resource_type} not found")
    return record


def _public(record) -> dict:
    return PublicContentData.model_validate(record).model_dump()


def _ordered_list(db: Session, model, affiliate_id: UUID) -> list[dict]:
    stmt = _published(model, affiliate_id).order_by(model.sort_order.asc(), model.title.asc())
    return [_public(item) for item in db.execute(stmt).scalars().all()]


@router.get(
    "/stories",
    summary="已发布稿件列表",
    description="按发布时间倒序分页；`exclude_id` 用于「相关稿件」排除当前稿件。",
    response_model=SuccessResponse[list[PublicContentData]],
    responses=_ERRORS,
)
def list_public_stories(
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=settings.pagination_max_limit),
    search: str | None = Query(default=None, max_length=128),
    exclude_id: UUID | None = Query(default=None),
    affiliate: Affiliate = Depends(get_public_affiliate),
    db: Session = Depends(get_db),
):
    stmt = _published(Story, affiliate.id)
    if search and search.strip():
        stmt = stmt.where(Story.title.ilike(like_pattern(search), escape="\\"))
    if exclude_id is not None:
        stmt = stmt.where(Story.id != exclude_id)
    stmt = stmt.order_by(Story.published_at.desc())

    rows, total = paginate(db, stmt, page=page, limit=limit)
    return success(request, [_public(item) for item in rows], meta=pagination_meta(page=page, limit=limit, total=total))


@router.get(
    "/stories/{slug}",
    summary="按 slug 读取已发布稿件",
    response_model=SuccessResponse[PublicContentData],
    responses=_ERRORS,
)
def get_public_story(
    request: Request,
    slug: str = Path(..., max_length=255),
    affiliate: Affiliate = Depends(get_public_affiliate),
    db: Session = Depends(get_db),
):
    return success(request, _public(_get_published(db, Story, affiliate.id, slug, "story")))


@router.get(
    "/stories/{slug}/meta",
    summary="稿件 SEO 元信息",
    description="供服务端渲染页头使用。",
    response_model=SuccessResponse[StoryMetaData],
    responses=_ERRORS,
)
def get_public_story_meta(
    request: Request,
    slug: str = Path(..., max_length=255),
    affiliate: Affiliate = Depends(get_public_affiliate),
    db: Session = Depends(get_db),
):
    story = _get_published(db, Story, affiliate.id, slug, "story")
    author = db.get(User, story.author_id)
    data = StoryMetaData(
        title=story.title,
        author=author.full_name if author else "",
        published_time=story.published_at,
        modified_time=story.updated_at,
        url=f"{str(request.base_url).rstrip('/')}/story/{story.slug}",
        story=PublicContentData.model_validate(story),
    )
    return success(request, data.model_dump())


@router.get(
    "/pages",
    summary="已发布页面列表",
    response_model=SuccessResponse[list[PublicContentData]],
    responses=_ERRORS,
)
def list_public_pages(
    request: Request,
    affiliate: Affiliate = Depends(get_public_affiliate),
    db: Session = Depends(get_db),
):
    return success(request, _ordered_list(db, Page, affiliate.id))


@router.get(
    "/pages/{slug}",
    summary="按 slug 读取已发布页面",
    response_model=SuccessResponse[PublicContentData],
    responses=_ERRORS,
)
def get_public_page(
    request: Request,
    slug: str = Path(..., max_length=255),
    affiliate: Affiliate = Depends(get_public_affiliate),
    db: Session = Depends(get_db),
):
    return success(request, _public(_get_published(db, Page, affiliate.id, slug, "page")))


@router.get(
    "/modules",
    summary="已发布模块列表",
    response_model=SuccessResponse[list[PublicContentData]],
    responses=_ERRORS,
)
def list_public_modules(
    request: Request,
    affiliate: Affiliate = Depends(get_public_affiliate),
    db: Session = Depends(get_db),
):
    return success(request, _ordered_list(db, Module, affiliate.id))


@router.get(
    "/modules/{slug}",
    summary="按 slug 读取已发布模块",
    response_model=SuccessResponse[PublicContentData],
    responses=_ERRORS,
)
def get_public_module(
    request: Request,
    slug: str = Path(..., max_length=255),
    affiliate: Affiliate = Depends(get_public_affiliate),
    db: Session = Depends(get_db),
):
    return success(request, _public(_get_published(db, Module, affiliate.id, slug, "module")))


@router.get(
    "/categories",
    summary="已发布分类列表",
    response_model=SuccessResponse[list[PublicContentData]],
    responses=_ERRORS,
)
def list_public_categories(
    request: Request,
    affiliate: Affiliate = Depends(get_public_affiliate),
    db: Session = Depends(get_db),
):
    return success(request, _ordered_list(db, Category, affiliate.id))
