"""菜单管理接口。

菜单树整体保存：更新时 `links` 严格校验后规范化并整体覆盖（后写入者胜出）；
读取时对存储中的脏数据宽松处理，退化为空树。
"""

from typing import Any, Literal
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from cms_api.core.config import get_settings
from cms_api.db.session import get_db
from cms_api.dependencies import AuthContext, get_affiliate_scope, require_permission
from cms_api.models.menu import Menu
from cms_api.schemas.common import ErrorResponse, SuccessResponse
from cms_api.schemas.menu import MenuCreateRequest, MenuUpdateRequest, PlatformLiteral
from cms_api.schemas.responses import DeletedData, MenuData
from cms_api.services.affiliate_scope import AffiliateScope
from cms_api.services.audit import audit_log
from cms_api.services.menu_tree import (
    MenuNode,
    MenuTreeValidationError,
    count_items,
    dumps_links,
    links_to_payload,
    load_tree,
    validate_links,
)
from cms_api.utils.pagination import like_pattern, paginate
from cms_api.utils.response import pagination_meta, success

router = APIRouter(prefix="/admin/menus", tags=["menus"])
settings = get_settings()


def _menu_data(menu: Menu) -> dict:
    nodes = load_tree(menu.links)
    data: dict[str, Any] = {
        "id": menu.id,
        "affiliate_id": menu.affiliate_id,
        "category_id": menu.category_id,
        "title": menu.title,
        "platform": menu.platform,
        "status": menu.status,
        "sort_order": menu.sort_order,
        "links": links_to_payload(nodes),
        "total_items": count_items(nodes),
        "updated_at": menu.updated_at,
    }
    return MenuData.model_validate(data).model_dump()


def _validated_links(raw: Any) -> list[MenuNode]:
    try:
        return validate_links(raw)
    except MenuTreeValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_CONTENT,
            detail={
                "code": "VALIDATION_ERROR",
                "message": "Invalid menu links.",
                "details": {"errors": exc.errors},
            },
        ) from exc


def _get_scoped_menu(db: Session, scope: AffiliateScope, menu_id: UUID) -> Menu:
    """详情与写操作要求唯一站点，且菜单必须属于该站点。"""
    affiliate_id = scope.require_single()
    menu = db.get(Menu, menu_id)
    if menu is None or menu.affiliate_id != affiliate_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="menu not found")
    return menu


@router.get(
    "",
    summary="查询菜单列表",
    description="单站点或全局模式过滤；每行附带全部层级的节点总数。",
    response_model=SuccessResponse[list[MenuData]],
    responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def list_menus(
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=settings.pagination_default_limit, ge=1, le=settings.pagination_max_limit),
    search: str | None = Query(default=None, max_length=128),
    menu_status: Literal["active", "inactive"] | None = Query(default=None, alias="status"),
    platform: PlatformLiteral | None = Query(default=None),
    scope: AffiliateScope = Depends(get_affiliate_scope),
    ctx: AuthContext = Depends(require_permission("menus.read")),
    db: Session = Depends(get_db),
):
    stmt = scope.apply(select(Menu), Menu.affiliate_id)
    if menu_status:
        stmt = stmt.where(Menu.status == menu_status)
    if platform:
        stmt = stmt.where(Menu.platform == platform)
    if search and search.strip():
        stmt = stmt.where(Menu.title.ilike(like_pattern(search), escape="\\"))
    stmt = stmt.order_by(Menu.sort_order.asc(), Menu.created_at.desc())

    rows, total = paginate(db, stmt, page=page, limit=limit)
    return success(
        request,
        [_menu_data(item) for item in rows],
        meta=pagination_meta(page=page, limit=limit, total=total),
    )


@router.get(
    "/{menu_id}",
    summary="查询菜单详情",
    response_model=SuccessResponse[MenuData],
    responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def get_menu(
    request: Request,
    menu_id: UUID = Path(..., description="菜单 ID。"),
    scope: AffiliateScope = Depends(get_affiliate_scope),
    ctx: AuthContext = Depends(require_permission("menus.read")),
    db: Session = Depends(get_db),
):
    return success(request, _menu_data(_get_scoped_menu(db, scope, menu_id)))


@router.post(
    "",
    summary="创建菜单",
    description="写入当前唯一站点；全局模式下返回 400。",
    status_code=status.HTTP_201_CREATED,
    response_model=SuccessResponse[MenuData],
    responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
def create_menu(
    payload: MenuCreateRequest,
    request: Request,
    scope: AffiliateScope = Depends(get_affiliate_scope),
    ctx: AuthContext = Depends(require_permission("menus.create")),
    db: Session = Depends(get_db),
):
    values = scope.stamp(payload.model_dump(exclude={"links"}))
    nodes = _validated_links(payload.links)
    menu = Menu(**values, links=dumps_links(nodes))
    db.add(menu)
    db.flush()
    audit_log(
        db,
        request,
        affiliate_id=menu.affiliate_id,
        actor_user_id=ctx.user_id,
        action="menu.create",
        resource_type="menu",
        resource_id=str(menu.id),
        after_json={"title": menu.title, "total_items": count_items(nodes)},
    )
    db.commit()
    return success(request, _menu_data(menu))


@router.put(
    "/{menu_id}",
    summary="更新菜单",
    description="`links` 传入时整体覆盖菜单树，不做合并。",
    response_model=SuccessResponse[MenuData],
    responses={
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
    },
)
def update_menu(
    payload: MenuUpdateRequest,
    request: Request,
    menu_id: UUID = Path(..., description="菜单 ID。"),
    scope: AffiliateScope = Depends(get_affiliate_scope),
    ctx: AuthContext = Depends(require_permission("menus.update")),
    db: Session = Depends(get_db),
):
    menu = _get_scoped_menu(db, scope, menu_id)
    before = {"title": menu.title, "total_items": count_items(load_tree(menu.links))}

    if "links" in payload.model_fields_set:
        menu.links = dumps_links(_validated_links(payload.links))
    for name in ("title", "platform", "status", "sort_order"):
        value = getattr(payload, name)
        if value is not None:
            setattr(menu, name, value)
    if "category_id" in payload.model_fields_set:
        menu.category_id = payload.category_id

    audit_log(
        db,
        request,
        affiliate_id=menu.affiliate_id,
        actor_user_id=ctx.user_id,
        action="menu.update",
        resource_type="menu",
        resource_id=str(menu.id),
        before_json=before,
        after_json={"title": menu.title, "total_items": count_items(load_tree(menu.links))},
    )
    db.commit()
    return success(request, _menu_data(menu))


@router.delete(
    "/{menu_id}",
    summary="删除菜单",
    response_model=SuccessResponse[DeletedData],
    responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def delete_menu(
    request: Request,
    menu_id: UUID = Path(..., description="菜单 ID。"),
    scope: AffiliateScope = Depends(get_affiliate_scope),
    ctx: AuthContext = Depends(require_permission("menus.delete")),
    db: Session = Depends(get_db),
):
    menu = _get_scoped_menu(db, scope, menu_id)
    affiliate_id = menu.affiliate_id
    title = menu.title
    db.delete(menu)
    audit_log(
        db,
        request,
        affiliate_id=affiliate_id,
        actor_user_id=ctx.user_id,
        action="menu.delete",
        resource_type="menu",
        resource_id=str(menu_id),
        before_json={"title": title},
    )
    db.commit()
    return success(request, {"id": menu_id, "deleted": True})
