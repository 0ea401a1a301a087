"""站点初始化与站点关系服务。"""

from __future__ import annotations

import json
import re
import time
from collections.abc import Iterable
from typing import Any
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from cms_api.models.affiliate import Affiliate, AffiliateMember, UserAffiliate
from cms_api.models.content import Module, Page
from cms_api.models.enums import ContentStatus, MenuPlatform, RecordStatus
from cms_api.models.menu import Menu
from cms_api.models.user import User

DEFAULT_MENU_TITLE = "Main Menu"
MEMBER_FLAGS = ("can_use", "can_copy", "can_assign", "access_publishers")


def normalize_affiliate_slug(raw: str) -> str:
    """规范化站点 slug。"""
    normalized = re.sub(r"[^a-z0-9-]+", "-", raw.strip().lower())
    normalized = re.sub(r"-{2,}", "-", normalized).strip("-")
    return normalized or "affiliate"


def build_unique_affiliate_slug(db: Session, *, base_slug: str, exclude_id: UUID | None = None) -> str:
    """在现有站点集合中生成唯一 slug。"""
    seed = normalize_affiliate_slug(base_slug)[:128]
    candidate = seed
    suffix = 1
    while True:
        stmt = select(Affiliate.id).where(Affiliate.slug == candidate)
        if exclude_id is not None:
            stmt = stmt.where(Affiliate.id != exclude_id)
        if db.execute(stmt).scalar_one_or_none() is None:
            return candidate
        postfix = f"-{suffix}"
        candidate = f"{seed[: max(1, 128 - len(postfix))]}{postfix}"
        suffix += 1


def ensure_slug_available(db: Session, slug: str, *, exclude_id: UUID | None = None) -> None:
    stmt = select(Affiliate.id).where(Affiliate.slug == slug)
    if exclude_id is not None:
        stmt = stmt.where(Affiliate.id != exclude_id)
    if db.execute(stmt).first():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "code": "AFFILIATE_SLUG_EXISTS",
                "message": "Slug already exists. Please choose a different name.",
                "details": {"slug": slug},
            },
        )


def get_affiliate_or_404(db: Session, affiliate_id: UUID) -> Affiliate:
    affiliate = db.get(Affiliate, affiliate_id)
    if affiliate is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="affiliate not found")
    return affiliate


def _blocks(*blocks: tuple[str, dict[str, Any]]) -> str:
    return json.dumps(
        {"time": int(time.time() * 1000), "blocks": [{"type": kind, "data": data} for kind, data in blocks]},
        ensure_ascii=False,
    )


def _create_default_content(db: Session, *, affiliate: Affiliate, author_id: UUID) -> None:
    """初始化页眉/页脚模块与系统页面。"""
    welcome = f"Welcome to {affiliate.name}"
    db.add_all(
        [
            Module(
                affiliate_id=affiliate.id,
                author_id=author_id,
                title="Header",
                slug=f"header-{affiliate.slug}",
                status=ContentStatus.PUBLISHED,
                content=_blocks(("header", {"text": welcome, "level": 1})),
            ),
            Module(
                affiliate_id=affiliate.id,
                author_id=author_id,
                title="Footer",
                slug=f"footer-{affiliate.slug}",
                status=ContentStatus.PUBLISHED,
                content=_blocks(("paragraph", {"text": f"© {affiliate.name}. All rights reserved."})),
            ),
        ]
    )
    pages = (
        ("Home", "home", welcome),
        ("Stories", "stories", f"Browse all stories from {affiliate.name}"),
        ("Story", "story", f"Read stories from {affiliate.name}"),
    )
    for order, (title, slug, text) in enumerate(pages):
        db.add(
            Page(
                affiliate_id=affiliate.id,
                author_id=author_id,
                title=title,
                slug=slug,
                status=ContentStatus.PUBLISHED,
                sort_order=order,
                content=_blocks(("header", {"text": title, "level": 1}), ("paragraph", {"text": text})),
            )
        )


def create_affiliate_with_defaults(
    db: Session,
    *,
    creator_user_id: UUID,
    values: dict[str, Any],
) -> tuple[Affiliate, Menu]:
    """创建站点，并初始化创建者可见关系、默认内容与空的主菜单。"""
    data = dict(values)
    raw_slug = data.pop("slug", None)
    if raw_slug:
        slug = normalize_affiliate_slug(raw_slug)
        ensure_slug_available(db, slug)
    else:
        slug = build_unique_affiliate_slug(db, base_slug=data["name"])
    if data.get("settings") is None:
        data["settings"] = {}

    affiliate = Affiliate(slug=slug, **data)
    db.add(affiliate)
    db.flush()

    db.add(UserAffiliate(user_id=creator_user_id, affiliate_id=affiliate.id))
    _create_default_content(db, affiliate=affiliate, author_id=creator_user_id)

    menu = Menu(
        affiliate_id=affiliate.id,
        title=DEFAULT_MENU_TITLE,
        platform=MenuPlatform.WEB,
        status=RecordStatus.ACTIVE,
        sort_order=0,
        links="[]",
    )
    db.add(menu)
    db.flush()
    return affiliate, menu


def list_affiliate_user_ids(db: Session, affiliate_id: UUID) -> list[UUID]:
    return list(
        db.execute(select(UserAffiliate.user_id).where(UserAffiliate.affiliate_id == affiliate_id)).scalars().all()
    )


def _existing_user_ids(db: Session, user_ids: Iterable[UUID]) -> list[UUID]:
    wanted = list(dict.fromkeys(user_ids))
    if not wanted:
        return []
    found = set(db.execute(select(User.id).where(User.id.in_(wanted))).scalars().all())
    missing = [str(item) for item in wanted if item not in found]
    if missing:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_CONTENT,
            detail={"code": "USER_NOT_FOUND", "message": "Unknown user ids.", "details": {"missing_ids": missing}},
        )
    return wanted


def add_affiliate_users(db: Session, *, affiliate_id: UUID, user_ids: Iterable[UUID]) -> list[UUID]:
    """追加用户可见关系，已存在的关系保持不变。"""
    wanted = _existing_user_ids(db, user_ids)
    current = set(list_affiliate_user_ids(db, affiliate_id))
    for user_id in wanted:
        if user_id not in current:
            db.add(UserAffiliate(user_id=user_id, affiliate_id=affiliate_id))
    db.flush()
    return list_affiliate_user_ids(db, affiliate_id)


def replace_affiliate_users(db: Session, *, affiliate_id: UUID, user_ids: Iterable[UUID]) -> list[UUID]:
    """整体替换站点用户集合。"""
    wanted = _existing_user_ids(db, user_ids)
    db.execute(delete(UserAffiliate).where(UserAffiliate.affiliate_id == affiliate_id))
    for user_id in wanted:
        db.add(UserAffiliate(user_id=user_id, affiliate_id=affiliate_id))
    db.flush()
    return wanted


def remove_affiliate_users(db: Session, *, affiliate_id: UUID, user_ids: Iterable[UUID]) -> list[UUID]:
    wanted = list(dict.fromkeys(user_ids))
    if wanted:
        db.execute(
            delete(UserAffiliate)
            .where(UserAffiliate.affiliate_id == affiliate_id)
            .where(UserAffiliate.user_id.in_(wanted))
        )
        db.flush()
    return list_affiliate_user_ids(db, affiliate_id)


def replace_user_affiliates(
    db: Session,
    *,
    user_id: UUID,
    affiliate_ids: Iterable[UUID],
    within: Iterable[UUID] | None = None,
) -> list[UUID]:
    """替换某用户的可见站点集合。

    指定 `within` 时只改写该集合内的关系，集合外站点的关系原样保留。
    """
    wanted = list(dict.fromkeys(affiliate_ids))
    stmt = delete(UserAffiliate).where(UserAffiliate.user_id == user_id)
    if within is not None:
        stmt = stmt.where(UserAffiliate.affiliate_id.in_(list(within)))
    db.execute(stmt)
    for affiliate_id in wanted:
        db.add(UserAffiliate(user_id=user_id, affiliate_id=affiliate_id))
    db.flush()
    return list(
        db.execute(select(UserAffiliate.affiliate_id).where(UserAffiliate.user_id == user_id)).scalars().all()
    )


def list_members(db: Session, affiliate_id: UUID) -> list[AffiliateMember]:
    stmt = (
        select(AffiliateMember)
        .where(AffiliateMember.from_affiliate_id == affiliate_id)
        .order_by(AffiliateMember.created_at.asc())
    )
    return list(db.execute(stmt).scalars().all())


def get_member_or_404(db: Session, *, affiliate_id: UUID, to_affiliate_id: UUID) -> AffiliateMember:
    member = db.execute(
        select(AffiliateMember)
        .where(AffiliateMember.from_affiliate_id == affiliate_id)
        .where(AffiliateMember.to_affiliate_id == to_affiliate_id)
    ).scalar_one_or_none()
    if member is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="affiliate member not found")
    return member


def _apply_flags(member: AffiliateMember, flags: dict[str, bool | None]) -> None:
    for name in MEMBER_FLAGS:
        value = flags.get(name)
        if value is not None:
            setattr(member, name, bool(value))


def add_member(
    db: Session,
    *,
    affiliate_id: UUID,
    to_affiliate_id: UUID,
    flags: dict[str, bool | None],
) -> AffiliateMember:
    """新增站点委托关系；自身委托与重复委托均拒绝。"""
    if affiliate_id == to_affiliate_id:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_CONTENT,
            detail={"code": "AFFILIATE_MEMBER_SELF", "message": "An affiliate cannot be its own member."},
        )
    get_affiliate_or_404(db, to_affiliate_id)
    existing = db.execute(
        select(AffiliateMember.id)
        .where(AffiliateMember.from_affiliate_id == affiliate_id)
        .where(AffiliateMember.to_affiliate_id == to_affiliate_id)
    ).first()
    if existing:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"code": "AFFILIATE_MEMBER_EXISTS", "message": "This affiliate is already a member"},
        )
    member = AffiliateMember(from_affiliate_id=affiliate_id, to_affiliate_id=to_affiliate_id)
    _apply_flags(member, flags)
    db.add(member)
    db.flush()
    return member


def update_member(
    db: Session,
    *,
    affiliate_id: UUID,
    to_affiliate_id: UUID,
    flags: dict[str, bool | None],
) -> AffiliateMember:
    member = get_member_or_404(db, affiliate_id=affiliate_id, to_affiliate_id=to_affiliate_id)
    _apply_flags(member, flags)
    db.flush()
    return member


def remove_member(db: Session, *, affiliate_id: UUID, to_affiliate_id: UUID) -> None:
    member = get_member_or_404(db, affiliate_id=affiliate_id, to_affiliate_id=to_affiliate_id)
    db.delete(member)
    db.flush()


def member_has_capability(db: Session, *, from_affiliate_id: UUID, to_affiliate_id: UUID, capability: str) -> bool:
    """判断 from 站点是否向 to 站点委托了指定能力。"""
    member = db.execute(
        select(AffiliateMember)
        .where(AffiliateMember.from_affiliate_id == from_affiliate_id)
        .where(AffiliateMember.to_affiliate_id == to_affiliate_id)
    ).scalar_one_or_none()
    return bool(member and member.has_capability(capability))
