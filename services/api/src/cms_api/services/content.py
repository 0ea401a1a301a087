"""内容实体 slug 规则：站点内唯一，冲突时追加数字后缀。"""

from __future__ import annotations

import re
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

SLUG_MAX_LENGTH = 255


def slugify(raw: str) -> str:
    slug = re.sub(r"[^a-z0-9-]+", "-", raw.strip().lower())
    return re.sub(r"-{2,}", "-", slug).strip("-")


def fallback_slug(resource_type: str, record_id: UUID) -> str:
    """标题无法转成 slug（如纯中文）时按记录 ID 生成。"""
    return f"{resource_type}-{record_id.hex[:8]}"


def slug_taken(db: Session, model, *, affiliate_id: UUID, slug: str, exclude_id: UUID | None = None) -> bool:
    stmt = select(model.id).where(model.affiliate_id == affiliate_id).where(model.slug == slug)
    if exclude_id is not None:
        stmt = stmt.where(model.id != exclude_id)
    return db.execute(stmt.limit(1)).first() is not None


def build_unique_content_slug(
    db: Session,
    model,
    *,
    affiliate_id: UUID,
    seed: str,
    exclude_id: UUID | None = None,
) -> str:
    """在站点内生成唯一 slug：`seed`、`seed-1`、`seed-2`……"""
    seed = seed[:SLUG_MAX_LENGTH]
    candidate = seed
    suffix = 1
    while slug_taken(db, model, affiliate_id=affiliate_id, slug=candidate, exclude_id=exclude_id):
        postfix = f"-{suffix}"
        candidate = f"{seed[: max(1, SLUG_MAX_LENGTH - len(postfix))]}{postfix}"
        suffix += 1
    return candidate


def ensure_content_slug_available(
    db: Session,
    model,
    *,
    affiliate_id: UUID,
    slug: str,
    exclude_id: UUID | None = None,
) -> None:
    if slug_taken(db, model, affiliate_id=affiliate_id, slug=slug, exclude_id=exclude_id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "code": "CONTENT_SLUG_EXISTS",
                "message": "Slug already exists. Please choose a different one.",
                "details": {"slug": slug},
            },
        )


def assign_content_slug(
    db: Session,
    model,
    *,
    affiliate_id: UUID,
    record_id: UUID,
    resource_type: str,
    title: str,
    requested: str | None = None,
) -> str:
    """确定写入的 slug。

    显式给出且可用的 slug 冲突时返回 409；否则由标题推导（为空时按 ID 生成），
    冲突时自动追加后缀。
    """
    explicit = slugify(requested or "")
    if explicit:
        ensure_content_slug_available(db, model, affiliate_id=affiliate_id, slug=explicit, exclude_id=record_id)
        return explicit
    seed = slugify(title) or fallback_slug(resource_type, record_id)
    return build_unique_content_slug(db, model, affiliate_id=affiliate_id, seed=seed, exclude_id=record_id)


def check_content_slug(
    db: Session,
    model,
    *,
    affiliate_id: UUID,
    slug: str,
    exclude_id: UUID | None = None,
) -> dict[str, object]:
    """编辑器保存前的 slug 可用性查询；不可用时给出建议值。"""
    normalized = slugify(slug)
    if not normalized:
        return {"slug": normalized, "available": False, "suggested": None}
    if not slug_taken(db, model, affiliate_id=affiliate_id, slug=normalized, exclude_id=exclude_id):
        return {"slug": normalized, "available": True, "suggested": None}
    suggested = build_unique_content_slug(
        db, model, affiliate_id=affiliate_id, seed=normalized, exclude_id=exclude_id
    )
    return {"slug": normalized, "available": False, "suggested": suggested}
