"""站点上下文解析与数据过滤。

两种模式：
1. 单站点：解析出唯一站点 ID，列表按等值过滤，写入时盖章该 ID。
2. 全局：未指定站点或显式 `global=true` 时，列表按用户全部可见站点的并集过滤；
   详情与写入在此模式下一律拒绝（400），不猜测目标站点。
"""

from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import Select, false, select
from sqlalchemy.orm import Session

from cms_api.models.affiliate import Affiliate, UserAffiliate

AFFILIATE_CONTEXT_REQUIRED = {
    "code": "AFFILIATE_CONTEXT_REQUIRED",
    "message": "Affiliate context is required",
    "details": {"reason": "missing_affiliate_context"},
}


@dataclass
class AffiliateScope:
    """当前请求的站点过滤范围。"""

    # 单站点模式下解析出的站点 ID。
    affiliate_id: UUID | None = None
    affiliate: Affiliate | None = None
    # 全局模式下用户可见站点集合。
    affiliate_ids: list[UUID] = field(default_factory=list)
    is_global: bool = False

    def require_single(self) -> UUID:
        """返回唯一站点 ID；全局或未解析时抛出 400。"""
        if self.is_global or self.affiliate_id is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=AFFILIATE_CONTEXT_REQUIRED)
        return self.affiliate_id

    def apply(self, stmt: Select, column: Any) -> Select:
        """为查询追加站点过滤条件。

        全局模式下可见集合为空时返回恒假条件，不会退化为不过滤。
        """
        if not self.is_global and self.affiliate_id is not None:
            return stmt.where(column == self.affiliate_id)
        if not self.affiliate_ids:
            return stmt.where(false())
        return stmt.where(column.in_(self.affiliate_ids))

    def allows(self, affiliate_id: UUID | None) -> bool:
        """判断单条记录是否落在当前范围内。"""
        if affiliate_id is None:
            return False
        if not self.is_global and self.affiliate_id is not None:
            return affiliate_id == self.affiliate_id
        return affiliate_id in self.affiliate_ids

    def stamp(self, values: dict[str, Any]) -> dict[str, Any]:
        """为写入数据盖章当前唯一站点 ID。"""
        stamped = dict(values)
        stamped["affiliate_id"] = self.require_single()
        return stamped


def parse_affiliate_id(raw: str | None) -> UUID | None:
    """解析外部传入的站点 ID，空值返回 None，非法格式抛出 400。"""
    if raw is None:
        return None
    text = str(raw).strip()
    if not text:
        return None
    try:
        return UUID(text)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid affiliate id") from exc


def resolve_candidate_affiliate_id(
    session_affiliate_id: str | None,
    query_affiliate_id: str | None,
    header_affiliate_id: str | None,
) -> UUID | None:
    """按优先级选出候选站点：会话绑定 > 查询参数 > 请求头。"""
    for raw in (session_affiliate_id, query_affiliate_id, header_affiliate_id):
        if raw is not None and str(raw).strip():
            return parse_affiliate_id(raw)
    return None


def list_user_affiliate_ids(db: Session, user_id: UUID) -> list[UUID]:
    """返回用户可见站点 ID 列表。"""
    return list(
        db.execute(
            select(UserAffiliate.affiliate_id)
            .where(UserAffiliate.user_id == user_id)
            .order_by(UserAffiliate.created_at.asc())
        )
        .scalars()
        .all()
    )


def user_has_affiliate(db: Session, *, user_id: UUID, affiliate_id: UUID) -> bool:
    stmt = (
        select(UserAffiliate.id)
        .where(UserAffiliate.user_id == user_id)
        .where(UserAffiliate.affiliate_id == affiliate_id)
    )
    return db.execute(stmt).first() is not None


def resolve_affiliate_scope(
    db: Session,
    *,
    user_id: UUID | None,
    candidate_id: UUID | None,
    want_global: bool = False,
) -> AffiliateScope:
    """解析当前请求的站点范围。

    候选站点存在时先校验存在性（404）与成员关系（403），即使随后切换到全局模式。
    """
    affiliate = None
    if candidate_id is not None:
        affiliate = db.get(Affiliate, candidate_id)
        if affiliate is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="affiliate not found")
        if user_id is not None and not user_has_affiliate(db, user_id=user_id, affiliate_id=candidate_id):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "code": "AFFILIATE_ACCESS_DENIED",
                    "message": "Access denied to this affiliate",
                    "details": {"affiliate_id": str(candidate_id)},
                },
            )

    if candidate_id is None or want_global:
        visible = list_user_affiliate_ids(db, user_id) if user_id is not None else []
        return AffiliateScope(
            affiliate_id=candidate_id,
            affiliate=affiliate,
            affiliate_ids=visible,
            is_global=True,
        )

    return AffiliateScope(
        affiliate_id=candidate_id,
        affiliate=affiliate,
        affiliate_ids=[candidate_id],
        is_global=False,
    )
