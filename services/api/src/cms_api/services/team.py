"""金字塔团队视图服务。

用户按 `created_by` 构成森林：创建者为上级，同一创建者的其他用户为同级，
本人创建的用户为下级。`created_by` 为空的用户是森林根节点，没有上级。
"""

from dataclasses import dataclass, field
from typing import Literal
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from cms_api.models.user import User

LoadLevel = Literal["direct"]

# 祖先链回溯上限，防御历史脏数据形成的环。
MAX_ANCESTOR_DEPTH = 64


@dataclass
class TeamSnapshot:
    """以当前用户为中心的局部团队视图。"""

    current_user: User
    superior: User | None = None
    siblings: list[User] = field(default_factory=list)
    subordinates: list[User] = field(default_factory=list)


def _get_user_or_404(db: Session, user_id: UUID) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="user not found")
    return user


def _children_of(db: Session, creator_id: UUID) -> list[User]:
    stmt = select(User).where(User.created_by == creator_id).order_by(User.created_at.asc(), User.email.asc())
    return list(db.execute(stmt).scalars().all())


def load_subordinates(db: Session, user_id: UUID, level: LoadLevel = "direct") -> list[User]:
    """按需加载指定用户的下一代下级。"""
    _get_user_or_404(db, user_id)
    return _children_of(db, user_id)


def load_team(db: Session, user_id: UUID, load_level: LoadLevel = "direct") -> TeamSnapshot:
    """加载用户的上级、同级与直属下级；更深层级由展开操作按需获取。"""
    user = _get_user_or_404(db, user_id)
    snapshot = TeamSnapshot(current_user=user)
    if user.created_by is not None:
        snapshot.superior = db.get(User, user.created_by)
        snapshot.siblings = [item for item in _children_of(db, user.created_by) if item.id != user.id]
    snapshot.subordinates = _children_of(db, user.id)
    return snapshot


def ancestor_ids(db: Session, user_id: UUID) -> list[UUID]:
    """自下而上返回祖先链（不含自身），遇到环或超过上限即停止。"""
    chain: list[UUID] = []
    seen = {user_id}
    current = db.get(User, user_id)
    while current is not None and current.created_by is not None and len(chain) < MAX_ANCESTOR_DEPTH:
        parent_id = current.created_by
        if parent_id in seen:
            break
        chain.append(parent_id)
        seen.add(parent_id)
        current = db.get(User, parent_id)
    return chain


def is_in_team_scope(db: Session, *, viewer_id: UUID, target_id: UUID) -> bool:
    """判断目标用户是否位于查看者可展开的团队范围内。

    范围：本人、本人子树，以及上级子树（即同级及其下属）。
    """
    if viewer_id == target_id:
        return True
    chain = ancestor_ids(db, target_id)
    if viewer_id in chain:
        return True
    viewer = db.get(User, viewer_id)
    return bool(viewer and viewer.created_by is not None and viewer.created_by in chain)
