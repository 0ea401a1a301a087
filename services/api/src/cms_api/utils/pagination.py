"""列表分页工具。"""

from typing import Any

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session


def paginate(db: Session, stmt: Select, *, page: int, limit: int) -> tuple[list[Any], int]:
    """返回当前页记录与总数。"""
    total = db.execute(select(func.count()).select_from(stmt.order_by(None).subquery())).scalar_one()
    rows = db.execute(stmt.offset((page - 1) * limit).limit(limit)).scalars().all()
    return list(rows), int(total)


def like_pattern(keyword: str) -> str:
    """构造 LIKE 模式，转义通配符。"""
    escaped = keyword.strip().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"
