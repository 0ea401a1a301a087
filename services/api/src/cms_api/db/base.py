"""表结构入口。

导入 `cms_api.models` 使全部模型注册到 `Base.metadata`。
"""

from sqlalchemy import Engine

from cms_api import models  # noqa: F401
from cms_api.models.base import Base


def create_schema(bind: Engine) -> None:
    """按模型建表，已存在的表保持不变。"""
    Base.metadata.create_all(bind)


__all__ = ["Base", "create_schema"]
