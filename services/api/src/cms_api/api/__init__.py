"""路由模块导出集合。"""

from . import (
    affiliates,
    auth,
    content,
    health,
    menus,
    permissions,
    roles,
    users,
)

__all__ = [
    "affiliates",
    "auth",
    "content",
    "health",
    "menus",
    "permissions",
    "roles",
    "users",
]
