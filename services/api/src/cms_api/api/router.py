"""顶层路由注册。"""

from fastapi import APIRouter

from . import (
    affiliates,
    auth,
    content,
    health,
    menus,
    permissions,
    public,
    roles,
    users,
)

api_router = APIRouter()

# 固定注册顺序，便于在线接口文档展示和问题定位。
api_router.include_router(health.router)
api_router.include_router(auth.router)
api_router.include_router(roles.router)
api_router.include_router(permissions.router)
api_router.include_router(users.router)
api_router.include_router(affiliates.router)
api_router.include_router(menus.router)
api_router.include_router(content.stories_router)
api_router.include_router(content.pages_router)
api_router.include_router(content.modules_router)
api_router.include_router(content.categories_router)
api_router.include_router(public.router)
