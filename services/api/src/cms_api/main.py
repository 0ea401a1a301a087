"""FastAPI 应用入口点。"""

import logging

from fastapi import FastAPI

from cms_api.api.router import api_router
from cms_api.core.config import get_settings
from cms_api.exceptions import register_exception_handlers
from cms_api.middlewares import register_middlewares

settings = get_settings()


def _setup_logging() -> None:
    """初始化日志输出格式与级别。"""
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_app() -> FastAPI:
    """创建并配置 FastAPI 应用实例。"""
    _setup_logging()
    app = FastAPI(
        title=settings.app_name,
        version="1.0.0",
        debug=settings.app_debug,
        description=(
            "多站点内容管理后台接口。\n\n"
            "所有业务接口统一返回：`{success, request_id, data, meta}`。\n"
            "通过 Bearer 访问令牌或 auth_token Cookie 认证。\n"
            "站点上下文：会话绑定站点 > `affiliate_id` 参数 > `x-affiliate-id` 头；"
            "列表接口可用 `global=true` 查看全部可见站点。"
        ),
        openapi_tags=[
            {"name": "health", "description": "服务存活与就绪探针。"},
            {"name": "auth", "description": "登录、登出、当前身份与会话站点切换。"},
            {"name": "roles", "description": "角色与角色权限集合维护。"},
            {"name": "permissions", "description": "权限目录维护（权限名由 entity.action 推导）。"},
            {"name": "users", "description": "用户管理与「我的团队」层级视图。"},
            {"name": "affiliates", "description": "站点生命周期、站点用户与站点间委托关系。"},
            {"name": "menus", "description": "站点菜单与菜单树整体保存。"},
            {"name": "stories", "description": "稿件增删改查与发布。"},
            {"name": "pages", "description": "页面增删改查与发布。"},
            {"name": "modules", "description": "页面模块增删改查。"},
            {"name": "categories", "description": "分类增删改查。"},
            {"name": "public", "description": "前台按站点读取已发布内容，无需登录。"},
        ],
    )

    register_middlewares(app)
    register_exception_handlers(app)
    app.include_router(api_router, prefix=settings.api_prefix)
    return app


app = create_app()
