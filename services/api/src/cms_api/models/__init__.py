"""ORM 模型导出集合。"""

from cms_api.models.affiliate import Affiliate, AffiliateMember, UserAffiliate
from cms_api.models.audit import AuditLog
from cms_api.models.content import Category, Module, Page, Story
from cms_api.models.menu import Menu
from cms_api.models.permission import Permission, Role, RolePermission
from cms_api.models.user import User

__all__ = [
    "Affiliate",
    "AffiliateMember",
    "AuditLog",
    "Category",
    "Menu",
    "Module",
    "Page",
    "Permission",
    "Role",
    "RolePermission",
    "Story",
    "User",
    "UserAffiliate",
]
