"""领域枚举定义。"""

from enum import StrEnum


class RecordStatus(StrEnum):
    """角色、权限、站点、菜单通用启停状态。"""

    ACTIVE = "active"
    INACTIVE = "inactive"


class UserStatus(StrEnum):
    """用户状态。"""

    ACTIVE = "active"  # 正常可登录。
    INACTIVE = "inactive"  # 停用，禁止登录。
    BANNED = "banned"  # 封禁，禁止登录且不可自助恢复。


class PermissionActionType(StrEnum):
    """权限动作，与实体名组合成 `entity.action` 权限名。"""

    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    UPDATE_OWN = "update_own"  # 仅可修改本人创建的记录。
    DELETE_OWN = "delete_own"  # 仅可删除本人创建的记录。
    PUBLISH = "publish"
    UNPUBLISH = "unpublish"


class ContentStatus(StrEnum):
    """内容实体（稿件/页面/模块/分类）状态。"""

    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class MenuPlatform(StrEnum):
    """菜单投放平台。"""

    WEB = "Web"
    ANDROID = "Android"
    IOS = "iOS"


class AffiliateCapability(StrEnum):
    """站点间委托能力。"""

    USE = "use"
    COPY = "copy"
    ASSIGN = "assign"
    PUBLISHERS = "publishers"
