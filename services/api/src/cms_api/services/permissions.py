"""角色权限框架（数据库驱动）。

规则：
1. 角色授予某权限，当且仅当该权限在角色的权限集合中（扁平集合，无通配/继承）。
2. `*_own` 与 `update`/`delete` 互不蕴含，归属判断由调用方结合 author_id 完成。
3. 用户未分配角色等价于零权限。
4. 删除仍被引用的角色/权限直接拒绝，并返回引用数量，不做级联删除。
"""

import logging
from collections.abc import Iterable
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from cms_api.models.enums import PermissionActionType, RecordStatus
from cms_api.models.permission import Permission, Role, RolePermission
from cms_api.models.user import User

logger = logging.getLogger("cms_api.services.permissions")

_CRUD = (
    PermissionActionType.CREATE,
    PermissionActionType.READ,
    PermissionActionType.UPDATE,
    PermissionActionType.DELETE,
)
_OWN = (PermissionActionType.UPDATE_OWN, PermissionActionType.DELETE_OWN)
_PUBLISHING = (PermissionActionType.PUBLISH, PermissionActionType.UNPUBLISH)

# 内置权限目录：实体 -> 动作。
DEFAULT_PERMISSION_CATALOG: dict[str, tuple[str, ...]] = {
    "users": _CRUD,
    "stories": _CRUD + _OWN + _PUBLISHING,
    "pages": _CRUD + _OWN + _PUBLISHING,
    "categories": _CRUD,
    "modules": _CRUD,
    "roles": _CRUD,
    "permissions": _CRUD,
    "menus": _CRUD,
    "affiliates": _CRUD,
}

_EDITOR_ENTITIES = {"stories", "pages", "categories", "modules", "menus", "affiliates"}
_AUTHOR_ENTITIES = {"stories", "pages"}
_AUTHOR_ACTIONS = {
    PermissionActionType.CREATE,
    PermissionActionType.READ,
    PermissionActionType.UPDATE_OWN,
    PermissionActionType.DELETE_OWN,
}

# 内置系统角色：名称 -> (展示名, 描述)。
DEFAULT_ROLES: dict[str, tuple[str, str]] = {
    "admin": ("Administrator", "Full access to all features"),
    "editor": ("Editor", "Can create and edit content"),
    "author": ("Author", "Can create and edit own content"),
    "viewer": ("Viewer", "Read-only access"),
}


def permission_name(entity: str, action: str) -> str:
    """由实体与动作推导权限名。"""
    return f"{entity.strip()}.{action.strip()}"


def _display_name(entity: str, action: str) -> str:
    # update_own -> Update Own Stories
    verb = " ".join(part.capitalize() for part in action.split("_"))
    return f"{verb} {entity.capitalize()}"


def default_role_permission_names(role_name: str) -> set[str]:
    """返回内置角色的默认权限集合。"""
    names: set[str] = set()
    for entity, actions in DEFAULT_PERMISSION_CATALOG.items():
        for action in actions:
            if role_name == "admin":
                granted = True
            elif role_name == "editor":
                granted = entity in _EDITOR_ENTITIES and action != PermissionActionType.DELETE
            elif role_name == "author":
                granted = entity in _AUTHOR_ENTITIES and action in _AUTHOR_ACTIONS
            elif role_name == "viewer":
                granted = action == PermissionActionType.READ
            else:
                granted = False
            if granted:
                names.add(permission_name(entity, action))
    return names


def _forbidden(required: str, *, message: str = "Insufficient permissions.") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail={
            "code": "INSUFFICIENT_PERMISSION",
            "message": message,
            "details": {"required_permission": required},
        },
    )


def _conflict(code: str, message: str, *, dependent_count: int) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail={"code": code, "message": message, "details": {"dependent_count": dependent_count}},
    )


def _unprocessable(code: str, message: str, **details: object) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_CONTENT,
        detail={"code": code, "message": message, "details": details},
    )


def load_role_permission_names(db: Session, role_id: UUID | None) -> set[str]:
    """读取角色权限名集合；角色为空或不存在时返回空集。"""
    if role_id is None:
        return set()
    rows = (
        db.execute(
            select(Permission.name)
            .join(RolePermission, RolePermission.permission_id == Permission.id)
            .where(RolePermission.role_id == role_id)
        )
        .scalars()
        .all()
    )
    return set(rows)


def has_permission(granted: Iterable[str], name: str) -> bool:
    """扁平集合成员判断。"""
    return name in set(granted)


def role_has_permission(db: Session, role_id: UUID | None, name: str) -> bool:
    """判断角色是否持有指定权限。"""
    return has_permission(load_role_permission_names(db, role_id), name)


def require_permission_name(granted: Iterable[str], name: str, *, role_assigned: bool = True) -> None:
    """权限不足时抛出 403。"""
    if has_permission(granted, name):
        return
    if not role_assigned:
        raise _forbidden(name, message="No role assigned.")
    raise _forbidden(name)


def require_modify_permission(granted: Iterable[str], *, entity: str, action: str) -> None:
    """加载记录前的预检：完整权限与 `_own` 权限都不持有时直接 403。"""
    granted_set = set(granted)
    broad = permission_name(entity, action)
    if broad in granted_set or permission_name(entity, f"{action}_own") in granted_set:
        return
    raise _forbidden(broad)


def ensure_can_modify(
    granted: Iterable[str],
    *,
    entity: str,
    action: str,
    record_author_id: UUID | None,
    user_id: UUID,
) -> None:
    """校验对单条记录的修改/删除权限。

    持有 `entity.action` 直接放行；否则必须同时持有 `entity.action_own`
    且记录作者为当前用户。
    """
    granted_set = set(granted)
    broad = permission_name(entity, action)
    if broad in granted_set:
        return
    own = permission_name(entity, f"{action}_own")
    if own in granted_set and record_author_id is not None and record_author_id == user_id:
        return
    raise _forbidden(broad)


def ensure_permission_name_available(db: Session, name: str, *, exclude_id: UUID | None = None) -> None:
    """确保推导出的权限名未被占用。"""
    stmt = select(Permission.id).where(Permission.name == name)
    if exclude_id is not None:
        stmt = stmt.where(Permission.id != exclude_id)
    if db.execute(stmt).first():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "code": "PERMISSION_NAME_CONFLICT",
                "message": f"Permission '{name}' already exists.",
                "details": {"name": name},
            },
        )


def set_role_permissions(db: Session, role: Role, permission_ids: Iterable[UUID]) -> list[Permission]:
    """整体替换角色权限集合。

    该操作与创建角色不在同一事务中，中途失败可能留下无权限角色。
    """
    wanted = list(dict.fromkeys(permission_ids))
    permissions: list[Permission] = []
    if wanted:
        permissions = list(db.execute(select(Permission).where(Permission.id.in_(wanted))).scalars().all())
        found = {item.id for item in permissions}
        missing = [str(item) for item in wanted if item not in found]
        if missing:
            raise _unprocessable("PERMISSION_NOT_FOUND", "Unknown permission ids.", missing_ids=missing)

    db.execute(delete(RolePermission).where(RolePermission.role_id == role.id))
    for permission in permissions:
        db.add(RolePermission(role_id=role.id, permission_id=permission.id))
    db.flush()
    return permissions


def count_role_users(db: Session, role_id: UUID) -> int:
    return int(db.execute(select(func.count()).select_from(User).where(User.role_id == role_id)).scalar_one())


def count_permission_roles(db: Session, permission_id: UUID) -> int:
    return int(
        db.execute(
            select(func.count()).select_from(RolePermission).where(RolePermission.permission_id == permission_id)
        ).scalar_one()
    )


def delete_role(db: Session, role: Role) -> None:
    """删除角色；系统角色或仍分配给用户的角色拒绝删除。"""
    if role.is_system:
        raise _unprocessable("SYSTEM_ROLE_PROTECTED", "System roles cannot be deleted.", role=role.name)
    user_count = count_role_users(db, role.id)
    if user_count > 0:
        logger.info("refused role delete role=%s dependent_users=%s", role.name, user_count)
        raise _conflict(
            "ROLE_IN_USE",
            f"Cannot delete role. It is currently assigned to {user_count} user(s).",
            dependent_count=user_count,
        )
    db.execute(delete(RolePermission).where(RolePermission.role_id == role.id))
    db.delete(role)
    db.flush()


def delete_permission(db: Session, permission: Permission) -> None:
    """删除权限；系统权限或仍分配给角色的权限拒绝删除。"""
    if permission.is_system:
        raise _unprocessable(
            "SYSTEM_PERMISSION_PROTECTED",
            "System permissions cannot be deleted.",
            permission=permission.name,
        )
    role_count = count_permission_roles(db, permission.id)
    if role_count > 0:
        logger.info("refused permission delete permission=%s dependent_roles=%s", permission.name, role_count)
        raise _conflict(
            "PERMISSION_IN_USE",
            f"Cannot delete permission. It is currently assigned to {role_count} role(s).",
            dependent_count=role_count,
        )
    db.delete(permission)
    db.flush()


def seed_defaults(db: Session) -> dict[str, Role]:
    """幂等写入内置权限与系统角色。

    admin 每次都会同步为全量权限；其他系统角色仅在尚无权限时填充默认集合。
    """
    existing = {item.name: item for item in db.execute(select(Permission)).scalars().all()}
    for entity, actions in DEFAULT_PERMISSION_CATALOG.items():
        for action in actions:
            name = permission_name(entity, action)
            if name in existing:
                continue
            permission = Permission(
                name=name,
                display_name=_display_name(entity, action),
                entity=entity,
                action=str(action),
                status=RecordStatus.ACTIVE,
                is_system=True,
            )
            db.add(permission)
            existing[name] = permission
    db.flush()

    roles: dict[str, Role] = {}
    for role_name, (display_name, description) in DEFAULT_ROLES.items():
        role = db.execute(select(Role).where(Role.name == role_name)).scalar_one_or_none()
        if role is None:
            role = Role(name=role_name, display_name=display_name, description=description, is_system=True)
            db.add(role)
            db.flush()
        roles[role_name] = role

        if role_name != "admin" and load_role_permission_names(db, role.id):
            continue
        if role_name == "admin":
            wanted_ids = [item.id for item in existing.values()]
        else:
            defaults = default_role_permission_names(role_name)
            wanted_ids = [item.id for name, item in existing.items() if name in defaults]
        set_role_permissions(db, role, wanted_ids)

    logger.info("seeded permissions=%s roles=%s", len(existing), len(roles))
    return roles
