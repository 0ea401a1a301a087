"""请求上下文依赖。

职责:
1. 解析并校验访问令牌（Bearer 头或登录 Cookie）。
2. 将认证主体映射为本地 User，并加载其角色权限集合。
3. 按 会话绑定站点 > affiliate_id 参数 > x-affiliate-id 头 解析站点范围。
4. 在进入路由业务逻辑前完成权限与站点校验。
"""

from dataclasses import dataclass, field
from uuid import UUID

from fastapi import Cookie, Depends, Header, HTTPException, Query, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from cms_api.core.config import get_settings
from cms_api.core.security import UNAUTHORIZED, AuthenticatedPrincipal, parse_access_token, resolve_request_token
from cms_api.db.session import get_db
from cms_api.models.enums import UserStatus
from cms_api.models.permission import Role
from cms_api.models.user import User
from cms_api.services.affiliate_scope import AffiliateScope, resolve_affiliate_scope, resolve_candidate_affiliate_id
from cms_api.services.permissions import load_role_permission_names, require_permission_name

bearer_scheme = HTTPBearer(auto_error=False)
settings = get_settings()


@dataclass
class AuthContext:
    """已认证请求上下文。"""

    user: User
    # 当前用户角色，未分配时为空（零权限）。
    role: Role | None
    # 角色持有的权限名集合。
    permissions: set[str] = field(default_factory=set)
    principal: AuthenticatedPrincipal | None = None

    @property
    def user_id(self) -> UUID:
        return self.user.id

    def can(self, name: str) -> bool:
        return name in self.permissions


def get_current_principal(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    auth_token: str | None = Cookie(default=None, alias=settings.auth_cookie_name),
) -> AuthenticatedPrincipal:
    """提取并解析当前请求认证主体。"""
    authorization = None
    if credentials is not None and credentials.credentials:
        authorization = f"{credentials.scheme} {credentials.credentials}"
    return parse_access_token(resolve_request_token(authorization, auth_token))


def get_current_user(
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    db: Session = Depends(get_db),
) -> User:
    """将令牌主体映射为本地用户，仅 active 用户可通过。"""
    user = db.get(User, principal.user_id)
    if user is None:
        raise UNAUTHORIZED
    if user.status != UserStatus.ACTIVE:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "code": "ACCOUNT_INACTIVE",
                "message": "Account is not active.",
                "details": {"user_status": user.status},
            },
        )
    return user


def get_auth_context(
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> AuthContext:
    """加载当前用户角色与权限集合。"""
    role = db.get(Role, user.role_id) if user.role_id is not None else None
    return AuthContext(
        user=user,
        role=role,
        permissions=load_role_permission_names(db, role.id if role else None),
        principal=principal,
    )


def require_permission(name: str):
    """按权限名做路由级限制。"""

    def _dep(ctx: AuthContext = Depends(get_auth_context)) -> AuthContext:
        require_permission_name(ctx.permissions, name, role_assigned=ctx.role is not None)
        return ctx

    return _dep


def get_affiliate_scope(
    ctx: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
    affiliate_id: str | None = Query(default=None, description="站点 ID（优先级低于会话绑定站点）。"),
    global_view: bool = Query(default=False, alias="global", description="是否查看全部可见站点的数据。"),
    x_affiliate_id: str | None = Header(default=None, alias="x-affiliate-id"),
) -> AffiliateScope:
    """解析当前请求站点范围。"""
    session_affiliate_id = ctx.principal.affiliate_id if ctx.principal else None
    candidate = resolve_candidate_affiliate_id(session_affiliate_id, affiliate_id, x_affiliate_id)
    return resolve_affiliate_scope(db, user_id=ctx.user_id, candidate_id=candidate, want_global=global_view)
