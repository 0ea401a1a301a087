"""访问令牌解析。

令牌来源：Authorization 头中的 Bearer 令牌优先，其次为登录 Cookie。
"""

import re
from dataclasses import dataclass
from typing import Any
from uuid import UUID

import jwt
from fastapi import HTTPException, status
from jwt import InvalidTokenError

from cms_api.core.config import get_settings

UNAUTHORIZED = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="unauthorized",
)


@dataclass
class AuthenticatedPrincipal:
    """令牌声明中与鉴权相关的部分。"""

    # sub，本地用户 ID。
    subject: str
    email: str | None
    # 签发时的角色，仅供参考；权限以数据库中的当前角色为准。
    role_id: str | None
    # 会话绑定站点，切换站点后写入。
    affiliate_id: str | None
    claims: dict[str, Any]

    @property
    def user_id(self) -> UUID:
        """sub 不是合法 UUID 时按未登录处理。"""
        try:
            return UUID(self.subject)
        except ValueError as exc:
            raise UNAUTHORIZED from exc


def decode_token(token: str) -> dict[str, Any]:
    """按配置解码并校验令牌。"""
    settings = get_settings()
    options = {"verify_signature": True, "verify_aud": bool(settings.auth_jwt_audience)}
    try:
        return jwt.decode(
            token,
            key=settings.auth_jwt_secret,
            algorithms=settings.auth_algorithms,
            issuer=settings.auth_jwt_issuer,
            audience=settings.auth_jwt_audience,
            leeway=settings.auth_jwt_leeway_seconds,
            options=options,
        )
    except InvalidTokenError as exc:
        raise UNAUTHORIZED from exc


def extract_bearer_token(authorization: str | None) -> str | None:
    """从 Authorization 头中提取 Bearer token，兼容重复头被逗号拼接的场景。"""
    if not authorization:
        return None
    tokens = [item.strip() for item in re.findall(r"Bearer\s+([^,\s]+)", authorization, flags=re.IGNORECASE)]
    tokens = [item for item in tokens if item]
    if not tokens:
        return None
    return tokens[-1]


def parse_access_token(token: str | None) -> AuthenticatedPrincipal:
    """解析访问令牌并返回认证主体。"""
    if not token:
        raise UNAUTHORIZED
    claims = decode_token(token)

    subject = str(claims.get("sub") or "").strip()
    if not subject:
        raise UNAUTHORIZED

    email = claims.get("email")
    role_id = claims.get("role_id")
    affiliate_id = claims.get("affiliate_id")
    return AuthenticatedPrincipal(
        subject=subject,
        email=email if isinstance(email, str) else None,
        role_id=role_id if isinstance(role_id, str) else None,
        affiliate_id=affiliate_id if isinstance(affiliate_id, str) and affiliate_id else None,
        claims=claims,
    )


def resolve_request_token(authorization: str | None, cookie_token: str | None) -> str | None:
    """Bearer 头优先，其次读取登录 Cookie。"""
    return extract_bearer_token(authorization) or (cookie_token.strip() if cookie_token else None)
