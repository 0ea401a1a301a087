"""本地账号认证：口令哈希、登录校验与访问令牌签发。"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from uuid import UUID, uuid4

import jwt
from sqlalchemy import select
from sqlalchemy.orm import Session

from cms_api.core.config import get_settings
from cms_api.models.enums import UserStatus
from cms_api.models.user import User

logger = logging.getLogger("cms_api.auth")

_HASH_ALGORITHM = "pbkdf2_sha256"


@dataclass(frozen=True)
class IssuedToken:
    access_token: str
    expires_at: datetime
    affiliate_id: UUID | None = None

    @property
    def expires_in(self) -> int:
        return max(0, int((self.expires_at - datetime.now(timezone.utc)).total_seconds()))


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _split_hash(password_hash: str) -> tuple[int, bytes, bytes] | None:
    try:
        algorithm, iterations_text, salt_b64, digest_b64 = password_hash.split("$", 3)
        if algorithm != _HASH_ALGORITHM:
            return None
        return (
            int(iterations_text),
            base64.b64decode(salt_b64.encode("ascii")),
            base64.b64decode(digest_b64.encode("ascii")),
        )
    except (ValueError, TypeError, binascii.Error):
        return None


def hash_password(password: str) -> str:
    """格式：`pbkdf2_sha256$<迭代次数>$<盐>$<摘要>`，盐与摘要为 base64。"""
    iterations = get_settings().auth_password_hash_iterations
    salt = secrets.token_bytes(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations)
    return "$".join(
        [
            _HASH_ALGORITHM,
            str(iterations),
            base64.b64encode(salt).decode("ascii"),
            base64.b64encode(digest).decode("ascii"),
        ]
    )


def verify_password(password: str, password_hash: str) -> bool:
    parts = _split_hash(password_hash)
    if parts is None:
        return False
    iterations, salt, expected = parts
    actual = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations)
    return hmac.compare_digest(actual, expected)


def needs_rehash(password_hash: str) -> bool:
    """迭代次数与当前配置不一致时返回 True，登录成功后顺带升级哈希。"""
    parts = _split_hash(password_hash)
    return parts is None or parts[0] != get_settings().auth_password_hash_iterations


def authenticate(db: Session, *, email: str, password: str) -> User | None:
    """校验邮箱口令；账号不存在、非 active 或口令错误统一返回 None。"""
    user = db.execute(select(User).where(User.email == normalize_email(email))).scalar_one_or_none()
    if user is None or user.status != UserStatus.ACTIVE:
        return None
    if not verify_password(password, user.password_hash):
        logger.info("password mismatch user=%s", user.id)
        return None
    if needs_rehash(user.password_hash):
        user.password_hash = hash_password(password)
    user.last_login_at = datetime.now(timezone.utc)
    return user


def issue_access_token(user: User, *, affiliate_id: UUID | None = None) -> IssuedToken:
    """签发访问令牌；affiliate_id 为会话绑定站点，切换站点时重新签发。"""
    settings = get_settings()
    now = datetime.now(timezone.utc)
    expires_at = now + timedelta(seconds=settings.auth_access_token_ttl_seconds)

    claims: dict[str, object] = {
        "sub": str(user.id),
        "email": user.email,
        "role_id": str(user.role_id) if user.role_id else None,
        "iat": int(now.timestamp()),
        "exp": int(expires_at.timestamp()),
        "jti": str(uuid4()),
    }
    if affiliate_id is not None:
        claims["affiliate_id"] = str(affiliate_id)
    if settings.auth_jwt_issuer:
        claims["iss"] = settings.auth_jwt_issuer
    if settings.auth_jwt_audience:
        claims["aud"] = settings.auth_jwt_audience

    token = jwt.encode(claims, settings.auth_jwt_secret, algorithm=settings.auth_algorithms[0])
    return IssuedToken(access_token=token, expires_at=expires_at.replace(microsecond=0), affiliate_id=affiliate_id)
