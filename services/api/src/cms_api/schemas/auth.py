"""认证相关请求与响应结构。"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class AuthLoginRequest(BaseModel):
    """本地账号登录请求。"""

    email: str = Field(min_length=3, max_length=256, description="登录邮箱。", examples=["admin@admin.com"])
    password: str = Field(min_length=1, max_length=128, description="登录密码。")


class AuthLoginData(BaseModel):
    """登录成功返回的令牌信息。"""

    access_token: str = Field(description="访问令牌，同时写入 auth_token Cookie。")
    token_type: str = Field(default="bearer", description="令牌类型。")
    expires_at: datetime = Field(description="过期时间（UTC）。")
    expires_in: int = Field(description="剩余有效秒数。")
    affiliate_id: UUID | None = Field(default=None, description="令牌绑定的站点 ID。")


class AuthLogoutData(BaseModel):
    """登出结果。"""

    logged_out: bool = Field(description="是否已清除登录 Cookie。")


class AuthSwitchAffiliateRequest(BaseModel):
    """切换会话绑定站点请求，affiliate_id 为空表示解除绑定。"""

    affiliate_id: UUID | None = Field(default=None, description="目标站点 ID。")
