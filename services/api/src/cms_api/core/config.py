"""应用运行配置。"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """接口服务与编辑器客户端共享配置。"""

    model_config = SettingsConfigDict(env_file=".env", env_prefix="CMS_", extra="ignore")

    app_name: str = Field(default="Affiliate CMS", description="应用名称。")
    app_env: str = Field(default="dev", description="运行环境标识。")
    app_debug: bool = Field(default=True, description="是否开启调试模式。")
    api_prefix: str = Field(default="/api", description="统一接口前缀。")
    database_url: str = Field(
        default="sqlite+pysqlite:///./cms_api.db",
        description="数据库连接地址，生产环境建议使用 postgresql+psycopg。",
    )
    log_level: str = Field(default="INFO", description="根日志级别。")

    auth_jwt_algorithms: str = Field(default="HS256", description="令牌签名算法列表，逗号分隔。")
    auth_jwt_issuer: str | None = Field(default=None, description="期望的签发方。")
    auth_jwt_audience: str | None = Field(default=None, description="期望的受众。")
    auth_jwt_secret: str = Field(default="change-me-in-prod", description="令牌对称签名密钥。")
    auth_jwt_leeway_seconds: int = Field(default=30, description="令牌校验时钟容错秒数。")
    auth_access_token_ttl_seconds: int = Field(default=86400, description="访问令牌有效期（秒），默认 24 小时。")
    auth_cookie_name: str = Field(default="auth_token", description="承载访问令牌的 Cookie 名称。")
    auth_cookie_secure: bool = Field(default=False, description="Cookie 是否仅在 HTTPS 下发送。")
    auth_password_hash_iterations: int = Field(default=390000, description="PBKDF2 密码哈希迭代次数。")

    pagination_default_limit: int = Field(default=10, description="列表接口默认每页条数。")
    pagination_max_limit: int = Field(default=100, description="列表接口每页条数上限。")

    editor_api_base_url: str = Field(default="http://localhost:8000/api", description="编辑器客户端访问的接口地址。")
    editor_request_timeout_seconds: float = Field(default=10.0, description="编辑器客户端请求超时秒数。")

    @field_validator("auth_jwt_algorithms")
    @classmethod
    def normalize_algorithms(cls, value: str) -> str:
        """规范化算法列表并确保至少配置一项。"""
        items = [item.strip() for item in value.split(",") if item.strip()]
        if not items:
            raise ValueError("auth_jwt_algorithms must include at least one algorithm")
        return ",".join(items)

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, value: str) -> str:
        return value.strip().upper() or "INFO"

    @property
    def auth_algorithms(self) -> list[str]:
        """返回规范化后的算法数组。"""
        return [item.strip() for item in self.auth_jwt_algorithms.split(",") if item.strip()]


@lru_cache
def get_settings() -> Settings:
    """返回缓存后的配置单例。"""
    return Settings()
