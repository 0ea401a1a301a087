"""编辑器客户端异常。"""

from typing import Any


class EditorError(Exception):
    """编辑器异常基类。"""


class ApiError(EditorError):
    """接口返回非 2xx 或错误信封。"""

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        self.status_code = status_code
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(f"{status_code} {code}: {message}")


class TransientNetworkError(EditorError):
    """网络层失败，本地状态保持不变，可重试同一操作。"""


class MenuValidationError(EditorError):
    """本地校验失败，例如菜单项缺少标题或链接。"""

    def __init__(self, message: str, *, field: str | None = None):
        self.field = field
        super().__init__(message)


class InvalidEditorState(EditorError):
    """当前会话状态不允许该操作。"""
