"""错误响应：把各类异常统一转换为 `{success: false, request_id, error}`。"""

import logging
from collections.abc import Sequence
from typing import Any

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from cms_api.utils.response import DEFAULT_ERROR_MESSAGE, error_payload

logger = logging.getLogger("cms_api.exceptions")

# 状态码 -> (默认错误码, 默认信息, 处理建议)
_STATUS_DEFAULTS: dict[int, tuple[str, str, str]] = {
    status.HTTP_400_BAD_REQUEST: (
        "BAD_REQUEST",
        "请求参数不合法。",
        "请通过 affiliate_id 参数或 x-affiliate-id 头指定站点后重试。",
    ),
    status.HTTP_401_UNAUTHORIZED: (
        "UNAUTHORIZED",
        "未登录或登录状态已失效。",
        "请重新登录并携带有效访问令牌。",
    ),
    status.HTTP_403_FORBIDDEN: (
        "FORBIDDEN",
        "无权限访问该资源。",
        "请确认当前账号角色权限及所选站点是否正确。",
    ),
    status.HTTP_404_NOT_FOUND: (
        "NOT_FOUND",
        "请求资源不存在。",
        "请确认资源 ID 是否正确，或资源是否已被删除。",
    ),
    status.HTTP_409_CONFLICT: (
        "CONFLICT",
        "请求与当前数据状态冲突。",
        "请先解除关联数据后再重试。",
    ),
    status.HTTP_422_UNPROCESSABLE_CONTENT: (
        "VALIDATION_ERROR",
        "请求参数校验失败。",
        "请根据错误字段提示修正请求参数后重试。",
    ),
}
_FALLBACK = ("HTTP_ERROR", "请求处理失败。", "请稍后重试，若持续失败请联系管理员。")

# 服务层常用的短字符串 detail 到后台可展示信息的映射。
_RAW_DETAIL_MESSAGES = {
    "forbidden": "无权限访问该资源。",
    "unauthorized": "未登录或登录状态已失效。",
    "invalid credentials": "邮箱或密码错误。",
    "affiliate not found": "站点不存在或已删除。",
    "invalid affiliate id": "站点 ID 格式不合法。",
    "affiliate context required": "缺少站点上下文。",
}


def _status_defaults(status_code: int) -> tuple[str, str, str]:
    return _STATUS_DEFAULTS.get(status_code, _FALLBACK)


def _base_details(status_code: int, code: str) -> dict[str, Any]:
    return {
        "status_code": status_code,
        "reason": code.lower(),
        "suggestion": _status_defaults(status_code)[2],
    }


def format_loc(loc: Sequence[Any]) -> str:
    """把校验位置转换为 `links[0].title` 形式，丢弃 body/query 等来源前缀。"""
    parts: list[str] = []
    for index, item in enumerate(loc):
        if index == 0 and item in {"body", "query", "path", "header", "cookie"}:
            continue
        if isinstance(item, int):
            parts.append(f"[{item}]")
        else:
            parts.append(f".{item}" if parts else str(item))
    return "".join(parts)


def describe_http_detail(detail: object, status_code: int) -> tuple[str, str, dict[str, Any]]:
    """解析 HTTPException.detail。

    支持三种写法：结构化字典 `{code, message, details}`、短字符串（按映射表翻译）、其他任意值（放入 details.detail）。
    """
    code, message, _ = _status_defaults(status_code)

    if isinstance(detail, str):
        return code, _RAW_DETAIL_MESSAGES.get(detail.strip().lower(), detail), _base_details(status_code, code)

    if not isinstance(detail, dict):
        details = _base_details(status_code, code)
        if detail is not None:
            details["detail"] = detail
        return code, message, details

    code = str(detail.get("code") or code)
    message = str(detail.get("message") or detail.get("detail") or message)
    details = _base_details(status_code, code)
    nested = detail.get("details")
    if isinstance(nested, dict):
        details.update(nested)
    elif nested is not None:
        details["details"] = nested
    details.update({key: value for key, value in detail.items() if key not in {"code", "message", "details"}})
    return code, message, details


async def http_exception_handler(request: Request, exc: HTTPException):
    code, message, details = describe_http_detail(exc.detail, exc.status_code)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_payload(request, code=code, message=message, details=details),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": format_loc(err.get("loc", ())), "message": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]
    code, message, _ = _status_defaults(status.HTTP_422_UNPROCESSABLE_CONTENT)
    details = _base_details(status.HTTP_422_UNPROCESSABLE_CONTENT, code)
    details["errors"] = errors
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_CONTENT,
        content=error_payload(request, code=code, message=message, details=details),
    )


async def integrity_error_handler(request: Request, exc: IntegrityError):
    """并发写入撞上唯一约束（邮箱、站点标识、关系去重）时返回 409。"""
    logger.warning(
        "integrity conflict request_id=%s %s %s: %s",
        getattr(request.state, "request_id", "-"),
        request.method,
        request.url.path,
        exc.orig,
    )
    code, message, _ = _status_defaults(status.HTTP_409_CONFLICT)
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content=error_payload(
            request,
            code=code,
            message=message,
            details=_base_details(status.HTTP_409_CONFLICT, code),
        ),
    )


async def unexpected_exception_handler(request: Request, exc: Exception):
    """未捕获异常只记录日志，响应中不暴露内部信息。"""
    logger.exception(
        "unhandled exception request_id=%s %s %s",
        getattr(request.state, "request_id", "-"),
        request.method,
        request.url.path,
    )
    details = {
        "status_code": status.HTTP_500_INTERNAL_SERVER_ERROR,
        "reason": "unexpected_exception",
        "suggestion": "请稍后重试，若持续失败请联系管理员并提供 request_id。",
    }
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_payload(request, code="INTERNAL_ERROR", message=DEFAULT_ERROR_MESSAGE, details=details),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.exception_handler(HTTPException)(http_exception_handler)
    app.exception_handler(RequestValidationError)(validation_exception_handler)
    app.exception_handler(IntegrityError)(integrity_error_handler)
    app.exception_handler(Exception)(unexpected_exception_handler)
