"""应用中间件注册。"""

import logging
import re
import uuid
from time import perf_counter

from fastapi import FastAPI, Request

logger = logging.getLogger("cms_api.access")

# 上游网关传入的追踪 ID 仅在格式安全时沿用。
_INBOUND_REQUEST_ID = re.compile(r"^[A-Za-z0-9._-]{8,64}$")


def _resolve_request_id(request: Request) -> str:
    inbound = (request.headers.get("x-request-id") or "").strip()
    if _INBOUND_REQUEST_ID.match(inbound):
        return inbound
    return str(uuid.uuid4())


async def request_context_middleware(request: Request, call_next):
    """写入请求追踪 ID 与起始时间，响应头回传追踪 ID 和耗时，并记录访问日志。"""
    request.state.request_id = _resolve_request_id(request)
    request.state.request_started_at = perf_counter()
    response = await call_next(request)
    elapsed_ms = round((perf_counter() - request.state.request_started_at) * 1000, 2)
    response.headers["X-Request-Id"] = request.state.request_id
    response.headers["X-Process-Time-Ms"] = str(elapsed_ms)
    logger.info(
        "%s %s -> %s %.2fms request_id=%s",
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
        request.state.request_id,
    )
    return response


def register_middlewares(app: FastAPI) -> None:
    app.middleware("http")(request_context_middleware)
