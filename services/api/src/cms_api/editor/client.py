"""后台接口异步客户端。

只负责请求发送与统一信封解包：
1. 传输层异常转换为 `TransientNetworkError`。
2. 非 2xx 或 `success=false` 的错误信封转换为 `ApiError`。
"""

from typing import Any
from uuid import UUID

import httpx

from cms_api.core.config import get_settings
from cms_api.editor.errors import ApiError, TransientNetworkError


class AdminApiClient:
    """菜单与团队视图所需接口的最小客户端。"""

    def __init__(
        self,
        *,
        base_url: str | None = None,
        token: str | None = None,
        affiliate_id: UUID | str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        settings = get_settings()
        headers: dict[str, str] = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        if affiliate_id:
            headers["x-affiliate-id"] = str(affiliate_id)
        self._client = httpx.AsyncClient(
            base_url=(base_url or settings.editor_api_base_url).rstrip("/"),
            headers=headers,
            timeout=timeout if timeout is not None else settings.editor_request_timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self) -> "AdminApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> dict[str, Any]:
        """发送请求并返回成功信封。"""
        try:
            response = await self._client.request(method, path, params=params, json=json)
        except httpx.TransportError as exc:
            raise TransientNetworkError(f"{method} {path} failed: {exc}") from exc

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if not isinstance(payload, dict):
            if response.is_success:
                raise ApiError(response.status_code, "INVALID_RESPONSE", "response body is not a JSON object")
            raise ApiError(response.status_code, "HTTP_ERROR", response.reason_phrase or "request failed")

        if not response.is_success or not payload.get("success", False):
            error = payload.get("error") or {}
            raise ApiError(
                response.status_code,
                str(error.get("code") or "HTTP_ERROR"),
                str(error.get("message") or response.reason_phrase or "request failed"),
                error.get("details") if isinstance(error.get("details"), dict) else None,
            )
        return payload

    async def list_menus(
        self,
        *,
        page: int = 1,
        limit: int | None = None,
        search: str | None = None,
        global_view: bool = False,
    ) -> tuple[list[dict[str, Any]], dict[str, Any]]:
        """返回 (菜单行, 分页信息)。"""
        params: dict[str, Any] = {"page": page}
        if limit is not None:
            params["limit"] = limit
        if search:
            params["search"] = search
        if global_view:
            params["global"] = "true"
        payload = await self._request("GET", "/admin/menus", params=params)
        pagination = (payload.get("meta") or {}).get("pagination") or {}
        return list(payload.get("data") or []), pagination

    async def get_menu(self, menu_id: UUID | str) -> dict[str, Any]:
        return (await self._request("GET", f"/admin/menus/{menu_id}"))["data"]

    async def create_menu(self, body: dict[str, Any]) -> dict[str, Any]:
        return (await self._request("POST", "/admin/menus", json=body))["data"]

    async def update_menu(self, menu_id: UUID | str, body: dict[str, Any]) -> dict[str, Any]:
        return (await self._request("PUT", f"/admin/menus/{menu_id}", json=body))["data"]

    async def get_my_team(self, load_level: str = "direct") -> dict[str, Any]:
        return (await self._request("GET", "/admin/users/my-team", params={"loadLevel": load_level}))["data"]

    async def get_subordinates(self, user_id: UUID | str, level: str = "direct") -> list[dict[str, Any]]:
        payload = await self._request("GET", f"/admin/users/{user_id}/subordinates", params={"level": level})
        return list(payload.get("data") or [])
