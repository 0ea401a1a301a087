"""菜单树编辑器会话。

生命周期：closed -> list -> editing -> (save | discard) -> list -> closed。

进入编辑时先规范化整棵树（补齐 ID、默认字段与子数组），再建立 id -> {data, path}
索引；之后每次结构变更都会刷新索引。拖拽有两种落地方式：
1. 显式路径：`Drop(source, dest)` 直接移动节点（携带整棵子树）。
2. 观察顺序：传入展示层回读的 `ObservedNode` 列表，按展示顺序整体重建。
无变化的拖放（源与目标相同）不重建、不通知。
"""

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Any
from uuid import UUID

from cms_api.editor.client import AdminApiClient
from cms_api.editor.columns import MENU_LIST_COLUMNS, Cell, render_row
from cms_api.editor.errors import ApiError, InvalidEditorState, MenuValidationError, TransientNetworkError
from cms_api.services.menu_tree import (
    DEFAULT_TARGET,
    IndexEntry,
    MenuNode,
    MenuTreeError,
    ObservedNode,
    Path,
    build_index,
    collect_ids,
    count_items,
    dumps_links,
    generate_node_id,
    insert_at,
    load_tree,
    move_node,
    node_at,
    rebuild_from_observed,
    remove_at,
)

logger = logging.getLogger("cms_api.editor.menu")

_EDITABLE_FIELDS = ("title", "url", "target", "icon", "description")
_DEFAULT_MENU = {"title": "", "platform": "Web", "status": "active", "sort_order": 0, "category_id": None}


class EditorState(StrEnum):
    CLOSED = "closed"
    LIST = "list"
    EDITING = "editing"


@dataclass(frozen=True)
class Drop:
    """一次拖放：源路径与目标路径（目标末位为移出源节点后的位置）。"""

    source: Path
    dest: Path

    @property
    def is_noop(self) -> bool:
        return tuple(self.source) == tuple(self.dest)


class MenuEditorSession:
    """单个编辑器实例的全部状态。"""

    def __init__(
        self,
        client: AdminApiClient,
        *,
        on_change: Callable[[str], None] | None = None,
    ):
        self._client = client
        self._on_change = on_change
        self.state = EditorState.CLOSED
        self.menus: list[dict[str, Any]] = []
        self.pagination: dict[str, Any] = {}
        self.menu_id: str | None = None
        self.menu: dict[str, Any] = {}
        self.nodes: list[MenuNode] = []
        self.index: dict[str, IndexEntry] = {}
        self.last_error: Exception | None = None
        self._drag_snapshot: dict[str, dict[str, str]] | None = None

    def _require(self, *states: EditorState) -> None:
        if self.state not in states:
            allowed = ", ".join(str(item) for item in states)
            raise InvalidEditorState(f"operation requires state {allowed}, current state is {self.state}")

    def _notify(self, event: str) -> None:
        if self._on_change is not None:
            self._on_change(event)

    def _refresh_index(self) -> None:
        self.index = build_index(self.nodes)

    def _reset_editing(self) -> None:
        self.menu_id = None
        self.menu = {}
        self.nodes = []
        self.index = {}
        self._drag_snapshot = None

    @property
    def total_items(self) -> int:
        return count_items(self.nodes)

    async def open_list(self, *, page: int = 1, search: str | None = None, global_view: bool = False) -> list[dict]:
        """加载菜单列表；编辑中需先保存或放弃。"""
        self._require(EditorState.CLOSED, EditorState.LIST)
        rows, pagination = await self._client.list_menus(page=page, search=search, global_view=global_view)
        self.menus = rows
        self.pagination = pagination
        self.state = EditorState.LIST
        return rows

    def list_rows(self) -> list[dict[str, Cell]]:
        return [render_row(MENU_LIST_COLUMNS, row) for row in self.menus]

    async def start_editing(self, menu_id: UUID | str | None = None) -> None:
        """进入编辑；menu_id 为空表示新建。加载失败时保持在列表状态。"""
        self._require(EditorState.LIST)
        if menu_id is None:
            self.menu_id = None
            self.menu = dict(_DEFAULT_MENU)
            self.nodes = []
        else:
            data = await self._client.get_menu(menu_id)
            self.menu_id = str(data.get("id") or menu_id)
            self.menu = {key: data.get(key, default) for key, default in _DEFAULT_MENU.items()}
            self.nodes = load_tree(data.get("links"))
        self._drag_snapshot = None
        self._refresh_index()
        self.state = EditorState.EDITING

    def set_menu_fields(self, **changes: Any) -> None:
        self._require(EditorState.EDITING)
        for key, value in changes.items():
            if key not in _DEFAULT_MENU:
                raise MenuValidationError(f"unknown menu field: {key}", field=key)
            self.menu[key] = value

    def add_item(
        self,
        parent_path: Path = (),
        *,
        title: str,
        url: str,
        target: str = DEFAULT_TARGET,
        icon: str = "",
        description: str = "",
        position: int | None = None,
    ) -> MenuNode:
        """新增菜单项，默认追加到父容器末尾；新节点立即分配 ID。"""
        self._require(EditorState.EDITING)
        title = (title or "").strip()
        url = (url or "").strip()
        if not title or not url:
            raise MenuValidationError(
                "Title and URL are required for menu items.",
                field="title" if not title else "url",
            )
        node = MenuNode(
            id=generate_node_id(collect_ids(self.nodes)),
            title=title,
            url=url,
            target=target or DEFAULT_TARGET,
            icon=icon,
            description=description,
        )
        container = self.nodes if not parent_path else node_at(self.nodes, parent_path).children
        insert_at(self.nodes, tuple(parent_path) + (len(container) if position is None else position,), node)
        self._refresh_index()
        self._notify("item_added")
        return node

    def edit_item(self, path: Path, **changes: str) -> MenuNode:
        """修改节点属性；ID 与子节点不可通过此方法修改。"""
        self._require(EditorState.EDITING)
        unknown = set(changes) - set(_EDITABLE_FIELDS)
        if unknown:
            raise MenuValidationError(f"unknown menu item fields: {', '.join(sorted(unknown))}")
        node = node_at(self.nodes, path)
        merged = {name: getattr(node, name) for name in _EDITABLE_FIELDS}
        for key, value in changes.items():
            merged[key] = (value or "").strip() if key in ("title", "url") else value
        if not merged["title"] or not merged["url"]:
            raise MenuValidationError("Title and URL are required for menu items.")
        for name, value in merged.items():
            setattr(node, name, value)
        self._refresh_index()
        self._notify("item_updated")
        return node

    def remove_item(self, path: Path) -> MenuNode:
        self._require(EditorState.EDITING)
        removed = remove_at(self.nodes, path)
        self._refresh_index()
        self._notify("item_removed")
        return removed

    def move_item(self, source: Path, dest: Path) -> bool:
        """按路径移动节点；无变化时返回 False 且不通知。"""
        self._require(EditorState.EDITING)
        moved = move_node(self.nodes, tuple(source), tuple(dest))
        if moved:
            self._refresh_index()
            self._notify("order_updated")
        return moved

    def begin_drag(self, node_id: str) -> None:
        """拖拽开始时记录全部节点属性快照，供结束时优先解析。"""
        self._require(EditorState.EDITING)
        if node_id not in self.index:
            raise MenuTreeError(f"unknown menu item id: {node_id}")
        self._drag_snapshot = {key: dict(entry.data) for key, entry in self.index.items()}

    def end_drag(self, drop: Drop, observed: Sequence[ObservedNode] | None = None) -> bool:
        """结束拖拽。

        无变化的拖放直接返回 False；提供 observed 时按展示顺序整体重建，
        否则按 drop 的路径直接移动。
        """
        self._require(EditorState.EDITING)
        snapshot, self._drag_snapshot = self._drag_snapshot, None
        if drop.is_noop:
            return False
        if observed is None:
            return self.move_item(drop.source, drop.dest)
        self.nodes = rebuild_from_observed(observed, index=self.index, drag_snapshot=snapshot)
        self._refresh_index()
        self._notify("order_updated")
        return True

    def build_payload(self) -> dict[str, Any]:
        """构造保存请求体；links 为序列化后的整棵树。"""
        title = str(self.menu.get("title") or "").strip()
        if not title:
            raise MenuValidationError("Menu title is required.", field="title")
        body = {key: self.menu.get(key, default) for key, default in _DEFAULT_MENU.items()}
        body["title"] = title
        if body["category_id"] is not None:
            body["category_id"] = str(body["category_id"])
        body["links"] = dumps_links(self.nodes)
        return body

    async def save(self) -> dict[str, Any]:
        """整体保存菜单（后写入者胜出）；失败时本地树与状态保持不变，可重试。"""
        self._require(EditorState.EDITING)
        body = self.build_payload()
        try:
            if self.menu_id is None:
                saved = await self._client.create_menu(body)
            else:
                saved = await self._client.update_menu(self.menu_id, body)
        except (ApiError, TransientNetworkError) as exc:
            self.last_error = exc
            logger.warning("menu save failed menu_id=%s: %s", self.menu_id, exc)
            raise

        self.last_error = None
        saved_id = str(saved.get("id"))
        self.menus = [row for row in self.menus if str(row.get("id")) != saved_id]
        self.menus.insert(0, saved)
        self._reset_editing()
        self.state = EditorState.LIST
        self._notify("saved")
        return saved

    def discard(self) -> None:
        self._require(EditorState.EDITING)
        self._reset_editing()
        self.state = EditorState.LIST

    def close(self) -> None:
        self._reset_editing()
        self.menus = []
        self.pagination = {}
        self.state = EditorState.CLOSED
