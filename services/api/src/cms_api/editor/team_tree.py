"""「我的团队」树视图会话。

初始只加载上级、同级与直属下级；更深层级按节点逐个展开。展开规则：
1. 上级节点永不可展开（视图不向上递归）。
2. 展开返回新下级时节点保持可展开（下面可能还有更多层级）；没有新增下级时置为不可展开。
3. 按用户 ID 去重后追加，重复展开不会产生重复子节点。
4. 同一节点加载中再次展开直接忽略，不重复发请求。
5. 展开失败时保留已加载子节点并记录错误，可再次展开重试。
"""

import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from cms_api.editor.client import AdminApiClient
from cms_api.editor.errors import ApiError, InvalidEditorState, TransientNetworkError

logger = logging.getLogger("cms_api.editor.team")


class NodeKind(StrEnum):
    CURRENT = "current"
    SUPERIOR = "superior"
    SIBLING = "sibling"
    SUBORDINATE = "subordinate"


class ExpandOutcome(StrEnum):
    EXPANDED = "expanded"
    EXHAUSTED = "exhausted"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class TeamNode:
    user: dict[str, Any]
    kind: NodeKind
    children: list["TeamNode"] = field(default_factory=list)
    has_unloaded_children: bool = False
    loading: bool = False
    error: str | None = None

    @property
    def id(self) -> str:
        return str(self.user["id"])


class TeamTreeSession:
    def __init__(self, client: AdminApiClient):
        self._client = client
        self.current: TeamNode | None = None
        self.superior: TeamNode | None = None
        self.siblings: list[TeamNode] = []
        self._nodes: dict[str, TeamNode] = {}

    def _register(self, node: TeamNode) -> TeamNode:
        self._nodes[node.id] = node
        return node

    def _subordinate(self, user: dict[str, Any]) -> TeamNode:
        return self._register(TeamNode(user=user, kind=NodeKind.SUBORDINATE, has_unloaded_children=True))

    async def load(self, load_level: str = "direct") -> TeamNode:
        """加载团队视图；当前用户的直属下级作为其已加载的子节点。"""
        data = await self._client.get_my_team(load_level)
        self._nodes = {}
        superior = data.get("superior")
        self.superior = self._register(TeamNode(user=superior, kind=NodeKind.SUPERIOR)) if superior else None
        self.siblings = [
            self._register(TeamNode(user=item, kind=NodeKind.SIBLING, has_unloaded_children=True))
            for item in data.get("siblings") or []
        ]
        self.current = self._register(TeamNode(user=data["currentUser"], kind=NodeKind.CURRENT))
        self.current.children = [self._subordinate(item) for item in data.get("subordinates") or []]
        return self.current

    def node(self, node_id: str) -> TeamNode:
        try:
            return self._nodes[str(node_id)]
        except KeyError:
            raise InvalidEditorState(f"unknown team node: {node_id}") from None

    async def expand(self, node_id: str) -> ExpandOutcome:
        node = self.node(node_id)
        if node.kind == NodeKind.SUPERIOR or not node.has_unloaded_children or node.loading:
            return ExpandOutcome.SKIPPED

        node.loading = True
        node.error = None
        try:
            rows = await self._client.get_subordinates(node.id)
        except (ApiError, TransientNetworkError) as exc:
            node.error = str(exc)
            logger.warning("expand team node failed id=%s: %s", node.id, exc)
            return ExpandOutcome.FAILED
        finally:
            node.loading = False

        known = {child.id for child in node.children}
        added = 0
        for row in rows:
            if str(row["id"]) in known:
                continue
            node.children.append(self._subordinate(row))
            known.add(str(row["id"]))
            added += 1
        if not added:
            node.has_unloaded_children = False
            return ExpandOutcome.EXHAUSTED
        return ExpandOutcome.EXPANDED
