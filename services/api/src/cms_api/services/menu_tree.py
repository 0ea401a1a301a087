"""菜单树算法（服务端与编辑器共用，纯 Python，无数据库依赖）。

节点身份由稳定 `id` 决定，与位置无关；位置用索引路径（tuple[int, ...]）表示，
每次结构变更后都会变化。
"""

from __future__ import annotations

import json
import logging
import random
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger("cms_api.menu_tree")

DEFAULT_TARGET = "_self"
UNTITLED_TITLE = "Untitled Item"
NODE_ID_PREFIX = "item_"
NODE_ID_SUFFIX_LENGTH = 9
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"
_TEXT_FIELDS = ("title", "url", "target", "icon", "description")
_MAX_ID_ATTEMPTS = 32

_system_random = random.SystemRandom()

Path = tuple[int, ...]


class MenuTreeError(ValueError):
    """菜单树结构操作失败。"""


class MenuTreeValidationError(MenuTreeError):
    """菜单树数据不合法，携带逐字段错误。"""

    def __init__(self, errors: list[dict[str, str]]):
        self.errors = errors
        super().__init__("; ".join(f"{item['field']}: {item['message']}" for item in errors))


@dataclass
class MenuNode:
    """菜单节点。"""

    id: str
    title: str = ""
    url: str = ""
    target: str = DEFAULT_TARGET
    icon: str = ""
    description: str = ""
    children: list[MenuNode] = field(default_factory=list)

    def attributes(self) -> dict[str, str]:
        """不含子节点的属性快照。"""
        return {"id": self.id, **{name: getattr(self, name) for name in _TEXT_FIELDS}}

    def to_dict(self) -> dict[str, Any]:
        return {**self.attributes(), "children": [child.to_dict() for child in self.children]}

    def clone(self) -> MenuNode:
        return MenuNode(**self.attributes(), children=[child.clone() for child in self.children])


@dataclass(frozen=True)
class IndexEntry:
    """id -> 节点索引条目。"""

    data: dict[str, str]
    path: Path


@dataclass
class ObservedNode:
    """展示层观察到的节点（拖拽结束后按展示顺序回读）。"""

    id: str | None = None
    # 挂在展示元素上的序列化节点快照。
    embedded_json: str | None = None
    # 可见标签文本，仅作最后兜底。
    title: str | None = None
    url: str | None = None
    children: list[ObservedNode] = field(default_factory=list)


def generate_node_id(taken: set[str] | None = None, rng: random.Random | None = None) -> str:
    """生成 `item_` + 9 位 base36 随机后缀的节点 ID，并避开同一文档内已用 ID。"""
    source = rng or _system_random
    for _ in range(_MAX_ID_ATTEMPTS):
        candidate = NODE_ID_PREFIX + "".join(source.choice(_BASE36) for _ in range(NODE_ID_SUFFIX_LENGTH))
        if taken is None or candidate not in taken:
            if taken is not None:
                taken.add(candidate)
            return candidate
    raise MenuTreeError("unable to generate a unique node id")


def parse_links(raw: Any) -> list[Any]:
    """宽松解析 links：接受列表、JSON 文本或空值；无法解析时返回空列表并记录告警。"""
    if raw is None:
        return []
    if isinstance(raw, list):
        return raw
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")
    if isinstance(raw, str):
        if not raw.strip():
            return []
        try:
            parsed = json.loads(raw)
        except ValueError:
            logger.warning("failed to parse menu links, falling back to empty tree")
            return []
        if isinstance(parsed, list):
            return parsed
        logger.warning("menu links is not a JSON array (got %s), falling back to empty tree", type(parsed).__name__)
        return []
    logger.warning("unsupported menu links type %s, falling back to empty tree", type(raw).__name__)
    return []


def _text(value: Any, default: str = "") -> str:
    if value is None:
        return default
    text = value if isinstance(value, str) else str(value)
    return text or default


def ensure_node(
    raw: Mapping[str, Any],
    *,
    taken: set[str],
    default_title: str = "",
    default_target: str = DEFAULT_TARGET,
) -> MenuNode:
    """补齐单个节点的字段；缺失或重复的 ID 重新生成，子节点保持原样由调用方处理。"""
    node_id = _text(raw.get("id"))
    if not node_id or node_id in taken:
        node_id = generate_node_id(taken)
    else:
        taken.add(node_id)
    title = _text(raw.get("title"))
    if default_title and not title.strip():
        title = default_title
    return MenuNode(
        id=node_id,
        title=title,
        url=_text(raw.get("url")),
        target=_text(raw.get("target"), default_target),
        icon=_text(raw.get("icon")),
        description=_text(raw.get("description")),
    )


def normalize_links(items: Iterable[Any], taken: set[str] | None = None, *, default_title: str = "") -> list[MenuNode]:
    """递归规范化节点：确保 ID、默认字段与子节点数组；非对象条目丢弃。"""
    taken = set() if taken is None else taken
    nodes: list[MenuNode] = []
    for raw in items:
        if isinstance(raw, MenuNode):
            raw = raw.to_dict()
        if not isinstance(raw, Mapping):
            continue
        node = ensure_node(raw, taken=taken, default_title=default_title)
        children = raw.get("children")
        if isinstance(children, list):
            node.children = normalize_links(children, taken, default_title=default_title)
        nodes.append(node)
    return nodes


def load_tree(raw: Any) -> list[MenuNode]:
    """解析并规范化存储中的 links，脏数据退化为空树。

    空标题补为 `UNTITLED_TITLE`，保证读出的树原样保存时能通过 `validate_links`。
    """
    return normalize_links(parse_links(raw), default_title=UNTITLED_TITLE)


def validate_links(raw: Any) -> list[MenuNode]:
    """严格校验写入的 links，返回规范化后的节点树。

    与 `load_tree` 不同，任何结构错误都会以字段错误列表的形式拒绝。
    """
    if raw is None:
        return []
    if isinstance(raw, str):
        try:
            raw = json.loads(raw) if raw.strip() else []
        except ValueError as exc:
            raise MenuTreeValidationError([{"field": "links", "message": f"invalid JSON: {exc.msg}"}]) from exc
    if not isinstance(raw, list):
        raise MenuTreeValidationError([{"field": "links", "message": "must be an array of menu items"}])

    errors: list[dict[str, str]] = []
    _collect_errors(raw, "links", errors)
    if errors:
        raise MenuTreeValidationError(errors)
    return normalize_links(raw)


def _collect_errors(items: list[Any], prefix: str, errors: list[dict[str, str]]) -> None:
    for position, raw in enumerate(items):
        location = f"{prefix}[{position}]"
        if not isinstance(raw, Mapping):
            errors.append({"field": location, "message": "menu item must be an object"})
            continue
        title = raw.get("title")
        if not isinstance(title, str) or not title.strip():
            errors.append({"field": f"{location}.title", "message": "title is required"})
        for name in ("id", "url", "target", "icon", "description"):
            value = raw.get(name)
            if value is not None and not isinstance(value, str):
                errors.append({"field": f"{location}.{name}", "message": "must be a string"})
        children = raw.get("children")
        if children is None:
            continue
        if not isinstance(children, list):
            errors.append({"field": f"{location}.children", "message": "must be an array"})
            continue
        _collect_errors(children, f"{location}.children", errors)


def count_items(nodes: Sequence[MenuNode | Mapping[str, Any]] | None) -> int:
    """递归统计全部层级的节点总数。"""
    total = 0
    for node in nodes or []:
        total += 1
        children = node.children if isinstance(node, MenuNode) else node.get("children")
        if isinstance(children, list):
            total += count_items(children)
    return total


def build_index(nodes: Sequence[MenuNode]) -> dict[str, IndexEntry]:
    """构建 id -> {data, path} 索引。"""
    index: dict[str, IndexEntry] = {}

    def _walk(items: Sequence[MenuNode], prefix: Path) -> None:
        for position, node in enumerate(items):
            path = prefix + (position,)
            index[node.id] = IndexEntry(data=node.attributes(), path=path)
            _walk(node.children, path)

    _walk(nodes, ())
    return index


def collect_ids(nodes: Sequence[MenuNode]) -> set[str]:
    return set(build_index(nodes))


def container_at(nodes: list[MenuNode], parent_path: Path) -> list[MenuNode]:
    """返回 parent_path 对应节点的子节点列表；空路径表示根列表。"""
    container = nodes
    for depth, position in enumerate(parent_path):
        if position < 0 or position >= len(container):
            raise MenuTreeError(f"path {parent_path[: depth + 1]} does not exist")
        container = container[position].children
    return container


def node_at(nodes: list[MenuNode], path: Path) -> MenuNode:
    if not path:
        raise MenuTreeError("path must not be empty")
    container = container_at(nodes, path[:-1])
    position = path[-1]
    if position < 0 or position >= len(container):
        raise MenuTreeError(f"path {path} does not exist")
    return container[position]


def insert_at(nodes: list[MenuNode], path: Path, node: MenuNode) -> None:
    """在 path 处插入节点；末位索引允许等于容器长度（追加）。"""
    if not path:
        raise MenuTreeError("path must not be empty")
    container = container_at(nodes, path[:-1])
    position = path[-1]
    if position < 0 or position > len(container):
        raise MenuTreeError(f"insert position {path} is out of range")
    container.insert(position, node)


def remove_at(nodes: list[MenuNode], path: Path) -> MenuNode:
    node_at(nodes, path)
    return container_at(nodes, path[:-1]).pop(path[-1])


def replace_at(nodes: list[MenuNode], path: Path, node: MenuNode) -> MenuNode:
    previous = node_at(nodes, path)
    container_at(nodes, path[:-1])[path[-1]] = node
    return previous


def move_node(nodes: list[MenuNode], source_path: Path, dest_path: Path) -> bool:
    """把 source_path 处节点（连同整棵子树）移动到 dest_path。

    dest_path 的父路径按移动前的树解析，末位索引为移出源节点后目标容器中的位置
    （与常见拖拽库的 newIndex 语义一致）。源与目标完全相同时不做任何修改并返回 False。
    """
    if not source_path or not dest_path:
        raise MenuTreeError("paths must not be empty")
    if tuple(source_path) == tuple(dest_path):
        return False
    node_at(nodes, source_path)

    dest_parent_path = tuple(dest_path[:-1])
    if dest_parent_path[: len(source_path)] == tuple(source_path):
        raise MenuTreeError("cannot move a menu item into its own subtree")
    destination = container_at(nodes, dest_parent_path)

    moved = remove_at(nodes, source_path)
    position = dest_path[-1]
    if position < 0 or position > len(destination):
        # 回滚，保证失败时树不变。
        container_at(nodes, tuple(source_path[:-1])).insert(source_path[-1], moved)
        raise MenuTreeError(f"destination position {tuple(dest_path)} is out of range")
    destination.insert(position, moved)
    return True


def _node_from_attributes(
    data: Mapping[str, Any],
    *,
    fallback_id: str | None,
    taken: set[str],
) -> MenuNode:
    """按已知属性原样重建节点，未出现的字段为空串。"""
    merged = dict(data)
    if not merged.get("id") and fallback_id:
        merged["id"] = fallback_id
    return ensure_node(merged, taken=taken, default_target="")


def _parse_embedded(raw: str | None) -> Mapping[str, Any] | None:
    if not raw:
        return None
    try:
        parsed = json.loads(raw)
    except ValueError:
        logger.warning("ignoring unparsable embedded node snapshot")
        return None
    return parsed if isinstance(parsed, Mapping) else None


def resolve_observed_node(
    observed: ObservedNode,
    *,
    drag_snapshot: Mapping[str, Mapping[str, Any]] | None,
    index: Mapping[str, IndexEntry],
    taken: set[str],
) -> MenuNode:
    """按优先级解析单个观察节点的属性：拖拽快照 > 索引 > 内嵌快照 > 可见文本。"""
    node_id = observed.id or None
    if node_id and drag_snapshot and node_id in drag_snapshot:
        return _node_from_attributes(drag_snapshot[node_id], fallback_id=node_id, taken=taken)
    if node_id and node_id in index:
        return _node_from_attributes(index[node_id].data, fallback_id=node_id, taken=taken)
    embedded = _parse_embedded(observed.embedded_json)
    if embedded is not None:
        return _node_from_attributes(embedded, fallback_id=node_id, taken=taken)
    logger.warning("rebuilding menu item %s from visible label only", node_id or "<no id>")
    # 只能观察到标签文本，其余属性为空；空标签补默认标题以便保存。
    return ensure_node(
        {"id": node_id, "title": (observed.title or "").strip(), "url": (observed.url or "").strip()},
        taken=taken,
        default_title=UNTITLED_TITLE,
        default_target="",
    )


def rebuild_from_observed(
    observed: Sequence[ObservedNode],
    *,
    index: Mapping[str, IndexEntry],
    drag_snapshot: Mapping[str, Mapping[str, Any]] | None = None,
) -> list[MenuNode]:
    """按展示顺序自底向上重建整棵树；单个节点解析失败逐级兜底，不会中断重建。"""
    taken: set[str] = set()

    def _build(items: Sequence[ObservedNode]) -> list[MenuNode]:
        rebuilt: list[MenuNode] = []
        for item in items:
            node = resolve_observed_node(item, drag_snapshot=drag_snapshot, index=index, taken=taken)
            node.children = _build(item.children)
            rebuilt.append(node)
        return rebuilt

    return _build(observed)


def observe_tree(nodes: Sequence[MenuNode]) -> list[ObservedNode]:
    """把节点树投影为观察结构（仅保留 ID 与可见文本）。"""
    return [
        ObservedNode(id=node.id, title=node.title, url=node.url, children=observe_tree(node.children))
        for node in nodes
    ]


def links_to_payload(nodes: Sequence[MenuNode]) -> list[dict[str, Any]]:
    return [node.to_dict() for node in nodes]


def dumps_links(nodes: Sequence[MenuNode]) -> str:
    """序列化为存储用 JSON 文本。"""
    return json.dumps(links_to_payload(nodes), ensure_ascii=False)
