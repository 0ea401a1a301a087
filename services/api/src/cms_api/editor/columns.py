"""列表列定义与单元格渲染。

列种类是封闭集合（文本、徽标、日期、自定义），按种类分派；自定义渲染只能
引用注册表中的具名策略，不接受任意闭包。
"""

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

from cms_api.services.menu_tree import count_items, parse_links


class ColumnKind(StrEnum):
    TEXT = "text"
    BADGE = "badge"
    DATE = "date"
    CUSTOM = "custom"


@dataclass(frozen=True)
class Column:
    """列定义。"""

    key: str
    label: str
    kind: ColumnKind = ColumnKind.TEXT
    # BADGE：取值 -> 样式类名。
    badge_classes: Mapping[str, str] = field(default_factory=dict)
    default_badge_class: str = "badge-secondary"
    date_format: str = "%Y-%m-%d %H:%M"
    # CUSTOM：注册表中的策略名。
    renderer: str | None = None


@dataclass(frozen=True)
class Cell:
    text: str
    css_class: str | None = None


Renderer = Callable[[Any, Mapping[str, Any]], Cell]

_RENDERERS: dict[str, Renderer] = {}


def register_renderer(name: str) -> Callable[[Renderer], Renderer]:
    """注册具名自定义渲染策略。"""

    def _decorator(func: Renderer) -> Renderer:
        _RENDERERS[name] = func
        return func

    return _decorator


@register_renderer("menu_total_items")
def _menu_total_items(value: Any, row: Mapping[str, Any]) -> Cell:
    total = row.get("total_items")
    if not isinstance(total, int):
        total = count_items(parse_links(value))
    return Cell(f"{total} item" if total == 1 else f"{total} items")


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _render_date(column: Column, value: Any) -> Cell:
    if value is None or value == "":
        return Cell("")
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return Cell(value)
    if isinstance(value, datetime):
        return Cell(value.strftime(column.date_format))
    return Cell(_text(value))


def render_cell(column: Column, row: Mapping[str, Any]) -> Cell:
    value = row.get(column.key)
    if column.kind == ColumnKind.BADGE:
        text = _text(value)
        return Cell(text, column.badge_classes.get(text, column.default_badge_class))
    if column.kind == ColumnKind.DATE:
        return _render_date(column, value)
    if column.kind == ColumnKind.CUSTOM:
        renderer = _RENDERERS.get(column.renderer or "")
        if renderer is None:
            raise KeyError(f"unknown cell renderer: {column.renderer!r}")
        return renderer(value, row)
    return Cell(_text(value))


def render_row(columns: Sequence[Column], row: Mapping[str, Any]) -> dict[str, Cell]:
    return {column.key: render_cell(column, row) for column in columns}


MENU_LIST_COLUMNS: tuple[Column, ...] = (
    Column("title", "Title"),
    Column("platform", "Platform", ColumnKind.BADGE, badge_classes={"Web": "badge-primary"}),
    Column(
        "status",
        "Status",
        ColumnKind.BADGE,
        badge_classes={"active": "badge-success", "inactive": "badge-danger"},
    ),
    Column("links", "Items", ColumnKind.CUSTOM, renderer="menu_total_items"),
    Column("updated_at", "Updated", ColumnKind.DATE),
)
