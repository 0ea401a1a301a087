"""后台编辑器会话对象（菜单树编辑器、我的团队视图）。

会话状态全部挂在实例上，协作者（接口客户端、回调）由调用方显式传入。
"""

from cms_api.editor.client import AdminApiClient
from cms_api.editor.columns import Cell, Column, ColumnKind, MENU_LIST_COLUMNS, render_cell, render_row
from cms_api.editor.errors import ApiError, EditorError, InvalidEditorState, MenuValidationError, TransientNetworkError
from cms_api.editor.menu_editor import Drop, EditorState, MenuEditorSession
from cms_api.editor.team_tree import ExpandOutcome, NodeKind, TeamNode, TeamTreeSession

__all__ = [
    "AdminApiClient",
    "ApiError",
    "Cell",
    "Column",
    "ColumnKind",
    "Drop",
    "EditorError",
    "EditorState",
    "ExpandOutcome",
    "InvalidEditorState",
    "MENU_LIST_COLUMNS",
    "MenuEditorSession",
    "MenuValidationError",
    "NodeKind",
    "TeamNode",
    "TeamTreeSession",
    "TransientNetworkError",
    "render_cell",
    "render_row",
]
