import asyncio
import json

import httpx
import pytest

from cms_api.editor import (
    MENU_LIST_COLUMNS,
    AdminApiClient,
    ApiError,
    Cell,
    Column,
    ColumnKind,
    Drop,
    EditorState,
    ExpandOutcome,
    InvalidEditorState,
    MenuEditorSession,
    MenuValidationError,
    NodeKind,
    TeamTreeSession,
    TransientNetworkError,
    render_cell,
    render_row,
)
from cms_api.services.menu_tree import UNTITLED_TITLE, observe_tree, validate_links

BASE_URL = "http://cms.test/api"

MENU = {
    "id": "m1",
    "affiliate_id": "aff-1",
    "category_id": None,
    "title": "Main",
    "platform": "Web",
    "status": "active",
    "sort_order": 0,
    "links": [
        {"id": "a", "title": "About", "url": "/about", "children": [{"id": "a1", "title": "Team", "url": "/team"}]},
        {"id": "b", "title": "Blog", "url": "/blog"},
    ],
    "total_items": 3,
    "updated_at": "2026-01-02T03:04:05Z",
}


def _ok(data, meta=None) -> httpx.Response:
    return httpx.Response(200, json={"success": True, "request_id": "r", "data": data, "meta": meta or {}})


def _fail(status_code: int, code: str, message: str) -> httpx.Response:
    return httpx.Response(
        status_code,
        json={"success": False, "request_id": "r", "error": {"code": code, "message": message, "details": {}}},
    )


class FakeMenuApi:
    """内存版菜单接口，记录保存请求体。"""

    def __init__(self, menu: dict | None = None):
        self.menu = menu or MENU
        self.saved_bodies: list[dict] = []
        self.failures: list[httpx.Response | Exception] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if request.method == "GET" and path == "/api/admin/menus":
            pagination = {"page": 1, "limit": 20, "total": 1, "pages": 1}
            return _ok([self.menu], {"pagination": pagination})
        if request.method == "GET" and path == "/api/admin/menus/m1":
            return _ok(self.menu)
        if request.method in ("POST", "PUT"):
            if self.failures:
                failure = self.failures.pop(0)
                if isinstance(failure, Exception):
                    raise failure
                return failure
            body = json.loads(request.content)
            self.saved_bodies.append(body)
            saved = {**self.menu, **body, "id": "m1" if request.method == "PUT" else "m2"}
            saved["links"] = json.loads(body["links"])
            return _ok(saved)
        return _fail(404, "NOT_FOUND", "not found")


def _session(api, events: list[str] | None = None) -> MenuEditorSession:
    client = AdminApiClient(base_url=BASE_URL, token="t", transport=httpx.MockTransport(api))
    return MenuEditorSession(client, on_change=events.append if events is not None else None)


async def _open_editing(api, events=None) -> MenuEditorSession:
    session = _session(api, events)
    await session.open_list()
    await session.start_editing("m1")
    return session


def test_client_sends_auth_and_affiliate_headers():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return _ok([], {"pagination": {"total": 0}})

    async def run():
        async with AdminApiClient(
            base_url=BASE_URL, token="tok", affiliate_id="aff-9", transport=httpx.MockTransport(handler)
        ) as client:
            return await client.list_menus(page=2, search="main", global_view=True)

    rows, pagination = asyncio.run(run())
    assert rows == [] and pagination == {"total": 0}
    request = seen[0]
    assert request.headers["Authorization"] == "Bearer tok"
    assert request.headers["x-affiliate-id"] == "aff-9"
    assert request.url.path == "/api/admin/menus"
    assert dict(request.url.params) == {"page": "2", "search": "main", "global": "true"}


def test_client_maps_error_envelope_and_transport_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/boom"):
            raise httpx.ConnectError("connection refused", request=request)
        if request.url.path.endswith("/html"):
            return httpx.Response(502, text="<html>bad gateway</html>")
        return _fail(403, "INSUFFICIENT_PERMISSION", "Insufficient permissions.")

    async def run(menu_id: str):
        client = AdminApiClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))
        try:
            return await client.get_menu(menu_id)
        finally:
            await client.aclose()

    with pytest.raises(ApiError) as exc:
        asyncio.run(run("m1"))
    assert exc.value.status_code == 403
    assert exc.value.code == "INSUFFICIENT_PERMISSION"

    with pytest.raises(ApiError) as exc:
        asyncio.run(run("html"))
    assert exc.value.status_code == 502

    with pytest.raises(TransientNetworkError):
        asyncio.run(run("boom"))


def test_editing_flow_saves_whole_tree():
    api = FakeMenuApi()
    events: list[str] = []

    async def run():
        session = await _open_editing(api, events)
        assert session.state == EditorState.EDITING
        assert session.total_items == 3
        assert session.index["a1"].path == (0, 0)

        added = session.add_item((1,), title=" News ", url="/news")
        assert added.id.startswith("item_")
        assert session.index[added.id].path == (1, 0)
        assert session.move_item((1,), (0,))
        session.edit_item((0,), title="Journal")
        return session, await session.save()

    session, saved = asyncio.run(run())
    body = api.saved_bodies[0]
    links = json.loads(body["links"])
    assert [item["id"] for item in links] == ["b", "a"]
    assert links[0]["title"] == "Journal"
    assert links[0]["children"][0]["title"] == "News"
    assert body["title"] == "Main"
    assert events == ["item_added", "order_updated", "item_updated", "saved"]
    assert session.state == EditorState.LIST
    assert session.menus[0]["id"] == saved["id"] == "m1"
    assert len(session.menus) == 1


def test_stored_menu_with_untitled_items_saves_unchanged():
    legacy = {**MENU, "links": [{"id": "a", "url": "/legacy"}, {"id": "b", "title": "Blog", "url": "/blog"}]}
    api = FakeMenuApi(legacy)

    async def run():
        session = await _open_editing(api)
        assert session.nodes[0].title == UNTITLED_TITLE
        return await session.save()

    asyncio.run(run())
    saved = validate_links(api.saved_bodies[0]["links"])
    assert [(node.id, node.title) for node in saved] == [("a", UNTITLED_TITLE), ("b", "Blog")]


def test_new_menu_is_created_and_prepended():
    api = FakeMenuApi()

    async def run():
        session = _session(api)
        await session.open_list()
        await session.start_editing()
        with pytest.raises(MenuValidationError):
            session.build_payload()
        session.set_menu_fields(title="Footer")
        session.add_item(title="Privacy", url="/privacy")
        await session.save()
        return session

    session = asyncio.run(run())
    assert [row["id"] for row in session.menus] == ["m2", "m1"]
    assert json.loads(api.saved_bodies[0]["links"])[0]["title"] == "Privacy"


def test_failed_save_keeps_local_state_for_retry():
    api = FakeMenuApi()
    api.failures = [
        _fail(500, "INTERNAL_ERROR", "internal server error"),
        httpx.ConnectError("offline"),
    ]

    async def run():
        session = await _open_editing(api)
        session.add_item(title="Shop", url="/shop")
        before = [node.to_dict() for node in session.nodes]

        with pytest.raises(ApiError):
            await session.save()
        assert session.state == EditorState.EDITING
        assert isinstance(session.last_error, ApiError)
        assert [node.to_dict() for node in session.nodes] == before

        with pytest.raises(TransientNetworkError):
            await session.save()
        assert session.state == EditorState.EDITING

        await session.save()
        assert session.last_error is None
        return session

    session = asyncio.run(run())
    assert session.state == EditorState.LIST
    assert len(api.saved_bodies) == 1


def test_item_validation_and_state_guards():
    api = FakeMenuApi()

    async def run():
        session = _session(api)
        with pytest.raises(InvalidEditorState):
            session.add_item(title="x", url="/x")
        session_editing = await _open_editing(api)
        with pytest.raises(MenuValidationError) as exc:
            session_editing.add_item(title="No link", url="  ")
        assert exc.value.field == "url"
        with pytest.raises(MenuValidationError):
            session_editing.edit_item((0,), title="")
        with pytest.raises(InvalidEditorState):
            await session_editing.open_list()
        session_editing.discard()
        assert session_editing.state == EditorState.LIST
        assert session_editing.nodes == []

    asyncio.run(run())


def test_drag_noop_and_observed_rebuild():
    api = FakeMenuApi()
    events: list[str] = []

    async def run():
        session = await _open_editing(api, events)
        session.begin_drag("a1")
        assert session.end_drag(Drop((0, 0), (0, 0))) is False
        assert events == []

        session.begin_drag("a1")
        observed = observe_tree(session.nodes)
        # 展示层把 a1 拖到根级末尾。
        child = observed[0].children.pop(0)
        observed.append(child)
        assert session.end_drag(Drop((0, 0), (2,)), observed) is True
        return session

    session = asyncio.run(run())
    assert [node.id for node in session.nodes] == ["a", "b", "a1"]
    assert session.nodes[2].url == "/team"
    assert session.index["a1"].path == (2,)
    assert events == ["order_updated"]


def test_remove_item_and_list_rows():
    api = FakeMenuApi()
    events: list[str] = []

    async def run():
        session = _session(api, events)
        await session.open_list()
        rows = session.list_rows()
        await session.start_editing("m1")
        removed = session.remove_item((0,))
        return session, rows, removed

    session, rows, removed = asyncio.run(run())
    assert removed.id == "a"
    assert session.total_items == 1
    assert events == ["item_removed"]
    assert rows[0]["links"] == Cell("3 items")
    assert rows[0]["status"] == Cell("active", "badge-success")
    assert rows[0]["updated_at"].text == "2026-01-02 03:04"


def test_column_rendering_dispatches_by_kind():
    row = {"title": None, "platform": "iOS", "links": '[{"title": "x", "children": []}]', "updated_at": "not a date"}
    cells = render_row(MENU_LIST_COLUMNS, row)
    assert cells["title"] == Cell("")
    assert cells["platform"] == Cell("iOS", "badge-secondary")
    assert cells["links"] == Cell("1 item")
    assert cells["updated_at"] == Cell("not a date")

    with pytest.raises(KeyError):
        render_cell(Column("x", "X", ColumnKind.CUSTOM, renderer="missing"), {"x": 1})


class FakeTeamApi:
    def __init__(self):
        self.calls: list[str] = []
        self.failing: set[str] = set()
        self.children = {
            "sib": [{"id": "sib-1", "email": "sib-1@example.com"}],
            "sub": [{"id": "sub-1", "email": "sub-1@example.com"}],
            "sub-1": [],
        }

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/api/admin/users/my-team":
            return _ok(
                {
                    "currentUser": {"id": "me", "email": "me@example.com"},
                    "superior": {"id": "boss", "email": "boss@example.com"},
                    "siblings": [{"id": "sib", "email": "sib@example.com"}],
                    "subordinates": [{"id": "sub", "email": "sub@example.com"}],
                }
            )
        user_id = path.split("/")[-2]
        self.calls.append(user_id)
        if user_id in self.failing:
            return _fail(500, "INTERNAL_ERROR", "internal server error")
        return _ok(self.children.get(user_id, []))


def _team(api: FakeTeamApi) -> TeamTreeSession:
    return TeamTreeSession(AdminApiClient(base_url=BASE_URL, transport=httpx.MockTransport(api)))


def test_team_load_marks_expandable_nodes():
    api = FakeTeamApi()
    tree = _team(api)
    current = asyncio.run(tree.load())

    assert current.kind == NodeKind.CURRENT
    assert tree.superior.kind == NodeKind.SUPERIOR
    assert not tree.superior.has_unloaded_children
    assert [node.id for node in tree.siblings] == ["sib"]
    assert tree.siblings[0].has_unloaded_children
    assert [node.id for node in current.children] == ["sub"]
    assert current.children[0].has_unloaded_children

    with pytest.raises(InvalidEditorState):
        tree.node("nobody")


def test_team_expand_rules():
    api = FakeTeamApi()
    tree = _team(api)

    async def run():
        await tree.load()
        assert await tree.expand("boss") == ExpandOutcome.SKIPPED

        assert await tree.expand("sub") == ExpandOutcome.EXPANDED
        sub = tree.node("sub")
        assert [child.id for child in sub.children] == ["sub-1"]
        assert sub.has_unloaded_children

        # 再次展开没有新增下级：不产生重复节点，节点变为不可展开。
        assert await tree.expand("sub") == ExpandOutcome.EXHAUSTED
        assert [child.id for child in sub.children] == ["sub-1"]
        assert not sub.has_unloaded_children
        assert await tree.expand("sub") == ExpandOutcome.SKIPPED

        assert await tree.expand("sub-1") == ExpandOutcome.EXHAUSTED

        sibling = tree.node("sib")
        sibling.loading = True
        assert await tree.expand("sib") == ExpandOutcome.SKIPPED
        sibling.loading = False
        assert await tree.expand("sib") == ExpandOutcome.EXPANDED

    asyncio.run(run())
    assert api.calls == ["sub", "sub", "sub-1", "sib"]


def test_team_expand_failure_keeps_children_and_allows_retry():
    api = FakeTeamApi()
    tree = _team(api)

    async def run():
        await tree.load()
        sub = tree.node("sub")
        assert await tree.expand("sub") == ExpandOutcome.EXPANDED

        api.failing.add("sub")
        assert await tree.expand("sub") == ExpandOutcome.FAILED
        assert [child.id for child in sub.children] == ["sub-1"]
        assert sub.error and "INTERNAL_ERROR" in sub.error
        assert sub.has_unloaded_children
        assert not sub.loading

        api.failing.clear()
        assert await tree.expand("sub") == ExpandOutcome.EXHAUSTED
        assert sub.error is None

    asyncio.run(run())
