from uuid import UUID, uuid4

import pytest
from fastapi import APIRouter, HTTPException
from sqlalchemy.orm import Session

from cms_api.api.content import modules_router, pages_router, stories_router
from cms_api.models.content import Story
from cms_api.schemas.content import ContentCreateRequest, ContentUpdateRequest
from cms_api.services.content import fallback_slug, slugify


def _endpoint(router: APIRouter, name: str):
    return next(route.endpoint for route in router.routes if route.name == name)


@pytest.fixture
def newsroom(roles, make_user, make_affiliate, make_ctx, make_scope):
    site = make_affiliate("newsroom")
    author = make_user("author@example.com", role=roles["author"], affiliates=[site])
    colleague = make_user("colleague@example.com", role=roles["author"], affiliates=[site])
    editor = make_user("editor@example.com", role=roles["editor"], affiliates=[site])
    viewer = make_user("viewer@example.com", role=roles["viewer"], affiliates=[site])
    return {
        "site": site,
        "author": make_ctx(author),
        "colleague": make_ctx(colleague),
        "editor": make_ctx(editor),
        "viewer": make_ctx(viewer),
        "scope": make_scope(author, site),
    }


def _create_story(db: Session, env, make_request, ctx_key: str = "author", **fields):
    create = _endpoint(stories_router, "create_record")
    return create(
        payload=ContentCreateRequest(**{"title": "Breaking News!", **fields}),
        request=make_request("/api/admin/stories", "POST"),
        scope=env["scope"],
        ctx=env[ctx_key],
        db=db,
    )["data"]


def _update_story(db: Session, env, make_request, record_id, ctx_key: str, **fields):
    update = _endpoint(stories_router, "update_record")
    return update(
        payload=ContentUpdateRequest(**fields),
        request=make_request(f"/api/admin/stories/{record_id}", "PUT"),
        record_id=record_id,
        scope=env["scope"],
        ctx=env[ctx_key],
        db=db,
    )["data"]


def test_slugify_collapses_separators():
    assert slugify("  Hello,  World!! ") == "hello-world"
    assert slugify("Already-ok") == "already-ok"
    assert slugify("日本語") == ""
    assert fallback_slug("story", UUID("12345678-9abc-4def-8000-000000000000")) == "story-12345678"


def test_create_story_stamps_affiliate_and_author(db_session: Session, newsroom, make_request):
    data = _create_story(db_session, newsroom, make_request)
    assert data["affiliate_id"] == newsroom["site"].id
    assert data["author_id"] == newsroom["author"].user_id
    assert data["slug"] == "breaking-news"
    assert data["status"] == "draft"
    assert data["published_at"] is None


def test_author_can_update_own_story_only(db_session: Session, newsroom, make_request):
    story = _create_story(db_session, newsroom, make_request)

    updated = _update_story(db_session, newsroom, make_request, story["id"], "author", title="Updated")
    assert updated["title"] == "Updated"

    with pytest.raises(HTTPException) as exc:
        _update_story(db_session, newsroom, make_request, story["id"], "colleague", title="Hijacked")
    assert exc.value.status_code == 403
    assert exc.value.detail["details"]["required_permission"] == "stories.update"

    # 编辑持有完整 update 权限，可修改他人稿件。
    assert _update_story(db_session, newsroom, make_request, story["id"], "editor", title="Edited")["title"] == "Edited"


def test_author_delete_requires_ownership(db_session: Session, newsroom, make_request):
    delete = _endpoint(stories_router, "delete_record")
    story = _create_story(db_session, newsroom, make_request)

    def _delete(ctx_key: str):
        return delete(
            request=make_request(f"/api/admin/stories/{story['id']}", "DELETE"),
            record_id=story["id"],
            scope=newsroom["scope"],
            ctx=newsroom[ctx_key],
            db=db_session,
        )

    with pytest.raises(HTTPException):
        _delete("colleague")
    assert _delete("author")["data"]["deleted"] is True
    assert db_session.get(Story, story["id"]) is None


def test_modify_without_any_permission_is_rejected_before_lookup(db_session: Session, newsroom, make_request):
    story = _create_story(db_session, newsroom, make_request)
    delete = _endpoint(stories_router, "delete_record")

    for record_id in (story["id"], uuid4()):
        with pytest.raises(HTTPException) as exc:
            _update_story(db_session, newsroom, make_request, record_id, "viewer", title="Nope")
        assert exc.value.status_code == 403
        assert exc.value.detail["details"]["required_permission"] == "stories.update"

        with pytest.raises(HTTPException) as exc:
            delete(
                request=make_request(f"/api/admin/stories/{record_id}", "DELETE"),
                record_id=record_id,
                scope=newsroom["scope"],
                ctx=newsroom["viewer"],
                db=db_session,
            )
        assert exc.value.status_code == 403

    # 持有 _own 权限时，不存在的记录仍返回 404。
    with pytest.raises(HTTPException) as exc:
        _update_story(db_session, newsroom, make_request, uuid4(), "colleague", title="Missing")
    assert exc.value.status_code == 404


def test_publish_then_unpublish_keeps_publish_time(db_session: Session, newsroom, make_request):
    story = _create_story(db_session, newsroom, make_request)
    publish = _endpoint(stories_router, "publish_record")
    unpublish = _endpoint(stories_router, "unpublish_record")

    published = publish(
        request=make_request(f"/api/admin/stories/{story['id']}/publish", "POST"),
        record_id=story["id"],
        scope=newsroom["scope"],
        ctx=newsroom["editor"],
        db=db_session,
    )["data"]
    assert published["status"] == "published"
    assert published["published_at"] is not None

    reverted = unpublish(
        request=make_request(f"/api/admin/stories/{story['id']}/unpublish", "POST"),
        record_id=story["id"],
        scope=newsroom["scope"],
        ctx=newsroom["editor"],
        db=db_session,
    )["data"]
    assert reverted["status"] == "draft"
    assert reverted["published_at"] is not None


def test_status_update_to_published_sets_publish_time(db_session: Session, newsroom, make_request):
    story = _create_story(db_session, newsroom, make_request, status="draft")
    updated = _update_story(db_session, newsroom, make_request, story["id"], "editor", status="published")
    assert updated["published_at"] is not None

    created = _create_story(db_session, newsroom, make_request, title="Live", status="published")
    assert created["published_at"] is not None


def test_publish_routes_exist_only_for_publishable_entities():
    assert "/admin/pages/{record_id}/publish" in {route.path for route in pages_router.routes}
    assert "/admin/modules/{record_id}/publish" not in {route.path for route in modules_router.routes}


def test_update_slug_is_kept_unique_and_falls_back_to_id(db_session: Session, newsroom, make_request):
    first = _create_story(db_session, newsroom, make_request, title="Alpha")
    second = _create_story(db_session, newsroom, make_request, title="Beta")

    with pytest.raises(HTTPException) as exc:
        _update_story(db_session, newsroom, make_request, second["id"], "editor", slug="Alpha")
    assert exc.value.status_code == 409
    assert exc.value.detail["code"] == "CONTENT_SLUG_EXISTS"

    # 本记录原 slug 不算冲突。
    assert _update_story(db_session, newsroom, make_request, first["id"], "editor", slug="alpha")["slug"] == "alpha"

    renamed = _update_story(db_session, newsroom, make_request, second["id"], "editor", title="中文标题", slug="中文")
    assert renamed["slug"] == fallback_slug("story", second["id"])
