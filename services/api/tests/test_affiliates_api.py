import json

import pytest
from fastapi import HTTPException
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from cms_api.api import affiliates as affiliates_api
from cms_api.models.affiliate import Affiliate, AffiliateMember, UserAffiliate
from cms_api.models.content import Module, Page
from cms_api.models.menu import Menu
from cms_api.schemas.affiliate import (
    AffiliateCreateRequest,
    AffiliateMemberCreateRequest,
    AffiliateMemberFlags,
    AffiliateMemberUpdateRequest,
    AffiliateUserIdsRequest,
)
from cms_api.services.affiliates import member_has_capability


@pytest.fixture
def owner_env(roles, make_user, make_affiliate, make_ctx):
    site_a, site_b, site_c = make_affiliate("aff-a"), make_affiliate("aff-b"), make_affiliate("aff-c")
    owner = make_user("owner@example.com", role=roles["admin"], affiliates=[site_a, site_b])
    return {"a": site_a, "b": site_b, "c": site_c, "owner": owner, "ctx": make_ctx(owner)}


def _list(db: Session, env, make_request, *, ids: str | None = None, search: str | None = None):
    return affiliates_api.list_affiliates(
        request=make_request("/api/admin/affiliates"),
        page=1,
        limit=20,
        search=search,
        ids=ids,
        ctx=env["ctx"],
        db=db,
    )


def _add_member(db: Session, env, make_request, source, target, **flags):
    return affiliates_api.create_member(
        payload=AffiliateMemberCreateRequest(to_affiliate_id=target.id, permissions=AffiliateMemberFlags(**flags)),
        request=make_request(f"/api/admin/affiliates/{source.id}/members", "POST"),
        affiliate_id=source.id,
        ctx=env["ctx"],
        db=db,
    )["data"]


def test_create_affiliate_initializes_defaults(db_session: Session, owner_env, make_request):
    data = affiliates_api.create_affiliate(
        payload=AffiliateCreateRequest(name="Daily News"),
        request=make_request("/api/admin/affiliates", "POST"),
        ctx=owner_env["ctx"],
        db=db_session,
    )["data"]
    affiliate_id = data["id"]
    assert data["slug"] == "daily-news"
    assert data["settings"] == {}

    link = db_session.execute(
        select(UserAffiliate).where(UserAffiliate.affiliate_id == affiliate_id)
    ).scalar_one()
    assert link.user_id == owner_env["owner"].id

    modules = db_session.execute(select(Module.title).where(Module.affiliate_id == affiliate_id)).scalars().all()
    assert sorted(modules) == ["Footer", "Header"]
    pages = db_session.execute(
        select(Page.slug).where(Page.affiliate_id == affiliate_id).order_by(Page.sort_order)
    ).scalars().all()
    assert pages == ["home", "stories", "story"]

    menu = db_session.execute(select(Menu).where(Menu.affiliate_id == affiliate_id)).scalar_one()
    assert (menu.title, menu.platform, menu.status) == ("Main Menu", "Web", "active")
    assert json.loads(menu.links) == []


def test_create_affiliate_generates_unique_slug(db_session: Session, owner_env, make_request):
    def _create(name: str):
        return affiliates_api.create_affiliate(
            payload=AffiliateCreateRequest(name=name),
            request=make_request("/api/admin/affiliates", "POST"),
            ctx=owner_env["ctx"],
            db=db_session,
        )["data"]

    assert _create("Aff A")["slug"] == "aff-a-1"

    with pytest.raises(HTTPException) as exc:
        affiliates_api.create_affiliate(
            payload=AffiliateCreateRequest(name="Explicit", slug="aff-b"),
            request=make_request("/api/admin/affiliates", "POST"),
            ctx=owner_env["ctx"],
            db=db_session,
        )
    assert exc.value.status_code == 409


def test_bulk_lookup_returns_only_visible_affiliates(db_session: Session, owner_env, make_request):
    ids = ",".join([str(owner_env["a"].id), "garbage", str(owner_env["c"].id), ""])
    rows = _list(db_session, owner_env, make_request, ids=ids)["data"]
    assert [row["id"] for row in rows] == [owner_env["a"].id]

    assert _list(db_session, owner_env, make_request, ids="nope, ,")["data"] == []


def test_paginated_list_covers_visible_affiliates(db_session: Session, owner_env, make_request):
    result = _list(db_session, owner_env, make_request)
    assert {row["slug"] for row in result["data"]} == {"aff-a", "aff-b"}
    assert result["meta"]["pagination"]["total"] == 2


def test_invisible_affiliate_is_forbidden(db_session: Session, owner_env, make_request):
    with pytest.raises(HTTPException) as exc:
        affiliates_api.get_affiliate(
            request=make_request(f"/api/admin/affiliates/{owner_env['c'].id}"),
            affiliate_id=owner_env["c"].id,
            ctx=owner_env["ctx"],
            db=db_session,
        )
    assert exc.value.status_code == 403


def test_member_lifecycle(db_session: Session, owner_env, make_request):
    source, target = owner_env["a"], owner_env["b"]
    created = _add_member(db_session, owner_env, make_request, source, target, can_use=True)
    assert created["to_affiliate_id"] == target.id
    assert (created["can_use"], created["can_copy"]) == (True, False)
    assert member_has_capability(db_session, from_affiliate_id=source.id, to_affiliate_id=target.id, capability="use")
    # 委托关系有方向。
    assert not member_has_capability(
        db_session, from_affiliate_id=target.id, to_affiliate_id=source.id, capability="use"
    )

    with pytest.raises(HTTPException) as exc:
        _add_member(db_session, owner_env, make_request, source, target)
    assert exc.value.status_code == 409

    updated = affiliates_api.change_member(
        payload=AffiliateMemberUpdateRequest(permissions=AffiliateMemberFlags(can_copy=True)),
        request=make_request(f"/api/admin/affiliates/{source.id}/members/{target.id}", "PUT"),
        affiliate_id=source.id,
        member_id=target.id,
        ctx=owner_env["ctx"],
        db=db_session,
    )["data"]
    assert (updated["can_use"], updated["can_copy"]) == (True, True)

    affiliates_api.delete_member(
        request=make_request(f"/api/admin/affiliates/{source.id}/members/{target.id}", "DELETE"),
        affiliate_id=source.id,
        member_id=target.id,
        ctx=owner_env["ctx"],
        db=db_session,
    )
    assert db_session.execute(select(func.count()).select_from(AffiliateMember)).scalar_one() == 0


def test_affiliate_cannot_be_its_own_member(db_session: Session, owner_env, make_request):
    with pytest.raises(HTTPException) as exc:
        _add_member(db_session, owner_env, make_request, owner_env["a"], owner_env["a"])
    assert exc.value.status_code == 422
    assert exc.value.detail["code"] == "AFFILIATE_MEMBER_SELF"


def test_available_members_exclude_current_affiliate(db_session: Session, owner_env, make_request):
    rows = affiliates_api.available_members(
        request=make_request(f"/api/admin/affiliates/{owner_env['a'].id}/available-members"),
        affiliate_id=owner_env["a"].id,
        ctx=owner_env["ctx"],
        db=db_session,
    )["data"]
    assert [row["id"] for row in rows] == [owner_env["b"].id]


def test_affiliate_users_add_replace_remove(db_session: Session, owner_env, make_user, make_request):
    site = owner_env["a"]
    first, second = make_user("first@example.com"), make_user("second@example.com")

    def _call(handler, user_ids, method):
        return handler(
            payload=AffiliateUserIdsRequest(user_ids=user_ids),
            request=make_request(f"/api/admin/affiliates/{site.id}/users", method),
            affiliate_id=site.id,
            ctx=owner_env["ctx"],
            db=db_session,
        )["data"]["user_ids"]

    added = _call(affiliates_api.add_users, [first.id], "POST")
    assert set(added) == {owner_env["owner"].id, first.id}
    assert _call(affiliates_api.replace_users, [second.id, owner_env["owner"].id], "PUT") == [
        second.id,
        owner_env["owner"].id,
    ]
    assert _call(affiliates_api.remove_users, [second.id], "DELETE") == [owner_env["owner"].id]


def test_delete_affiliate_clears_links_in_both_directions(db_session: Session, owner_env, make_request):
    _add_member(db_session, owner_env, make_request, owner_env["a"], owner_env["b"])
    _add_member(db_session, owner_env, make_request, owner_env["b"], owner_env["a"])
    site_id = owner_env["b"].id

    affiliates_api.delete_affiliate(
        request=make_request(f"/api/admin/affiliates/{site_id}", "DELETE"),
        affiliate_id=site_id,
        ctx=owner_env["ctx"],
        db=db_session,
    )
    assert db_session.get(Affiliate, site_id) is None
    assert db_session.execute(select(func.count()).select_from(AffiliateMember)).scalar_one() == 0
    remaining = db_session.execute(
        select(func.count()).select_from(UserAffiliate).where(UserAffiliate.affiliate_id == site_id)
    ).scalar_one()
    assert remaining == 0
