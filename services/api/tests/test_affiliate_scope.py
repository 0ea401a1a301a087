from uuid import uuid4

import pytest
from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from cms_api.models.content import Story
from cms_api.services.affiliate_scope import (
    AffiliateScope,
    list_user_affiliate_ids,
    parse_affiliate_id,
    resolve_affiliate_scope,
    resolve_candidate_affiliate_id,
)


def _story(db: Session, affiliate, author, title: str) -> Story:
    story = Story(affiliate_id=affiliate.id, author_id=author.id, title=title, slug=title.lower())
    db.add(story)
    db.commit()
    return story


def _titles(db: Session, scope: AffiliateScope) -> set[str]:
    stmt = scope.apply(select(Story.title), Story.affiliate_id)
    return set(db.execute(stmt).scalars().all())


def test_candidate_priority_is_session_then_query_then_header():
    session_id, query_id, header_id = uuid4(), uuid4(), uuid4()
    assert resolve_candidate_affiliate_id(str(session_id), str(query_id), str(header_id)) == session_id
    assert resolve_candidate_affiliate_id(None, str(query_id), str(header_id)) == query_id
    assert resolve_candidate_affiliate_id(None, "  ", str(header_id)) == header_id
    assert resolve_candidate_affiliate_id(None, None, None) is None


def test_invalid_candidate_id_is_rejected():
    with pytest.raises(HTTPException) as exc:
        resolve_candidate_affiliate_id(None, "not-a-uuid", None)
    assert exc.value.status_code == 400
    assert parse_affiliate_id("") is None


def test_unknown_affiliate_is_404_and_non_member_is_403(db_session: Session, make_user, make_affiliate, make_scope):
    user = make_user("scope@example.com")
    foreign = make_affiliate("foreign")

    with pytest.raises(HTTPException) as exc:
        resolve_affiliate_scope(db_session, user_id=user.id, candidate_id=uuid4())
    assert exc.value.status_code == 404

    with pytest.raises(HTTPException) as exc:
        make_scope(user, foreign)
    assert exc.value.status_code == 403
    assert exc.value.detail["code"] == "AFFILIATE_ACCESS_DENIED"
    assert exc.value.detail["details"]["affiliate_id"] == str(foreign.id)


def test_single_scope_filters_by_equality(db_session: Session, make_user, make_affiliate, make_scope):
    site_a, site_b = make_affiliate("site-a"), make_affiliate("site-b")
    user = make_user("single@example.com", affiliates=[site_a, site_b])
    _story(db_session, site_a, user, "Alpha")
    _story(db_session, site_b, user, "Beta")

    scope = make_scope(user, site_a)
    assert not scope.is_global
    assert scope.require_single() == site_a.id
    assert _titles(db_session, scope) == {"Alpha"}
    assert scope.allows(site_a.id)
    assert not scope.allows(site_b.id)


def test_global_scope_is_union_of_visible_affiliates(db_session: Session, make_user, make_affiliate, make_scope):
    site_a, site_b, site_c = make_affiliate("a"), make_affiliate("b"), make_affiliate("c")
    user = make_user("global@example.com", affiliates=[site_a, site_c])
    for site, title in ((site_a, "A"), (site_b, "B"), (site_c, "C")):
        _story(db_session, site, user, title)

    scope = make_scope(user)
    assert scope.is_global
    assert set(scope.affiliate_ids) == {site_a.id, site_c.id}
    assert _titles(db_session, scope) == {"A", "C"}

    # 显式 global 时候选站点仍需校验，但过滤范围为全部可见站点。
    explicit = make_scope(user, site_a, want_global=True)
    assert explicit.is_global
    assert _titles(db_session, explicit) == {"A", "C"}


def test_global_scope_without_affiliates_returns_nothing(db_session: Session, make_user, make_affiliate, make_scope):
    site = make_affiliate("lonely")
    owner = make_user("owner@example.com", affiliates=[site])
    _story(db_session, site, owner, "Hidden")
    stranger = make_user("stranger@example.com")

    scope = make_scope(stranger)
    assert scope.affiliate_ids == []
    assert _titles(db_session, scope) == set()
    assert not scope.allows(site.id)
    assert not scope.allows(None)


def test_global_scope_rejects_single_record_operations(make_user, make_affiliate, make_scope):
    site = make_affiliate("writes")
    user = make_user("writer@example.com", affiliates=[site])

    with pytest.raises(HTTPException) as exc:
        make_scope(user).require_single()
    assert exc.value.status_code == 400
    assert exc.value.detail["code"] == "AFFILIATE_CONTEXT_REQUIRED"

    with pytest.raises(HTTPException):
        make_scope(user, site, want_global=True).stamp({"title": "x"})

    stamped = make_scope(user, site).stamp({"title": "x", "affiliate_id": uuid4()})
    assert stamped == {"title": "x", "affiliate_id": site.id}


def test_list_user_affiliate_ids_returns_memberships(db_session: Session, make_user, make_affiliate):
    first, second = make_affiliate("first"), make_affiliate("second")
    user = make_user("order@example.com", affiliates=[first, second])
    assert set(list_user_affiliate_ids(db_session, user.id)) == {first.id, second.id}
    assert list_user_affiliate_ids(db_session, uuid4()) == []
