from uuid import UUID

import pytest
from fastapi import HTTPException
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from cms_api.api import roles as roles_api
from cms_api.models.permission import Permission, Role, RolePermission
from cms_api.schemas.permission import RoleCreateRequest
from cms_api.services.permissions import (
    DEFAULT_PERMISSION_CATALOG,
    default_role_permission_names,
    delete_permission,
    delete_role,
    ensure_can_modify,
    has_permission,
    load_role_permission_names,
    permission_name,
    require_permission_name,
    role_has_permission,
    seed_defaults,
    set_role_permissions,
)


def _permission(db: Session, name: str) -> Permission:
    return db.execute(select(Permission).where(Permission.name == name)).scalar_one()


def _custom_role(db: Session, name: str, permission_names: list[str]) -> Role:
    role = Role(name=name, display_name=name.title())
    db.add(role)
    db.flush()
    set_role_permissions(db, role, [_permission(db, item).id for item in permission_names])
    db.commit()
    return role


def test_has_permission_is_flat_set_membership():
    granted = {"stories.update_own", "stories.read"}
    assert has_permission(granted, "stories.read")
    assert has_permission(granted, "stories.update_own")
    # *_own 与完整权限互不蕴含。
    assert not has_permission(granted, "stories.update")
    assert not has_permission({"stories.update"}, "stories.update_own")
    assert not has_permission(granted, "stories.*")


def test_permission_name_is_derived_from_entity_and_action():
    assert permission_name("stories", "publish") == "stories.publish"
    assert permission_name(" menus ", "read") == "menus.read"


def test_assign_then_unassign_returns_check_to_false(db_session: Session, roles):
    role = _custom_role(db_session, "reviewer", ["stories.read"])
    assert not role_has_permission(db_session, role.id, "stories.publish")

    set_role_permissions(db_session, role, [_permission(db_session, "stories.publish").id])
    assert role_has_permission(db_session, role.id, "stories.publish")

    set_role_permissions(db_session, role, [])
    assert not role_has_permission(db_session, role.id, "stories.publish")


def test_missing_role_means_zero_permissions(db_session: Session):
    assert load_role_permission_names(db_session, None) == set()
    with pytest.raises(HTTPException) as exc:
        require_permission_name(set(), "stories.read", role_assigned=False)
    assert exc.value.status_code == 403
    assert exc.value.detail["message"] == "No role assigned."


def test_editor_scenario_create_allowed_delete_rejected(db_session: Session, roles):
    role = _custom_role(db_session, "limited-editor", ["stories.create", "stories.read"])
    granted = load_role_permission_names(db_session, role.id)

    require_permission_name(granted, "stories.create")
    with pytest.raises(HTTPException) as exc:
        require_permission_name(granted, "stories.delete")
    assert exc.value.status_code == 403
    assert exc.value.detail["code"] == "INSUFFICIENT_PERMISSION"
    assert exc.value.detail["details"]["required_permission"] == "stories.delete"


def test_ensure_can_modify_combines_own_permission_with_authorship():
    author_id = "00000000-0000-0000-0000-000000000001"
    other_id = "00000000-0000-0000-0000-000000000002"
    own_only = {"stories.update_own"}

    ensure_can_modify(own_only, entity="stories", action="update", record_author_id=author_id, user_id=author_id)
    with pytest.raises(HTTPException) as exc:
        ensure_can_modify(own_only, entity="stories", action="update", record_author_id=other_id, user_id=author_id)
    assert exc.value.status_code == 403

    # 完整权限不受作者限制。
    ensure_can_modify({"stories.update"}, entity="stories", action="update", record_author_id=other_id, user_id=author_id)
    # update_own 不覆盖删除。
    with pytest.raises(HTTPException):
        ensure_can_modify(own_only, entity="stories", action="delete", record_author_id=author_id, user_id=author_id)


def test_delete_role_in_use_reports_exact_dependent_count(db_session: Session, roles, make_user):
    role = _custom_role(db_session, "contributor", ["stories.read"])
    for index in range(3):
        make_user(f"dep{index}@example.com", role=role)

    with pytest.raises(HTTPException) as exc:
        delete_role(db_session, role)
    assert exc.value.status_code == 409
    assert exc.value.detail["code"] == "ROLE_IN_USE"
    assert exc.value.detail["details"]["dependent_count"] == 3
    assert "3 user(s)" in exc.value.detail["message"]
    db_session.rollback()
    assert db_session.get(Role, role.id) is not None


def test_delete_unused_role_removes_its_permission_links(db_session: Session, roles):
    role = _custom_role(db_session, "temp", ["stories.read", "pages.read"])
    delete_role(db_session, role)
    db_session.commit()

    assert db_session.get(Role, role.id) is None
    remaining = db_session.execute(
        select(func.count()).select_from(RolePermission).where(RolePermission.role_id == role.id)
    ).scalar_one()
    assert remaining == 0


def test_system_role_and_permission_cannot_be_deleted(db_session: Session, roles):
    with pytest.raises(HTTPException) as exc:
        delete_role(db_session, roles["viewer"])
    assert exc.value.status_code == 422
    assert exc.value.detail["code"] == "SYSTEM_ROLE_PROTECTED"

    with pytest.raises(HTTPException) as exc:
        delete_permission(db_session, _permission(db_session, "stories.read"))
    assert exc.value.detail["code"] == "SYSTEM_PERMISSION_PROTECTED"


def test_delete_custom_permission_in_use_reports_role_count(db_session: Session, roles):
    permission = Permission(name="reports.read", display_name="Read Reports", entity="reports", action="read")
    db_session.add(permission)
    db_session.flush()
    for name in ("ops", "finance"):
        role = Role(name=name, display_name=name.title())
        db_session.add(role)
        db_session.flush()
        set_role_permissions(db_session, role, [permission.id])
    db_session.commit()

    with pytest.raises(HTTPException) as exc:
        delete_permission(db_session, permission)
    assert exc.value.status_code == 409
    assert exc.value.detail["code"] == "PERMISSION_IN_USE"
    assert exc.value.detail["details"]["dependent_count"] == 2


def test_set_role_permissions_rejects_unknown_ids(db_session: Session, roles):
    role = _custom_role(db_session, "strict", [])
    unknown = "11111111-1111-1111-1111-111111111111"
    with pytest.raises(HTTPException) as exc:
        set_role_permissions(db_session, role, [_permission(db_session, "menus.read").id, UUID(unknown)])
    assert exc.value.status_code == 422
    assert exc.value.detail["details"]["missing_ids"] == [unknown]


def test_seed_defaults_is_idempotent_and_matches_role_catalog(db_session: Session):
    seed_defaults(db_session)
    db_session.commit()
    first_count = db_session.execute(select(func.count()).select_from(Permission)).scalar_one()
    link_count = db_session.execute(select(func.count()).select_from(RolePermission)).scalar_one()

    seeded = seed_defaults(db_session)
    db_session.commit()
    assert db_session.execute(select(func.count()).select_from(Permission)).scalar_one() == first_count
    assert db_session.execute(select(func.count()).select_from(RolePermission)).scalar_one() == link_count

    expected_total = sum(len(actions) for actions in DEFAULT_PERMISSION_CATALOG.values())
    assert first_count == expected_total
    assert len(load_role_permission_names(db_session, seeded["admin"].id)) == expected_total

    author = load_role_permission_names(db_session, seeded["author"].id)
    assert author == default_role_permission_names("author")
    assert "stories.update_own" in author
    assert "stories.update" not in author

    editor = load_role_permission_names(db_session, seeded["editor"].id)
    assert "menus.update" in editor
    assert "stories.delete" not in editor
    assert "users.read" not in editor

    viewer = load_role_permission_names(db_session, seeded["viewer"].id)
    assert viewer and all(name.endswith(".read") for name in viewer)


def test_remove_role_route_keeps_role_when_in_use(db_session: Session, roles, make_user, make_ctx, make_request):
    admin = make_user("admin@example.com", role=roles["admin"])
    created = roles_api.create_role(
        payload=RoleCreateRequest(
            name="moderator",
            display_name="Moderator",
            permission_ids=[_permission(db_session, "stories.read").id],
        ),
        request=make_request("/api/admin/roles", "POST"),
        ctx=make_ctx(admin),
        db=db_session,
    )
    role_id = created["data"]["id"]
    assert [item["name"] for item in created["data"]["permissions"]] == ["stories.read"]

    make_user("m1@example.com", role=db_session.get(Role, role_id))
    with pytest.raises(HTTPException) as exc:
        roles_api.remove_role(
            request=make_request(f"/api/admin/roles/{role_id}", "DELETE"),
            role_id=role_id,
            ctx=make_ctx(admin),
            db=db_session,
        )
    assert exc.value.status_code == 409
    assert exc.value.detail["details"]["dependent_count"] == 1
    db_session.rollback()
    assert db_session.get(Role, role_id) is not None
