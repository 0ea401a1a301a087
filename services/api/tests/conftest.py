import os

# 测试环境：内存库 + 低迭代次数口令哈希，需在导入应用模块前设置。
os.environ.setdefault("CMS_DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("CMS_AUTH_PASSWORD_HASH_ITERATIONS", "1000")

from collections.abc import Callable, Iterable
from uuid import UUID

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session
from starlette.requests import Request

from cms_api.core.security import AuthenticatedPrincipal
from cms_api.db.base import create_schema
from cms_api.db.bootstrap import bootstrap
from cms_api.db.session import build_engine, build_session_factory, get_db
from cms_api.dependencies import AuthContext
from cms_api.main import app
from cms_api.models.affiliate import Affiliate, UserAffiliate
from cms_api.models.permission import Role
from cms_api.models.user import User
from cms_api.services.affiliate_scope import AffiliateScope, resolve_affiliate_scope
from cms_api.services.local_auth import hash_password
from cms_api.services.permissions import load_role_permission_names, seed_defaults


ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "secret123"


@pytest.fixture
def http():
    """完整应用 + 独立内存库，已初始化权限、管理员与默认站点。"""
    engine = build_engine("sqlite+pysqlite://")
    create_schema(engine)
    local_session = build_session_factory(engine)
    with local_session() as db:
        seeded = bootstrap(db, admin_email=ADMIN_EMAIL, admin_password=ADMIN_PASSWORD)

    def _override_get_db():
        db = local_session()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _override_get_db
    try:
        with TestClient(app) as client:
            yield client, seeded
    finally:
        app.dependency_overrides.pop(get_db, None)
        engine.dispose()


@pytest.fixture
def db_session() -> Session:
    engine = build_engine("sqlite+pysqlite:///:memory:")
    create_schema(engine)
    db = build_session_factory(engine)()
    try:
        yield db
    finally:
        db.close()
        engine.dispose()


@pytest.fixture
def roles(db_session: Session) -> dict[str, Role]:
    seeded = seed_defaults(db_session)
    db_session.commit()
    return seeded


@pytest.fixture
def make_request() -> Callable[..., Request]:
    def _make(path: str = "/test", method: str = "GET") -> Request:
        request = Request({"type": "http", "method": method, "path": path, "headers": []})
        request.state.request_id = "test-request-id"
        return request

    return _make


@pytest.fixture
def make_affiliate(db_session: Session) -> Callable[..., Affiliate]:
    def _make(slug: str, *, name: str | None = None) -> Affiliate:
        affiliate = Affiliate(name=name or slug.title(), slug=slug, settings={})
        db_session.add(affiliate)
        db_session.commit()
        return affiliate

    return _make


@pytest.fixture
def make_user(db_session: Session) -> Callable[..., User]:
    def _make(
        email: str,
        *,
        role: Role | None = None,
        created_by: User | None = None,
        affiliates: Iterable[Affiliate] = (),
        password: str = "secret123",
    ) -> User:
        user = User(
            email=email,
            password_hash=hash_password(password),
            first_name=email.split("@")[0].title(),
            last_name="Test",
            role_id=role.id if role else None,
            created_by=created_by.id if created_by else None,
        )
        db_session.add(user)
        db_session.flush()
        for affiliate in affiliates:
            db_session.add(UserAffiliate(user_id=user.id, affiliate_id=affiliate.id))
        db_session.commit()
        return user

    return _make


@pytest.fixture
def make_ctx(db_session: Session) -> Callable[..., AuthContext]:
    def _make(user: User, *, session_affiliate_id: UUID | None = None) -> AuthContext:
        claims = {"sub": str(user.id)}
        if session_affiliate_id is not None:
            claims["affiliate_id"] = str(session_affiliate_id)
        principal = AuthenticatedPrincipal(
            subject=str(user.id),
            email=user.email,
            role_id=str(user.role_id) if user.role_id else None,
            affiliate_id=str(session_affiliate_id) if session_affiliate_id else None,
            claims=claims,
        )
        role = db_session.get(Role, user.role_id) if user.role_id else None
        return AuthContext(
            user=user,
            role=role,
            permissions=load_role_permission_names(db_session, user.role_id),
            principal=principal,
        )

    return _make


@pytest.fixture
def make_scope(db_session: Session) -> Callable[..., AffiliateScope]:
    def _make(user: User, affiliate: Affiliate | None = None, *, want_global: bool = False) -> AffiliateScope:
        return resolve_affiliate_scope(
            db_session,
            user_id=user.id,
            candidate_id=affiliate.id if affiliate else None,
            want_global=want_global,
        )

    return _make
