"""开发环境初始化：建表、写入内置权限与系统角色，可选创建管理员与默认站点。

用法：
    python -m cms_api.db.bootstrap --admin-email admin@example.com --admin-password secret123
"""

import argparse
import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from cms_api.db.base import create_schema
from cms_api.db.session import engine, session_scope
from cms_api.models.user import User
from cms_api.services.affiliates import create_affiliate_with_defaults
from cms_api.services.local_auth import hash_password, normalize_email
from cms_api.services.permissions import seed_defaults

logger = logging.getLogger("cms_api.bootstrap")

DEFAULT_AFFILIATE_NAME = "Default"


@dataclass
class BootstrapResult:
    role_ids: dict[str, UUID]
    admin_user_id: UUID | None = None
    affiliate_id: UUID | None = None


def bootstrap(
    db: Session,
    *,
    admin_email: str | None = None,
    admin_password: str | None = None,
) -> BootstrapResult:
    """幂等初始化；管理员已存在时不重复创建，也不修改其密码。"""
    roles = seed_defaults(db)
    result = BootstrapResult(role_ids={name: role.id for name, role in roles.items()})
    if not admin_email or not admin_password:
        db.commit()
        return result

    email = normalize_email(admin_email)
    admin = db.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if admin is None:
        admin = User(
            email=email,
            password_hash=hash_password(admin_password),
            first_name="Admin",
            last_name="",
            role_id=roles["admin"].id,
        )
        db.add(admin)
        db.flush()
        affiliate, _ = create_affiliate_with_defaults(
            db,
            creator_user_id=admin.id,
            values={"name": DEFAULT_AFFILIATE_NAME},
        )
        result.affiliate_id = affiliate.id
        logger.info("created admin user=%s affiliate=%s", email, affiliate.slug)
    result.admin_user_id = admin.id
    db.commit()
    return result


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Create tables and seed default roles/permissions.")
    parser.add_argument("--admin-email", default=None)
    parser.add_argument("--admin-password", default=None)
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
    create_schema(engine)
    with session_scope() as db:
        bootstrap(db, admin_email=args.admin_email, admin_password=args.admin_password)


if __name__ == "__main__":
    main()
