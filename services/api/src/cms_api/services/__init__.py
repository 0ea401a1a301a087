"""服务层能力导出集合。"""

from cms_api.services.affiliate_scope import AffiliateScope, resolve_affiliate_scope, resolve_candidate_affiliate_id
from cms_api.services.affiliates import (
    build_unique_affiliate_slug,
    create_affiliate_with_defaults,
    member_has_capability,
    normalize_affiliate_slug,
)
from cms_api.services.audit import audit_log
from cms_api.services.local_auth import hash_password, issue_access_token, normalize_email, verify_password
from cms_api.services.menu_tree import MenuNode, MenuTreeValidationError, load_tree, move_node, validate_links
from cms_api.services.permissions import (
    ensure_can_modify,
    has_permission,
    permission_name,
    require_modify_permission,
    require_permission_name,
    seed_defaults,
    set_role_permissions,
)
from cms_api.services.team import TeamSnapshot, is_in_team_scope, load_subordinates, load_team

__all__ = [
    "AffiliateScope",
    "resolve_affiliate_scope",
    "resolve_candidate_affiliate_id",
    "normalize_affiliate_slug",
    "build_unique_affiliate_slug",
    "create_affiliate_with_defaults",
    "member_has_capability",
    "audit_log",
    "normalize_email",
    "hash_password",
    "verify_password",
    "issue_access_token",
    "MenuNode",
    "MenuTreeValidationError",
    "load_tree",
    "move_node",
    "validate_links",
    "permission_name",
    "has_permission",
    "require_permission_name",
    "require_modify_permission",
    "ensure_can_modify",
    "set_role_permissions",
    "seed_defaults",
    "TeamSnapshot",
    "load_team",
    "load_subordinates",
    "is_in_team_scope",
]
