"""认证接口。"""

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy.orm import Session

from cms_api.core.config import get_settings
from cms_api.db.session import get_db
from cms_api.dependencies import AuthContext, get_auth_context
from cms_api.schemas.auth import AuthLoginData, AuthLoginRequest, AuthLogoutData, AuthSwitchAffiliateRequest
from cms_api.schemas.common import ErrorResponse, SuccessResponse
from cms_api.schemas.responses import AuthMeData, RoleData, UserData
from cms_api.services.affiliate_scope import list_user_affiliate_ids, resolve_affiliate_scope
from cms_api.services.local_auth import IssuedToken, authenticate, issue_access_token
from cms_api.utils.response import success

router = APIRouter(prefix="/auth", tags=["auth"])
settings = get_settings()


def _invalid_credentials() -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid credentials")


def _set_auth_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=settings.auth_cookie_name,
        value=token,
        max_age=settings.auth_access_token_ttl_seconds,
        httponly=True,
        secure=settings.auth_cookie_secure,
        samesite="lax",
    )


def _token_data(issued: IssuedToken) -> dict:
    return {
        "access_token": issued.access_token,
        "token_type": "bearer",
        "expires_at": issued.expires_at,
        "expires_in": issued.expires_in,
        "affiliate_id": issued.affiliate_id,
    }


@router.post(
    "/login",
    summary="本地账号登录",
    description="使用邮箱密码登录，返回访问令牌并写入 auth_token Cookie（24 小时有效）。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[AuthLoginData],
    responses={401: {"model": ErrorResponse}},
)
def login(
    payload: AuthLoginRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
):
    """本地账号登录并签发访问令牌。"""
    # 账号不存在、非 active 与口令错误返回同一结果。
    user = authenticate(db, email=payload.email, password=payload.password)
    if user is None:
        raise _invalid_credentials()
    issued = issue_access_token(user)
    db.commit()

    _set_auth_cookie(response, issued.access_token)
    return success(request, _token_data(issued))


@router.post(
    "/logout",
    summary="登出",
    description="清除登录 Cookie。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[AuthLogoutData],
)
def logout(request: Request, response: Response):
    response.delete_cookie(settings.auth_cookie_name)
    return success(request, {"logged_out": True})


@router.get(
    "/me",
    summary="获取当前身份",
    description="返回当前用户资料、角色、权限名集合与可见站点。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[AuthMeData],
    responses={401: {"model": ErrorResponse}},
)
def me(
    request: Request,
    ctx: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    data = {
        "user": UserData.model_validate(ctx.user).model_dump(),
        "role": RoleData.model_validate(ctx.role).model_dump() if ctx.role else None,
        "permissions": sorted(ctx.permissions),
        "affiliate_ids": list_user_affiliate_ids(db, ctx.user_id),
        "session_affiliate_id": ctx.principal.affiliate_id if ctx.principal else None,
    }
    return success(request, data)


@router.post(
    "/switch-affiliate",
    summary="切换会话绑定站点",
    description="校验站点存在与可见性后，重新签发绑定该站点的访问令牌；affiliate_id 为空时解除绑定。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[AuthLoginData],
    responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def switch_affiliate(
    payload: AuthSwitchAffiliateRequest,
    request: Request,
    response: Response,
    ctx: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    if payload.affiliate_id is not None:
        resolve_affiliate_scope(db, user_id=ctx.user_id, candidate_id=payload.affiliate_id)

    issued = issue_access_token(ctx.user, affiliate_id=payload.affiliate_id)
    _set_auth_cookie(response, issued.access_token)
    return success(request, _token_data(issued))
