"""健康检查接口。"""

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from cms_api.core.config import get_settings
from cms_api.db.session import get_db
from cms_api.models.permission import Permission
from cms_api.schemas.common import ErrorResponse, SuccessResponse
from cms_api.schemas.responses import HealthStatusData
from cms_api.utils.response import success

settings = get_settings()
router = APIRouter(prefix="/health", tags=["health"])


@router.get(
    "/live",
    summary="存活探针",
    description="不访问数据库，只回报服务名称与运行环境。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[HealthStatusData],
    responses={500: {"model": ErrorResponse}},
)
def live(request: Request):
    return success(request, {"status": "ok", "service": settings.app_name, "env": settings.app_env})


@router.get(
    "/ready",
    summary="就绪探针",
    description="查询权限目录验证数据库连通，并返回已初始化的权限数量；为 0 时说明尚未执行初始化。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[HealthStatusData],
    responses={500: {"model": ErrorResponse}},
)
def ready(request: Request, db: Session = Depends(get_db)):
    permission_count = int(db.execute(select(func.count()).select_from(Permission)).scalar_one())
    return success(request, {"status": "ready", "permission_count": permission_count})
