"""API v1 汇总路由：统一挂载网盘的全部子路由。"""

from fastapi import APIRouter

from app.packages.drive.api.v1.endpoints import (
    account_settings,
    auth,
    files,
    folders,
    rbac,
    shares,
    storage_sources,
    users,
)

api_router = APIRouter()
api_router.include_router(auth.router)
api_router.include_router(account_settings.router)
api_router.include_router(users.router)
api_router.include_router(rbac.router)
api_router.include_router(storage_sources.router)
api_router.include_router(folders.router)
api_router.include_router(files.router)
api_router.include_router(shares.router)
api_router.include_router(shares.public_router)
