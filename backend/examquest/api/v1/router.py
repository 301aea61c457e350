from fastapi import APIRouter

from examquest.api.v1.endpoints import (
    admin,
    auth,
    health,
    play,
    profile,
    progression,
)

api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(auth.router)
api_router.include_router(profile.router)
api_router.include_router(progression.router)
api_router.include_router(progression.notifications_router)
api_router.include_router(play.router)
api_router.include_router(admin.router)
