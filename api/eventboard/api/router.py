from fastapi import APIRouter

from eventboard.api.routes import events, health, moderation

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(events.router, prefix="/events", tags=["events"])
api_router.include_router(moderation.router, prefix="/moderation/events", tags=["moderation"])
