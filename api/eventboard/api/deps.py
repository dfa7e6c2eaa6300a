from fastapi import Depends

from eventboard.core.config import Settings, get_settings
from eventboard.services.listing import EventService
from eventboard.services.moderation import ModerationService
from eventboard.services.notifications import NotificationBus, get_notification_bus
from eventboard.services.repository import get_repository


def get_event_service(
    repository=Depends(get_repository),
    settings: Settings = Depends(get_settings),
) -> EventService:
    return EventService(
        repository,
        default_page_limit=settings.default_page_limit,
        max_page_limit=settings.max_page_limit,
        search_max_length=settings.search_max_length,
        cursor_max_length=settings.cursor_max_length,
    )


def get_moderation_service(
    repository=Depends(get_repository),
    bus: NotificationBus = Depends(get_notification_bus),
    settings: Settings = Depends(get_settings),
) -> ModerationService:
    return ModerationService(
        repository,
        bus,
        pending_page_limit=settings.pending_page_limit,
        max_page_limit=settings.max_page_limit,
    )
