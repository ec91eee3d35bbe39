from __future__ import annotations

import logging
from dataclasses import dataclass

from attendance_app.config import Settings
from attendance_app.services.auth_service import TokenService
from attendance_app.services.event_handlers import AttendanceEventHandlers
from attendance_app.services.realtime_hub import RealtimeHub
from attendance_app.services.repository import AttendanceRepository, InMemoryRepository
from attendance_app.services.session_controller import SessionController
from attendance_app.services.session_store import SessionStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Container:
    settings: Settings
    repository: AttendanceRepository
    tokens: TokenService
    store: SessionStore
    controller: SessionController
    hub: RealtimeHub
    handlers: AttendanceEventHandlers


def build_container(settings: Settings, repository: AttendanceRepository | None = None) -> Container:
    if repository is None:
        if settings.seed_file:
            repository = InMemoryRepository.from_seed_file(settings.seed_file)
        else:
            logger.info("No seed file configured; starting with an empty repository")
            repository = InMemoryRepository()

    tokens = TokenService(settings)
    store = SessionStore()
    controller = SessionController(store, repository)
    hub = RealtimeHub(tokens)
    handlers = AttendanceEventHandlers(store, repository, hub)
    hub.attach(handlers)

    return Container(
        settings=settings,
        repository=repository,
        tokens=tokens,
        store=store,
        controller=controller,
        hub=hub,
        handlers=handlers,
    )
