"""Starts attendance sessions on behalf of a class's teacher."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

from attendance_app.exceptions import ForbiddenError, NotFoundError
from attendance_app.schemas.events import Role
from attendance_app.services.repository import AttendanceRepository
from attendance_app.services.session_store import Session, SessionStore

logger = logging.getLogger(__name__)


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class SessionController:
    def __init__(self, store: SessionStore, repository: AttendanceRepository) -> None:
        self._store = store
        self._repository = repository

    async def start(self, class_id: str, requester_id: str, requester_role: Role | str) -> dict[str, str]:
        """Make ``class_id`` the active session and return ``{classId, startedAt}``.

        Any session already running is replaced, marks and all.
        """
        if requester_role != Role.TEACHER:
            raise ForbiddenError("Forbidden, teacher access required")

        loop = asyncio.get_running_loop()
        class_record = await loop.run_in_executor(
            None, self._repository.find_class_by_id, class_id
        )
        if class_record is None:
            raise NotFoundError("Class not found")
        if class_record.teacher_id != requester_id:
            raise ForbiddenError("Forbidden, not class teacher")

        async with self._store.transaction() as store:
            previous = store.get()
            if previous.is_active:
                logger.warning(
                    "Replacing active session for class %s (%d unpersisted mark(s)) with class %s",
                    previous.class_id, len(previous.attendance), class_id,
                )
            started_at = _utc_now_iso()
            store.set(Session(class_id=class_id, started_at=started_at, attendance={}))

        logger.info("Attendance session started: class=%s teacher=%s", class_id, requester_id)
        return {"classId": class_id, "startedAt": started_at}

    async def snapshot(self) -> dict:
        """Read-only view of the current session for status endpoints."""
        async with self._store.transaction() as store:
            session = store.get()
            return {
                "active": session.is_active,
                "classId": session.class_id,
                "startedAt": session.started_at,
                "marked": len(session.attendance),
            }
