"""The four realtime operations on the live session.

Every event is checked for role first, then for an active session.  Handlers
signal failure by raising an :class:`AttendanceError`; :meth:`handle` turns
it into an ``ERROR`` frame for the caller only.  The whole handler, including
the persistence call made by ``DONE``, runs inside the store's transaction,
so a mark arriving mid-finalize waits for the finalize to finish.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from pydantic import ValidationError

from attendance_app.exceptions import (
    AttendanceError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    PersistenceError,
    ProtocolError,
)
from attendance_app.schemas.events import (
    NOT_YET_UPDATED,
    AttendanceMarked,
    AttendanceStatus,
    Done,
    EventType,
    MarkAttendancePayload,
    MyAttendance,
    Role,
    Summary,
)
from attendance_app.services.realtime_hub import Connection, RealtimeHub
from attendance_app.services.repository import AttendanceRecord, AttendanceRepository
from attendance_app.services.session_store import SessionStore, count_statuses

logger = logging.getLogger(__name__)

NO_SESSION_MESSAGE = "No active attendance session"
PERSIST_FAILED_MESSAGE = "Failed to persist attendance"

Handler = Callable[[Connection, SessionStore, dict[str, Any]], Awaitable[None]]


class AttendanceEventHandlers:
    def __init__(self, store: SessionStore, repository: AttendanceRepository, hub: RealtimeHub) -> None:
        self._store = store
        self._repository = repository
        self._hub = hub
        self._routes: dict[EventType, tuple[Role, Handler]] = {
            EventType.ATTENDANCE_MARKED: (Role.TEACHER, self.mark_attendance),
            EventType.TODAY_SUMMARY: (Role.TEACHER, self.today_summary),
            EventType.MY_ATTENDANCE: (Role.STUDENT, self.my_attendance),
            EventType.DONE: (Role.TEACHER, self.finalize),
        }

    async def handle(self, event_type: EventType, connection: Connection, data: dict[str, Any]) -> None:
        try:
            await self._run(event_type, connection, data)
        except AttendanceError as exc:
            await self._hub.send_error(connection, exc.message)

    async def _run(self, event_type: EventType, connection: Connection, data: dict[str, Any]) -> None:
        required_role, handler = self._routes[event_type]
        if connection.role is not required_role:
            raise ForbiddenError(f"Forbidden, {required_role.value} event only")

        async with self._store.transaction() as store:
            if not store.get().is_active:
                raise InvalidStateError(NO_SESSION_MESSAGE)
            await handler(connection, store, data)

    # ── ATTENDANCE_MARKED ───────────────────────────────────────────────
    async def mark_attendance(self, connection: Connection, store: SessionStore, data: dict[str, Any]) -> None:
        try:
            payload = MarkAttendancePayload.model_validate(data)
        except ValidationError as exc:
            raise ProtocolError("Invalid attendance payload") from exc

        store.get().attendance[payload.studentId] = payload.status
        await self._hub.broadcast(
            EventType.ATTENDANCE_MARKED.value,
            AttendanceMarked(studentId=payload.studentId, status=payload.status),
        )

    # ── TODAY_SUMMARY ───────────────────────────────────────────────────
    async def today_summary(self, connection: Connection, store: SessionStore, data: dict[str, Any]) -> None:
        present, absent, total = count_statuses(store.get().attendance)
        await self._hub.broadcast(
            EventType.TODAY_SUMMARY.value,
            Summary(present=present, absent=absent, total=total),
        )

    # ── MY_ATTENDANCE ───────────────────────────────────────────────────
    async def my_attendance(self, connection: Connection, store: SessionStore, data: dict[str, Any]) -> None:
        status = store.get().attendance.get(connection.user_id, NOT_YET_UPDATED)
        await self._hub.unicast(connection, EventType.MY_ATTENDANCE.value, MyAttendance(status=status))

    # ── DONE ────────────────────────────────────────────────────────────
    async def finalize(self, connection: Connection, store: SessionStore, data: dict[str, Any]) -> None:
        """Fill in absentees, persist every mark, broadcast totals, reset.

        The absentee fill is built on a copy: if the class lookup or the write
        fails, the session is left exactly as it was and ``DONE`` can be sent
        again.  Any store error, typed or not, reaches the caller as
        "Failed to persist attendance".  Upserts are keyed by (class, student) so a retry never
        duplicates records.
        """
        session = store.get()
        class_id = session.class_id
        loop = asyncio.get_running_loop()

        try:
            class_record = await loop.run_in_executor(None, self._repository.find_class_by_id, class_id)
            if class_record is None:
                raise NotFoundError("Class not found")

            enrolled = await loop.run_in_executor(None, self._repository.find_students_enrolled, class_id)
            final = dict(session.attendance)
            for student_id in enrolled:
                final.setdefault(str(student_id), AttendanceStatus.ABSENT.value)

            records = [
                AttendanceRecord(class_id=class_id, student_id=student_id, status=status)
                for student_id, status in final.items()
            ]
            await loop.run_in_executor(None, self._repository.upsert_attendance_records, records)
        except NotFoundError:
            raise
        except PersistenceError as exc:
            logger.error("Failed to persist attendance for class %s: %s", class_id, exc)
            raise PersistenceError(PERSIST_FAILED_MESSAGE) from exc
        except Exception as exc:
            logger.exception("Store error while persisting attendance for class %s", class_id)
            raise PersistenceError(PERSIST_FAILED_MESSAGE) from exc

        present, absent, total = count_statuses(final)
        logger.info("Attendance finalized: class=%s present=%d absent=%d total=%d",
                    class_id, present, absent, total)
        await self._hub.broadcast(
            EventType.DONE.value,
            Done(present=present, absent=absent, total=total),
        )
        store.clear()
