"""The single live attendance session, held in process memory.

Nothing here is persisted: a restart loses an unfinished session.  The store
does no validation of its own; callers enforce the invariants and must do
their whole read-modify-write inside :meth:`SessionStore.transaction`.
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator

from attendance_app.schemas.events import AttendanceStatus


@dataclass
class Session:
    class_id: str | None = None
    started_at: str | None = None
    attendance: dict[str, str] = field(default_factory=dict)

    @property
    def is_active(self) -> bool:
        return self.class_id is not None


def count_statuses(attendance: dict[str, str]) -> tuple[int, int, int]:
    """Return ``(present, absent, total)`` where total = present + absent."""
    values = list(attendance.values())
    present = values.count(AttendanceStatus.PRESENT.value)
    absent = values.count(AttendanceStatus.ABSENT.value)
    return present, absent, present + absent


class SessionStore:
    def __init__(self) -> None:
        self._session = Session()
        self._lock = asyncio.Lock()

    def get(self) -> Session:
        return self._session

    def set(self, session: Session) -> None:
        self._session = session

    def clear(self) -> Session:
        self._session = Session()
        return self._session

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["SessionStore"]:
        """Hold the store exclusively for one read-modify-write."""
        async with self._lock:
            yield self
