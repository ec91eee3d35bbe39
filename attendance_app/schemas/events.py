"""Realtime protocol: event names, roles and payload models.

Every frame in either direction is JSON text shaped ``{"event": ..., "data": {...}}``.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field


class Role(str, Enum):
    TEACHER = "teacher"
    STUDENT = "student"


class AttendanceStatus(str, Enum):
    PRESENT = "present"
    ABSENT = "absent"


NOT_YET_UPDATED = "not yet updated"


class EventType(str, Enum):
    """Inbound events a client may send.  Anything else is rejected."""

    ATTENDANCE_MARKED = "ATTENDANCE_MARKED"
    TODAY_SUMMARY = "TODAY_SUMMARY"
    MY_ATTENDANCE = "MY_ATTENDANCE"
    DONE = "DONE"


ERROR_EVENT = "ERROR"


class Envelope(BaseModel):
    event: str
    data: dict[str, Any] | None = None


# ── Inbound payloads ─────────────────────────────────────────────────────────
class MarkAttendancePayload(BaseModel):
    studentId: str = Field(min_length=1)
    status: Literal["present", "absent"]


# ── Outbound payloads ────────────────────────────────────────────────────────
class AttendanceMarked(BaseModel):
    studentId: str
    status: str


class Summary(BaseModel):
    present: int
    absent: int
    total: int


class MyAttendance(BaseModel):
    status: str


class Done(Summary):
    message: str = "Attendance persisted"


class ErrorPayload(BaseModel):
    message: str
