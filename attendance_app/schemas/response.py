from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


# ── envelope shared by every JSON route ──────────────────────────────────────
class ApiResponse(BaseModel, Generic[T]):
    success: bool = True
    data: T


class ErrorResponse(BaseModel):
    success: bool = False
    error: str


# ── attendance sessions ──────────────────────────────────────────────────────
class StartAttendanceRequest(BaseModel):
    classId: str = Field(min_length=1)


class SessionStarted(BaseModel):
    classId: str
    startedAt: str


class SessionView(BaseModel):
    active: bool
    classId: str | None = None
    startedAt: str | None = None
    marked: int = 0


# ── login ────────────────────────────────────────────────────────────────────
class LoginRequest(BaseModel):
    email: str = Field(min_length=1)
    password: str = Field(min_length=1)


class LoginToken(BaseModel):
    token: str


# ── users / classes ──────────────────────────────────────────────────────────
class StudentSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="_id")
    name: str
    email: str


class UserProfile(StudentSummary):
    role: str


class MyClassAttendance(BaseModel):
    classId: str
    status: str | None = None


# ── health ───────────────────────────────────────────────────────────────────
class HealthStatus(BaseModel):
    status: str = "Server is running"
    timestamp: str
