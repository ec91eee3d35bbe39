"""
Live attendance session endpoints.

  POST /attendance/start     (teacher, must own the class)
  GET  /attendance/session   (any authenticated user)
"""
from fastapi import APIRouter, Depends

from attendance_app.container import Container
from attendance_app.routes.deps import get_container, get_current_identity
from attendance_app.schemas.response import (
    ApiResponse,
    SessionStarted,
    SessionView,
    StartAttendanceRequest,
)
from attendance_app.services.auth_service import Identity

router = APIRouter(prefix="/attendance", tags=["attendance"])


@router.post("/start", response_model=ApiResponse[SessionStarted])
async def start_attendance(
    body: StartAttendanceRequest,
    identity: Identity = Depends(get_current_identity),
    container: Container = Depends(get_container),
) -> ApiResponse[SessionStarted]:
    """Open the live session for ``classId``, replacing any running one."""
    started = await container.controller.start(body.classId, identity.user_id, identity.role)
    return ApiResponse[SessionStarted](data=SessionStarted(**started))


@router.get("/session", response_model=ApiResponse[SessionView])
async def current_session(
    _: Identity = Depends(get_current_identity),
    container: Container = Depends(get_container),
) -> ApiResponse[SessionView]:
    view = await container.controller.snapshot()
    return ApiResponse[SessionView](data=SessionView(**view))
