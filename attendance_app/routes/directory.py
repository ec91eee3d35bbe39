"""
Login and read-only lookups over users and classes.

  POST /auth/login                    email + password -> bearer token
  GET  /auth/me                       current user's profile
  GET  /students                      all students (teacher only)
  GET  /class/{class_id}/my-attendance persisted status (enrolled student only)
"""
import logging

from fastapi import APIRouter, Depends

from attendance_app.container import Container
from attendance_app.exceptions import AttendanceError, ForbiddenError, NotFoundError
from attendance_app.routes.deps import get_container, get_current_identity, require_role
from attendance_app.schemas.events import Role
from attendance_app.schemas.response import (
    ApiResponse,
    LoginRequest,
    LoginToken,
    MyClassAttendance,
    StudentSummary,
    UserProfile,
)
from attendance_app.services.auth_service import Identity, password_matches

logger = logging.getLogger(__name__)

router = APIRouter(tags=["directory"])


@router.post("/auth/login", response_model=ApiResponse[LoginToken])
def login(
    body: LoginRequest,
    container: Container = Depends(get_container),
) -> ApiResponse[LoginToken]:
    """Exchange credentials for a token usable on every route and on /ws."""
    user = container.repository.find_user_by_email(body.email)
    if user is None or not password_matches(user.password_hash, body.password):
        logger.info("Rejected login for %s", body.email)
        raise AttendanceError("Invalid email or password")

    token = container.tokens.issue(user.id, user.role)
    return ApiResponse[LoginToken](data=LoginToken(token=token))


@router.get("/auth/me", response_model=ApiResponse[UserProfile])
def get_me(
    identity: Identity = Depends(get_current_identity),
    container: Container = Depends(get_container),
) -> ApiResponse[UserProfile]:
    user = container.repository.find_user_by_id(identity.user_id)
    if user is None:
        raise NotFoundError("User not found")
    return ApiResponse[UserProfile](
        data=UserProfile(id=user.id, name=user.name, email=user.email, role=user.role),
    )


@router.get("/students", response_model=ApiResponse[list[StudentSummary]])
def list_students(
    _: Identity = Depends(require_role(Role.TEACHER)),
    container: Container = Depends(get_container),
) -> ApiResponse[list[StudentSummary]]:
    students = container.repository.find_students_by_role(Role.STUDENT.value)
    return ApiResponse[list[StudentSummary]](
        data=[StudentSummary(id=s.id, name=s.name, email=s.email) for s in students],
    )


@router.get("/class/{class_id}/my-attendance", response_model=ApiResponse[MyClassAttendance])
def my_class_attendance(
    class_id: str,
    identity: Identity = Depends(require_role(Role.STUDENT)),
    container: Container = Depends(get_container),
) -> ApiResponse[MyClassAttendance]:
    """Status written by the last finalize, or null if none yet."""
    class_record = container.repository.find_class_by_id(class_id)
    if class_record is None:
        raise NotFoundError("Class not found")
    if identity.user_id not in class_record.student_ids:
        raise ForbiddenError("Forbidden, not enrolled in this class")

    record = container.repository.find_attendance(class_id, identity.user_id)
    return ApiResponse[MyClassAttendance](
        data=MyClassAttendance(classId=class_id, status=record.status if record else None),
    )
