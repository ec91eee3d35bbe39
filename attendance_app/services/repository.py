"""Read/write access to classes, users and persisted attendance.

The live session engine only depends on :class:`AttendanceRepository`.  The
bundled :class:`InMemoryRepository` keeps everything in process memory and
can be seeded from a JSON file::

    {
      "users":   [{"id": "t1", "name": "Ada", "email": "ada@x.io", "role": "teacher",
                   "password": "s3cret"}],
      "classes": [{"id": "c1", "class_name": "Maths", "teacher_id": "t1",
                   "student_ids": ["s1", "s2"]}]
    }

A seeded user may carry a plaintext ``password`` (hashed on load) or a
ready-made ``password_hash`` in werkzeug format.

Methods are synchronous; the async callers run them in the default executor,
so the in-memory maps are guarded by a ``threading.Lock``.
"""
from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Protocol, Sequence

from werkzeug.security import generate_password_hash

from attendance_app.exceptions import PersistenceError

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
#  Records
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class UserRecord:
    id: str
    name: str
    email: str
    role: str
    password_hash: str = field(default="", repr=False)


@dataclass(frozen=True)
class ClassRecord:
    id: str
    class_name: str
    teacher_id: str
    student_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class AttendanceRecord:
    class_id: str
    student_id: str
    status: str


# ─────────────────────────────────────────────────────────────────────────────
#  Contract
# ─────────────────────────────────────────────────────────────────────────────

class AttendanceRepository(Protocol):
    def find_class_by_id(self, class_id: str) -> Optional[ClassRecord]:
        raise NotImplementedError

    def find_user_by_id(self, user_id: str) -> Optional[UserRecord]:
        raise NotImplementedError

    def find_user_by_email(self, email: str) -> Optional[UserRecord]:
        raise NotImplementedError

    def find_students_by_role(self, role: str) -> Sequence[UserRecord]:
        raise NotImplementedError

    def find_students_enrolled(self, class_id: str) -> Sequence[str]:
        raise NotImplementedError

    def find_attendance(self, class_id: str, student_id: str) -> Optional[AttendanceRecord]:
        raise NotImplementedError

    def upsert_attendance_records(self, records: Sequence[AttendanceRecord]) -> None:
        """Create or overwrite one record per ``(class_id, student_id)``.

        Raises :class:`PersistenceError` if the batch could not be written.
        """

        raise NotImplementedError


# ─────────────────────────────────────────────────────────────────────────────
#  In-memory implementation
# ─────────────────────────────────────────────────────────────────────────────

def _seed_password_hash(item: dict) -> str:
    if item.get("password_hash"):
        return item["password_hash"]
    if item.get("password"):
        return generate_password_hash(item["password"])
    return ""


@dataclass
class InMemoryRepository:
    users: dict[str, UserRecord] = field(default_factory=dict)
    classes: dict[str, ClassRecord] = field(default_factory=dict)
    attendance: dict[tuple[str, str], AttendanceRecord] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self._lock = threading.Lock()

    # ── seeding ─────────────────────────────────────────────────────────
    def add_user(self, user: UserRecord) -> UserRecord:
        with self._lock:
            self.users[user.id] = user
        return user

    def add_class(self, class_record: ClassRecord) -> ClassRecord:
        with self._lock:
            self.classes[class_record.id] = class_record
        return class_record

    @classmethod
    def from_seed_file(cls, path: str | Path) -> "InMemoryRepository":
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
        repo = cls()
        for item in raw.get("users", []):
            repo.add_user(UserRecord(
                id=str(item["id"]),
                name=item.get("name", ""),
                email=item.get("email", ""),
                role=item["role"],
                password_hash=_seed_password_hash(item),
            ))
        for item in raw.get("classes", []):
            repo.add_class(ClassRecord(
                id=str(item["id"]),
                class_name=item.get("class_name", ""),
                teacher_id=str(item["teacher_id"]),
                student_ids=tuple(str(s) for s in item.get("student_ids", [])),
            ))
        logger.info("Seeded repository from %s: %d users, %d classes",
                    path, len(repo.users), len(repo.classes))
        return repo

    # ── reads ───────────────────────────────────────────────────────────
    def find_class_by_id(self, class_id: str) -> Optional[ClassRecord]:
        with self._lock:
            return self.classes.get(class_id)

    def find_user_by_id(self, user_id: str) -> Optional[UserRecord]:
        with self._lock:
            return self.users.get(user_id)

    def find_user_by_email(self, email: str) -> Optional[UserRecord]:
        wanted = email.strip().lower()
        with self._lock:
            return next((u for u in self.users.values() if u.email.lower() == wanted), None)

    def find_students_by_role(self, role: str) -> Sequence[UserRecord]:
        with self._lock:
            return [u for u in self.users.values() if u.role == role]

    def find_students_enrolled(self, class_id: str) -> Sequence[str]:
        with self._lock:
            class_record = self.classes.get(class_id)
            return list(class_record.student_ids) if class_record else []

    def find_attendance(self, class_id: str, student_id: str) -> Optional[AttendanceRecord]:
        with self._lock:
            return self.attendance.get((class_id, student_id))

    # ── writes ──────────────────────────────────────────────────────────
    def upsert_attendance_records(self, records: Sequence[AttendanceRecord]) -> None:
        for record in records:
            if not record.class_id or not record.student_id:
                raise PersistenceError("Attendance record is missing its class or student id")
        with self._lock:
            for record in records:
                self.attendance[(record.class_id, record.student_id)] = record
        logger.debug("Upserted %d attendance record(s)", len(records))
