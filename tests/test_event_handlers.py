from __future__ import annotations

import asyncio

import pytest

from attendance_app.schemas.events import EventType, Role
from attendance_app.services.repository import ClassRecord

from fakes import FlakyRepository, GatedRepository, seed

MARK = EventType.ATTENDANCE_MARKED
SUMMARY = EventType.TODAY_SUMMARY
MINE = EventType.MY_ATTENDANCE
DONE = EventType.DONE


@pytest.fixture
async def room(engine):
    """Active session for class C with teacher t1 and students A and B connected."""
    await engine.controller.start("C", "t1", Role.TEACHER)
    teacher, teacher_ws = await engine.connect("t1", Role.TEACHER)
    student_a, a_ws = await engine.connect("A", Role.STUDENT)
    student_b, b_ws = await engine.connect("B", Role.STUDENT)
    return engine, (teacher, teacher_ws), (student_a, a_ws), (student_b, b_ws)


# ─────────────────────────────────────────────────────────────────────────────
#  Gating
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.parametrize("event", [MARK, SUMMARY, MINE, DONE])
async def test_every_event_needs_an_active_session(engine, event):
    role = Role.STUDENT if event is MINE else Role.TEACHER
    conn, ws = await engine.connect("A" if role is Role.STUDENT else "t1", role)
    _, bystander = await engine.connect("B", Role.STUDENT)

    await engine.handlers.handle(event, conn, {"studentId": "A", "status": "present"})

    assert ws.frames == [{"event": "ERROR", "data": {"message": "No active attendance session"}}]
    assert bystander.frames == []


@pytest.mark.parametrize("event", [MARK, SUMMARY, DONE])
async def test_teacher_events_reject_students(room, event):
    engine, (_, teacher_ws), (student, a_ws), _ = room

    await engine.handlers.handle(event, student, {"studentId": "A", "status": "present"})

    assert a_ws.frames == [{"event": "ERROR", "data": {"message": "Forbidden, teacher event only"}}]
    assert teacher_ws.frames == []
    assert engine.store.get().attendance == {}
    assert engine.store.get().is_active


async def test_student_event_rejects_teacher(room):
    engine, (teacher, teacher_ws), _, _ = room

    await engine.handlers.handle(MINE, teacher, {})

    assert teacher_ws.last() == {"event": "ERROR", "data": {"message": "Forbidden, student event only"}}


async def test_role_is_checked_before_session(engine):
    student, ws = await engine.connect("A", Role.STUDENT)
    await engine.handlers.handle(DONE, student, {})
    assert ws.last()["data"]["message"] == "Forbidden, teacher event only"


# ─────────────────────────────────────────────────────────────────────────────
#  ATTENDANCE_MARKED / TODAY_SUMMARY / MY_ATTENDANCE
# ─────────────────────────────────────────────────────────────────────────────

async def test_mark_is_broadcast_to_everyone(room):
    engine, (teacher, teacher_ws), (_, a_ws), (_, b_ws) = room

    await engine.handlers.handle(MARK, teacher, {"studentId": "A", "status": "present"})

    expected = {"event": "ATTENDANCE_MARKED", "data": {"studentId": "A", "status": "present"}}
    assert teacher_ws.frames == [expected]
    assert a_ws.frames == [expected]
    assert b_ws.frames == [expected]
    assert engine.store.get().attendance == {"A": "present"}


async def test_last_mark_wins(room):
    engine, (teacher, _), _, _ = room
    for status in ("present", "absent", "absent", "present", "absent"):
        await engine.handlers.handle(MARK, teacher, {"studentId": "B", "status": status})
    assert engine.store.get().attendance == {"B": "absent"}


@pytest.mark.parametrize("data", [
    {},
    {"studentId": "A"},
    {"studentId": "", "status": "present"},
    {"studentId": "A", "status": "late"},
])
async def test_bad_mark_payload_is_rejected(room, data):
    engine, (teacher, teacher_ws), (_, a_ws), _ = room

    await engine.handlers.handle(MARK, teacher, data)

    assert teacher_ws.frames == [{"event": "ERROR", "data": {"message": "Invalid attendance payload"}}]
    assert a_ws.frames == []
    assert engine.store.get().attendance == {}


async def test_summary_counts_distinct_students(room):
    engine, (teacher, teacher_ws), (_, a_ws), _ = room
    marks = [("A", "present"), ("B", "absent"), ("D", "present"), ("B", "present"), ("A", "absent")]
    for student_id, status in marks:
        await engine.handlers.handle(MARK, teacher, {"studentId": student_id, "status": status})

    await engine.handlers.handle(SUMMARY, teacher, {})

    summary = {"event": "TODAY_SUMMARY", "data": {"present": 2, "absent": 1, "total": 3}}
    assert teacher_ws.last() == summary
    assert a_ws.last() == summary


async def test_my_attendance_is_unicast(room):
    engine, (teacher, teacher_ws), (student_a, a_ws), (_, b_ws) = room

    await engine.handlers.handle(MINE, student_a, {})
    assert a_ws.last() == {"event": "MY_ATTENDANCE", "data": {"status": "not yet updated"}}

    await engine.handlers.handle(MARK, teacher, {"studentId": "A", "status": "present"})
    await engine.handlers.handle(MINE, student_a, {})
    assert a_ws.last() == {"event": "MY_ATTENDANCE", "data": {"status": "present"}}

    assert "MY_ATTENDANCE" not in b_ws.events()
    assert "MY_ATTENDANCE" not in teacher_ws.events()


# ─────────────────────────────────────────────────────────────────────────────
#  DONE
# ─────────────────────────────────────────────────────────────────────────────

async def test_finalize_fills_absentees_persists_and_resets(room):
    engine, (teacher, teacher_ws), (_, a_ws), _ = room
    await engine.handlers.handle(MARK, teacher, {"studentId": "A", "status": "present"})

    await engine.handlers.handle(DONE, teacher, {})

    done = {"event": "DONE", "data": {"present": 1, "absent": 2, "total": 3, "message": "Attendance persisted"}}
    assert teacher_ws.last() == done
    assert a_ws.last() == done

    repo = engine.repository
    assert {k: r.status for k, r in repo.attendance.items()} == {
        ("C", "A"): "present",
        ("C", "B"): "absent",
        ("C", "D"): "absent",
    }
    assert not engine.store.get().is_active
    assert engine.store.get().attendance == {}


async def test_marks_for_unenrolled_students_are_persisted_too(room):
    engine, (teacher, _), _, _ = room
    await engine.handlers.handle(MARK, teacher, {"studentId": "guest", "status": "present"})

    await engine.handlers.handle(DONE, teacher, {})

    assert engine.repository.find_attendance("C", "guest").status == "present"
    assert len(engine.repository.attendance) == 4


@pytest.mark.parametrize("event", [MARK, SUMMARY, MINE, DONE])
async def test_events_after_finalize_see_no_session(room, event):
    engine, (teacher, teacher_ws), (student_a, a_ws), _ = room
    await engine.handlers.handle(DONE, teacher, {})

    conn, ws = (student_a, a_ws) if event is MINE else (teacher, teacher_ws)
    await engine.handlers.handle(event, conn, {"studentId": "A", "status": "present"})

    assert ws.last() == {"event": "ERROR", "data": {"message": "No active attendance session"}}


async def test_finalize_with_missing_class_keeps_session(room):
    engine, (teacher, teacher_ws), (_, a_ws), _ = room
    await engine.handlers.handle(MARK, teacher, {"studentId": "A", "status": "present"})
    del engine.repository.classes["C"]

    await engine.handlers.handle(DONE, teacher, {})

    assert teacher_ws.last() == {"event": "ERROR", "data": {"message": "Class not found"}}
    assert a_ws.events() == ["ATTENDANCE_MARKED"]
    assert engine.store.get().class_id == "C"
    assert engine.store.get().attendance == {"A": "present"}


async def test_failed_persist_keeps_session_and_retry_does_not_duplicate(make_engine):
    repo = seed(FlakyRepository(failures=1))
    engine = make_engine(repo)
    await engine.controller.start("C", "t1", Role.TEACHER)
    teacher, teacher_ws = await engine.connect("t1", Role.TEACHER)
    _, a_ws = await engine.connect("A", Role.STUDENT)
    await engine.handlers.handle(MARK, teacher, {"studentId": "A", "status": "present"})

    await engine.handlers.handle(DONE, teacher, {})

    assert teacher_ws.last() == {"event": "ERROR", "data": {"message": "Failed to persist attendance"}}
    assert "DONE" not in a_ws.events()
    assert engine.store.get().class_id == "C"
    assert engine.store.get().attendance == {"A": "present"}
    assert repo.attendance == {}

    await engine.handlers.handle(DONE, teacher, {})

    assert teacher_ws.last()["event"] == "DONE"
    assert repo.write_calls == 2
    assert repo.batches[0] == repo.batches[1]
    assert len(repo.attendance) == 3
    assert not engine.store.get().is_active


@pytest.mark.parametrize("error", [ConnectionError("store unreachable"), OSError("disk full"), ValueError("driver bug")])
async def test_untyped_store_error_is_reported_as_persist_failure(make_engine, error):
    repo = seed(FlakyRepository(failures=1, error=error))
    engine = make_engine(repo)
    await engine.controller.start("C", "t1", Role.TEACHER)
    teacher, teacher_ws = await engine.connect("t1", Role.TEACHER)
    await engine.handlers.handle(MARK, teacher, {"studentId": "B", "status": "present"})

    await engine.hub.handle_message(teacher, '{"event": "DONE"}')

    assert teacher_ws.last() == {"event": "ERROR", "data": {"message": "Failed to persist attendance"}}
    assert engine.store.get().is_active
    assert engine.store.get().attendance == {"B": "present"}
    assert repo.attendance == {}

    await engine.hub.handle_message(teacher, '{"event": "DONE"}')

    assert teacher_ws.last()["data"] == {"present": 1, "absent": 2, "total": 3, "message": "Attendance persisted"}
    assert repo.find_attendance("C", "B").status == "present"
    assert not engine.store.get().is_active


async def test_mark_during_finalize_waits_for_it(make_engine):
    repo = seed(GatedRepository())
    engine = make_engine(repo)
    await engine.controller.start("C", "t1", Role.TEACHER)
    teacher, teacher_ws = await engine.connect("t1", Role.TEACHER)
    loop = asyncio.get_running_loop()

    finalize = asyncio.create_task(engine.handlers.handle(DONE, teacher, {}))
    assert await loop.run_in_executor(None, repo.entered.wait, 5)

    late_mark = asyncio.create_task(
        engine.handlers.handle(MARK, teacher, {"studentId": "A", "status": "present"})
    )
    await asyncio.sleep(0.05)
    assert not late_mark.done()
    assert engine.store.get().attendance == {}

    repo.release.set()
    await asyncio.gather(finalize, late_mark)

    assert teacher_ws.events() == ["DONE", "ERROR"]
    assert teacher_ws.last()["data"]["message"] == "No active attendance session"
    assert repo.find_attendance("C", "A").status == "absent"


async def test_empty_class_finalizes_with_zero_totals(make_engine):
    repo = seed(GatedRepository())
    repo.release.set()
    repo.add_class(ClassRecord(id="Z", class_name="Empty", teacher_id="t1"))
    engine = make_engine(repo)
    await engine.controller.start("Z", "t1", Role.TEACHER)
    teacher, teacher_ws = await engine.connect("t1", Role.TEACHER)

    await engine.handlers.handle(DONE, teacher, {})

    assert teacher_ws.last()["data"] == {"present": 0, "absent": 0, "total": 0, "message": "Attendance persisted"}
