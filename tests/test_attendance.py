import uuid

from httpx import AsyncClient
from sqlalchemy import event, func, select
from sqlalchemy.dialects import postgresql
from sqlalchemy.orm import Session

from school_api.core.enums import UserRole
from school_api.core.models import Attendance, ClassSubjectTeacher

MARK_URL = "/api/v1/attendance/mark"
BULK_URL = "/api/v1/attendance/mark-bulk"


def mark_payload(student, school_class, status="present", day="2024-09-02"):
    return {
        "student_id": str(student.id),
        "class_id": str(school_class.id),
        "date": day,
        "status": status,
    }


async def test_mark_attendance(client: AsyncClient, school_setup, headers) -> None:
    teacher = school_setup["teacher"]
    student = school_setup["students"][0]
    response = await client.post(
        MARK_URL, json=mark_payload(student, school_setup["class"]), headers=headers(teacher)
    )
    assert response.status_code == 201
    data = response.json()
    assert data["marked_by"] == str(teacher.id)
    assert data["school_id"] == str(school_setup["school"].id)
    assert data["status"] == "present"


async def test_mark_attendance_twice_conflicts(client: AsyncClient, school_setup, headers) -> None:
    teacher = school_setup["teacher"]
    payload = mark_payload(school_setup["students"][0], school_setup["class"])
    first = await client.post(MARK_URL, json=payload, headers=headers(teacher))
    assert first.status_code == 201

    payload["status"] = "absent"
    second = await client.post(MARK_URL, json=payload, headers=headers(teacher))
    assert second.status_code == 409


async def test_teacher_not_assigned_cannot_mark(client: AsyncClient, school_setup, headers) -> None:
    response = await client.post(
        MARK_URL,
        json=mark_payload(school_setup["students"][0], school_setup["class"]),
        headers=headers(school_setup["other_teacher"]),
    )
    assert response.status_code == 403
    assert response.json()["detail"] == "You are not assigned to this class"


async def test_subject_lead_may_mark(
    client: AsyncClient, school_setup, make_user, make_class, headers
) -> None:
    school = school_setup["school"]
    lead = await make_user(UserRole.TEACHER, school)
    lead_class = await make_class(school, subject_leads={"Mathematics": lead})
    student = await make_user(UserRole.STUDENT, school, lead_class)

    response = await client.post(MARK_URL, json=mark_payload(student, lead_class), headers=headers(lead))
    assert response.status_code == 201


async def test_student_not_in_class_rejected(
    client: AsyncClient, school_setup, make_user, make_class, headers
) -> None:
    other_class = await make_class(school_setup["school"])
    outsider = await make_user(UserRole.STUDENT, school_setup["school"], other_class)
    response = await client.post(
        MARK_URL, json=mark_payload(outsider, school_setup["class"]), headers=headers(school_setup["teacher"])
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Student is not enrolled in this class"


async def test_mark_requires_teacher_role(client: AsyncClient, school_setup, headers) -> None:
    response = await client.post(
        MARK_URL,
        json=mark_payload(school_setup["students"][0], school_setup["class"]),
        headers=headers(school_setup["admin"]),
    )
    assert response.status_code == 403


async def test_bulk_mark_is_all_or_nothing(
    client: AsyncClient, db_session, school_setup, make_user, make_class, headers
) -> None:
    school_class = school_setup["class"]
    other_class = await make_class(school_setup["school"])
    outsider = await make_user(UserRole.STUDENT, school_setup["school"], other_class)
    entries = [{"student_id": str(s.id), "status": "present"} for s in school_setup["students"]]
    entries.append({"student_id": str(outsider.id), "status": "absent"})

    response = await client.post(
        BULK_URL,
        json={"class_id": str(school_class.id), "date": "2024-09-02", "attendance": entries},
        headers=headers(school_setup["teacher"]),
    )
    assert response.status_code == 400
    assert str(outsider.id) in response.json()["detail"]

    count = await db_session.execute(select(func.count(Attendance.id)))
    assert count.scalar_one() == 0


async def test_bulk_mark_then_conflict_on_same_date(client: AsyncClient, school_setup, headers) -> None:
    teacher = school_setup["teacher"]
    body = {
        "class_id": str(school_setup["class"].id),
        "date": "2024-09-02",
        "period_details": {"period": 1, "subject": "Maths"},
        "attendance": [
            {"student_id": str(s.id), "status": status}
            for s, status in zip(school_setup["students"], ["present", "late", "absent"])
        ],
    }
    response = await client.post(BULK_URL, json=body, headers=headers(teacher))
    assert response.status_code == 201
    data = response.json()
    assert data["marked"] == 3
    assert all(r["period_details"]["period"] == 1 for r in data["records"])

    again = await client.post(BULK_URL, json=body, headers=headers(teacher))
    assert again.status_code == 409


async def test_bulk_mark_locks_class_for_the_date_check(client: AsyncClient, school_setup, headers) -> None:
    first, second = school_setup["students"][:2]
    statements = []

    def capture(state):
        if state.is_select and not state.is_relationship_load:
            statements.append(str(state.statement.compile(dialect=postgresql.dialect())))

    event.listen(Session, "do_orm_execute", capture)
    try:
        response = await client.post(
            BULK_URL,
            json={
                "class_id": str(school_setup["class"].id),
                "date": "2024-09-03",
                "attendance": [{"student_id": str(first.id), "status": "present"}],
            },
            headers=headers(school_setup["teacher"]),
        )
    finally:
        event.remove(Session, "do_orm_execute", capture)
    assert response.status_code == 201
    assert any("FROM classes" in sql and sql.rstrip().endswith("FOR UPDATE") for sql in statements)

    # A later batch naming different students is still rejected for that class and date
    other_batch = await client.post(
        BULK_URL,
        json={
            "class_id": str(school_setup["class"].id),
            "date": "2024-09-03",
            "attendance": [{"student_id": str(second.id), "status": "absent"}],
        },
        headers=headers(school_setup["teacher"]),
    )
    assert other_batch.status_code == 409


async def test_bulk_mark_rejects_repeated_student(client: AsyncClient, school_setup, headers) -> None:
    student = school_setup["students"][0]
    body = {
        "class_id": str(school_setup["class"].id),
        "date": "2024-09-02",
        "attendance": [
            {"student_id": str(student.id), "status": "present"},
            {"student_id": str(student.id), "status": "absent"},
        ],
    }
    response = await client.post(BULK_URL, json=body, headers=headers(school_setup["teacher"]))
    assert response.status_code == 400


async def test_only_author_or_admin_may_update(client: AsyncClient, school_setup, headers) -> None:
    teacher = school_setup["teacher"]
    created = await client.post(
        MARK_URL, json=mark_payload(school_setup["students"][0], school_setup["class"]), headers=headers(teacher)
    )
    record_id = created.json()["id"]

    forbidden = await client.patch(
        f"/api/v1/attendance/{record_id}", json={"status": "absent"}, headers=headers(school_setup["other_teacher"])
    )
    assert forbidden.status_code == 403

    updated = await client.patch(
        f"/api/v1/attendance/{record_id}", json={"status": "late", "remarks": "Bus"}, headers=headers(teacher)
    )
    assert updated.status_code == 200
    assert updated.json()["status"] == "late"
    assert updated.json()["remarks"] == "Bus"

    by_admin = await client.patch(
        f"/api/v1/attendance/{record_id}", json={"status": "excused"}, headers=headers(school_setup["admin"])
    )
    assert by_admin.status_code == 200


async def test_delete_attendance(client: AsyncClient, db_session, school_setup, headers) -> None:
    teacher = school_setup["teacher"]
    created = await client.post(
        MARK_URL, json=mark_payload(school_setup["students"][0], school_setup["class"]), headers=headers(teacher)
    )
    record_id = created.json()["id"]

    # A colleague teaching the same class may not delete a record they did not mark
    colleague = school_setup["other_teacher"]
    db_session.add(ClassSubjectTeacher(class_id=school_setup["class"].id, teacher_id=colleague.id))
    await db_session.commit()
    forbidden = await client.delete(f"/api/v1/attendance/{record_id}", headers=headers(colleague))
    assert forbidden.status_code == 403

    assert (await client.delete("/api/v1/attendance/not-a-uuid", headers=headers(teacher))).status_code == 400
    missing = await client.delete(f"/api/v1/attendance/{uuid.uuid4()}", headers=headers(teacher))
    assert missing.status_code == 404

    response = await client.delete(f"/api/v1/attendance/{record_id}", headers=headers(teacher))
    assert response.status_code == 204


async def _mark_week(client, school_setup, headers, student):
    statuses = ["present", "present", "present", "present", "late", "excused", "absent"]
    for day, status in enumerate(statuses, start=2):
        response = await client.post(
            MARK_URL,
            json=mark_payload(student, school_setup["class"], status=status, day=f"2024-09-{day:02d}"),
            headers=headers(school_setup["teacher"]),
        )
        assert response.status_code == 201


async def test_student_stats_rate(client: AsyncClient, school_setup, headers) -> None:
    student = school_setup["students"][0]
    await _mark_week(client, school_setup, headers, student)

    response = await client.get("/api/v1/attendance/student-stats", headers=headers(student))
    assert response.status_code == 200
    data = response.json()
    assert data["total_days"] == 7
    assert data["present"] == 4
    assert data["attendance_rate"] == 85.71

    # Students may not look at anyone else
    other = school_setup["students"][1]
    response = await client.get(
        "/api/v1/attendance/student-stats", params={"student_id": str(other.id)}, headers=headers(student)
    )
    assert response.status_code == 403


async def test_student_stats_requires_student_id_for_staff(client: AsyncClient, school_setup, headers) -> None:
    response = await client.get("/api/v1/attendance/student-stats", headers=headers(school_setup["teacher"]))
    assert response.status_code == 400


async def test_list_scopes_by_role(client: AsyncClient, school_setup, headers) -> None:
    teacher = school_setup["teacher"]
    body = {
        "class_id": str(school_setup["class"].id),
        "date": "2024-09-02",
        "attendance": [{"student_id": str(s.id), "status": "present"} for s in school_setup["students"]],
    }
    assert (await client.post(BULK_URL, json=body, headers=headers(teacher))).status_code == 201

    student = school_setup["students"][0]
    own = await client.get("/api/v1/attendance", headers=headers(student))
    assert own.status_code == 200
    assert own.json()["total"] == 1
    assert own.json()["records"][0]["student_id"] == str(student.id)

    # A student filter naming someone else still returns only the caller's records
    filtered = await client.get(
        "/api/v1/attendance",
        params={"student_id": str(school_setup["students"][1].id)},
        headers=headers(student),
    )
    assert filtered.json()["total"] == 0

    staff_view = await client.get("/api/v1/attendance", params={"status": "present"}, headers=headers(teacher))
    assert staff_view.json()["total"] == 3
    assert staff_view.json()["stats"]["attendance_rate"] == 100.0

    outsider = await client.get("/api/v1/attendance", headers=headers(school_setup["other_teacher"]))
    assert outsider.json()["total"] == 0


async def test_class_report(client: AsyncClient, school_setup, headers) -> None:
    first, second, _ = school_setup["students"]
    teacher = school_setup["teacher"]
    school_class = school_setup["class"]
    for student, status, day in [
        (first, "present", "2024-09-02"),
        (first, "absent", "2024-09-03"),
        (second, "present", "2024-09-02"),
    ]:
        response = await client.post(
            MARK_URL, json=mark_payload(student, school_class, status=status, day=day), headers=headers(teacher)
        )
        assert response.status_code == 201

    report = await client.get(
        "/api/v1/attendance/class-report",
        params={"class_id": str(school_class.id)},
        headers=headers(school_setup["admin"]),
    )
    assert report.status_code == 200
    data = report.json()
    # Only students with records in the range are reported
    assert data["total_students"] == 2
    rates = {s["student_id"]: s["attendance_rate"] for s in data["students"]}
    assert rates == {str(first.id): 50.0, str(second.id): 100.0}
    assert data["summary"]["total_records"] == 3
    assert data["summary"]["average_attendance_rate"] == 75.0

    ranged = await client.get(
        "/api/v1/attendance/class-report",
        params={"class_id": str(school_class.id), "start_date": "2024-09-03"},
        headers=headers(teacher),
    )
    assert ranged.json()["total_students"] == 1

    denied = await client.get(
        "/api/v1/attendance/class-report",
        params={"class_id": str(school_class.id)},
        headers=headers(school_setup["other_teacher"]),
    )
    assert denied.status_code == 403
