import uuid

from httpx import AsyncClient
from sqlalchemy import select

from school_api.core.enums import UserRole
from school_api.core.models import ClassSubjectTeacher, SchoolClass, TeacherClassAssignment

UM_URL = "/api/v1/user-management"


def person(school, email, **extra):
    body = {
        "first_name": "Alex",
        "last_name": "Rivera",
        "email": email,
        "password": "StrongPass123",
        "school_id": str(school.id),
    }
    body.update(extra)
    return body


async def test_create_teacher_with_assigned_classes(
    client: AsyncClient, db_session, school_setup, headers
) -> None:
    school = school_setup["school"]
    body = person(
        school,
        "new.teacher@example.com",
        employee_id="EMP-7",
        qualification="MSc",
        assigned_classes=[str(school_setup["class"].id)],
    )
    response = await client.post(f"{UM_URL}/teachers", json=body, headers=headers(school_setup["admin"]))
    assert response.status_code == 201
    data = response.json()
    assert data["role"] == "TEACHER"
    assert data["school_id"] == str(school.id)
    assert data["employee_id"] == "EMP-7"
    assert data["assigned_classes"] == [str(school_setup["class"].id)]

    rows = await db_session.execute(
        select(TeacherClassAssignment.class_id).where(TeacherClassAssignment.teacher_id == uuid.UUID(data["id"]))
    )
    assert rows.scalars().all() == [school_setup["class"].id]

    fetched = await client.get(f"{UM_URL}/users/{data['id']}", headers=headers(school_setup["admin"]))
    assert fetched.json()["assigned_classes"] == [str(school_setup["class"].id)]

    duplicate = await client.post(f"{UM_URL}/teachers", json=body, headers=headers(school_setup["admin"]))
    assert duplicate.status_code == 409
    assert duplicate.json()["detail"] == "User with this email already exists"


async def test_create_teacher_rejects_foreign_class(
    client: AsyncClient, school_setup, make_school, make_class, headers
) -> None:
    foreign_class = await make_class(await make_school("Elsewhere"))
    body = person(school_setup["school"], "t2@example.com", assigned_classes=[str(foreign_class.id)])
    response = await client.post(f"{UM_URL}/teachers", json=body, headers=headers(school_setup["admin"]))
    assert response.status_code == 400


async def test_school_admin_confined_to_own_school(
    client: AsyncClient, school_setup, make_school, headers
) -> None:
    other = await make_school("Elsewhere")
    response = await client.post(
        f"{UM_URL}/teachers", json=person(other, "t3@example.com"), headers=headers(school_setup["admin"])
    )
    assert response.status_code == 403
    assert response.json()["detail"] == "You can only create teachers for your own school"

    response = await client.post(
        f"{UM_URL}/teachers", json=person(school_setup["school"], "t4@example.com"), headers=headers(school_setup["teacher"])
    )
    assert response.status_code == 403


async def test_create_student(client: AsyncClient, school_setup, make_school, make_class, headers) -> None:
    school = school_setup["school"]
    admin_headers = headers(school_setup["admin"])
    body = person(
        school,
        "pupil@example.com",
        class_id=str(school_setup["class"].id),
        roll_number="12",
        gender="female",
        date_of_birth="2012-04-01",
        parent_details={"father_name": "Sam Rivera", "contact_number": "+15550001111"},
    )
    response = await client.post(f"{UM_URL}/students", json=body, headers=admin_headers)
    assert response.status_code == 201
    data = response.json()
    assert data["role"] == "STUDENT"
    assert data["class_id"] == str(school_setup["class"].id)
    assert data["gender"] == "female"
    assert data["parent_details"]["father_name"] == "Sam Rivera"

    missing = await client.post(
        f"{UM_URL}/students",
        json=person(school, "p2@example.com", class_id=str(uuid.uuid4())),
        headers=admin_headers,
    )
    assert missing.status_code == 404

    foreign_class = await make_class(await make_school("Elsewhere"))
    foreign = await client.post(
        f"{UM_URL}/students",
        json=person(school, "p3@example.com", class_id=str(foreign_class.id)),
        headers=admin_headers,
    )
    assert foreign.status_code == 400
    assert foreign.json()["detail"] == "Class does not belong to the specified school"


async def test_list_students_with_search_and_teacher_scope(
    client: AsyncClient, school_setup, make_user, make_class, headers
) -> None:
    school = school_setup["school"]
    untaught_class = await make_class(school)
    await make_user(UserRole.STUDENT, school, untaught_class, first_name="Zelda")
    url = f"{UM_URL}/schools/{school.id}/students"

    everyone = await client.get(url, headers=headers(school_setup["admin"]))
    assert everyone.status_code == 200
    assert everyone.json()["total"] == 4

    found = await client.get(url, params={"search": "zel"}, headers=headers(school_setup["admin"]))
    assert [u["first_name"] for u in found.json()["users"]] == ["Zelda"]

    # Teachers see only the students of classes they teach
    taught = await client.get(url, headers=headers(school_setup["teacher"]))
    assert taught.json()["total"] == 3

    teachers = await client.get(
        f"{UM_URL}/schools/{school.id}/teachers", params={"limit": 1}, headers=headers(school_setup["admin"])
    )
    assert teachers.json()["total"] == 2
    assert teachers.json()["total_pages"] == 2
    assert len(teachers.json()["users"]) == 1


async def test_get_user_visibility(client: AsyncClient, school_setup, make_user, make_class, headers) -> None:
    student = school_setup["students"][0]
    url = f"{UM_URL}/users/{student.id}"

    assert (await client.get(url, headers=headers(school_setup["teacher"]))).status_code == 200
    assert (await client.get(url, headers=headers(school_setup["other_teacher"]))).status_code == 403
    assert (await client.get(url, headers=headers(school_setup["admin"]))).status_code == 200
    assert (await client.get(f"{UM_URL}/users/{uuid.uuid4()}", headers=headers(school_setup["admin"]))).status_code == 404


async def test_update_user(client: AsyncClient, school_setup, make_class, headers) -> None:
    student, other = school_setup["students"][:2]
    admin_headers = headers(school_setup["admin"])
    new_class = await make_class(school_setup["school"])

    response = await client.patch(
        f"{UM_URL}/users/{student.id}",
        json={"first_name": "Robin", "class_id": str(new_class.id), "is_active": False},
        headers=admin_headers,
    )
    assert response.status_code == 200
    data = response.json()
    assert data["first_name"] == "Robin"
    assert data["class_id"] == str(new_class.id)
    assert data["is_active"] is False

    clash = await client.patch(f"{UM_URL}/users/{student.id}", json={"email": other.email}, headers=admin_headers)
    assert clash.status_code == 409

    teacher_move = await client.patch(
        f"{UM_URL}/users/{school_setup['teacher'].id}", json={"class_id": str(new_class.id)}, headers=admin_headers
    )
    assert teacher_move.status_code == 400

    reassigned = await client.patch(
        f"{UM_URL}/users/{school_setup['teacher'].id}",
        json={"assigned_classes": [str(new_class.id)]},
        headers=admin_headers,
    )
    assert reassigned.status_code == 200
    assert reassigned.json()["assigned_classes"] == [str(new_class.id)]

    listed = await client.get(f"{UM_URL}/schools/{school_setup['school'].id}/teachers", headers=admin_headers)
    by_id = {u["id"]: u for u in listed.json()["users"]}
    assert by_id[str(school_setup["teacher"].id)]["assigned_classes"] == [str(new_class.id)]
    assert data["assigned_classes"] == []


async def test_delete_teacher_detaches_from_classes(
    client: AsyncClient, session_factory, school_setup, make_user, make_class, headers
) -> None:
    school = school_setup["school"]
    teacher = await make_user(UserRole.TEACHER, school)
    school_class = await make_class(school, class_teacher=teacher, subject_teachers=[teacher])

    response = await client.delete(f"{UM_URL}/users/{teacher.id}", headers=headers(school_setup["admin"]))
    assert response.status_code == 204

    async with session_factory() as session:
        refreshed = await session.get(SchoolClass, school_class.id)
        assert refreshed.class_teacher_id is None
        links = await session.execute(
            select(ClassSubjectTeacher).where(ClassSubjectTeacher.teacher_id == teacher.id)
        )
        assert links.scalars().all() == []

    self_delete = await client.delete(
        f"{UM_URL}/users/{school_setup['admin'].id}", headers=headers(school_setup["admin"])
    )
    assert self_delete.status_code == 400


async def test_create_class(client: AsyncClient, db_session, school_setup, make_user, headers) -> None:
    school = school_setup["school"]
    teacher = school_setup["teacher"]
    other_teacher = school_setup["other_teacher"]
    body = {
        "name": "Grade 7",
        "section": "B",
        "grade": 7,
        "school_id": str(school.id),
        "class_teacher_id": str(teacher.id),
        "subject_teacher_ids": [str(other_teacher.id)],
        "academic_year": "2024-2025",
        "subjects": [{"name": "Biology", "code": "bio", "teacher_id": str(other_teacher.id)}],
        "capacity": 30,
    }
    response = await client.post(f"{UM_URL}/classes", json=body, headers=headers(school_setup["admin"]))
    assert response.status_code == 201
    data = response.json()
    assert data["class_teacher_id"] == str(teacher.id)
    assert data["subject_teacher_ids"] == [str(other_teacher.id)]
    assert data["subjects"][0]["code"] == "BIO"

    rows = await db_session.execute(
        select(TeacherClassAssignment.teacher_id).where(TeacherClassAssignment.class_id == uuid.UUID(data["id"]))
    )
    assert set(rows.scalars().all()) == {teacher.id, other_teacher.id}

    duplicate = await client.post(f"{UM_URL}/classes", json=body, headers=headers(school_setup["admin"]))
    assert duplicate.status_code == 409

    student = school_setup["students"][0]
    bad_teacher = await client.post(
        f"{UM_URL}/classes",
        json={**body, "section": "C", "class_teacher_id": str(student.id)},
        headers=headers(school_setup["admin"]),
    )
    assert bad_teacher.status_code == 400
    assert bad_teacher.json()["detail"] == "Class teacher must be a valid teacher"


async def test_list_classes_and_stats(client: AsyncClient, school_setup, make_user, make_class, headers) -> None:
    school = school_setup["school"]
    full_class = await make_class(school, grade=3, capacity=1)
    await make_user(UserRole.STUDENT, school, full_class, is_active=False)

    classes = await client.get(f"{UM_URL}/schools/{school.id}/classes", headers=headers(school_setup["admin"]))
    assert classes.status_code == 200
    data = classes.json()
    assert [c["grade"] for c in data] == [3, 5]
    assert [c["student_count"] for c in data] == [1, 3]

    taught = await client.get(f"{UM_URL}/schools/{school.id}/classes", headers=headers(school_setup["teacher"]))
    assert [c["id"] for c in taught.json()] == [str(school_setup["class"].id)]

    stats = await client.get(f"{UM_URL}/schools/{school.id}/stats", headers=headers(school_setup["admin"]))
    assert stats.status_code == 200
    assert stats.json() == {
        "total_students": 4,
        "total_teachers": 2,
        "total_classes": 2,
        "active_students": 3,
        "active_teachers": 2,
        "classes_with_capacity": 1,
    }
