from datetime import datetime, timezone

from httpx import AsyncClient

from school_api.api.v1.schools.service import increment_sms_usage, reset_monthly_sms_usage, reset_sms_usage_if_due
from school_api.core.enums import UserRole
from school_api.core.models import School

SCHOOLS_URL = "/api/v1/schools"


def school_payload(admin, **overrides):
    payload = {
        "name": "Riverside Academy",
        "address": "2 River Rd",
        "city": "Portland",
        "state": "OR",
        "country": "US",
        "zip_code": "97201",
        "phone": "+15551234567",
        "email": "office@riverside.example.com",
        "admin_id": str(admin.id),
        "settings": {"academic_year": "2024-2025", "term_system": "trimester"},
    }
    payload.update(overrides)
    return payload


async def test_create_school_attaches_admin(client: AsyncClient, make_user, headers) -> None:
    super_admin = await make_user(UserRole.SUPER_ADMIN)
    admin = await make_user(UserRole.SCHOOL_ADMIN)

    response = await client.post(SCHOOLS_URL, json=school_payload(admin), headers=headers(super_admin))
    assert response.status_code == 201
    data = response.json()
    assert data["admin_id"] == str(admin.id)
    assert data["settings"]["term_system"] == "trimester"
    assert data["sms_quota"]["monthly_limit"] == 1000
    assert data["sms_quota"]["used"] == 0

    # The admin now belongs to the school and can read it
    profile = await client.get("/api/v1/auth/profile", headers=headers(admin))
    assert profile.json()["school_id"] == data["id"]
    own = await client.get(f"{SCHOOLS_URL}/{data['id']}", headers=headers(admin))
    assert own.status_code == 200


async def test_create_school_validations(client: AsyncClient, make_user, headers) -> None:
    super_admin = await make_user(UserRole.SUPER_ADMIN)
    admin = await make_user(UserRole.SCHOOL_ADMIN)
    teacher = await make_user(UserRole.TEACHER)

    response = await client.post(SCHOOLS_URL, json=school_payload(teacher), headers=headers(super_admin))
    assert response.status_code == 400

    created = await client.post(SCHOOLS_URL, json=school_payload(admin), headers=headers(super_admin))
    assert created.status_code == 201

    same_email = await client.post(
        SCHOOLS_URL, json=school_payload(await make_user(UserRole.SCHOOL_ADMIN)), headers=headers(super_admin)
    )
    assert same_email.status_code == 409

    admin_taken = await client.post(
        SCHOOLS_URL, json=school_payload(admin, email="other@example.com"), headers=headers(super_admin)
    )
    assert admin_taken.status_code == 409
    assert admin_taken.json()["detail"] == "Admin is already assigned to another school"


async def test_only_super_admin_creates_schools(client: AsyncClient, school_setup, headers) -> None:
    response = await client.post(
        SCHOOLS_URL, json=school_payload(school_setup["admin"]), headers=headers(school_setup["admin"])
    )
    assert response.status_code == 403


async def test_school_admin_cannot_read_other_school(
    client: AsyncClient, school_setup, make_school, headers
) -> None:
    other = await make_school("Elsewhere High")
    response = await client.get(f"{SCHOOLS_URL}/{other.id}", headers=headers(school_setup["admin"]))
    assert response.status_code == 403

    bad_id = await client.get(f"{SCHOOLS_URL}/not-a-uuid", headers=headers(school_setup["admin"]))
    assert bad_id.status_code == 400


async def test_list_and_update_schools(client: AsyncClient, school_setup, make_school, make_user, headers) -> None:
    super_admin = await make_user(UserRole.SUPER_ADMIN)
    await make_school("Lakeside Prep")

    listed = await client.get(SCHOOLS_URL, params={"search": "lakeside"}, headers=headers(super_admin))
    assert listed.status_code == 200
    assert [s["name"] for s in listed.json()["schools"]] == ["Lakeside Prep"]

    school_id = school_setup["school"].id
    updated = await client.patch(
        f"{SCHOOLS_URL}/{school_id}",
        json={"name": "Springfield Senior High", "settings": {"attendance_threshold": 80}},
        headers=headers(super_admin),
    )
    assert updated.status_code == 200
    assert updated.json()["name"] == "Springfield Senior High"
    assert updated.json()["settings"]["attendance_threshold"] == 80


async def test_sms_quota_and_stats(client: AsyncClient, db_session, school_setup, make_user, headers) -> None:
    super_admin = await make_user(UserRole.SUPER_ADMIN)
    school = school_setup["school"]

    response = await client.patch(
        f"{SCHOOLS_URL}/{school.id}/sms-quota", json={"monthly_limit": 5}, headers=headers(super_admin)
    )
    assert response.status_code == 200
    assert response.json()["sms_quota"]["monthly_limit"] == 5

    await increment_sms_usage(db_session, school.id, count=7)

    stats = await client.get(f"{SCHOOLS_URL}/{school.id}/stats", headers=headers(school_setup["admin"]))
    assert stats.status_code == 200
    data = stats.json()
    assert data["total_students"] == 3
    assert data["total_teachers"] == 2
    assert data["total_classes"] == 1
    assert data["sms_usage"] == {"used": 7, "limit": 5, "remaining": 0}


def test_monthly_reset_only_when_month_changes():
    school = School(sms_used=12, sms_reset_date=datetime(2024, 9, 1, tzinfo=timezone.utc))

    assert not reset_sms_usage_if_due(school, datetime(2024, 9, 30, tzinfo=timezone.utc))
    assert school.sms_used == 12

    assert reset_sms_usage_if_due(school, datetime(2024, 10, 1, tzinfo=timezone.utc))
    assert school.sms_used == 0
    assert school.sms_reset_date.month == 10


async def test_reset_monthly_sms_usage(db_session, school_setup) -> None:
    school = school_setup["school"]
    school.sms_used = 40
    school.sms_reset_date = datetime(2024, 1, 15, tzinfo=timezone.utc)
    await db_session.commit()

    reset = await reset_monthly_sms_usage(db_session, now=datetime(2024, 2, 1, tzinfo=timezone.utc))
    assert reset == 1
    assert school.sms_used == 0


async def test_delete_school_detaches_users(client: AsyncClient, school_setup, make_user, headers) -> None:
    super_admin = await make_user(UserRole.SUPER_ADMIN)
    school_id = school_setup["school"].id

    response = await client.delete(f"{SCHOOLS_URL}/{school_id}", headers=headers(super_admin))
    assert response.status_code == 204

    profile = await client.get("/api/v1/auth/profile", headers=headers(school_setup["teacher"]))
    assert profile.json()["school_id"] is None

    gone = await client.get(f"{SCHOOLS_URL}/{school_id}", headers=headers(super_admin))
    assert gone.status_code == 404
