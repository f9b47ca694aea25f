from sqlalchemy import select
from instest.models import User, Student, Instructor
from conftest import create_user, login

COURSE = {
    "name": "קורס אביב",
    "course_type": "מדריך",
    "start_date": "2026-03-01",
    "end_date": "2026-06-30",
}


async def current_user_id(client, headers):
    response = await client.get("/auth/me", headers=headers)
    return response.json()["id"]


async def test_create_student_user_creates_student_row(client, admin_headers, session):
    response = await client.post("/users", json={
        "email": "Tal@diving.com", "password": "secret1", "first_name": "Tal", "last_name": "Shapiro",
        "role": "student"
    }, headers=admin_headers)

    assert response.status_code == 201, response.text
    assert response.json()["email"] == "tal@diving.com"

    student = await session.execute(select(Student).filter(Student.email == "tal@diving.com"))
    assert student.scalar_one().last_name == "Shapiro"


async def test_role_change_moves_person_row(client, admin_headers, session):
    created = await client.post("/users", json={
        "email": "tal@diving.com", "password": "secret1", "first_name": "Tal", "last_name": "Shapiro",
        "role": "student"
    }, headers=admin_headers)
    user_id = created.json()["id"]

    response = await client.put(f"/users/{user_id}", json={
        "email": "tal@diving.com", "first_name": "Tal", "last_name": "Shapiro", "role": "instructor",
        "instructor_number": 1200
    }, headers=admin_headers)

    assert response.status_code == 200, response.text
    assert response.json()["instructor_number"] == 1200
    students = await session.execute(select(Student).filter(Student.email == "tal@diving.com"))
    instructors = await session.execute(select(Instructor).filter(Instructor.email == "tal@diving.com"))
    assert students.scalar_one_or_none() is None
    assert instructors.scalar_one().first_name == "Tal"


async def test_user_validation(client, admin_headers):
    base = {"email": "new@diving.com", "first_name": "New", "last_name": "User", "role": "instructor"}

    response = await client.post("/users", json={**base, "password": "abc"}, headers=admin_headers)
    assert response.status_code == 400

    response = await client.post("/users", json={**base, "password": "secret1", "role": "captain"},
                                 headers=admin_headers)
    assert response.status_code == 400

    response = await client.post("/users", json={**base, "password": "secret1", "instructor_number": 0},
                                 headers=admin_headers)
    assert response.status_code == 400

    response = await client.post("/users", json={**base, "password": "secret1", "instructor_number": 77},
                                 headers=admin_headers)
    assert response.status_code == 201

    response = await client.post("/users", json={**base, "email": "other@diving.com", "password": "secret1",
                                                 "instructor_number": 77}, headers=admin_headers)
    assert response.status_code == 400

    response = await client.post("/users", json={**base, "password": "secret1"}, headers=admin_headers)
    assert response.status_code == 400


async def test_admin_cannot_lock_themselves_out(client, admin_headers):
    admin_id = await current_user_id(client, admin_headers)
    data = {"email": "admin@diving.com", "first_name": "Admin", "last_name": "User", "role": "admin"}

    response = await client.put(f"/users/{admin_id}", json={**data, "is_active": False}, headers=admin_headers)
    assert response.status_code == 400

    response = await client.put(f"/users/{admin_id}", json={**data, "role": "madar"}, headers=admin_headers)
    assert response.status_code == 400

    response = await client.delete(f"/users/{admin_id}", headers=admin_headers)
    assert response.status_code == 400


async def test_madar_manages_only_lower_roles(client, admin_headers, session):
    await create_user("madar@diving.com", "madar")
    admin_id = await current_user_id(client, admin_headers)
    headers = await login(client, "madar@diving.com")

    response = await client.post("/users", json={
        "email": "guide@diving.com", "password": "secret1", "first_name": "Gil", "last_name": "Bar",
        "role": "instructor"
    }, headers=headers)
    assert response.status_code == 201

    response = await client.post("/users", json={
        "email": "boss@diving.com", "password": "secret1", "first_name": "Boss", "last_name": "Bar",
        "role": "admin"
    }, headers=headers)
    assert response.status_code == 403

    response = await client.delete(f"/users/{admin_id}", headers=headers)
    assert response.status_code == 403

    guide_id = (await session.execute(
        select(User.id).filter(User.email == "guide@diving.com")
    )).scalar_one()
    response = await client.delete(f"/users/{guide_id}", headers=headers)
    assert response.status_code == 200
    instructors = await session.execute(select(Instructor).filter(Instructor.email == "guide@diving.com"))
    assert instructors.scalar_one_or_none() is None
    assert (await client.get(f"/users/{guide_id}", headers=admin_headers)).status_code == 404


async def test_course_crud(client, admin_headers, student_id, instructor_id):
    response = await client.post("/courses", json={
        **COURSE, "student_ids": [student_id], "instructor_ids": [instructor_id]
    }, headers=admin_headers)

    assert response.status_code == 201, response.text
    course = response.json()
    assert course["course_type_label"] == "מדריך"
    assert course["student_count"] == 1
    assert [s["id"] for s in course["students"]] == [student_id]
    assert [i["id"] for i in course["instructors"]] == [instructor_id]

    response = await client.put(f"/courses/{course['id']}", json={
        **COURSE, "name": "קורס קיץ", "is_active": False, "student_ids": []
    }, headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["name"] == "קורס קיץ"
    assert response.json()["student_count"] == 0
    # instructor list is kept when instructor_ids is left out
    assert len(response.json()["instructors"]) == 1

    response = await client.get("/courses", params={"is_active": True}, headers=admin_headers)
    assert response.json() == []

    response = await client.delete(f"/courses/{course['id']}", headers=admin_headers)
    assert response.status_code == 200
    response = await client.get(f"/courses/{course['id']}", headers=admin_headers)
    assert response.status_code == 404


async def test_course_validation(client, admin_headers):
    response = await client.post("/courses", json={**COURSE, "course_type": "snorkel"}, headers=admin_headers)
    assert response.status_code == 400

    response = await client.post("/courses", json={**COURSE, "end_date": "2026-02-01"}, headers=admin_headers)
    assert response.status_code == 400

    response = await client.post("/courses", json={**COURSE, "student_ids": [9999]}, headers=admin_headers)
    assert response.status_code == 400


async def test_instructor_sees_only_assigned_courses(client, admin_headers, session):
    await create_user("guide@diving.com", "instructor", first_name="Gil")
    instructor = await session.execute(select(Instructor.id).filter(Instructor.email == "guide@diving.com"))
    guide_id = instructor.scalar_one()

    assigned = await client.post("/courses", json={**COURSE, "instructor_ids": [guide_id]}, headers=admin_headers)
    other = await client.post("/courses", json={**COURSE, "name": "אחר"}, headers=admin_headers)

    headers = await login(client, "guide@diving.com")
    response = await client.get("/courses", headers=headers)
    assert [c["id"] for c in response.json()] == [assigned.json()["id"]]

    response = await client.get(f"/courses/{other.json()['id']}", headers=headers)
    assert response.status_code == 403

    response = await client.post("/courses", json=COURSE, headers=headers)
    assert response.status_code == 403


async def test_student_crud_and_detail(client, admin_headers, student_id):
    response = await client.post("/students", json={
        "first_name": "Other", "last_name": "Diver", "email": "NOA@diving.com"
    }, headers=admin_headers)
    assert response.status_code == 400

    await client.put(f"/student-skills/{student_id}", json={"meters_30": True}, headers=admin_headers)
    await client.put(f"/external-tests/{student_id}", json={"physics_score": 90}, headers=admin_headers)

    response = await client.get(f"/students/{student_id}", headers=admin_headers)
    assert response.status_code == 200
    detail = response.json()
    assert detail["skills"] == {"meters_30": True, "meters_40": False, "guidance": False}
    assert detail["external_tests"]["average_score"] == 90.0
    assert detail["external_tests"]["is_passing"] is True
    assert detail["evaluations"] == []

    response = await client.put(f"/students/{student_id}", json={
        "first_name": "Noa", "last_name": "Cohen", "email": "noa@diving.com", "phone": "050-0000000"
    }, headers=admin_headers)
    assert response.json()["last_name"] == "Cohen"

    response = await client.delete(f"/students/{student_id}", headers=admin_headers)
    assert response.status_code == 200
    response = await client.get(f"/students/{student_id}", headers=admin_headers)
    assert response.status_code == 404


async def test_lessons(client, admin_headers):
    subjects = (await client.get("/evaluation-subjects", headers=admin_headers)).json()

    response = await client.post("/lessons", json={"name": "שיעור 1", "subject_id": 9999}, headers=admin_headers)
    assert response.status_code == 400

    response = await client.post("/lessons", json={"name": "שיעור 1", "subject_id": subjects[0]["id"]},
                                 headers=admin_headers)
    assert response.status_code == 201
    assert response.json()["subject_code"] == "intro_dive"

    response = await client.get("/lessons", params={"subject_id": subjects[1]["id"]}, headers=admin_headers)
    assert response.json() == []


async def test_absences(client, admin_headers, student_id):
    response = await client.post("/absences", json={
        "student_id": student_id, "absence_date": "2026-03-04", "reason": "מחלה", "is_excused": True
    }, headers=admin_headers)
    assert response.status_code == 201
    assert response.json()["student_name"] == "Noa Diver"

    await client.post("/absences", json={"student_id": student_id, "absence_date": "2026-04-01"},
                      headers=admin_headers)

    response = await client.get("/absences", params={"from_date": "2026-03-15"}, headers=admin_headers)
    assert [a["absence_date"] for a in response.json()] == ["2026-04-01"]

    response = await client.post("/absences", json={"student_id": 9999, "absence_date": "2026-03-04"},
                                 headers=admin_headers)
    assert response.status_code == 400


async def test_instructor_detail_lists_courses(client, admin_headers, instructor_id):
    await client.post("/courses", json={**COURSE, "instructor_ids": [instructor_id]}, headers=admin_headers)

    response = await client.get(f"/instructors/{instructor_id}", headers=admin_headers)
    assert response.status_code == 200
    assert [c["name"] for c in response.json()["courses"]] == ["קורס אביב"]

    response = await client.post("/instructors", json={
        "first_name": "Other", "last_name": "Levi", "email": "yoav@diving.com"
    }, headers=admin_headers)
    assert response.status_code == 400

    response = await client.delete(f"/instructors/{instructor_id}", headers=admin_headers)
    assert response.status_code == 200
    response = await client.get(f"/instructors/{instructor_id}", headers=admin_headers)
    assert response.status_code == 404
