from datetime import date
import pytest
from sqlalchemy import select, func
from instest.models import StudentEvaluation, EvaluationItemScore, EvaluationSubject, EvaluationCriterion
from instest.services.catalog import load_catalog_snapshot
from instest.services.evaluation_builder import build_evaluation, ItemScoreRecord
from instest.services.evaluation_store import create_evaluation


async def get_subject(client, headers, code="intro_dive"):
    response = await client.get(f"/evaluation-subjects/{code}", headers=headers)
    assert response.status_code == 200, response.text
    return response.json()


def payload(student_id, subject, scores, **extra):
    data = {
        "student_id": student_id,
        "subject_id": subject["id"],
        "evaluation_date": "2026-03-01",
        "lesson_name": subject["name_he"],
        "item_scores": [
            {"criterion_id": c["id"], "score": score} for c, score in zip(subject["criteria"], scores)
        ]
    }
    data.update(extra)
    return data


async def test_list_subjects_with_criteria(client, admin_headers):
    response = await client.get("/evaluation-subjects", headers=admin_headers)

    assert response.status_code == 200
    subjects = response.json()
    assert [s["code"] for s in subjects] == [
        "intro_dive", "equipment_lesson", "pre_dive_briefing", "lecture_delivery", "water_lesson"
    ]
    assert len(subjects[0]["criteria"]) == 7


async def test_server_computes_verdict(client, admin_headers, student_id, instructor_id):
    subject = await get_subject(client, admin_headers)
    data = payload(student_id, subject, [10, 7, 7, 10, 4, 7, 10], instructor_id=instructor_id)
    # client-side values are not part of the contract and are ignored
    data["raw_score"] = 70
    data["is_passing"] = False

    response = await client.post("/evaluations", json=data, headers=admin_headers)

    assert response.status_code == 201, response.text
    body = response.json()
    assert body["raw_score"] == 55
    assert body["percentage_score"] == 78.57
    assert body["final_score"] == 78.57
    assert body["is_passing"] is True
    assert body["has_critical_fail"] is False
    assert body["instructor_name"] == "Yoav Levi"
    assert len(body["item_scores"]) == 7
    assert body["item_scores"][0]["score_label"] == "מצוין"
    assert body["item_scores"][4]["score_color"] == "#fd7e14"


async def test_critical_fail_on_create(client, admin_headers, student_id, instructor_id):
    subject = await get_subject(client, admin_headers)
    # third criterion is critical
    data = payload(student_id, subject, [10, 10, 1, 10, 10, 10, 10], instructor_id=instructor_id)

    response = await client.post("/evaluations", json=data, headers=admin_headers)

    assert response.status_code == 201
    body = response.json()
    assert body["raw_score"] == 61
    assert body["has_critical_fail"] is True
    assert body["is_passing"] is False
    assert body["status"] == "נכשל (פריט קריטי)"


async def test_criterion_from_other_subject_is_rejected(client, admin_headers, student_id):
    intro = await get_subject(client, admin_headers)
    water = await get_subject(client, admin_headers, "water_lesson")
    data = payload(student_id, intro, [10, 10])
    data["item_scores"].append({"criterion_id": water["criteria"][0]["id"], "score": 10})

    response = await client.post("/evaluations", json=data, headers=admin_headers)

    assert response.status_code == 400
    assert "criterion mismatch" in response.json()["detail"]


async def test_out_of_scale_score_is_rejected(client, admin_headers, student_id):
    subject = await get_subject(client, admin_headers)

    response = await client.post("/evaluations", json=payload(student_id, subject, [5]), headers=admin_headers)

    assert response.status_code == 400


async def test_test_mode_requires_instructor(client, admin_headers, student_id):
    subject = await get_subject(client, admin_headers)

    response = await client.post(
        "/evaluations", json=payload(student_id, subject, [10] * 7, evaluation_type="test"), headers=admin_headers
    )
    assert response.status_code == 400

    response = await client.post(
        "/evaluations", json=payload(student_id, subject, [10] * 7, evaluation_type="practice"),
        headers=admin_headers
    )
    assert response.status_code == 201
    assert response.json()["instructor_id"] is None


async def test_unknown_student_is_rejected(client, admin_headers):
    subject = await get_subject(client, admin_headers)

    response = await client.post("/evaluations", json=payload(9999, subject, [10]), headers=admin_headers)

    assert response.status_code == 400


async def test_update_recomputes_and_replaces_items(client, admin_headers, student_id, instructor_id):
    subject = await get_subject(client, admin_headers)
    created = await client.post(
        "/evaluations", json=payload(student_id, subject, [10] * 7, instructor_id=instructor_id),
        headers=admin_headers
    )
    evaluation_id = created.json()["id"]

    response = await client.put(
        f"/evaluations/{evaluation_id}", json=payload(student_id, subject, [4, 4, 4], instructor_id=instructor_id),
        headers=admin_headers
    )

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["raw_score"] == 12
    assert body["percentage_score"] == 17.14
    assert body["is_passing"] is False
    assert [item["score"] for item in body["item_scores"]] == [4, 4, 4]


async def test_filters(client, admin_headers, student_id, instructor_id):
    intro = await get_subject(client, admin_headers)
    water = await get_subject(client, admin_headers, "water_lesson")
    await client.post("/evaluations", json=payload(student_id, intro, [10] * 7), headers=admin_headers)
    await client.post(
        "/evaluations", json=payload(student_id, water, [7] * 13, instructor_id=instructor_id, evaluation_type="test"),
        headers=admin_headers
    )

    response = await client.get("/evaluations", params={"subject_id": water["id"]}, headers=admin_headers)
    assert [e["subject_code"] for e in response.json()] == ["water_lesson"]

    response = await client.get("/evaluations", params={"evaluation_type": "practice"}, headers=admin_headers)
    assert [e["subject_code"] for e in response.json()] == ["intro_dive"]

    response = await client.get("/evaluations", params={"student_id": student_id}, headers=admin_headers)
    assert len(response.json()) == 2


async def test_delete_cascades_to_item_scores(client, admin_headers, student_id, session):
    subject = await get_subject(client, admin_headers)
    created = await client.post("/evaluations", json=payload(student_id, subject, [10] * 7), headers=admin_headers)
    evaluation_id = created.json()["id"]

    response = await client.delete(f"/evaluations/{evaluation_id}", headers=admin_headers)
    assert response.status_code == 200

    response = await client.get(f"/evaluations/{evaluation_id}", headers=admin_headers)
    assert response.status_code == 404

    remaining = await session.execute(
        select(func.count(EvaluationItemScore.id)).filter(EvaluationItemScore.evaluation_id == evaluation_id)
    )
    assert remaining.scalar() == 0


async def test_requires_authentication(client, db):
    response = await client.get("/evaluations")

    assert response.status_code in (401, 403)


async def test_failed_item_insert_rolls_back_evaluation(session, student_id):
    snapshot = await load_catalog_snapshot(session, code="intro_dive")
    record, items = build_evaluation(
        snapshot, student_id=student_id, instructor_id=None, lesson_name=None,
        evaluation_date=date(2026, 3, 1), item_scores={c.id: 10 for c in snapshot.criteria}
    )
    # score is NOT NULL, so the last item insert fails
    items.append(ItemScoreRecord(criterion_id=snapshot.criteria[0].id, value=None,
                                 correlation_id=record.correlation_id))

    with pytest.raises(Exception):
        await create_evaluation(session, record, items)

    evaluations = await session.execute(select(func.count(StudentEvaluation.id)))
    item_scores = await session.execute(select(func.count(EvaluationItemScore.id)))
    assert evaluations.scalar() == 0
    assert item_scores.scalar() == 0


async def test_store_returns_new_id(session, student_id):
    snapshot = await load_catalog_snapshot(session, code="pre_dive_briefing")
    record, items = build_evaluation(
        snapshot, student_id=student_id, instructor_id=None, lesson_name=None,
        evaluation_date=date(2026, 3, 1), item_scores={c.id: 7 for c in snapshot.criteria}
    )

    evaluation_id = await create_evaluation(session, record, items)

    stored = await session.execute(select(StudentEvaluation).filter(StudentEvaluation.id == evaluation_id))
    evaluation = stored.scalar_one()
    assert evaluation.raw_score == 49
    assert evaluation.percentage_score == 70.0
    assert evaluation.is_passing is True


async def test_malformed_subject_is_rejected(client, admin_headers, student_id, session):
    # max_raw_score does not match the single criterion's weight
    subject = EvaluationSubject(code="broken", name_he="שבור", max_raw_score=30, passing_raw_score=10,
                                display_order=99)
    subject.criteria.append(EvaluationCriterion(name_he="פריט", display_order=1, max_score=10))
    session.add(subject)
    await session.commit()

    response = await client.post("/evaluations", json={
        "student_id": student_id,
        "subject_id": subject.id,
        "evaluation_date": "2026-03-01",
        "item_scores": [{"criterion_id": subject.criteria[0].id, "score": 10}]
    }, headers=admin_headers)

    assert response.status_code == 400
    assert "does not match" in response.json()["detail"]
