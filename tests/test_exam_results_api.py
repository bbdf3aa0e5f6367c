from jose import jwt

from examdesk.exams import config
from examdesk.exams.dependencies import get_current_user_id
from examdesk.main import app
from factories import correct_answers, make_exam, make_record


async def test_get_me_without_attempts(client):
    body = (await client.get("/examResults/getMe")).json()
    assert body == {"studentId": "STU_TEST_1", "results": []}


async def test_get_me_lists_all_attempts(client, seed_ledger):
    await seed_ledger([make_record("EXAM_1", 1), make_record("EXAM_2", 1), make_record("EXAM_1", 2)])

    body = (await client.get("/examResults/getMe")).json()

    assert [(r["examId"], r["attemptNumber"]) for r in body["results"]] == [
        ("EXAM_1", 1), ("EXAM_2", 1), ("EXAM_1", 2)
    ]


async def test_history_filters_by_exam(client, db):
    exam = make_exam("EXAM_H")
    await db.exams.insert_many([exam, make_exam("EXAM_X")])
    for _ in range(2):
        await client.post("/studentExam/submit/EXAM_H", json={"answers": correct_answers(exam)})
    await client.post("/studentExam/submit/EXAM_X", json={"answers": {}})

    body = (await client.get("/examResults/history/EXAM_H")).json()

    assert body["examId"] == "EXAM_H"
    assert [r["attemptNumber"] for r in body["results"]] == [1, 2]
    assert all(r["passed"] for r in body["results"])


async def test_requests_without_token_are_rejected(client):
    app.dependency_overrides.pop(get_current_user_id)

    response = await client.get("/examResults/getMe")

    assert response.status_code == 401
    assert response.json()["success"] is False


async def test_bearer_token_identifies_student(client, monkeypatch):
    monkeypatch.setattr(config, "JWT_SECRET_KEY", "test-secret")
    app.dependency_overrides.pop(get_current_user_id)
    token = jwt.encode({"sub": "STU_JWT"}, "test-secret", algorithm="HS256")

    response = await client.get("/examResults/getMe", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 200
    assert response.json()["studentId"] == "STU_JWT"


async def test_token_signed_with_other_key(client, monkeypatch):
    monkeypatch.setattr(config, "JWT_SECRET_KEY", "test-secret")
    app.dependency_overrides.pop(get_current_user_id)
    token = jwt.encode({"sub": "STU_JWT"}, "wrong-secret", algorithm="HS256")

    response = await client.get("/examResults/getMe", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401
    assert response.json()["message"] == "Invalid or Expired Token"
