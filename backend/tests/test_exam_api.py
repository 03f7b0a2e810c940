import json
import logging
from datetime import timedelta

from fastapi.testclient import TestClient

from examhub.models import utcnow

from conftest import create_exam, create_open_exam, register


def _correct_answers(client, admin_headers, exam_id, wrong=()):
    """Answers picking the correct option, except for question indexes in `wrong`."""
    detail = client.get(f"/admin/exams/{exam_id}", headers=admin_headers).json()["data"]
    answers = []
    for i, q in enumerate(detail["questions"]):
        picks = [o["id"] for o in q["options"] if o["correct"] != (i in wrong)]
        answers.append({"question_id": q["id"], "selected_option_id": picks[0]})
    return answers


def test_listing_only_includes_open_exams(client, engine, user_headers):
    now = utcnow()
    open_id = create_open_exam(engine, title="Open")
    create_exam(engine, now + timedelta(hours=1), now + timedelta(hours=2), title="Future")
    create_exam(engine, now - timedelta(hours=2), now - timedelta(hours=1), title="Closed")
    r = client.get("/exams", headers=user_headers)
    assert r.status_code == 200
    assert [e["id"] for e in r.json()["data"]] == [open_id]
    assert r.json()["data"][0]["title"] == "Open"


def test_exam_detail_does_not_reveal_answers(client, engine, user_headers):
    exam_id = create_open_exam(engine)
    r = client.get(f"/exams/{exam_id}", headers=user_headers)
    assert r.status_code == 200
    questions = r.json()["data"]["questions"]
    assert len(questions) == 2
    assert "correct_option_id" not in questions[0]
    assert all("correct" not in o for o in questions[0]["options"])
    assert client.get("/exams/9999", headers=user_headers).json()["error"]["code"] == "NOT_FOUND"


def test_full_session_flow(client, engine, user_headers, admin_headers):
    exam_id = create_open_exam(engine, questions=[("Q1", ["a", "b"], 0), ("Q2", ["a", "b"], 1), ("Q3", ["a", "b"], 0), ("Q4", ["a", "b"], 1)])
    answers = _correct_answers(client, admin_headers, exam_id, wrong={3})

    r = client.post(f"/exams/{exam_id}/start", headers=user_headers)
    assert r.status_code == 201
    session = r.json()["data"]
    assert session["completed"] is False
    assert session["exam_id"] == exam_id

    again = client.post(f"/exams/{exam_id}/start", headers=user_headers)
    assert again.status_code == 400
    assert again.json()["error"]["code"] == "SESSION_EXISTS"

    pending = client.get(f"/exams/{exam_id}/results", headers=user_headers)
    assert pending.status_code == 404
    assert pending.json()["error"]["code"] == "RESULTS_NOT_FOUND"

    submitted = client.post(f"/exams/{exam_id}/submit", json={"answers": answers}, headers=user_headers)
    assert submitted.status_code == 200
    assert submitted.json() == {"data": {"message": "Exam submitted successfully"}}

    result = client.get(f"/exams/{exam_id}/results", headers=user_headers).json()["data"]
    assert result == {"score": 75.0, "total_questions": 4, "correct_answers": 3, "incorrect_answers": 1}

    retake = client.post(f"/exams/{exam_id}/start", headers=user_headers)
    assert retake.json()["error"]["code"] == "EXAM_ALREADY_TAKEN"

    resubmit = client.post(f"/exams/{exam_id}/submit", json={"answers": []}, headers=user_headers)
    assert resubmit.status_code == 404
    assert resubmit.json()["error"]["code"] == "SESSION_NOT_FOUND"

    history = client.get("/exams/results", headers=user_headers).json()["data"]
    assert len(history) == 1
    assert history[0]["exam_id"] == exam_id
    assert history[0]["score"] == 75.0
    assert history[0]["completed_at"] is not None


def test_start_outside_window(client, engine, user_headers):
    now = utcnow()
    future = create_exam(engine, now + timedelta(hours=1), now + timedelta(hours=2))
    r = client.post(f"/exams/{future}/start", headers=user_headers)
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "INVALID_TIME"
    missing = client.post("/exams/9999/start", headers=user_headers)
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "NOT_FOUND"


def test_submit_rejects_foreign_question(client, engine, user_headers, admin_headers):
    exam_id = create_open_exam(engine)
    other_id = create_open_exam(engine, title="Other")
    foreign = _correct_answers(client, admin_headers, other_id)
    client.post(f"/exams/{exam_id}/start", headers=user_headers)
    r = client.post(f"/exams/{exam_id}/submit", json={"answers": foreign}, headers=user_headers)
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "VALIDATION_ERROR"
    # still active: a valid submission goes through
    ok = client.post(f"/exams/{exam_id}/submit", json={"answers": []}, headers=user_headers)
    assert ok.status_code == 200


def test_submission_body_is_validated(client, engine, user_headers):
    exam_id = create_open_exam(engine)
    client.post(f"/exams/{exam_id}/start", headers=user_headers)
    r = client.post(f"/exams/{exam_id}/submit", json={"answers": [{"question_id": "x"}]}, headers=user_headers)
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "VALIDATION_ERROR"


def test_sessions_are_per_user(client, engine, user_headers):
    exam_id = create_open_exam(engine)
    _other, other_headers = register(client, email="second@example.com", username="second")
    assert client.post(f"/exams/{exam_id}/start", headers=user_headers).status_code == 201
    assert client.post(f"/exams/{exam_id}/start", headers=other_headers).status_code == 201


def test_request_id_is_echoed(client):
    r = client.get("/health", headers={"X-Request-ID": "abc123"})
    assert r.status_code == 200
    assert r.headers["X-Request-ID"] == "abc123"
    assert r.json() == {"data": {"status": "ok"}}


def test_unexpected_errors_use_generic_envelope(app, user_headers, monkeypatch):
    def boom(self, user_id):
        raise RuntimeError("database exploded: secret detail")

    monkeypatch.setattr("examhub.services.ResultService.user_results", boom)
    client = TestClient(app, raise_server_exceptions=False)
    r = client.get("/exams/results", headers=user_headers)
    assert r.status_code == 500
    assert r.json() == {"error": {"code": "SERVER_ERROR", "message": "Something went wrong"}}


def test_request_done_is_logged_as_json(client, caplog):
    with caplog.at_level(logging.INFO, logger="examhub.api"):
        client.get("/health", headers={"X-Request-ID": "log-me"})
    lines = [r.getMessage() for r in caplog.records if r.getMessage().startswith("request_done ")]
    entry = json.loads(lines[-1][len("request_done "):])
    assert entry["request_id"] == "log-me"
    assert entry["path"] == "/health"
    assert entry["method"] == "GET"
    assert entry["status_code"] == 200
    assert entry["duration_ms"] >= 0
