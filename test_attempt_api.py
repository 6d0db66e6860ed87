import pytest
from fastapi.testclient import TestClient

from app.core.database import get_db
from app.core.dependencies import get_attempt_service
from app.core.security import jwt_manager
from main import app

CANDIDATE = 31
OWNER = 900


def auth(user_id):
    return {"Authorization": f"Bearer {jwt_manager.create_access_token(user_id)}"}


@pytest.fixture
def client(db, make_service):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_attempt_service] = lambda: make_service()
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def start(client, test_id, user_id=CANDIDATE):
    response = client.post(f"/tests/{test_id}/attempts/start", headers=auth(user_id))
    assert response.status_code == 200, response.text
    return response.json()


def test_full_attempt_flow(client, sample_test, question_ids):
    q1, q2 = question_ids
    attempt = start(client, sample_test.id)
    assert attempt["status"] == "in_progress"
    assert attempt["remaining_seconds"] == 30 * 60

    for qid, value in ((q1, "b"), (q2, "where")):
        response = client.put(
            f"/attempts/{attempt['id']}/answers",
            json={"question_id": qid, "answer": value, "time_spent": 15},
            headers=auth(CANDIDATE),
        )
        assert response.status_code == 200, response.text
    assert response.json()["answered_questions"] == 2

    response = client.post(f"/attempts/{attempt['id']}/submit", headers=auth(CANDIDATE))
    assert response.status_code == 200, response.text
    body = response.json()
    assert body["score"] == 10
    assert body["total_points"] == 20
    assert body["percentage"] == 50
    assert body["is_passed"] is True
    assert body["status"] == "completed"

    response = client.get(f"/attempts/{attempt['id']}", headers=auth(CANDIDATE))
    assert response.status_code == 200
    result = response.json()
    assert result["correct_answers"] == 1
    assert [a["is_correct"] for a in result["answers"]] == [True, False]
    assert result["remaining_seconds"] == 0


def test_start_is_idempotent(client, sample_test):
    first = start(client, sample_test.id)
    second = start(client, sample_test.id)
    assert first["id"] == second["id"]


def test_second_submit_is_conflict(client, sample_test):
    attempt = start(client, sample_test.id)
    client.post(f"/attempts/{attempt['id']}/submit", headers=auth(CANDIDATE))

    response = client.post(f"/attempts/{attempt['id']}/submit", headers=auth(CANDIDATE))

    assert response.status_code == 409
    assert response.json()["type"] == "attempt_not_active"


def test_start_after_completion_is_conflict(client, sample_test):
    attempt = start(client, sample_test.id)
    client.post(f"/attempts/{attempt['id']}/submit", headers=auth(CANDIDATE))

    response = client.post(f"/tests/{sample_test.id}/attempts/start", headers=auth(CANDIDATE))

    assert response.status_code == 409
    assert response.json()["type"] == "already_completed"


def test_expired_answer_returns_gone(client, sample_test, question_ids, clock):
    attempt = start(client, sample_test.id)
    clock.advance(minutes=31)

    response = client.put(
        f"/attempts/{attempt['id']}/answers",
        json={"question_id": question_ids[0], "answer": "b"},
        headers=auth(CANDIDATE),
    )
    assert response.status_code == 410
    assert response.json()["type"] == "attempt_expired"

    response = client.get(f"/attempts/{attempt['id']}", headers=auth(CANDIDATE))
    assert response.json()["status"] == "expired"


def test_requires_token(client, sample_test):
    response = client.post(f"/tests/{sample_test.id}/attempts/start")
    assert response.status_code == 401


def test_rejects_bad_token(client, sample_test):
    response = client.post(
        f"/tests/{sample_test.id}/attempts/start",
        headers={"Authorization": "Bearer not-a-token"},
    )
    assert response.status_code == 401


def test_other_candidate_is_denied(client, sample_test):
    attempt = start(client, sample_test.id)
    response = client.get(f"/attempts/{attempt['id']}", headers=auth(CANDIDATE + 1))
    assert response.status_code == 403
    assert response.json()["type"] == "access_denied"


def test_unknown_test_is_not_found(client):
    response = client.post("/tests/4040/attempts/start", headers=auth(CANDIDATE))
    assert response.status_code == 404
    assert response.json()["type"] == "test_not_found"


def test_unpublished_test_is_not_available(client, sample_test, db):
    sample_test.status = "draft"
    db.commit()

    response = client.post(f"/tests/{sample_test.id}/attempts/start", headers=auth(CANDIDATE))

    assert response.status_code == 400
    assert response.json()["type"] == "test_not_available"


def test_flag_endpoint_auto_submits(client, sample_test, notifier):
    attempt = start(client, sample_test.id)
    kinds = ["tab_switch", "tab_switch", "tab_switch", "fullscreen_exit", "copy_paste"]

    bodies = []
    for kind in kinds:
        response = client.post(
            f"/attempts/{attempt['id']}/flags", json={"type": kind}, headers=auth(CANDIDATE)
        )
        assert response.status_code == 200, response.text
        bodies.append(response.json())

    assert [b["auto_submitted"] for b in bodies] == [False] * 4 + [True]
    last = bodies[-1]
    assert last["status"] == "completed"
    assert last["total_warnings"] == 5
    assert last["counters"]["tab_switches"] == 3
    assert last["result"]["auto_submitted"] is True
    assert len(notifier.sent) == 1

    late = client.post(
        f"/attempts/{attempt['id']}/flags", json={"type": "copy_paste"}, headers=auth(CANDIDATE)
    )
    assert late.status_code == 200
    assert late.json()["recorded"] is False
    assert late.json()["counters"]["copy_paste_attempts"] == 1


def test_flag_response_lists_events_by_occurrence(client, sample_test):
    attempt = start(client, sample_test.id)
    url = f"/attempts/{attempt['id']}/flags"
    client.post(
        url,
        json={"type": "copy_paste", "occurred_at": "2024-05-01T09:05:00+00:00"},
        headers=auth(CANDIDATE),
    )
    response = client.post(
        url,
        json={"type": "tab_switch", "occurred_at": "2024-05-01T09:01:00+00:00"},
        headers=auth(CANDIDATE),
    )

    flagged = [e["type"] for e in response.json()["counters"]["events"]]
    stored = client.get(f"/attempts/{attempt['id']}", headers=auth(CANDIDATE)).json()

    assert flagged == ["tab_switch", "copy_paste"]
    assert [e["type"] for e in stored["proctoring"]["events"]] == flagged


def test_flag_endpoint_validates_type(client, sample_test):
    attempt = start(client, sample_test.id)
    response = client.post(
        f"/attempts/{attempt['id']}/flags", json={"type": "screenshot"}, headers=auth(CANDIDATE)
    )
    assert response.status_code == 422


def test_owner_exports_proctoring_csv(client, sample_test):
    attempt = start(client, sample_test.id)
    for kind in ("fullscreen_exit", "copy_paste"):
        client.post(
            f"/attempts/{attempt['id']}/flags", json={"type": kind}, headers=auth(CANDIDATE)
        )

    response = client.get(
        f"/tests/{sample_test.id}/proctoring/export",
        params={"attempt_id": attempt["id"]},
        headers=auth(OWNER),
    )

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    lines = response.text.splitlines()
    assert lines[0] == "Type,Occurred At"
    assert [line.split(",")[0] for line in lines[1:]] == ["fullscreen_exit", "copy_paste"]


def test_owner_exports_proctoring_pdf(client, sample_test):
    attempt = start(client, sample_test.id)
    client.post(
        f"/attempts/{attempt['id']}/flags", json={"type": "tab_switch"}, headers=auth(CANDIDATE)
    )

    response = client.get(
        f"/tests/{sample_test.id}/proctoring/export",
        params={"attempt_id": attempt["id"], "format": "pdf"},
        headers=auth(OWNER),
    )

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/pdf"
    assert f"proctoring-events-{attempt['id']}.pdf" in response.headers["content-disposition"]
    assert response.content.startswith(b"%PDF")


def test_export_rejects_unknown_format(client, sample_test):
    attempt = start(client, sample_test.id)
    response = client.get(
        f"/tests/{sample_test.id}/proctoring/export",
        params={"attempt_id": attempt["id"], "format": "xlsx"},
        headers=auth(OWNER),
    )
    assert response.status_code == 422


def test_candidate_cannot_export(client, sample_test):
    attempt = start(client, sample_test.id)
    response = client.get(
        f"/tests/{sample_test.id}/proctoring/export",
        params={"attempt_id": attempt["id"]},
        headers=auth(CANDIDATE),
    )
    assert response.status_code == 403


def test_root_reports_app_info(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert "X-Process-Time" in response.headers
