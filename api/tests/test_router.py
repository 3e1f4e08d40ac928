"""Tests for the progression HTTP API."""

from unittest.mock import AsyncMock, patch
from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient

from src.auth.permissions import UserRole
from src.main import app
from src.progression.errors import EnrollmentBusyError
from tests.conftest import auth_header


@pytest.fixture
def api(client: TestClient, services) -> TestClient:
    """Client whose app runs on the in-memory progression services."""
    app.state.progression = services
    return client


@pytest.fixture
def admin() -> dict[str, str]:
    return auth_header(uuid4(), UserRole.ADMIN)


def enroll(api: TestClient, admin, worker_id: UUID, course) -> dict:
    response = api.post(
        "/v1/enrollments",
        json={"worker_id": str(worker_id), "course_level_id": str(course.level.id)},
        headers=admin,
    )
    assert response.status_code == 201
    return response.json()


def answers_json(question_set, correct: int) -> list[dict[str, str]]:
    answers = []
    for index, question in enumerate(question_set.questions):
        option = question.options[0] if index < correct else question.options[1]
        answers.append({"question_id": str(question.id), "option_id": str(option.id)})
    return answers


def submit(api: TestClient, worker_id: UUID, enrollment_id, item, **payload):
    return api.post(
        "/v1/worker/progress",
        json={
            "enrollment_id": str(enrollment_id),
            "content_item_id": str(item.id),
            **payload,
        },
        headers=auth_header(worker_id),
    )


class TestEnrollmentEndpoints:
    """Tests for enrollment creation and reads."""

    def test_admin_creates_enrollment(self, api, admin, course, worker_id) -> None:
        data = enroll(api, admin, worker_id, course)

        assert data["status"] == "active"
        assert data["worker_id"] == str(worker_id)

    def test_worker_cannot_create_enrollment(self, api, course, worker_id) -> None:
        response = api.post(
            "/v1/enrollments",
            json={"worker_id": str(worker_id), "course_level_id": str(course.level.id)},
            headers=auth_header(worker_id),
        )
        assert response.status_code == 403

    def test_missing_token(self, api, course, worker_id) -> None:
        response = api.get("/v1/worker/enrollments")
        assert response.status_code == 401

    def test_invalid_token(self, api) -> None:
        response = api.get(
            "/v1/worker/enrollments", headers={"Authorization": "Bearer not-a-jwt"}
        )
        assert response.status_code == 401

    def test_duplicate_enrollment_conflict(
        self, api, admin, course, worker_id
    ) -> None:
        enroll(api, admin, worker_id, course)

        response = api.post(
            "/v1/enrollments",
            json={"worker_id": str(worker_id), "course_level_id": str(course.level.id)},
            headers=admin,
        )

        assert response.status_code == 409
        assert response.json()["code"] == "already_enrolled"

    def test_unknown_level(self, api, admin, worker_id) -> None:
        response = api.post(
            "/v1/enrollments",
            json={"worker_id": str(worker_id), "course_level_id": str(uuid4())},
            headers=admin,
        )
        assert response.status_code == 404
        assert response.json()["code"] == "course_level_not_found"

    def test_list_my_enrollments(self, api, admin, course, worker_id) -> None:
        created = enroll(api, admin, worker_id, course)

        response = api.get("/v1/worker/enrollments", headers=auth_header(worker_id))

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["items"][0]["id"] == created["id"]

    def test_content_tree(self, api, admin, course, worker_id) -> None:
        created = enroll(api, admin, worker_id, course)

        response = api.get(
            f"/v1/worker/enrollments/{created['id']}", headers=auth_header(worker_id)
        )

        assert response.status_code == 200
        data = response.json()
        assert data["items_total"] == 4
        assert data["progress_percent"] == 0
        assert data["current_content_item_id"] == str(course.intro.id)
        assert [i["status"] for i in data["items"]] == [
            "unlocked",
            "locked",
            "locked",
            "locked",
        ]
        assert data["items"][0]["min_watch_percentage"] == 90
        assert data["items"][1]["passing_score"] == 70

    def test_other_worker_gets_not_found(self, api, admin, course, worker_id) -> None:
        created = enroll(api, admin, worker_id, course)

        response = api.get(
            f"/v1/worker/enrollments/{created['id']}", headers=auth_header(uuid4())
        )

        assert response.status_code == 404
        assert response.json()["code"] == "enrollment_not_found"

    def test_supervisor_sees_any_enrollment(
        self, api, admin, course, worker_id
    ) -> None:
        created = enroll(api, admin, worker_id, course)

        response = api.get(
            f"/v1/worker/enrollments/{created['id']}",
            headers=auth_header(uuid4(), UserRole.SUPERVISOR),
        )

        assert response.status_code == 200

    def test_only_owner_submits_progress(
        self, api, admin, course, worker_id
    ) -> None:
        created = enroll(api, admin, worker_id, course)
        supervisor = auth_header(uuid4(), UserRole.SUPERVISOR)
        payload = {
            "enrollment_id": created["id"],
            "content_item_id": str(course.intro.id),
            "watch_percentage": 100,
        }

        viewed = api.get(f"/v1/worker/enrollments/{created['id']}", headers=supervisor)
        submitted = api.post("/v1/worker/progress", json=payload, headers=supervisor)

        assert viewed.status_code == 200
        assert submitted.status_code == 404
        assert submitted.json()["code"] == "enrollment_not_found"
        owned = submit(
            api, worker_id, created["id"], course.intro, watch_percentage=100
        )
        assert owned.status_code == 200

    def test_admin_expires_enrollment(self, api, admin, course, worker_id) -> None:
        created = enroll(api, admin, worker_id, course)

        response = api.post(f"/v1/enrollments/{created['id']}/expire", headers=admin)

        assert response.status_code == 200
        assert response.json()["status"] == "expired"


class TestProgressEndpoint:
    """Tests for POST /v1/worker/progress."""

    def test_watch_submission(self, api, admin, course, worker_id) -> None:
        created = enroll(api, admin, worker_id, course)

        response = submit(
            api, worker_id, created["id"], course.intro, watch_percentage=85
        )

        assert response.status_code == 200
        data = response.json()
        assert data["passed"] is False
        assert data["progress_status"] == "in_progress"
        assert data["attempts_remaining"] is None

    def test_locked_item(self, api, admin, course, worker_id) -> None:
        created = enroll(api, admin, worker_id, course)

        response = submit(
            api,
            worker_id,
            created["id"],
            course.quiz,
            answers=answers_json(course.quiz_questions, 5),
        )

        assert response.status_code == 423
        assert response.json()["code"] == "item_locked"

    def test_both_payloads_rejected(self, api, admin, course, worker_id) -> None:
        created = enroll(api, admin, worker_id, course)

        response = submit(
            api, worker_id, created["id"], course.intro, watch_percentage=90, answers=[]
        )

        assert response.status_code == 422

    def test_answers_for_video_rejected(self, api, admin, course, worker_id) -> None:
        created = enroll(api, admin, worker_id, course)

        response = submit(api, worker_id, created["id"], course.intro, answers=[])

        assert response.status_code == 422
        assert response.json()["code"] == "invalid_submission"

    def test_expired_enrollment(
        self, api, admin, course, clock, worker_id
    ) -> None:
        created = enroll(api, admin, worker_id, course)
        clock.advance(days=31)

        response = submit(
            api, worker_id, created["id"], course.intro, watch_percentage=100
        )

        assert response.status_code == 403
        assert response.json()["code"] == "enrollment_expired"

    def test_submit_to_other_workers_enrollment(
        self, api, admin, course, worker_id
    ) -> None:
        created = enroll(api, admin, worker_id, course)

        response = submit(
            api, uuid4(), created["id"], course.intro, watch_percentage=100
        )

        assert response.status_code == 404

    def test_full_level_issues_certificate(
        self, api, admin, course, worker_id
    ) -> None:
        created = enroll(api, admin, worker_id, course)
        enrollment_id = created["id"]

        submit(api, worker_id, enrollment_id, course.intro, watch_percentage=100)
        submit(
            api,
            worker_id,
            enrollment_id,
            course.quiz,
            answers=answers_json(course.quiz_questions, 4),
        )
        submit(api, worker_id, enrollment_id, course.lesson, watch_percentage=95)
        response = submit(
            api,
            worker_id,
            enrollment_id,
            course.final,
            answers=answers_json(course.final_questions, 5),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["enrollment_status"] == "completed"
        code = data["certificate_code"]

        verify = api.get(f"/v1/certificates/{code}")
        assert verify.status_code == 200
        assert verify.json()["enrollment_id"] == enrollment_id

        mine = api.get("/v1/worker/certificates", headers=auth_header(worker_id))
        assert mine.json()["total"] == 1

        issued = api.post(f"/v1/enrollments/{enrollment_id}/certificate", headers=admin)
        assert issued.json()["certificate_code"] == code

    def test_busy_enrollment_is_retryable(
        self, api, admin, course, services, worker_id
    ) -> None:
        created = enroll(api, admin, worker_id, course)

        with patch.object(
            services.engine,
            "submit_progress",
            AsyncMock(side_effect=EnrollmentBusyError()),
        ):
            response = submit(
                api, worker_id, created["id"], course.intro, watch_percentage=100
            )

        assert response.status_code == 503
        assert response.headers["Retry-After"] == "1"
        data = response.json()
        assert data["code"] == "enrollment_busy"
        assert data["retryable"] is True

    def test_store_failure_is_retryable(
        self, api, admin, course, services, worker_id
    ) -> None:
        created = enroll(api, admin, worker_id, course)

        with patch.object(
            services.engine,
            "submit_progress",
            AsyncMock(side_effect=ConnectionError("store down")),
        ):
            response = submit(
                api, worker_id, created["id"], course.intro, watch_percentage=100
            )

        assert response.status_code == 503
        assert response.json()["code"] == "store_unavailable"


class TestCertificateEndpoints:
    """Tests for certificate reads."""

    def test_unknown_code(self, api) -> None:
        response = api.get("/v1/certificates/CERT-0-0000")
        assert response.status_code == 404
        assert response.json()["code"] == "certificate_not_found"

    def test_issue_before_completion(self, api, admin, course, worker_id) -> None:
        created = enroll(api, admin, worker_id, course)

        response = api.post(
            f"/v1/enrollments/{created['id']}/certificate", headers=admin
        )

        assert response.status_code == 409
        assert response.json()["code"] == "enrollment_not_completed"

    def test_certificate_not_found(self, api, admin, course, worker_id) -> None:
        created = enroll(api, admin, worker_id, course)

        response = api.get(
            f"/v1/enrollments/{created['id']}/certificate", headers=admin
        )

        assert response.status_code == 404


def test_services_unavailable(client: TestClient, worker_id) -> None:
    """Without a database session the API answers 503."""
    app.state.progression = None

    response = client.get("/v1/worker/enrollments", headers=auth_header(worker_id))

    assert response.status_code == 503
