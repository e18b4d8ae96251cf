from __future__ import annotations

from fortifymis.apps.accounts import models as account_models
from fortifymis.apps.notifications import models as notification_models
from fortifymis.apps.training import models as training_models


COURSE = {
    "title": "Premix handling and storage",
    "category": "FORTIFICATION",
    "difficulty": "BEGINNER",
    "duration_minutes": 45,
}


def _create_course(client, headers, **overrides):
    response = client.post("/api/training/courses", json=dict(COURSE, **overrides), headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["data"]


def test_only_training_managers_create_courses(client, make_mill, make_user, auth_headers):
    mill = make_mill()
    operator = make_user(account_models.UserRole.MILL_OPERATOR, mill=mill)
    manager = make_user(account_models.UserRole.MILL_MANAGER, mill=mill)

    denied = client.post("/api/training/courses", json=COURSE, headers=auth_headers(operator))
    assert denied.status_code == 403

    course = _create_course(client, auth_headers(manager))
    assert course["is_published"] is True

    _create_course(client, auth_headers(manager), title="Draft course", is_published=False)
    listing = client.get("/api/training/courses", headers=auth_headers(operator)).json()["data"]
    assert [c["title"] for c in listing["items"]] == [COURSE["title"]]


def test_passing_completion_issues_certificate_once(client, db_session, make_mill, make_user, auth_headers):
    mill = make_mill()
    manager = make_user(account_models.UserRole.MILL_MANAGER, mill=mill)
    operator = make_user(account_models.UserRole.MILL_OPERATOR, mill=mill, full_name="Amina Otieno")
    course = _create_course(client, auth_headers(manager))
    headers = auth_headers(operator)

    started = client.post("/api/training/progress", json={"course_id": course["id"], "progress": 40}, headers=headers)
    assert started.status_code == 201
    assert started.json()["data"]["status"] == "IN_PROGRESS"
    assert started.json()["data"]["started_at"] is not None

    completed = client.post(
        "/api/training/progress",
        json={"course_id": course["id"], "status": "COMPLETED", "score": 88},
        headers=headers,
    )
    assert completed.status_code == 200
    data = completed.json()["data"]
    assert data["status"] == "COMPLETED"
    assert data["progress"] == 100.0
    assert data["certificate_number"].startswith("TC-")

    again = client.post(
        "/api/training/progress",
        json={"course_id": course["id"], "progress": 50},
        headers=headers,
    )
    assert again.status_code == 400
    assert again.json()["error"] == "Course already completed"

    certificates = client.get("/api/training/certificates", headers=headers).json()["data"]
    assert len(certificates) == 1
    assert db_session.query(training_models.TrainingCertificate).count() == 1

    inbox = (
        db_session.query(notification_models.Notification)
        .filter(notification_models.Notification.user_id == operator.id)
        .all()
    )
    assert [n.type for n in inbox] == ["TRAINING_CERTIFICATE_ISSUED"]

    verified = client.get(f"/api/certificates/verify/{certificates[0]['verification_code'].lower()}")
    assert verified.status_code == 200
    assert verified.json()["data"]["holder_name"] == "Amina Otieno"
    assert verified.json()["data"]["course_title"] == COURSE["title"]

    unknown = client.get("/api/certificates/verify/NOPE")
    assert unknown.status_code == 404


def test_low_score_marks_attempt_failed_and_allows_retry(client, db_session, make_mill, make_user, auth_headers):
    mill = make_mill()
    manager = make_user(account_models.UserRole.MILL_MANAGER, mill=mill)
    operator = make_user(account_models.UserRole.MILL_OPERATOR, mill=mill)
    course = _create_course(client, auth_headers(manager))
    headers = auth_headers(operator)

    failed = client.post(
        "/api/training/progress",
        json={"course_id": course["id"], "status": "COMPLETED", "score": 55},
        headers=headers,
    )
    assert failed.status_code == 201
    assert failed.json()["data"]["status"] == "FAILED"
    assert failed.json()["data"]["certificate_number"] is None

    retried = client.post(
        "/api/training/progress",
        json={"course_id": course["id"], "status": "COMPLETED", "score": 70},
        headers=headers,
    )
    assert retried.json()["data"]["status"] == "COMPLETED"
    assert db_session.query(training_models.TrainingCertificate).count() == 1


def test_completion_requires_score_and_published_course(client, make_mill, make_user, auth_headers):
    mill = make_mill()
    manager = make_user(account_models.UserRole.MILL_MANAGER, mill=mill)
    operator = make_user(account_models.UserRole.MILL_OPERATOR, mill=mill)
    course = _create_course(client, auth_headers(manager))
    draft = _create_course(client, auth_headers(manager), title="Unreleased course", is_published=False)

    no_score = client.post(
        "/api/training/progress",
        json={"course_id": course["id"], "status": "COMPLETED"},
        headers=auth_headers(operator),
    )
    assert no_score.status_code == 400
    assert no_score.json()["error"] == "A score is required to complete a course"

    unpublished = client.post(
        "/api/training/progress", json={"course_id": draft["id"]}, headers=auth_headers(operator)
    )
    assert unpublished.status_code == 400
    assert unpublished.json()["error"] == "Course is not published"


def test_progress_of_others_is_limited_to_supervisors(client, make_mill, make_user, auth_headers):
    mill = make_mill()
    manager = make_user(account_models.UserRole.MILL_MANAGER, mill=mill)
    other_manager = make_user(account_models.UserRole.MILL_MANAGER, mill=make_mill())
    operator = make_user(account_models.UserRole.MILL_OPERATOR, mill=mill)
    colleague = make_user(account_models.UserRole.MILL_OPERATOR, mill=mill)
    course = _create_course(client, auth_headers(manager))
    client.post("/api/training/progress", json={"course_id": course["id"]}, headers=auth_headers(operator))

    supervised = client.get(
        "/api/training/progress", params={"user_id": operator.id}, headers=auth_headers(manager)
    )
    assert supervised.status_code == 200
    assert len(supervised.json()["data"]) == 1

    peer = client.get("/api/training/progress", params={"user_id": operator.id}, headers=auth_headers(colleague))
    assert peer.status_code == 403

    outside = client.get(
        "/api/training/progress", params={"user_id": operator.id}, headers=auth_headers(other_manager)
    )
    assert outside.status_code == 403
