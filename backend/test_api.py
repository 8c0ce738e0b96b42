"""
HTTP tests for the auth, activity and item routes and the error body shape
"""
import pytest
from fastapi.testclient import TestClient
from sqlmodel import select

import api.auth as auth
from api.auth import get_current_user
from database.database import get_session
from models.database.db_models import AuthSession
from main import app
from services.clock import get_clock


@pytest.fixture
def as_user(db, clock):
    """Client whose requests are made by whichever user was set last."""
    principal = {}

    def current_user():
        return principal["user"]

    def session():
        yield db

    app.dependency_overrides[get_session] = session
    app.dependency_overrides[get_current_user] = current_user
    app.dependency_overrides[get_clock] = lambda: clock
    client = TestClient(app)

    def use(user):
        principal["user"] = user
        return client

    yield use
    app.dependency_overrides.clear()


class TestProgressRoutes:
    def test_save_then_read_progress(self, factory, course, as_user):
        student = factory.student()
        factory.enroll(course["class"], student)
        client = as_user(student)
        url = f"/api/activities/{course['activity'].id}/progress"

        saved = client.put(url, json={"draft_files": [{"name": "main.py"}], "draft_time_remaining": 120})
        assert saved.status_code == 200

        body = client.get(url).json()
        assert body["draft_files"] == [{"name": "main.py"}]
        assert body["expired"] is False

        assert client.delete(url).status_code == 204
        missing = client.get(url)
        assert missing.status_code == 404
        assert missing.json() == {"kind": "NotFound", "message": "No saved progress for this activity"}

    def test_outsiders_get_an_unauthorized_body(self, factory, course, as_user):
        outsider = factory.student("Out", "Sider")
        response = as_user(outsider).get(f"/api/activities/{course['activity'].id}/progress")

        assert response.status_code == 403
        assert response.json()["kind"] == "Unauthorized"

    def test_check_code_counts_runs(self, factory, course, as_user):
        student = factory.student()
        factory.enroll(course["class"], student)
        client = as_user(student)
        first = course["items"][0]
        url = f"/api/activities/{course['activity'].id}/items/{first.id}/check-code"

        client.post(url, json={})
        body = client.post(url, json={}).json()

        assert body["run_count"] == 2


class TestSubmissionRoutes:
    def test_finalize_then_read_leaderboard_and_history(self, factory, course, as_user):
        student = factory.student("Amy", "Adams")
        factory.enroll(course["class"], student)
        first, second = course["items"]
        activity_id = course["activity"].id
        client = as_user(student)

        response = client.post(
            f"/api/activities/{activity_id}/submissions/finalize",
            json={"submissions": [
                {"item_id": first.id, "score": 60, "item_time_spent": 30},
                {"item_id": second.id, "score": 20, "item_time_spent": 45},
            ]},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["attempt_no"] == 1
        assert body["final_score"] == 80
        assert body["final_time_spent"] == 75
        assert body["rank"] == 1

        board = client.get(f"/api/activities/{activity_id}/leaderboard").json()
        assert board == [{"student_id": student.id, "student_name": "ADAMS, Amy", "score": 80, "time": 75, "rank": 1}]

        history = client.get(f"/api/activities/{activity_id}/attempts").json()
        assert history["counted_attempt_no"] == 1
        assert history["attempts"][0]["item_count"] == 2

    def test_bad_body_uses_the_error_shape(self, factory, course, as_user):
        student = factory.student()
        factory.enroll(course["class"], student)

        response = as_user(student).post(
            f"/api/activities/{course['activity'].id}/submissions/finalize",
            json={"submissions": "not a list"},
        )

        assert response.status_code == 422
        assert response.json()["kind"] == "ValidationError"

    def test_teacher_reviews_and_recomputes(self, factory, course, as_user):
        student = factory.student()
        factory.enroll(course["class"], student)
        first = course["items"][0]
        activity_id = course["activity"].id
        as_user(student).post(
            f"/api/activities/{activity_id}/submissions/finalize",
            json={"submissions": [{"item_id": first.id, "score": 10}]},
        )

        client = as_user(course["teacher"])
        review = client.get(f"/api/activities/{activity_id}/submissions").json()
        assert [(row["student_id"], row["attempt_no"]) for row in review] == [(student.id, 1)]

        results = client.post(f"/api/activities/{activity_id}/recompute").json()
        assert results == [{"student_id": student.id, "final_score": 10, "final_time_spent": 0, "rank": 1}]

        stats = client.get(f"/api/activities/{activity_id}/items/stats").json()
        assert stats[0]["student_count"] == 1

    def test_null_time_on_an_edit_is_a_validation_error(self, factory, course, as_user):
        student = factory.student()
        factory.enroll(course["class"], student)
        result = factory.finalize(course["activity"], student, {course["items"][0].id: 10})

        response = as_user(student).patch(
            f"/api/activities/{course['activity'].id}/submissions/{result.submissions[0].id}",
            json={"item_time_spent": None},
        )

        assert response.status_code == 422
        assert response.json() == {"kind": "ValidationError", "message": "Item time spent cannot be null"}

    def test_students_cannot_recompute(self, factory, course, as_user):
        student = factory.student()
        factory.enroll(course["class"], student)

        response = as_user(student).post(f"/api/activities/{course['activity'].id}/recompute")

        assert response.status_code == 403


class TestActivityAndItemRoutes:
    def test_teacher_updates_policy(self, factory, course, as_user):
        response = as_user(course["teacher"]).patch(
            f"/api/activities/{course['activity'].id}",
            json={"final_score_policy": "highest_score"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["activity"]["final_score_policy"] == "highest_score"
        assert "final_score_policy" in body["changed"]

    def test_invalid_dates_are_a_validation_error(self, factory, course, as_user):
        activity = course["activity"]
        response = as_user(course["teacher"]).patch(
            f"/api/activities/{activity.id}",
            json={"close_date": "2000-01-01T00:00:00Z"},
        )

        assert response.status_code == 422
        assert response.json()["kind"] == "ValidationError"

    def test_replacing_test_cases_updates_activity_points(self, factory, course, as_user):
        first = course["items"][0]
        response = as_user(course["teacher"]).put(
            f"/api/items/{first.id}/test-cases",
            json={"item_points": 30, "test_cases": [
                {"expected_output": "1"}, {"expected_output": "2"}, {"expected_output": "3"},
            ]},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["item"]["item_points"] == 30
        assert [case["test_case_points"] for case in body["test_cases"]] == [10, 10, 10]
        assert body["activity_max_points"] == {str(course["activity"].id): 70}

    def test_unknown_activity_is_not_found(self, factory, as_user):
        response = as_user(factory.teacher()).get("/api/activities/9999/leaderboard")

        assert response.status_code == 404
        assert response.json()["kind"] == "NotFound"


@pytest.fixture
def anonymous(db):
    """Client that goes through the real cookie session lookup."""
    def session():
        yield db

    app.dependency_overrides[get_session] = session
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestAuthRoutes:
    def test_register_login_and_me_round_trip(self, db, anonymous):
        registered = anonymous.post("/auth/register", json={
            "email": "amy@example.com", "password": "s3cret", "first_name": " Amy ", "last_name": "Adams",
        })
        assert registered.status_code == 201
        assert "sid" in registered.cookies

        anonymous.cookies.clear()
        assert anonymous.post("/auth/login", json={"email": "amy@example.com", "password": "s3cret"}).status_code == 204

        me = anonymous.get("/auth/me").json()
        assert me["email"] == "amy@example.com"
        assert me["first_name"] == "Amy"
        assert me["role"] == "student"

        # One session from register, one from login; logout ends only the current one
        assert len(db.exec(select(AuthSession)).all()) == 2
        assert anonymous.post("/auth/logout").status_code == 204
        assert len(db.exec(select(AuthSession)).all()) == 1

    def test_bad_password_is_unauthorized(self, anonymous):
        response = anonymous.post("/auth/login", json={"email": "nobody@example.com", "password": "nope"})

        assert response.status_code == 401
        assert response.json() == {"kind": "Unauthorized", "message": "Bad credentials"}

    def test_missing_session_uses_the_error_shape(self, course, anonymous):
        response = anonymous.get(f"/api/activities/{course['activity'].id}/leaderboard")

        assert response.status_code == 401
        assert response.json() == {"kind": "Unauthorized", "message": "Missing session"}

    def test_teachers_need_the_registration_key(self, anonymous, monkeypatch):
        monkeypatch.setitem(auth.config, "auth", {"registration_key": "letmein"})

        response = anonymous.post("/auth/register", json={
            "email": "t@example.com", "password": "x", "role": "teacher", "key": "wrong",
        })

        assert response.status_code == 400
        assert response.json()["kind"] == "ValidationError"
