"""
Tests for finalizing attempts, re-deriving final results and attempt history
"""
import pytest
from sqlalchemy import text
from sqlalchemy.sql.dml import Update
from sqlmodel import select

import services.submission_service as submission_service
from models.database.db_models import (
    ActivityStudent, ActivitySubmission, FinalScorePolicy, ProgressOwner
)
from services.errors import ConcurrencyConflict, NotFound, Unauthorized, ValidationError
from services.leaderboard_service import get_leaderboard
from services.progress_service import find_draft, record_check_run, save_draft
from services.submission_service import (
    ItemSubmissionInput, delete_submission, finalize_submission, get_attempt_history,
    recompute_final_results, update_submission,
)


def pivot_for(db, activity, student):
    return db.exec(
        select(ActivityStudent).where(
            ActivityStudent.activity_id == activity.id,
            ActivityStudent.student_id == student.id,
        )
    ).one()


def submission_count(db, activity):
    return len(db.exec(select(ActivitySubmission).where(ActivitySubmission.activity_id == activity.id)).all())


class TestFinalizeSubmission:
    def test_attempts_are_numbered_from_one(self, db, factory, course):
        student = factory.student()
        factory.enroll(course["class"], student)
        first, second = course["items"]

        one = factory.finalize(course["activity"], student, {first.id: 50, second.id: 40})
        two = factory.finalize(course["activity"], student, {first.id: 60, second.id: 10})

        assert one.attempt_no == 1
        assert two.attempt_no == 2
        assert {s.attempt_no for s in two.submissions} == {2}
        assert pivot_for(db, course["activity"], student).attempts_taken == 2

    def test_final_result_follows_last_attempt_policy(self, db, factory, course):
        student = factory.student()
        factory.enroll(course["class"], student)
        first, second = course["items"]

        factory.finalize(course["activity"], student, {first.id: 60, second.id: 40}, times={first.id: 100, second.id: 100})
        result = factory.finalize(course["activity"], student, {first.id: 30}, times={first.id: 80})

        assert result.final_score == 30
        assert result.final_time_spent == 80
        assert result.rank == 1

    def test_final_result_follows_highest_score_policy(self, db, factory, course):
        student = factory.student()
        factory.enroll(course["class"], student)
        first, second = course["items"]
        activity = factory.activity(
            course["teacher"], course["class"], [(first, 60), (second, 40)],
            final_score_policy=FinalScorePolicy.HIGHEST_SCORE,
        )

        factory.finalize(activity, student, {first.id: 60, second.id: 30})
        result = factory.finalize(activity, student, {first.id: 10, second.id: 10})

        assert result.final_score == 90
        assert result.final_time_spent == 120

    def test_reported_overall_time_counts_under_last_attempt(self, db, factory, course):
        student = factory.student()
        factory.enroll(course["class"], student)
        first = course["items"][0]

        result = factory.finalize(course["activity"], student, {first.id: 10}, times={first.id: 30}, overall_time_spent=500)

        assert result.final_time_spent == 500
        assert result.submissions[0].overall_time_spent == 500

    def test_scores_are_clamped_to_item_points(self, db, factory, course):
        student = factory.student()
        factory.enroll(course["class"], student)
        first = course["items"][0]

        result = factory.finalize(course["activity"], student, {first.id: 75})

        assert result.submissions[0].raw_score == 60
        assert result.final_score == 60

    def test_check_code_deductions_are_reapplied_from_the_draft(self, db, factory, course, clock):
        student = factory.student()
        factory.enroll(course["class"], student)
        first, second = course["items"]
        activity = factory.activity(
            course["teacher"], course["class"], [(first, 100), (second, 50)],
            check_code_restriction=True, max_check_code_runs=3, check_code_deduction=20,
        )
        owner = ProgressOwner.for_user(student)
        for _ in range(3):
            record_check_run(db, activity, first.id, owner, clock)

        result = factory.finalize(activity, student, {first.id: 100, second.id: 50})

        by_item = {s.item_id: s for s in result.submissions}
        assert by_item[first.id].score == 60
        assert by_item[first.id].raw_score == 100
        assert by_item[first.id].check_code_runs == 3
        assert by_item[second.id].score == 50
        assert result.final_score == 110

    def test_draft_is_removed_after_finalize(self, db, factory, course, clock):
        student = factory.student()
        factory.enroll(course["class"], student)
        owner = ProgressOwner.for_user(student)
        save_draft(db, course["activity"], owner, {"draft_time_remaining": 300}, clock)

        factory.finalize(course["activity"], student, {course["items"][0].id: 10})

        assert find_draft(db, course["activity"].id, owner) is None

    def test_failure_midway_leaves_no_trace(self, db, factory, course, clock, monkeypatch):
        student = factory.student()
        factory.enroll(course["class"], student)
        owner = ProgressOwner.for_user(student)
        save_draft(db, course["activity"], owner, {"draft_time_remaining": 300}, clock)

        def broken_ranks(*args, **kwargs):
            raise RuntimeError("ranking store unavailable")

        monkeypatch.setattr(submission_service, "refresh_activity_ranks", broken_ranks)
        with pytest.raises(RuntimeError):
            factory.finalize(course["activity"], student, {course["items"][0].id: 10})

        assert db.exec(select(ActivityStudent)).all() == []
        assert submission_count(db, course["activity"]) == 0
        assert find_draft(db, course["activity"].id, owner) is not None

    def test_failure_on_a_later_attempt_keeps_the_counter(self, db, factory, course, monkeypatch):
        student = factory.student()
        factory.enroll(course["class"], student)
        first = course["items"][0]
        factory.finalize(course["activity"], student, {first.id: 10})

        def broken_ranks(*args, **kwargs):
            raise RuntimeError("ranking store unavailable")

        monkeypatch.setattr(submission_service, "refresh_activity_ranks", broken_ranks)
        with pytest.raises(RuntimeError):
            factory.finalize(course["activity"], student, {first.id: 20})
        monkeypatch.undo()

        assert pivot_for(db, course["activity"], student).attempts_taken == 1
        assert factory.finalize(course["activity"], student, {first.id: 20}).attempt_no == 2

    def test_lost_counter_race_is_a_concurrency_conflict(self, db, factory, course, monkeypatch):
        student = factory.student()
        factory.enroll(course["class"], student)
        first = course["items"][0]
        factory.finalize(course["activity"], student, {first.id: 10})

        real_execute = db.execute

        def racing_execute(statement, *args, **kwargs):
            if isinstance(statement, Update):
                # Another request claims the next attempt first
                real_execute(text("UPDATE activitystudent SET attempts_taken = attempts_taken + 1"))
            return real_execute(statement, *args, **kwargs)

        monkeypatch.setattr(db, "execute", racing_execute)
        with pytest.raises(ConcurrencyConflict):
            factory.finalize(course["activity"], student, {first.id: 20})
        monkeypatch.undo()

        assert submission_count(db, course["activity"]) == 1
        assert pivot_for(db, course["activity"], student).attempts_taken == 1

    def test_attempt_limit_is_enforced(self, db, factory, course):
        student = factory.student()
        factory.enroll(course["class"], student)
        first, second = course["items"]
        activity = factory.activity(course["teacher"], course["class"], [(first, 60), (second, 40)], max_attempts=1)

        factory.finalize(activity, student, {first.id: 10})
        with pytest.raises(ValidationError):
            factory.finalize(activity, student, {first.id: 20})

        assert submission_count(db, activity) == 1

    def test_closed_activity_rejects_attempts(self, db, factory, course, clock):
        student = factory.student()
        factory.enroll(course["class"], student)

        clock.advance(days=8)
        with pytest.raises(ValidationError):
            factory.finalize(course["activity"], student, {course["items"][0].id: 10})

    def test_teachers_cannot_finalize(self, db, factory, course):
        with pytest.raises(Unauthorized):
            factory.finalize(course["activity"], course["teacher"], {course["items"][0].id: 10})

    def test_items_must_belong_to_the_activity(self, db, factory, course):
        student = factory.student()
        factory.enroll(course["class"], student)
        stray = factory.item(course["teacher"], 5)

        with pytest.raises(ValidationError):
            factory.finalize(course["activity"], student, {stray.id: 5})

    def test_an_item_may_only_appear_once(self, db, factory, course, clock):
        student = factory.student()
        factory.enroll(course["class"], student)
        first = course["items"][0]
        entries = [ItemSubmissionInput(item_id=first.id, score=1), ItemSubmissionInput(item_id=first.id, score=2)]

        with pytest.raises(ValidationError):
            finalize_submission(db, course["activity"], student, entries, clock)

    def test_empty_submission_is_rejected(self, db, factory, course, clock):
        student = factory.student()
        factory.enroll(course["class"], student)

        with pytest.raises(ValidationError):
            finalize_submission(db, course["activity"], student, [], clock)


class TestRecomputeFinalResults:
    def _history(self, factory, course):
        first, second = course["items"]
        amy = factory.student("Amy", "Adams")
        ben = factory.student("Ben", "Brown")
        factory.enroll(course["class"], amy, ben)
        factory.finalize(course["activity"], amy, {first.id: 60, second.id: 40}, times={first.id: 50, second.id: 50})
        factory.finalize(course["activity"], amy, {first.id: 20}, times={first.id: 30})
        factory.finalize(course["activity"], ben, {first.id: 50}, times={first.id: 40})
        return amy, ben

    def test_running_twice_gives_the_same_results(self, db, factory, course, clock):
        self._history(factory, course)

        once = recompute_final_results(db, course["activity"], clock)
        twice = recompute_final_results(db, course["activity"], clock)

        assert once == twice

    def test_switching_policy_changes_who_leads(self, db, factory, course, clock):
        amy, ben = self._history(factory, course)
        activity = course["activity"]

        results = {r.student_id: r for r in recompute_final_results(db, activity, clock)}
        assert results[amy.id].final_score == 20
        assert results[ben.id].rank == 1

        activity.final_score_policy = FinalScorePolicy.HIGHEST_SCORE
        db.add(activity)
        db.commit()

        results = {r.student_id: r for r in recompute_final_results(db, activity, clock)}
        assert results[amy.id].final_score == 100
        assert results[amy.id].final_time_spent == 100
        assert results[amy.id].rank == 1
        assert results[ben.id].rank == 2

    def test_unenrolled_students_are_left_out(self, db, factory, course, clock):
        amy, ben = self._history(factory, course)
        factory.unenroll(course["class"], ben)

        results = recompute_final_results(db, course["activity"], clock)

        assert [r.student_id for r in results] == [amy.id]
        assert results[0].rank == 1
        assert pivot_for(db, course["activity"], ben).rank is None

    def test_students_with_no_submissions_left_drop_off_the_board(self, db, factory, course, clock):
        amy, ben = self._history(factory, course)
        activity = course["activity"]
        for submission in db.exec(select(ActivitySubmission).where(ActivitySubmission.student_id == ben.id)).all():
            delete_submission(db, activity, ben, submission.id)

        results = {r.student_id: r for r in recompute_final_results(db, activity, clock)}

        assert results[ben.id].rank is None
        pivot = pivot_for(db, activity, ben)
        assert pivot.final_score is None
        assert pivot.final_time_spent is None
        assert pivot.attempts_taken == 1
        assert [entry.student_id for entry in get_leaderboard(db, activity)] == [amy.id]


class TestAttemptHistory:
    def test_history_marks_the_counted_attempt(self, db, factory, course):
        student = factory.student()
        factory.enroll(course["class"], student)
        first, second = course["items"]
        factory.finalize(course["activity"], student, {first.id: 60, second.id: 40})
        factory.finalize(course["activity"], student, {first.id: 5})

        summaries, counted = get_attempt_history(db, course["activity"], student)

        assert [(s.attempt_no, s.total_score, s.item_count) for s in summaries] == [(1, 100, 2), (2, 5, 1)]
        assert counted == 2

    def test_no_attempts_yet(self, db, factory, course):
        student = factory.student()
        assert get_attempt_history(db, course["activity"], student) == ([], None)


class TestOwnSubmissions:
    def test_student_can_edit_their_own_submission(self, db, factory, course):
        student = factory.student()
        factory.enroll(course["class"], student)
        result = factory.finalize(course["activity"], student, {course["items"][0].id: 10})
        submission = result.submissions[0]

        updated = update_submission(
            db, course["activity"], student, submission.id,
            {"code_submission": [{"name": "main.py"}], "item_time_spent": 99},
        )

        assert updated.code_submission == [{"name": "main.py"}]
        assert updated.item_time_spent == 99
        assert updated.score == submission.score

    def test_other_students_submissions_are_not_found(self, db, factory, course):
        owner = factory.student()
        other = factory.student("Oli", "Other")
        factory.enroll(course["class"], owner, other)
        result = factory.finalize(course["activity"], owner, {course["items"][0].id: 10})

        with pytest.raises(NotFound):
            update_submission(db, course["activity"], other, result.submissions[0].id, {"item_time_spent": 1})
        with pytest.raises(NotFound):
            delete_submission(db, course["activity"], other, result.submissions[0].id)

    def test_student_can_delete_their_own_submission(self, db, factory, course):
        student = factory.student()
        factory.enroll(course["class"], student)
        result = factory.finalize(course["activity"], student, {course["items"][0].id: 10})

        delete_submission(db, course["activity"], student, result.submissions[0].id)

        assert submission_count(db, course["activity"]) == 0

    def test_clearing_time_spent_is_rejected(self, db, factory, course):
        student = factory.student()
        factory.enroll(course["class"], student)
        result = factory.finalize(course["activity"], student, {course["items"][0].id: 10})
        submission = result.submissions[0]

        with pytest.raises(ValidationError):
            update_submission(db, course["activity"], student, submission.id, {"item_time_spent": None})

        db.refresh(submission)
        assert submission.item_time_spent == 60
