from fastapi import APIRouter, Depends, Response, status
from sqlmodel import Session as DBSession
from typing import List

from api.auth import get_current_user
from database.database import get_session
from models.database.db_models import Activity, ActivitySubmission, ProgressOwner, User
from models.object_types import (
    ActivityCreateRequest, ActivityResponse, ActivityUpdateRequest, ActivityUpdateResponse,
    AttemptHistoryResponse, AttemptSummaryResponse, CheckCodeRequest, CheckCodeResponse,
    DraftPayload, DraftResponse, FinalizeRequest, FinalizeResponse, FinalResultResponse,
    ItemStatisticsResponse, LeaderboardEntryResponse, SubmissionResponse, SubmissionReviewEntry,
    SubmissionUpdateRequest,
)
from scripts.permission_helpers import (
    get_activity_or_404, require_activity_access, require_activity_owner, require_student_access
)
from services.activity_service import ActivityItemInput, create_activity, update_activity_settings
from services.clock import Clock, get_clock
from services.errors import NotFound
from services.leaderboard_service import get_item_statistics, get_leaderboard
from services.notification_service import OutboxNotificationSink
from services.progress_service import DraftView, clear_draft, get_draft, record_check_run, save_draft
from services.submission_service import (
    ItemSubmissionInput, delete_submission, finalize_submission, get_attempt_history,
    list_submissions, recompute_final_results, update_submission,
)

router = APIRouter(prefix="/api/activities", tags=["activities"])


def _activity_response(activity: Activity) -> ActivityResponse:
    return ActivityResponse.model_validate(activity, from_attributes=True)


def _submission_response(submission: ActivitySubmission) -> SubmissionResponse:
    return SubmissionResponse.model_validate(submission, from_attributes=True)


def _draft_response(view: DraftView) -> DraftResponse:
    draft = view.draft
    return DraftResponse(
        activity_id=draft.activity_id,
        draft_files=draft.draft_files,
        draft_test_case_results=draft.draft_test_case_results,
        draft_time_remaining=draft.draft_time_remaining,
        draft_selected_language=draft.draft_selected_language,
        draft_score=draft.draft_score,
        draft_item_times=draft.draft_item_times,
        draft_check_code_runs=draft.draft_check_code_runs,
        draft_deducted_scores=draft.draft_deducted_scores,
        updated_at=draft.updated_at,
        end_time=view.end_time,
        expired=view.expired,
    )


@router.post("/", response_model=ActivityResponse, status_code=status.HTTP_201_CREATED)
async def create_activity_route(
    request: ActivityCreateRequest,
    current_user: User = Depends(get_current_user),
    db: DBSession = Depends(get_session),
    clock: Clock = Depends(get_clock),
):
    settings = request.model_dump(exclude={"class_id", "items"})
    items = [ActivityItemInput(item_id=entry.item_id, act_item_points=entry.act_item_points) for entry in request.items]
    activity = create_activity(db, current_user, request.class_id, settings, items, clock)
    return _activity_response(activity)


@router.get("/{activity_id}", response_model=ActivityResponse)
async def get_activity_route(
    activity_id: int,
    current_user: User = Depends(get_current_user),
    db: DBSession = Depends(get_session),
):
    activity = get_activity_or_404(activity_id, db)
    require_activity_access(current_user, activity, db)
    return _activity_response(activity)


@router.patch("/{activity_id}", response_model=ActivityUpdateResponse)
async def update_activity_route(
    activity_id: int,
    request: ActivityUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: DBSession = Depends(get_session),
    clock: Clock = Depends(get_clock),
):
    activity = get_activity_or_404(activity_id, db)
    # Nulls mean "leave as is"
    changes = {
        name: value for name, value in request.model_dump(exclude_unset=True, exclude={"items"}).items()
        if value is not None
    }
    items = None
    if request.items is not None:
        items = [ActivityItemInput(item_id=entry.item_id, act_item_points=entry.act_item_points) for entry in request.items]

    result = update_activity_settings(
        db, activity, current_user, changes, clock, OutboxNotificationSink(db, clock), items=items
    )
    return ActivityUpdateResponse(
        activity=_activity_response(result.activity),
        changed=result.changed,
        notified=result.notified,
    )


# ----- Drafts -----

@router.put("/{activity_id}/progress", response_model=DraftResponse)
async def save_progress(
    activity_id: int,
    request: DraftPayload,
    current_user: User = Depends(get_current_user),
    db: DBSession = Depends(get_session),
    clock: Clock = Depends(get_clock),
):
    activity = get_activity_or_404(activity_id, db)
    require_activity_access(current_user, activity, db)
    owner = ProgressOwner.for_user(current_user)
    save_draft(db, activity, owner, request.model_dump(), clock)
    return _draft_response(get_draft(db, activity, owner, clock))


@router.get("/{activity_id}/progress", response_model=DraftResponse)
async def get_progress(
    activity_id: int,
    current_user: User = Depends(get_current_user),
    db: DBSession = Depends(get_session),
    clock: Clock = Depends(get_clock),
):
    activity = get_activity_or_404(activity_id, db)
    require_activity_access(current_user, activity, db)
    view = get_draft(db, activity, ProgressOwner.for_user(current_user), clock)
    if view is None:
        raise NotFound("No saved progress for this activity")
    return _draft_response(view)


@router.delete("/{activity_id}/progress", status_code=status.HTTP_204_NO_CONTENT)
async def delete_progress(
    activity_id: int,
    current_user: User = Depends(get_current_user),
    db: DBSession = Depends(get_session),
):
    activity = get_activity_or_404(activity_id, db)
    require_activity_access(current_user, activity, db)
    clear_draft(db, activity.id, ProgressOwner.for_user(current_user))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{activity_id}/items/{item_id}/check-code", response_model=CheckCodeResponse)
async def check_code(
    activity_id: int,
    item_id: int,
    request: CheckCodeRequest,
    current_user: User = Depends(get_current_user),
    db: DBSession = Depends(get_session),
    clock: Clock = Depends(get_clock),
):
    activity = get_activity_or_404(activity_id, db)
    require_activity_access(current_user, activity, db)
    result = record_check_run(
        db, activity, item_id, ProgressOwner.for_user(current_user), clock, raw_score=request.score
    )
    return CheckCodeResponse(item_id=result.item_id, run_count=result.run_count, effective_score=result.effective_score)


# ----- Submissions -----

@router.post("/{activity_id}/submissions/finalize", response_model=FinalizeResponse)
async def finalize(
    activity_id: int,
    request: FinalizeRequest,
    current_user: User = Depends(get_current_user),
    db: DBSession = Depends(get_session),
    clock: Clock = Depends(get_clock),
):
    activity = get_activity_or_404(activity_id, db)
    require_student_access(current_user, activity, db)
    items = [
        ItemSubmissionInput(
            item_id=entry.item_id,
            code_submission=entry.code_submission,
            score=entry.score,
            item_time_spent=entry.item_time_spent,
        )
        for entry in request.submissions
    ]
    result = finalize_submission(
        db, activity, current_user, items, clock, overall_time_spent=request.overall_time_spent
    )
    return FinalizeResponse(
        attempt_no=result.attempt_no,
        final_score=result.final_score,
        final_time_spent=result.final_time_spent,
        rank=result.rank,
        submissions=[_submission_response(submission) for submission in result.submissions],
    )


@router.get("/{activity_id}/attempts", response_model=AttemptHistoryResponse)
async def attempt_history(
    activity_id: int,
    current_user: User = Depends(get_current_user),
    db: DBSession = Depends(get_session),
):
    activity = get_activity_or_404(activity_id, db)
    require_student_access(current_user, activity, db)
    summaries, counted = get_attempt_history(db, activity, current_user)
    return AttemptHistoryResponse(
        attempts=[AttemptSummaryResponse.model_validate(summary, from_attributes=True) for summary in summaries],
        counted_attempt_no=counted,
    )


@router.get("/{activity_id}/submissions", response_model=List[SubmissionReviewEntry])
async def review_submissions(
    activity_id: int,
    current_user: User = Depends(get_current_user),
    db: DBSession = Depends(get_session),
):
    activity = get_activity_or_404(activity_id, db)
    require_activity_owner(current_user, activity)
    return [
        SubmissionReviewEntry(
            **_submission_response(submission).model_dump(),
            student_id=student.id,
            student_name=student.display_name,
        )
        for submission, student in list_submissions(db, activity)
    ]


@router.patch("/{activity_id}/submissions/{submission_id}", response_model=SubmissionResponse)
async def edit_submission(
    activity_id: int,
    submission_id: int,
    request: SubmissionUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: DBSession = Depends(get_session),
):
    activity = get_activity_or_404(activity_id, db)
    submission = update_submission(db, activity, current_user, submission_id, request.model_dump(exclude_unset=True))
    return _submission_response(submission)


@router.delete("/{activity_id}/submissions/{submission_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_submission(
    activity_id: int,
    submission_id: int,
    current_user: User = Depends(get_current_user),
    db: DBSession = Depends(get_session),
):
    activity = get_activity_or_404(activity_id, db)
    delete_submission(db, activity, current_user, submission_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ----- Results -----

@router.get("/{activity_id}/leaderboard", response_model=List[LeaderboardEntryResponse])
async def leaderboard(
    activity_id: int,
    current_user: User = Depends(get_current_user),
    db: DBSession = Depends(get_session),
):
    activity = get_activity_or_404(activity_id, db)
    require_activity_access(current_user, activity, db)
    return [LeaderboardEntryResponse.model_validate(entry, from_attributes=True) for entry in get_leaderboard(db, activity)]


@router.post("/{activity_id}/recompute", response_model=List[FinalResultResponse])
async def recompute(
    activity_id: int,
    current_user: User = Depends(get_current_user),
    db: DBSession = Depends(get_session),
    clock: Clock = Depends(get_clock),
):
    activity = get_activity_or_404(activity_id, db)
    require_activity_owner(current_user, activity)
    results = recompute_final_results(db, activity, clock)
    return [FinalResultResponse.model_validate(result, from_attributes=True) for result in results]


@router.get("/{activity_id}/items/stats", response_model=List[ItemStatisticsResponse])
async def item_statistics(
    activity_id: int,
    current_user: User = Depends(get_current_user),
    db: DBSession = Depends(get_session),
):
    activity = get_activity_or_404(activity_id, db)
    require_activity_owner(current_user, activity)
    return [ItemStatisticsResponse.model_validate(stats, from_attributes=True) for stats in get_item_statistics(db, activity)]
