from pydantic import BaseModel, Field
from typing import Dict, Any, List, Optional
from datetime import datetime
from models.enums import ActivityDifficulty, FinalScorePolicy


# Drafts
class DraftPayload(BaseModel):
    draft_files: Optional[Any] = None
    draft_test_case_results: Optional[Any] = None
    draft_time_remaining: Optional[int] = None
    draft_selected_language: Optional[str] = None
    draft_score: Optional[float] = None
    draft_item_times: Optional[Dict[str, int]] = None


class DraftResponse(DraftPayload):
    activity_id: int
    draft_check_code_runs: Optional[Dict[str, int]] = None
    draft_deducted_scores: Optional[Dict[str, float]] = None
    updated_at: datetime
    end_time: Optional[datetime] = None
    expired: bool = False


class CheckCodeRequest(BaseModel):
    score: Optional[float] = None  # Score this run earned, if the runner reports one


class CheckCodeResponse(BaseModel):
    item_id: int
    run_count: int
    effective_score: float


# Submissions
class ItemSubmission(BaseModel):
    item_id: int
    code_submission: Optional[List[Any]] = None
    score: Optional[float] = None
    item_time_spent: Optional[int] = None


class FinalizeRequest(BaseModel):
    submissions: List[ItemSubmission]
    overall_time_spent: Optional[int] = None


class SubmissionResponse(BaseModel):
    id: int
    item_id: int
    attempt_no: int
    raw_score: float
    score: float
    item_time_spent: int
    check_code_runs: int
    rank: Optional[int] = None
    submitted_at: datetime


class FinalizeResponse(BaseModel):
    attempt_no: int
    final_score: float
    final_time_spent: int
    rank: Optional[int] = None
    submissions: List[SubmissionResponse]


class SubmissionUpdateRequest(BaseModel):
    code_submission: Optional[List[Any]] = None
    item_time_spent: Optional[int] = None


class SubmissionReviewEntry(SubmissionResponse):
    student_id: int
    student_name: str


class AttemptSummaryResponse(BaseModel):
    attempt_no: int
    total_score: float
    total_time_spent: int
    overall_time_spent: Optional[int] = None
    item_count: int
    submitted_at: Optional[datetime] = None


class AttemptHistoryResponse(BaseModel):
    attempts: List[AttemptSummaryResponse]
    counted_attempt_no: Optional[int] = None


# Leaderboard and results
class LeaderboardEntryResponse(BaseModel):
    student_id: int
    student_name: str
    score: float
    time: int
    rank: int


class FinalResultResponse(BaseModel):
    student_id: int
    final_score: float
    final_time_spent: int
    rank: Optional[int] = None


class ItemStatisticsResponse(BaseModel):
    item_id: int
    act_item_points: float
    average_score: Optional[float] = None
    average_time_spent: Optional[float] = None
    student_count: int


# Activities
class ActivityItemRequest(BaseModel):
    item_id: int
    act_item_points: float


class ActivityCreateRequest(BaseModel):
    class_id: int
    title: str
    description: str = ""
    difficulty: ActivityDifficulty = ActivityDifficulty.BEGINNER
    duration: Optional[str] = None
    max_attempts: int = 0
    open_date: datetime
    close_date: datetime
    final_score_policy: FinalScorePolicy = FinalScorePolicy.LAST_ATTEMPT
    exam_mode: bool = False
    randomized_items: bool = False
    check_code_restriction: bool = False
    max_check_code_runs: Optional[int] = None
    check_code_deduction: Optional[float] = None
    items: List[ActivityItemRequest]


class ActivityUpdateRequest(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    difficulty: Optional[ActivityDifficulty] = None
    duration: Optional[str] = None
    max_attempts: Optional[int] = None
    open_date: Optional[datetime] = None
    close_date: Optional[datetime] = None
    final_score_policy: Optional[FinalScorePolicy] = None
    exam_mode: Optional[bool] = None
    randomized_items: Optional[bool] = None
    check_code_restriction: Optional[bool] = None
    max_check_code_runs: Optional[int] = None
    check_code_deduction: Optional[float] = None
    items: Optional[List[ActivityItemRequest]] = None


class ActivityResponse(BaseModel):
    id: int
    class_id: int
    teacher_id: int
    title: str
    description: str
    difficulty: ActivityDifficulty
    duration: Optional[str] = None
    max_attempts: int
    open_date: datetime
    close_date: datetime
    max_points: float
    final_score_policy: FinalScorePolicy
    exam_mode: bool
    randomized_items: bool
    check_code_restriction: bool
    max_check_code_runs: Optional[int] = None
    check_code_deduction: Optional[float] = None
    completed_at: Optional[datetime] = None


class ActivityUpdateResponse(BaseModel):
    activity: ActivityResponse
    changed: List[str]
    notified: int


# Items
class ItemCreateRequest(BaseModel):
    name: str
    description: str = ""


class ItemTestCaseRequest(BaseModel):
    input_data: str = ""
    expected_output: str
    is_hidden: bool = False


class ItemTestCasesUpdateRequest(BaseModel):
    item_points: float = Field(gt=0)
    test_cases: List[ItemTestCaseRequest] = Field(min_length=1)


class ItemTestCaseResponse(BaseModel):
    id: int
    input_data: str
    expected_output: str
    test_case_points: float
    is_hidden: bool


class ItemResponse(BaseModel):
    id: int
    name: str
    description: str
    item_points: float
    teacher_id: Optional[int] = None


class PointPropagationResponse(BaseModel):
    item: ItemResponse
    test_cases: List[ItemTestCaseResponse]
    activity_max_points: Dict[int, float]
