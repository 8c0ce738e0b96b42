from fastapi import APIRouter, Depends, status
from sqlmodel import Session as DBSession
from typing import List

from api.auth import get_current_user
from database.database import get_session
from models.database.db_models import Item, TestCase, User, UserRole
from models.object_types import (
    ItemCreateRequest, ItemResponse, ItemTestCaseResponse, ItemTestCasesUpdateRequest, PointPropagationResponse
)
from scripts.config import get_scoring_settings
from services.clock import Clock, get_clock
from services.errors import Unauthorized
from services.item_service import (
    ItemTestCaseInput, get_active_test_cases, get_item_for_teacher, update_item_test_cases
)

router = APIRouter(prefix="/api/items", tags=["items"])

SCORE_PRECISION = get_scoring_settings()["score_precision"]


def _item_response(item: Item) -> ItemResponse:
    return ItemResponse.model_validate(item, from_attributes=True)


def _test_case_responses(test_cases: List[TestCase]) -> List[ItemTestCaseResponse]:
    return [ItemTestCaseResponse.model_validate(case, from_attributes=True) for case in test_cases]


@router.post("/", response_model=ItemResponse, status_code=status.HTTP_201_CREATED)
async def create_item(
    request: ItemCreateRequest,
    current_user: User = Depends(get_current_user),
    db: DBSession = Depends(get_session),
    clock: Clock = Depends(get_clock),
):
    if current_user.role != UserRole.TEACHER:
        raise Unauthorized("Only teachers can create items")

    now = clock.now()
    item = Item(
        name=request.name,
        description=request.description,
        teacher_id=current_user.id,
        created_at=now,
        updated_at=now,
    )
    db.add(item)
    db.commit()
    db.refresh(item)
    return _item_response(item)


@router.get("/{item_id}/test-cases", response_model=List[ItemTestCaseResponse])
async def list_test_cases(
    item_id: int,
    current_user: User = Depends(get_current_user),
    db: DBSession = Depends(get_session),
):
    item = get_item_for_teacher(db, item_id, current_user)
    return _test_case_responses(get_active_test_cases(db, item.id))


@router.put("/{item_id}/test-cases", response_model=PointPropagationResponse)
async def replace_test_cases(
    item_id: int,
    request: ItemTestCasesUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: DBSession = Depends(get_session),
    clock: Clock = Depends(get_clock),
):
    item = get_item_for_teacher(db, item_id, current_user)
    test_cases = [
        ItemTestCaseInput(
            expected_output=case.expected_output,
            input_data=case.input_data,
            is_hidden=case.is_hidden,
        )
        for case in request.test_cases
    ]
    result = update_item_test_cases(db, item, request.item_points, test_cases, clock, precision=SCORE_PRECISION)
    return PointPropagationResponse(
        item=_item_response(result.item),
        test_cases=_test_case_responses(get_active_test_cases(db, item.id)),
        activity_max_points={activity.id: activity.max_points for activity in result.activities},
    )
