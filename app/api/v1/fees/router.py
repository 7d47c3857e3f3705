"""Fees router: student fee items, outstanding balance, penalty rules, penalties."""

from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.dependencies import get_acting_user_id, get_current_institution
from app.core.exceptions import ServiceError
from app.core.models import Institution
from app.db.session import get_db

from .schemas import (
    FeeItemCreate,
    FeeItemResponse,
    OutstandingFeesResponse,
    PenaltyReport,
    PenaltyRuleCreate,
    PenaltyRuleResponse,
)
from . import service

router = APIRouter(prefix="/api/v1/fees", tags=["fees"])


# --- Student Fee Items ---
@router.post(
    "/student/{student_id}/items",
    response_model=FeeItemResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_fee_item(
    student_id: UUID,
    payload: FeeItemCreate,
    db: AsyncSession = Depends(get_db),
    institution: Institution = Depends(get_current_institution),
    user_id: Optional[UUID] = Depends(get_acting_user_id),
) -> FeeItemResponse:
    try:
        return await service.add_fee_item(db, institution.id, student_id, payload, changed_by=user_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/student/{student_id}/outstanding",
    response_model=OutstandingFeesResponse,
)
async def get_outstanding_fees(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
    institution: Institution = Depends(get_current_institution),
) -> OutstandingFeesResponse:
    try:
        return await service.get_outstanding_fees(db, institution.id, student_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


# --- Penalty Rules ---
@router.post(
    "/penalty-rules",
    response_model=PenaltyRuleResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_penalty_rule(
    payload: PenaltyRuleCreate,
    db: AsyncSession = Depends(get_db),
    institution: Institution = Depends(get_current_institution),
) -> PenaltyRuleResponse:
    return await service.create_penalty_rule(db, institution.id, payload)


@router.get(
    "/penalty-rules",
    response_model=List[PenaltyRuleResponse],
)
async def list_penalty_rules(
    active_only: bool = Query(True, description="Return only active rules by default"),
    db: AsyncSession = Depends(get_db),
    institution: Institution = Depends(get_current_institution),
) -> List[PenaltyRuleResponse]:
    return await service.list_penalty_rules(db, institution.id, active_only=active_only)


# --- Penalties ---
@router.get(
    "/student/{student_id}/penalties",
    response_model=PenaltyReport,
)
async def get_penalty_report(
    student_id: UUID,
    as_of: Optional[date] = Query(None, description="Evaluation date, defaults to today"),
    db: AsyncSession = Depends(get_db),
    institution: Institution = Depends(get_current_institution),
) -> PenaltyReport:
    try:
        return await service.get_penalty_report(db, institution.id, student_id, as_of=as_of)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/student/{student_id}/penalties/apply",
    response_model=PenaltyReport,
)
async def apply_penalties(
    student_id: UUID,
    as_of: Optional[date] = Query(None, description="Evaluation date, defaults to today"),
    db: AsyncSession = Depends(get_db),
    institution: Institution = Depends(get_current_institution),
    user_id: Optional[UUID] = Depends(get_acting_user_id),
) -> PenaltyReport:
    try:
        return await service.apply_penalties(
            db, institution.id, student_id, as_of=as_of, changed_by=user_id
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
