"""Payments router: record payment, read payments, payment status."""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.dependencies import get_acting_user_id, get_current_institution
from app.core.enums import PaymentStatus
from app.core.exceptions import ServiceError
from app.core.models import Institution
from app.db.session import get_db

from .schemas import PaymentCreate, PaymentCreateResponse, PaymentResponse, PaymentStatusUpdate
from . import service

router = APIRouter(prefix="/api/v1/payments", tags=["payments"])


@router.post(
    "",
    response_model=PaymentCreateResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_payment(
    payload: PaymentCreate,
    response: Response,
    db: AsyncSession = Depends(get_db),
    institution: Institution = Depends(get_current_institution),
    user_id: Optional[UUID] = Depends(get_acting_user_id),
) -> PaymentCreateResponse:
    try:
        result = await service.create_payment(db, institution, payload, collected_by=user_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    if result.replayed:
        response.status_code = status.HTTP_200_OK
    return result


@router.get(
    "",
    response_model=List[PaymentResponse],
)
async def list_payments(
    student_id: Optional[UUID] = Query(None),
    payment_status: Optional[PaymentStatus] = Query(None),
    db: AsyncSession = Depends(get_db),
    institution: Institution = Depends(get_current_institution),
) -> List[PaymentResponse]:
    return await service.list_payments(
        db,
        institution.id,
        student_id=student_id,
        payment_status=payment_status,
    )


@router.get(
    "/{payment_id}",
    response_model=PaymentResponse,
)
async def get_payment(
    payment_id: UUID,
    db: AsyncSession = Depends(get_db),
    institution: Institution = Depends(get_current_institution),
) -> PaymentResponse:
    result = await service.get_payment(db, institution.id, payment_id)
    if not result:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Payment not found",
        )
    return result


@router.patch(
    "/{payment_id}/status",
    response_model=PaymentResponse,
)
async def update_payment_status(
    payment_id: UUID,
    payload: PaymentStatusUpdate,
    db: AsyncSession = Depends(get_db),
    institution: Institution = Depends(get_current_institution),
    user_id: Optional[UUID] = Depends(get_acting_user_id),
) -> PaymentResponse:
    try:
        return await service.update_payment_status(
            db, institution.id, payment_id, payload, changed_by=user_id
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
