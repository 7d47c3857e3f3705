from typing import Optional
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.models import Institution
from app.db.session import get_db


async def get_current_institution(
    x_institution_id: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
) -> Institution:
    """Resolve the tenant every request is scoped to from the X-Institution-Id header."""
    if not x_institution_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Institution ID required",
        )
    try:
        institution_id = UUID(x_institution_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid institution ID",
        )
    institution = (
        await db.execute(
            select(Institution).where(
                Institution.id == institution_id,
                Institution.is_active.is_(True),
            )
        )
    ).scalar_one_or_none()
    if not institution:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Institution not found",
        )
    return institution


async def get_acting_user_id(x_user_id: Optional[str] = Header(None)) -> Optional[UUID]:
    """Optional X-User-Id header, recorded as collected_by / changed_by."""
    if not x_user_id:
        return None
    try:
        return UUID(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid user ID",
        )
