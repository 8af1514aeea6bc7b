"""
Superadmin API: platform-wide admin management.

Creating an admin allocates their storefront subdomain; updates never
change it.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .auth import UserOut, require_superadmin
from .core.config import settings_from_request
from .core.db import get_session
from .models import User, UserRole
from .subdomains import (
    AdminEmailTakenError,
    InvalidSubdomainError,
    create_admin_account,
    update_admin_account,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/superadmin",
    tags=["superadmin"],
    dependencies=[Depends(require_superadmin)],
)


class AdminCreate(BaseModel):
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=8)
    store_name: Optional[str] = None


class AdminUpdate(BaseModel):
    first_name: Optional[str] = Field(default=None, min_length=1)
    last_name: Optional[str] = Field(default=None, min_length=1)
    email: Optional[str] = Field(default=None, min_length=3)
    password: Optional[str] = Field(default=None, min_length=8)
    store_name: Optional[str] = None


@router.get("/admins", response_model=List[UserOut])
async def list_admins(session: AsyncSession = Depends(get_session)):
    result = await session.execute(
        select(User).where(User.role == UserRole.ADMIN).order_by(User.created_at.desc(), User.id.desc())
    )
    return result.scalars().all()


@router.post("/admins", response_model=UserOut, status_code=status.HTTP_201_CREATED)
async def create_admin(
    body: AdminCreate,
    request: Request,
    session: AsyncSession = Depends(get_session),
):
    settings = settings_from_request(request)
    try:
        admin = await create_admin_account(
            session,
            first_name=body.first_name,
            last_name=body.last_name,
            email=body.email,
            password=body.password,
            store_name=body.store_name,
            retries=settings.subdomain_allocation_retries,
        )
    except InvalidSubdomainError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    except AdminEmailTakenError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except IntegrityError:
        logger.exception(f"Admin creation for {body.email} kept colliding")
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Could not allocate a unique subdomain, please retry",
        )
    return admin


async def _get_admin(session: AsyncSession, admin_id: int) -> User:
    admin = await session.get(User, admin_id)
    if admin is None or not admin.is_admin:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Admin not found")
    return admin


@router.put("/admins/{admin_id}", response_model=UserOut)
async def update_admin(
    admin_id: int,
    body: AdminUpdate,
    session: AsyncSession = Depends(get_session),
):
    admin = await _get_admin(session, admin_id)
    try:
        return await update_admin_account(session, admin, **body.model_dump(exclude_none=True))
    except AdminEmailTakenError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


@router.delete("/admins/{admin_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_admin(admin_id: int, session: AsyncSession = Depends(get_session)):
    admin = await _get_admin(session, admin_id)
    await session.delete(admin)
    await session.commit()
    logger.info(f"Deleted admin {admin_id} ({admin.subdomain})")
