# app/routers/professionals_routes.py

from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, select

from app.db import get_session
from app.models import Professional
from app.schemas import (
    BlockCreate,
    BlockPublic,
    ProfessionalCreate,
    ProfessionalPublic,
    WorkingHours,
)
from app.auth import get_current_user
from app.booking import add_block
from app.core import format_hhmm
from app.deps import require_business, require_role, to_http
from app.errors import SchedulingError

router = APIRouter(
    prefix="/professionals",
    tags=["professionals"],
)


def _get_own_professional(session: Session, professional_id: int, current_user: dict) -> Professional:
    professional = session.get(Professional, professional_id)
    if professional is None:
        raise HTTPException(status_code=404, detail="Professional not found")
    require_business(current_user, professional.business_id)
    return professional


@router.post("", response_model=ProfessionalPublic, status_code=201)
def create_professional(
    professional: ProfessionalCreate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    require_role(current_user, "manager")  # only managers can create

    db_professional = Professional(
        business_id=current_user["business_id"],
        name=professional.name,
        phone=professional.phone,
        working_hours=professional.working_hours.as_dict(),
        active=professional.active,
    )
    session.add(db_professional)
    session.commit()
    session.refresh(db_professional)
    return db_professional


@router.get("", response_model=List[ProfessionalPublic])
def list_professionals(
    business_id: int,
    include_inactive: bool = False,
    session: Session = Depends(get_session),
):
    stmt = select(Professional).where(Professional.business_id == business_id)
    if not include_inactive:
        stmt = stmt.where(Professional.active == True)  # noqa: E712
    return session.exec(stmt.order_by(Professional.name)).all()


@router.put("/{professional_id}/working-hours", response_model=ProfessionalPublic)
def set_working_hours(
    professional_id: int,
    working_hours: WorkingHours,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    require_role(current_user, "manager")
    db_professional = _get_own_professional(session, professional_id, current_user)

    db_professional.working_hours = working_hours.as_dict()
    session.add(db_professional)
    session.commit()
    session.refresh(db_professional)
    return db_professional


@router.put("/{professional_id}/blocks", response_model=BlockPublic, status_code=201)
def create_block(
    professional_id: int,
    block: BlockCreate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    db_professional = _get_own_professional(session, professional_id, current_user)

    try:
        db_block = add_block(session, db_professional, block)
    except SchedulingError as e:
        raise to_http(e)

    return {
        "id": db_block.id,
        "professional_id": db_block.professional_id,
        "date": db_block.date,
        "start_time": format_hhmm(db_block.start_minute),
        "end_time": format_hhmm(db_block.end_minute),
        "kind": db_block.kind,
    }
