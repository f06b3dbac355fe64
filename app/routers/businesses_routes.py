# app/routers/businesses_routes.py

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session

from app.db import get_session
from app.models import Business
from app.schemas import BusinessCreate, BusinessPublic

router = APIRouter(
    prefix="/businesses",
    tags=["businesses"],
)


@router.post("", response_model=BusinessPublic, status_code=201)
def create_business(
    business: BusinessCreate,
    session: Session = Depends(get_session),
):
    db_business = Business(name=business.name, whatsapp_number=business.whatsapp_number)
    session.add(db_business)
    session.commit()
    session.refresh(db_business)
    return db_business


@router.get("/{business_id}", response_model=BusinessPublic)
def get_business(
    business_id: int,
    session: Session = Depends(get_session),
):
    business = session.get(Business, business_id)
    if business is None:
        raise HTTPException(status_code=404, detail="Business not found")
    return business
