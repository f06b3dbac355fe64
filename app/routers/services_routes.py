# app/routers/services_routes.py

from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, select

from app.config import Settings, get_settings
from app.db import get_session
from app.models import Professional, ProfessionalService, Service
from app.schemas import ProfessionalPublic, ServiceCreate, ServiceProfessionals, ServicePublic
from app.auth import get_current_user
from app.booking import professionals_for_service
from app.deps import require_business, require_role

router = APIRouter(
    prefix="/services",
    tags=["services"],
)


@router.post("", response_model=ServicePublic, status_code=201)
def create_service(
    service: ServiceCreate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    require_role(current_user, "manager")

    db_service = Service(
        business_id=current_user["business_id"],
        name=service.name,
        price=service.price,
        duration_minutes=service.duration_minutes,
        active=service.active,
    )
    session.add(db_service)
    session.commit()
    session.refresh(db_service)
    return db_service


@router.get("", response_model=List[ServicePublic])
def list_services(
    business_id: int,
    session: Session = Depends(get_session),
):
    return session.exec(
        select(Service)
        .where(Service.business_id == business_id)
        .where(Service.active == True)  # noqa: E712
        .order_by(Service.name)
    ).all()


@router.put("/{service_id}/professionals", response_model=List[ProfessionalPublic])
def set_service_professionals(
    service_id: int,
    payload: ServiceProfessionals,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
):
    require_role(current_user, "manager")
    service = session.get(Service, service_id)
    if service is None:
        raise HTTPException(status_code=404, detail="Service not found")
    require_business(current_user, service.business_id)

    wanted = set(payload.professional_ids)
    for professional_id in wanted:
        professional = session.get(Professional, professional_id)
        if professional is None or professional.business_id != service.business_id:
            raise HTTPException(status_code=422, detail=f"Unknown professional {professional_id}")

    # Replace the mapping wholesale
    existing = session.exec(
        select(ProfessionalService).where(ProfessionalService.service_id == service_id)
    ).all()
    for link in existing:
        session.delete(link)
    session.flush()
    for professional_id in sorted(wanted):
        session.add(ProfessionalService(professional_id=professional_id, service_id=service_id))
    session.commit()

    return professionals_for_service(session, service, settings)


@router.get("/{service_id}/professionals", response_model=List[ProfessionalPublic])
def get_service_professionals(
    service_id: int,
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings),
):
    service = session.get(Service, service_id)
    if service is None or not service.active:
        raise HTTPException(status_code=404, detail="Service not found")
    return professionals_for_service(session, service, settings)
