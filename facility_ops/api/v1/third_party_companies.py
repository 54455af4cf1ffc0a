from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from facility_ops.core.authorization import enforce_customer_scope, require_customer
from facility_ops.core.enums import AssetVisibilityMode, CompanyStatus, UserType
from facility_ops.core.errors import CleanupError
from facility_ops.core.security import require_user_types
from facility_ops.db import models
from facility_ops.db.session import get_db
from facility_ops.services.cleanup import Performer, third_party_cleanup_service

router = APIRouter(tags=["Third Party Companies"])

require_customer_admin = require_user_types(UserType.INTERNAL, UserType.CUSTOMER)


class ThirdPartyCompanyCreate(BaseModel):
    name: str = Field(..., min_length=1)
    document: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    allowed_sites: List[str] = Field(default_factory=list)
    allowed_zones: List[str] = Field(default_factory=list)
    asset_visibility_mode: AssetVisibilityMode = AssetVisibilityMode.ALL


class ThirdPartyScopeUpdate(BaseModel):
    allowed_sites: Optional[List[str]] = None
    allowed_zones: Optional[List[str]] = None
    asset_visibility_mode: Optional[AssetVisibilityMode] = None


class ThirdPartyCompanyResponse(BaseModel):
    id: str
    customer_id: str
    name: str
    document: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    status: str
    allowed_sites: Optional[List[str]] = None
    allowed_zones: Optional[List[str]] = None
    asset_visibility_mode: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ThirdPartyTeamCreate(BaseModel):
    name: str = Field(..., min_length=1)
    leader_user_id: Optional[str] = None


class ThirdPartyTeamResponse(BaseModel):
    id: str
    third_party_company_id: str
    name: str
    leader_user_id: Optional[str] = None
    is_active: bool

    class Config:
        from_attributes = True


class DeactivationRequest(BaseModel):
    reason: str = Field(..., min_length=1)


class CleanupResponse(BaseModel):
    model_config = {"populate_by_name": True}

    cancelled_work_orders: int = Field(alias="cancelledWorkOrders")
    deactivated_users: int = Field(alias="deactivatedUsers")
    third_party_company_id: Optional[str] = Field(default=None, alias="thirdPartyCompanyId")
    customer_id: Optional[str] = Field(default=None, alias="customerId")
    failed_company_ids: List[str] = Field(default_factory=list, alias="failedCompanyIds")


def _to_response(company: models.ThirdPartyCompany) -> ThirdPartyCompanyResponse:
    response = ThirdPartyCompanyResponse.model_validate(company)
    response.allowed_sites = list(company.allowed_sites or [])
    response.allowed_zones = list(company.allowed_zones or [])
    return response


def _get_company(db: Session, company_id: str, user: models.User) -> models.ThirdPartyCompany:
    company = db.query(models.ThirdPartyCompany).filter(models.ThirdPartyCompany.id == company_id).first()
    if not company:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Empresa terceira nao encontrada")
    enforce_customer_scope(db, user, company.customer_id)
    return company


def _cleanup_response(result) -> CleanupResponse:
    return CleanupResponse(
        cancelled_work_orders=result.cancelled_work_orders,
        deactivated_users=result.deactivated_users,
        third_party_company_id=result.third_party_company_id,
        customer_id=result.customer_id,
        failed_company_ids=result.failed_company_ids,
    )


def _validate_scope_ids(db: Session, customer_id: str, site_ids: List[str], zone_ids: List[str]) -> None:
    if site_ids:
        found = (
            db.query(models.Site.id)
            .filter(models.Site.customer_id == customer_id, models.Site.id.in_(site_ids))
            .count()
        )
        if found != len(set(site_ids)):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Local invalido para o cliente")
    if zone_ids:
        found = (
            db.query(models.Zone.id)
            .join(models.Site, models.Site.id == models.Zone.site_id)
            .filter(models.Site.customer_id == customer_id, models.Zone.id.in_(zone_ids))
            .count()
        )
        if found != len(set(zone_ids)):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Zona invalida para o cliente")


@router.get("/customers/{customer_id}/third-party-companies", response_model=List[ThirdPartyCompanyResponse])
def list_companies(
    customer_id: str,
    status_filter: Optional[CompanyStatus] = None,
    current_user: models.User = Depends(require_customer_admin),
    db: Session = Depends(get_db),
):
    require_customer(db, customer_id)
    enforce_customer_scope(db, current_user, customer_id)
    query = db.query(models.ThirdPartyCompany).filter(models.ThirdPartyCompany.customer_id == customer_id)
    if status_filter:
        query = query.filter(models.ThirdPartyCompany.status == status_filter.value)
    return [_to_response(company) for company in query.order_by(models.ThirdPartyCompany.name).all()]


@router.post(
    "/customers/{customer_id}/third-party-companies",
    response_model=ThirdPartyCompanyResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_company(
    customer_id: str,
    payload: ThirdPartyCompanyCreate,
    current_user: models.User = Depends(require_customer_admin),
    db: Session = Depends(get_db),
):
    customer = require_customer(db, customer_id)
    enforce_customer_scope(db, current_user, customer_id)
    if not customer.third_party_enabled:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Modulo de terceiros desabilitado para o cliente",
        )
    _validate_scope_ids(db, customer_id, payload.allowed_sites, payload.allowed_zones)
    company = models.ThirdPartyCompany(
        customer_id=customer_id,
        name=payload.name.strip(),
        document=payload.document,
        email=payload.email,
        phone=payload.phone,
        status=CompanyStatus.ACTIVE.value,
        allowed_sites=payload.allowed_sites,
        allowed_zones=payload.allowed_zones,
        asset_visibility_mode=payload.asset_visibility_mode.value,
    )
    db.add(company)
    db.commit()
    db.refresh(company)
    return _to_response(company)


@router.patch("/third-party-companies/{company_id}/scope", response_model=ThirdPartyCompanyResponse)
def update_company_scope(
    company_id: str,
    payload: ThirdPartyScopeUpdate,
    current_user: models.User = Depends(require_customer_admin),
    db: Session = Depends(get_db),
):
    company = _get_company(db, company_id, current_user)
    _validate_scope_ids(
        db,
        company.customer_id,
        payload.allowed_sites or [],
        payload.allowed_zones or [],
    )
    if payload.allowed_sites is not None:
        company.allowed_sites = payload.allowed_sites
    if payload.allowed_zones is not None:
        company.allowed_zones = payload.allowed_zones
    if payload.asset_visibility_mode is not None:
        company.asset_visibility_mode = payload.asset_visibility_mode.value
    db.commit()
    db.refresh(company)
    return _to_response(company)


@router.get("/third-party-companies/{company_id}/teams", response_model=List[ThirdPartyTeamResponse])
def list_teams(
    company_id: str,
    current_user: models.User = Depends(require_customer_admin),
    db: Session = Depends(get_db),
):
    company = _get_company(db, company_id, current_user)
    return company.teams


@router.post(
    "/third-party-companies/{company_id}/teams",
    response_model=ThirdPartyTeamResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_team(
    company_id: str,
    payload: ThirdPartyTeamCreate,
    current_user: models.User = Depends(require_customer_admin),
    db: Session = Depends(get_db),
):
    company = _get_company(db, company_id, current_user)
    team = models.ThirdPartyTeam(
        third_party_company_id=company.id,
        name=payload.name.strip(),
        leader_user_id=payload.leader_user_id,
    )
    db.add(team)
    db.commit()
    db.refresh(team)
    return team


@router.post("/third-party-companies/{company_id}/deactivate", response_model=CleanupResponse)
def deactivate_company(
    company_id: str,
    payload: DeactivationRequest,
    current_user: models.User = Depends(require_customer_admin),
    db: Session = Depends(get_db),
):
    _get_company(db, company_id, current_user)
    try:
        result = third_party_cleanup_service.deactivate_company(
            db, company_id, Performer.from_user(current_user), payload.reason
        )
    except CleanupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    return _cleanup_response(result)


@router.post("/third-party-companies/{company_id}/reactivate", response_model=ThirdPartyCompanyResponse)
def reactivate_company(
    company_id: str,
    current_user: models.User = Depends(require_customer_admin),
    db: Session = Depends(get_db),
):
    _get_company(db, company_id, current_user)
    try:
        company = third_party_cleanup_service.reactivate_company(db, company_id)
    except CleanupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    return _to_response(company)


@router.post("/customers/{customer_id}/third-party-module/disable", response_model=CleanupResponse)
def disable_module(
    customer_id: str,
    payload: DeactivationRequest,
    current_user: models.User = Depends(require_user_types(UserType.INTERNAL)),
    db: Session = Depends(get_db),
):
    try:
        result = third_party_cleanup_service.deactivate_module(
            db, customer_id, Performer.from_user(current_user), payload.reason
        )
    except CleanupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    return _cleanup_response(result)


@router.post("/customers/{customer_id}/third-party-module/enable")
def enable_module(
    customer_id: str,
    current_user: models.User = Depends(require_user_types(UserType.INTERNAL)),
    db: Session = Depends(get_db),
):
    customer = require_customer(db, customer_id)
    customer.third_party_enabled = True
    db.commit()
    return {"customer_id": customer.id, "third_party_enabled": True}
