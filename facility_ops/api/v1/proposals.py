from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from facility_ops.core.authorization import enforce_customer_scope, require_customer
from facility_ops.core.enums import ProposalStatus, UserType
from facility_ops.core.isolation import ThirdPartyContext, full_third_party_isolation
from facility_ops.core.security import require_user_types, user_type_of
from facility_ops.db import models
from facility_ops.db.session import get_db
from facility_ops.services.proposals import ProposalAlreadyReviewed, approve_proposal, reject_proposal

router = APIRouter(tags=["Proposals"])

require_reviewer = require_user_types(UserType.INTERNAL, UserType.CUSTOMER)


class ProposalCreate(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    frequency: Optional[str] = None
    site_id: Optional[str] = None
    zone_id: Optional[str] = None
    equipment_ids: List[str] = Field(default_factory=list)


class SupplierProposalCreate(ProposalCreate):
    estimated_value: Optional[int] = None


class ThirdPartyProposalCreate(ProposalCreate):
    customer_id: Optional[str] = None


class ProposalReject(BaseModel):
    reason: Optional[str] = None


class ProposalResponse(BaseModel):
    id: str
    customer_id: str
    name: str
    description: Optional[str] = None
    frequency: Optional[str] = None
    site_id: Optional[str] = None
    zone_id: Optional[str] = None
    equipment_ids: Optional[list] = None
    status: str
    rejection_reason: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    maintenance_plan_id: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SupplierProposalResponse(ProposalResponse):
    supplier_id: str
    estimated_value: Optional[int] = None


class ThirdPartyProposalResponse(ProposalResponse):
    third_party_company_id: str
    submitted_by: Optional[str] = None


class MaintenancePlanResponse(BaseModel):
    id: str
    customer_id: str
    name: str
    description: Optional[str] = None
    frequency: Optional[str] = None
    site_id: Optional[str] = None
    zone_id: Optional[str] = None
    supplier_id: Optional[str] = None
    third_party_company_id: Optional[str] = None
    is_active: bool

    class Config:
        from_attributes = True


def _review(db: Session, proposal, user: models.User, action, *args):
    enforce_customer_scope(db, user, proposal.customer_id)
    try:
        return action(db, proposal, user, *args)
    except ProposalAlreadyReviewed as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))


def _get_supplier_proposal(db: Session, proposal_id: str) -> models.MaintenancePlanProposal:
    proposal = (
        db.query(models.MaintenancePlanProposal)
        .filter(models.MaintenancePlanProposal.id == proposal_id)
        .first()
    )
    if not proposal:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Proposta nao encontrada")
    return proposal


def _get_third_party_proposal(db: Session, proposal_id: str) -> models.ThirdPartyProposal:
    proposal = db.query(models.ThirdPartyProposal).filter(models.ThirdPartyProposal.id == proposal_id).first()
    if not proposal:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Proposta nao encontrada")
    return proposal


@router.post(
    "/supplier/maintenance-plan-proposals",
    response_model=SupplierProposalResponse,
    status_code=status.HTTP_201_CREATED,
)
def submit_supplier_proposal(
    payload: SupplierProposalCreate,
    current_user: models.User = Depends(require_user_types(UserType.SUPPLIER)),
    db: Session = Depends(get_db),
):
    supplier = (
        db.query(models.Supplier).filter(models.Supplier.id == current_user.supplier_id).first()
        if current_user.supplier_id
        else None
    )
    if not supplier or not supplier.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Fornecedor nao encontrado ou inativo")
    proposal = models.MaintenancePlanProposal(
        customer_id=supplier.customer_id,
        supplier_id=supplier.id,
        status=ProposalStatus.EM_ESPERA.value,
        **payload.model_dump(),
    )
    db.add(proposal)
    db.commit()
    db.refresh(proposal)
    return proposal


@router.get(
    "/customers/{customer_id}/maintenance-plan-proposals",
    response_model=List[SupplierProposalResponse],
)
def list_supplier_proposals(
    customer_id: str,
    status_filter: Optional[ProposalStatus] = None,
    current_user: models.User = Depends(require_user_types(UserType.INTERNAL, UserType.CUSTOMER, UserType.SUPPLIER)),
    db: Session = Depends(get_db),
):
    require_customer(db, customer_id)
    enforce_customer_scope(db, current_user, customer_id)
    query = db.query(models.MaintenancePlanProposal).filter(
        models.MaintenancePlanProposal.customer_id == customer_id
    )
    if user_type_of(current_user) is UserType.SUPPLIER:
        query = query.filter(models.MaintenancePlanProposal.supplier_id == current_user.supplier_id)
    if status_filter:
        query = query.filter(models.MaintenancePlanProposal.status == status_filter.value)
    return query.order_by(models.MaintenancePlanProposal.created_at.desc()).all()


@router.post("/maintenance-plan-proposals/{proposal_id}/approve", response_model=MaintenancePlanResponse)
def approve_supplier_proposal(
    proposal_id: str,
    current_user: models.User = Depends(require_reviewer),
    db: Session = Depends(get_db),
):
    proposal = _get_supplier_proposal(db, proposal_id)
    return _review(db, proposal, current_user, approve_proposal)


@router.post("/maintenance-plan-proposals/{proposal_id}/reject", response_model=SupplierProposalResponse)
def reject_supplier_proposal(
    proposal_id: str,
    payload: ProposalReject,
    current_user: models.User = Depends(require_reviewer),
    db: Session = Depends(get_db),
):
    proposal = _get_supplier_proposal(db, proposal_id)
    return _review(db, proposal, current_user, reject_proposal, payload.reason)


@router.post(
    "/third-party-portal/proposals",
    response_model=ThirdPartyProposalResponse,
    status_code=status.HTTP_201_CREATED,
)
def submit_third_party_proposal(
    payload: ThirdPartyProposalCreate,
    current_user: models.User = Depends(require_user_types(UserType.THIRD_PARTY)),
    ctx: Optional[ThirdPartyContext] = Depends(full_third_party_isolation),
    db: Session = Depends(get_db),
):
    data = payload.model_dump(exclude={"customer_id"})
    if payload.site_id:
        site = db.query(models.Site).filter(models.Site.id == payload.site_id).first()
        if not site or site.customer_id != ctx.customer_id:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Local invalido para o cliente")
    proposal = models.ThirdPartyProposal(
        customer_id=ctx.customer_id,
        third_party_company_id=ctx.company_id,
        submitted_by=current_user.id,
        status=ProposalStatus.EM_ESPERA.value,
        **data,
    )
    db.add(proposal)
    db.commit()
    db.refresh(proposal)
    return proposal


@router.get("/third-party-portal/proposals", response_model=List[ThirdPartyProposalResponse])
def list_own_third_party_proposals(
    current_user: models.User = Depends(require_user_types(UserType.THIRD_PARTY)),
    ctx: Optional[ThirdPartyContext] = Depends(full_third_party_isolation),
    db: Session = Depends(get_db),
):
    return (
        db.query(models.ThirdPartyProposal)
        .filter(models.ThirdPartyProposal.third_party_company_id == ctx.company_id)
        .order_by(models.ThirdPartyProposal.created_at.desc())
        .all()
    )


@router.get(
    "/customers/{customer_id}/third-party-proposals",
    response_model=List[ThirdPartyProposalResponse],
)
def list_third_party_proposals(
    customer_id: str,
    status_filter: Optional[ProposalStatus] = None,
    current_user: models.User = Depends(require_reviewer),
    db: Session = Depends(get_db),
):
    require_customer(db, customer_id)
    enforce_customer_scope(db, current_user, customer_id)
    query = db.query(models.ThirdPartyProposal).filter(models.ThirdPartyProposal.customer_id == customer_id)
    if status_filter:
        query = query.filter(models.ThirdPartyProposal.status == status_filter.value)
    return query.order_by(models.ThirdPartyProposal.created_at.desc()).all()


@router.post("/third-party-proposals/{proposal_id}/approve", response_model=MaintenancePlanResponse)
def approve_third_party_proposal(
    proposal_id: str,
    current_user: models.User = Depends(require_reviewer),
    db: Session = Depends(get_db),
):
    proposal = _get_third_party_proposal(db, proposal_id)
    return _review(db, proposal, current_user, approve_proposal)


@router.post("/third-party-proposals/{proposal_id}/reject", response_model=ThirdPartyProposalResponse)
def reject_third_party_proposal(
    proposal_id: str,
    payload: ProposalReject,
    current_user: models.User = Depends(require_reviewer),
    db: Session = Depends(get_db),
):
    proposal = _get_third_party_proposal(db, proposal_id)
    return _review(db, proposal, current_user, reject_proposal, payload.reason)
