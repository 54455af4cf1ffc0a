from datetime import datetime
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from facility_ops.core.authorization import enforce_customer_scope, require_customer
from facility_ops.core.enums import CompanyStatus, UserType, WorkOrderStatus
from facility_ops.core.isolation import (
    AccessDecision,
    ResourceRef,
    ThirdPartyContext,
    access_denied,
    get_third_party_context,
    validate_customer_access,
    validate_third_party_data_access,
)
from facility_ops.core.security import get_current_user, is_third_party_user, require_user_types
from facility_ops.db import models
from facility_ops.db.session import get_db
from facility_ops.services.audit import AuditContext, work_order_audit_service
from facility_ops.services.scoped_queries import get_filtered_work_orders
from facility_ops.services.work_orders import (
    TRANSITIONS,
    InvalidTransition,
    assign_to_third_party,
    create_work_order,
    transition_work_order,
    update_work_order,
)

router = APIRouter(tags=["Work Orders"])

require_staff = require_user_types(UserType.INTERNAL, UserType.CUSTOMER)


class WorkOrderCreate(BaseModel):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    priority: Optional[str] = None
    module: str = "maintenance"
    site_id: Optional[str] = None
    zone_id: Optional[str] = None
    equipment_id: Optional[str] = None
    due_date: Optional[datetime] = None
    assigned_user_id: Optional[str] = None


class WorkOrderUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[str] = None
    module: Optional[str] = None
    site_id: Optional[str] = None
    zone_id: Optional[str] = None
    equipment_id: Optional[str] = None
    due_date: Optional[datetime] = None
    assigned_user_id: Optional[str] = None


class WorkOrderResponse(BaseModel):
    id: str
    number: Optional[int] = None
    customer_id: str
    title: str
    description: Optional[str] = None
    module: str
    status: str
    priority: Optional[str] = None
    site_id: Optional[str] = None
    zone_id: Optional[str] = None
    equipment_id: Optional[str] = None
    executed_by_type: Optional[str] = None
    third_party_company_id: Optional[str] = None
    third_party_team_id: Optional[str] = None
    third_party_operator_id: Optional[str] = None
    assigned_user_id: Optional[str] = None
    due_date: Optional[datetime] = None
    started_at: Optional[datetime] = None
    paused_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    rating: Optional[int] = None
    evaluation_comment: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class StatusChange(BaseModel):
    action: Literal["start", "pause", "resume", "complete", "cancel"]
    reason: Optional[str] = None
    completion_notes: Optional[str] = None


class ThirdPartyAssignment(BaseModel):
    third_party_company_id: str
    team_id: Optional[str] = None
    operator_id: Optional[str] = None


class Evaluation(BaseModel):
    rating: int = Field(..., ge=1, le=10)
    comment: Optional[str] = None


class CommentCreate(BaseModel):
    text: str = Field(..., min_length=1)
    is_reopen_request: bool = False


class CommentResponse(BaseModel):
    id: str
    work_order_id: str
    user_id: Optional[str] = None
    text: str
    is_reopen_request: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ReopenRequest(BaseModel):
    reason: str = Field(..., min_length=1)


class ApprovalDecision(BaseModel):
    approved: bool
    approval_type: str = "execucao"
    reason: Optional[str] = None


class AttachmentCreate(BaseModel):
    file_name: str = Field(..., min_length=1)
    url: Optional[str] = None
    mime: Optional[str] = None
    size: Optional[int] = None


class AttachmentResponse(BaseModel):
    id: str
    work_order_id: str
    file_name: str
    url: Optional[str] = None
    mime: Optional[str] = None
    size: Optional[int] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AuditLogResponse(BaseModel):
    id: str
    work_order_id: str
    action: str
    user_id: Optional[str] = None
    user_type: Optional[str] = None
    user_name: str
    customer_name: Optional[str] = None
    third_party_company_name: Optional[str] = None
    previous_value: Optional[dict] = None
    new_value: Optional[dict] = None
    description: str
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    source: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


def _deny(reason: Optional[str]) -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=reason or "Acesso negado")


def _get_work_order(
    db: Session,
    work_order_id: str,
    user: models.User,
    ctx: Optional[ThirdPartyContext],
) -> models.WorkOrder:
    work_order = db.query(models.WorkOrder).filter(models.WorkOrder.id == work_order_id).first()
    if not work_order:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Ordem de servico nao encontrada")
    if is_third_party_user(user):
        decision = validate_third_party_data_access(
            user,
            ctx,
            ResourceRef(customer_id=work_order.customer_id, site_id=work_order.site_id, zone_id=work_order.zone_id),
        )
        if not decision.allowed:
            raise access_denied(decision)
        if work_order.third_party_company_id != ctx.company_id:
            raise access_denied(
                AccessDecision(
                    allowed=False,
                    reason="Ordem de servico nao atribuida a sua empresa",
                    code="WORK_ORDER_ACCESS_DENIED",
                )
            )
    else:
        enforce_customer_scope(db, user, work_order.customer_id)
    return work_order


def _validate_location(
    db: Session, customer_id: str, site_id: Optional[str], zone_id: Optional[str]
) -> None:
    if site_id:
        site = db.query(models.Site).filter(models.Site.id == site_id).first()
        if not site or site.customer_id != customer_id:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Local invalido para o cliente")
    if zone_id:
        zone = db.query(models.Zone).filter(models.Zone.id == zone_id).first()
        zone_site = (
            db.query(models.Site).filter(models.Site.id == zone.site_id).first() if zone else None
        )
        if not zone_site or zone_site.customer_id != customer_id or (site_id and zone.site_id != site_id):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Zona invalida para o cliente")


def _invalid_transition(exc: InvalidTransition) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


@router.get("/customers/{customer_id}/work-orders", response_model=List[WorkOrderResponse])
def list_work_orders(
    customer_id: str,
    status_filter: Optional[WorkOrderStatus] = None,
    current_user: models.User = Depends(get_current_user),
    ctx: Optional[ThirdPartyContext] = Depends(get_third_party_context),
    db: Session = Depends(get_db),
):
    validate_customer_access(current_user, ctx, customer_id)
    enforce_customer_scope(db, current_user, customer_id, ctx)
    if ctx is not None:
        return get_filtered_work_orders(db, ctx, status_filter.value if status_filter else None)
    query = db.query(models.WorkOrder).filter(models.WorkOrder.customer_id == customer_id)
    if status_filter:
        query = query.filter(models.WorkOrder.status == status_filter.value)
    return query.order_by(models.WorkOrder.created_at.desc()).all()


@router.post(
    "/customers/{customer_id}/work-orders",
    response_model=WorkOrderResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_work_order_endpoint(
    customer_id: str,
    payload: WorkOrderCreate,
    request: Request,
    current_user: models.User = Depends(require_staff),
    db: Session = Depends(get_db),
):
    require_customer(db, customer_id)
    enforce_customer_scope(db, current_user, customer_id)
    _validate_location(db, customer_id, payload.site_id, payload.zone_id)
    return create_work_order(
        db,
        customer_id,
        payload.model_dump(),
        AuditContext.from_request(request, current_user),
    )


@router.get("/work-orders/{work_order_id}", response_model=WorkOrderResponse)
def get_work_order(
    work_order_id: str,
    current_user: models.User = Depends(get_current_user),
    ctx: Optional[ThirdPartyContext] = Depends(get_third_party_context),
    db: Session = Depends(get_db),
):
    return _get_work_order(db, work_order_id, current_user, ctx)


@router.patch("/work-orders/{work_order_id}", response_model=WorkOrderResponse)
def update_work_order_endpoint(
    work_order_id: str,
    payload: WorkOrderUpdate,
    request: Request,
    current_user: models.User = Depends(require_staff),
    db: Session = Depends(get_db),
):
    work_order = _get_work_order(db, work_order_id, current_user, None)
    changes = payload.model_dump(exclude_unset=True)
    if "site_id" in changes or "zone_id" in changes:
        _validate_location(
            db,
            work_order.customer_id,
            changes.get("site_id", work_order.site_id),
            changes.get("zone_id", work_order.zone_id),
        )
    return update_work_order(
        db,
        work_order,
        changes,
        AuditContext.from_request(request, current_user),
    )


@router.post("/work-orders/{work_order_id}/status", response_model=WorkOrderResponse)
def change_status(
    work_order_id: str,
    payload: StatusChange,
    request: Request,
    current_user: models.User = Depends(get_current_user),
    ctx: Optional[ThirdPartyContext] = Depends(get_third_party_context),
    db: Session = Depends(get_db),
):
    work_order = _get_work_order(db, work_order_id, current_user, ctx)
    if payload.action == "cancel" and is_third_party_user(current_user):
        raise _deny("Terceiros nao podem cancelar ordens de servico")
    completion_data = {"notes": payload.completion_notes} if payload.completion_notes else None
    try:
        return transition_work_order(
            db,
            work_order,
            payload.action,
            AuditContext.from_request(request, current_user),
            reason=payload.reason,
            completion_data=completion_data,
        )
    except InvalidTransition as exc:
        raise _invalid_transition(exc)


@router.post("/work-orders/{work_order_id}/assign-third-party", response_model=WorkOrderResponse)
def assign_third_party(
    work_order_id: str,
    payload: ThirdPartyAssignment,
    request: Request,
    current_user: models.User = Depends(require_staff),
    db: Session = Depends(get_db),
):
    work_order = _get_work_order(db, work_order_id, current_user, None)
    company = (
        db.query(models.ThirdPartyCompany)
        .filter(models.ThirdPartyCompany.id == payload.third_party_company_id)
        .first()
    )
    if not company or company.customer_id != work_order.customer_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Empresa terceira nao encontrada")
    if company.status != CompanyStatus.ACTIVE.value:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Empresa terceira inativa")
    if work_order.site_id and company.allowed_sites and work_order.site_id not in company.allowed_sites:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Local da ordem de servico fora do escopo da empresa",
        )

    operator = None
    if payload.operator_id:
        operator = (
            db.query(models.User)
            .filter(
                models.User.id == payload.operator_id,
                models.User.third_party_company_id == company.id,
            )
            .first()
        )
        if not operator:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Operador nao encontrado")
    if payload.team_id:
        team = (
            db.query(models.ThirdPartyTeam)
            .filter(
                models.ThirdPartyTeam.id == payload.team_id,
                models.ThirdPartyTeam.third_party_company_id == company.id,
            )
            .first()
        )
        if not team:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Equipe nao encontrada")

    return assign_to_third_party(
        db,
        work_order,
        company,
        AuditContext.from_request(request, current_user),
        team_id=payload.team_id,
        operator=operator,
    )


@router.post("/work-orders/{work_order_id}/evaluate", response_model=WorkOrderResponse)
def evaluate_work_order(
    work_order_id: str,
    payload: Evaluation,
    request: Request,
    current_user: models.User = Depends(require_staff),
    db: Session = Depends(get_db),
):
    work_order = _get_work_order(db, work_order_id, current_user, None)
    if work_order.status != WorkOrderStatus.CONCLUIDA.value:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Apenas ordens de servico concluidas podem ser avaliadas",
        )
    work_order.rating = payload.rating
    work_order.evaluation_comment = payload.comment
    db.flush()
    work_order_audit_service.log_evaluated(
        db,
        work_order.id,
        {"rating": payload.rating, "comment": payload.comment},
        AuditContext.from_request(request, current_user),
    )
    db.commit()
    db.refresh(work_order)
    return work_order


@router.post(
    "/work-orders/{work_order_id}/comments",
    response_model=CommentResponse,
    status_code=status.HTTP_201_CREATED,
)
def add_comment(
    work_order_id: str,
    payload: CommentCreate,
    request: Request,
    current_user: models.User = Depends(get_current_user),
    ctx: Optional[ThirdPartyContext] = Depends(get_third_party_context),
    db: Session = Depends(get_db),
):
    work_order = _get_work_order(db, work_order_id, current_user, ctx)
    comment = models.WorkOrderComment(
        work_order_id=work_order.id,
        user_id=current_user.id,
        text=payload.text,
        is_reopen_request=payload.is_reopen_request,
    )
    db.add(comment)
    db.flush()
    work_order_audit_service.log_commented(
        db,
        work_order.id,
        payload.text,
        AuditContext.from_request(request, current_user),
        is_reopen_request=payload.is_reopen_request,
    )
    db.commit()
    db.refresh(comment)
    return comment


@router.post("/work-orders/{work_order_id}/reopen", response_model=WorkOrderResponse)
def reopen_work_order(
    work_order_id: str,
    payload: ReopenRequest,
    request: Request,
    current_user: models.User = Depends(require_staff),
    db: Session = Depends(get_db),
):
    work_order = _get_work_order(db, work_order_id, current_user, None)
    try:
        return transition_work_order(
            db,
            work_order,
            "reopen",
            AuditContext.from_request(request, current_user),
            reason=payload.reason,
        )
    except InvalidTransition as exc:
        raise _invalid_transition(exc)


@router.post("/work-orders/{work_order_id}/approval", response_model=WorkOrderResponse)
def decide_approval(
    work_order_id: str,
    payload: ApprovalDecision,
    request: Request,
    current_user: models.User = Depends(require_staff),
    db: Session = Depends(get_db),
):
    work_order = _get_work_order(db, work_order_id, current_user, None)
    context = AuditContext.from_request(request, current_user)
    if payload.approved:
        work_order_audit_service.log_approved(db, work_order.id, payload.approval_type, context)
        db.commit()
        db.refresh(work_order)
        return work_order

    work_order_audit_service.log_rejected(db, work_order.id, payload.approval_type, payload.reason, context)
    if work_order.status in TRANSITIONS["cancel"][0]:
        try:
            return transition_work_order(db, work_order, "cancel", context, reason=payload.reason)
        except InvalidTransition as exc:
            raise _invalid_transition(exc)
    db.commit()
    db.refresh(work_order)
    return work_order


@router.post(
    "/work-orders/{work_order_id}/attachments",
    response_model=AttachmentResponse,
    status_code=status.HTTP_201_CREATED,
)
def add_attachment(
    work_order_id: str,
    payload: AttachmentCreate,
    request: Request,
    current_user: models.User = Depends(get_current_user),
    ctx: Optional[ThirdPartyContext] = Depends(get_third_party_context),
    db: Session = Depends(get_db),
):
    work_order = _get_work_order(db, work_order_id, current_user, ctx)
    attachment = models.WorkOrderAttachment(
        work_order_id=work_order.id,
        file_name=payload.file_name,
        url=payload.url,
        mime=payload.mime,
        size=payload.size,
        created_by=current_user.id,
    )
    db.add(attachment)
    db.flush()
    work_order_audit_service.log_attachment_added(
        db,
        work_order.id,
        {"attachment_id": attachment.id, "file_name": attachment.file_name, "mime": attachment.mime},
        AuditContext.from_request(request, current_user),
    )
    db.commit()
    db.refresh(attachment)
    return attachment


@router.get("/work-orders/{work_order_id}/audit-log", response_model=List[AuditLogResponse])
def audit_history(
    work_order_id: str,
    current_user: models.User = Depends(get_current_user),
    ctx: Optional[ThirdPartyContext] = Depends(get_third_party_context),
    db: Session = Depends(get_db),
):
    work_order = _get_work_order(db, work_order_id, current_user, ctx)
    return (
        db.query(models.WorkOrderAuditLog)
        .filter(models.WorkOrderAuditLog.work_order_id == work_order.id)
        .order_by(models.WorkOrderAuditLog.created_at.asc())
        .all()
    )
