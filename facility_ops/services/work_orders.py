import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from facility_ops.core.enums import ExecutedByType, OPEN_WORK_ORDER_STATUSES, WorkOrderStatus
from facility_ops.db import models
from facility_ops.services.audit import (
    AuditContext,
    WorkOrderAuditService,
    snapshot_work_order,
    work_order_audit_service,
)
from facility_ops.services.notifications import (
    ThirdPartyNotificationService,
    third_party_notification_service,
)

logger = logging.getLogger("facility_ops.work_orders")

UPDATABLE_FIELDS = (
    "title",
    "description",
    "priority",
    "module",
    "site_id",
    "zone_id",
    "equipment_id",
    "due_date",
    "assigned_user_id",
)

# action -> (allowed source statuses, target status)
TRANSITIONS = {
    "start": ({"aberta", "vencida"}, WorkOrderStatus.EM_EXECUCAO.value),
    "pause": ({"em_execucao"}, WorkOrderStatus.PAUSADA.value),
    "resume": ({"pausada"}, WorkOrderStatus.EM_EXECUCAO.value),
    "complete": ({"em_execucao", "pausada", "vencida"}, WorkOrderStatus.CONCLUIDA.value),
    "cancel": ({"aberta", "em_execucao", "pausada", "vencida"}, WorkOrderStatus.CANCELADA.value),
    "reopen": ({"concluida", "cancelada"}, WorkOrderStatus.ABERTA.value),
}


class InvalidTransition(ValueError):
    pass


def work_order_code(work_order: models.WorkOrder) -> str:
    if work_order.number is not None:
        return f"#{work_order.number}"
    return work_order.id[:8]


def next_work_order_number(db: Session, customer_id: str) -> int:
    current = (
        db.query(func.max(models.WorkOrder.number))
        .filter(models.WorkOrder.customer_id == customer_id)
        .scalar()
    )
    return (current or 0) + 1


def create_work_order(
    db: Session,
    customer_id: str,
    data: dict,
    context: AuditContext,
    audit: WorkOrderAuditService = work_order_audit_service,
) -> models.WorkOrder:
    work_order = models.WorkOrder(
        customer_id=customer_id,
        number=next_work_order_number(db, customer_id),
        status=WorkOrderStatus.ABERTA.value,
        executed_by_type=ExecutedByType.INTERNAL.value,
        **{key: value for key, value in data.items() if key in UPDATABLE_FIELDS},
    )
    db.add(work_order)
    db.flush()
    audit.log_creation(db, work_order, context)
    db.commit()
    db.refresh(work_order)
    return work_order


def update_work_order(
    db: Session,
    work_order: models.WorkOrder,
    changes: dict,
    context: AuditContext,
    audit: WorkOrderAuditService = work_order_audit_service,
) -> models.WorkOrder:
    previous = snapshot_work_order(work_order)
    applied = {key: value for key, value in changes.items() if key in UPDATABLE_FIELDS}
    for key, value in applied.items():
        setattr(work_order, key, value)
    db.flush()
    audit.log_update(db, work_order.id, previous, applied, context)
    db.commit()
    db.refresh(work_order)
    return work_order


def transition_work_order(
    db: Session,
    work_order: models.WorkOrder,
    action: str,
    context: AuditContext,
    reason: Optional[str] = None,
    completion_data: Optional[dict] = None,
    audit: WorkOrderAuditService = work_order_audit_service,
) -> models.WorkOrder:
    if action not in TRANSITIONS:
        raise InvalidTransition(f"Acao invalida: {action}")
    allowed_from, target = TRANSITIONS[action]
    previous_status = work_order.status
    if previous_status not in allowed_from:
        raise InvalidTransition(f"Transicao {action} nao permitida a partir de {previous_status}")

    now = datetime.utcnow()
    work_order.status = target
    if action == "start" and work_order.started_at is None:
        work_order.started_at = now
    elif action == "pause":
        work_order.paused_at = now
    elif action == "resume":
        work_order.paused_at = None
    elif action == "complete":
        work_order.completed_at = now
    elif action == "cancel":
        work_order.cancelled_at = now
        work_order.cancellation_reason = reason
    elif action == "reopen":
        work_order.completed_at = None
        work_order.cancelled_at = None
        work_order.cancellation_reason = None
    db.flush()

    audit.log_status_change(db, work_order.id, previous_status, target, context)
    if action == "start":
        audit.log_execution_started(db, work_order.id, context)
    elif action == "pause":
        audit.log_execution_paused(db, work_order.id, reason, context)
    elif action == "resume":
        audit.log_execution_resumed(db, work_order.id, context)
    elif action == "complete":
        audit.log_completed(db, work_order.id, completion_data or {}, context)
    elif action == "cancel":
        audit.log_cancelled(db, work_order.id, reason, context)
    elif action == "reopen":
        audit.log_reopened(db, work_order.id, reason or "", context)

    db.commit()
    db.refresh(work_order)
    return work_order


def assign_to_third_party(
    db: Session,
    work_order: models.WorkOrder,
    company: models.ThirdPartyCompany,
    context: AuditContext,
    team_id: Optional[str] = None,
    operator: Optional[models.User] = None,
    audit: WorkOrderAuditService = work_order_audit_service,
    notifications: ThirdPartyNotificationService = third_party_notification_service,
) -> models.WorkOrder:
    work_order.executed_by_type = ExecutedByType.THIRD_PARTY.value
    work_order.third_party_company_id = company.id
    work_order.third_party_team_id = team_id
    work_order.third_party_operator_id = operator.id if operator else None
    db.flush()

    audit.log_assignment(
        db,
        work_order.id,
        {
            "third_party_id": company.id,
            "third_party_name": company.name,
            "team_id": team_id,
            "user_id": operator.id if operator else None,
            "user_name": operator.name if operator else None,
        },
        context,
    )
    notifications.on_work_order_assigned_to_team(
        db,
        work_order.id,
        work_order_code(work_order),
        company.id,
        operator.id if operator else None,
    )
    db.commit()
    db.refresh(work_order)
    return work_order


def mark_overdue_work_orders(
    db: Session,
    now: Optional[datetime] = None,
    audit: WorkOrderAuditService = work_order_audit_service,
    notifications: ThirdPartyNotificationService = third_party_notification_service,
) -> list[str]:
    now = now or datetime.utcnow()
    overdue = (
        db.query(models.WorkOrder)
        .filter(
            models.WorkOrder.status.in_(OPEN_WORK_ORDER_STATUSES),
            models.WorkOrder.due_date.isnot(None),
            models.WorkOrder.due_date < now,
        )
        .all()
    )
    context = AuditContext.system(user_agent="OverdueSweep")
    marked: list[str] = []
    for work_order in overdue:
        previous_status = work_order.status
        work_order.status = WorkOrderStatus.VENCIDA.value
        db.flush()
        audit.log_status_change(
            db,
            work_order.id,
            previous_status,
            WorkOrderStatus.VENCIDA.value,
            context,
            description="Prazo expirado",
        )
        if work_order.third_party_company_id:
            notifications.on_work_order_overdue(
                db, work_order.id, work_order_code(work_order), work_order.third_party_company_id
            )
        marked.append(work_order.id)
    db.commit()
    logger.info("%s ordens de servico marcadas como vencidas", len(marked))
    return marked
