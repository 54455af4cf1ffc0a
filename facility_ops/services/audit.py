import json
import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Mapping, Optional

from fastapi import Request
from sqlalchemy.orm import Session

from facility_ops.core.config import settings
from facility_ops.db import models
from facility_ops.services.side_channel import SideChannelResult, side_channel

logger = logging.getLogger("facility_ops.audit")

ALLOWED_SOURCES = {"web", "mobile", "api", "system"}
DIFF_IGNORED_FIELDS = {"updated_at"}


class AuditAction(str, Enum):
    CREATED = "CREATED"
    UPDATED = "UPDATED"
    STATUS_CHANGED = "STATUS_CHANGED"
    ASSIGNED = "ASSIGNED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    EXECUTION_STARTED = "EXECUTION_STARTED"
    EXECUTION_PAUSED = "EXECUTION_PAUSED"
    EXECUTION_RESUMED = "EXECUTION_RESUMED"
    COMPLETED = "COMPLETED"
    EVALUATED = "EVALUATED"
    COMMENTED = "COMMENTED"
    ATTACHMENT_ADDED = "ATTACHMENT_ADDED"
    REOPENED = "REOPENED"
    CANCELLED = "CANCELLED"


DEFAULT_DESCRIPTIONS = {
    AuditAction.CREATED: "Ordem de servico criada",
    AuditAction.UPDATED: "Ordem de servico atualizada",
    AuditAction.STATUS_CHANGED: "Status alterado",
    AuditAction.ASSIGNED: "Atribuicao realizada",
    AuditAction.APPROVED: "Aprovado",
    AuditAction.REJECTED: "Recusado",
    AuditAction.EXECUTION_STARTED: "Execucao iniciada",
    AuditAction.EXECUTION_PAUSED: "Execucao pausada",
    AuditAction.EXECUTION_RESUMED: "Execucao retomada",
    AuditAction.COMPLETED: "Concluido",
    AuditAction.EVALUATED: "Avaliado",
    AuditAction.COMMENTED: "Comentario adicionado",
    AuditAction.ATTACHMENT_ADDED: "Anexo adicionado",
    AuditAction.REOPENED: "Reaberto",
    AuditAction.CANCELLED: "Cancelado",
}

STATUS_LABELS = {
    "aberta": "Aberta",
    "em_execucao": "Em Execucao",
    "pausada": "Pausada",
    "vencida": "Vencida",
    "concluida": "Concluida",
    "cancelada": "Cancelada",
}


@dataclass
class AuditContext:
    user_id: Optional[str] = None
    user_name: Optional[str] = None
    user_type: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    source: str = "web"

    @classmethod
    def for_user(cls, user: Optional[models.User], **kwargs) -> "AuditContext":
        if user is None:
            return cls(**kwargs)
        return cls(user_id=user.id, user_name=user.name, user_type=user.user_type, **kwargs)

    @classmethod
    def from_request(cls, request: Request, user: Optional[models.User]) -> "AuditContext":
        source = (request.headers.get("x-client-source") or "web").strip().lower()
        if source not in ALLOWED_SOURCES:
            source = "web"
        return cls.for_user(
            user,
            ip_address=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
            source=source,
        )

    @classmethod
    def system(cls, user_agent: Optional[str] = None) -> "AuditContext":
        return cls(ip_address="system", user_agent=user_agent, source="system")


def _jsonable(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Mapping):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_jsonable(item) for item in value]
    return value


def snapshot_work_order(work_order: models.WorkOrder) -> dict:
    return {
        column.name: _jsonable(getattr(work_order, column.name))
        for column in models.WorkOrder.__table__.columns
    }


def diff_values(previous: Mapping[str, Any], current: Mapping[str, Any]) -> tuple[dict, dict]:
    """Return ``(previous, changed)`` restricted to keys of ``current`` that differ."""
    changed: dict = {}
    previous_values: dict = {}
    for key, value in current.items():
        if key in DIFF_IGNORED_FIELDS:
            continue
        before = _jsonable(previous.get(key))
        after = _jsonable(value)
        if json.dumps(before, sort_keys=True, default=str) != json.dumps(after, sort_keys=True, default=str):
            changed[key] = after
            previous_values[key] = before
    return previous_values, changed


def translate_status(value: str) -> str:
    return STATUS_LABELS.get(value, value)


def _now_iso() -> str:
    return datetime.utcnow().isoformat()


class WorkOrderAuditService:
    @side_channel(logger, "audit")
    def log(
        self,
        db: Session,
        work_order_id: str,
        action: AuditAction,
        context: AuditContext,
        previous_value: Optional[dict] = None,
        new_value: Optional[dict] = None,
        description: Optional[str] = None,
    ) -> SideChannelResult:
        work_order = db.query(models.WorkOrder).filter(models.WorkOrder.id == work_order_id).first()
        if not work_order:
            logger.error("Ordem de servico %s nao encontrada para auditoria", work_order_id)
            return SideChannelResult.failure("work order not found")

        customer_name = None
        if work_order.customer_id:
            customer = db.query(models.Customer).filter(models.Customer.id == work_order.customer_id).first()
            customer_name = customer.name if customer else None

        company_name = None
        if work_order.third_party_company_id:
            company = (
                db.query(models.ThirdPartyCompany)
                .filter(models.ThirdPartyCompany.id == work_order.third_party_company_id)
                .first()
            )
            company_name = company.name if company else None

        action = AuditAction(action)
        actor_name = context.user_name or settings.SYSTEM_ACTOR_NAME
        entry = models.WorkOrderAuditLog(
            id=str(uuid.uuid4()),
            work_order_id=work_order_id,
            action=action.value,
            user_id=context.user_id,
            user_type=context.user_type,
            user_name=actor_name,
            customer_id=work_order.customer_id,
            customer_name=customer_name,
            third_party_company_id=work_order.third_party_company_id,
            third_party_company_name=company_name,
            previous_value=_jsonable(previous_value) if previous_value is not None else None,
            new_value=_jsonable(new_value) if new_value is not None else None,
            description=description or DEFAULT_DESCRIPTIONS[action],
            ip_address=context.ip_address,
            user_agent=context.user_agent,
            source=context.source or "web",
        )
        with db.begin_nested():
            db.add(entry)

        logger.info("%s registrado para OS %s por %s", action.value, work_order_id, actor_name)
        return SideChannelResult.success(entry.id)

    def log_creation(self, db: Session, work_order: models.WorkOrder, context: AuditContext) -> SideChannelResult:
        return self.log(
            db,
            work_order.id,
            AuditAction.CREATED,
            context,
            new_value=snapshot_work_order(work_order),
            description=f"Ordem de servico #{work_order.number} criada",
        )

    def log_update(
        self,
        db: Session,
        work_order_id: str,
        previous_value: Mapping[str, Any],
        new_value: Mapping[str, Any],
        context: AuditContext,
    ) -> Optional[SideChannelResult]:
        previous, changed = diff_values(previous_value, new_value)
        if not changed:
            return None
        return self.log(
            db,
            work_order_id,
            AuditAction.UPDATED,
            context,
            previous_value=previous,
            new_value=changed,
            description=f"Campos alterados: {', '.join(changed.keys())}",
        )

    def log_status_change(
        self,
        db: Session,
        work_order_id: str,
        previous_status: str,
        new_status: str,
        context: AuditContext,
        description: Optional[str] = None,
    ) -> SideChannelResult:
        return self.log(
            db,
            work_order_id,
            AuditAction.STATUS_CHANGED,
            context,
            previous_value={"status": previous_status},
            new_value={"status": new_status},
            description=description
            or f'Status alterado de "{translate_status(previous_status)}" para "{translate_status(new_status)}"',
        )

    def log_assignment(
        self, db: Session, work_order_id: str, assigned_to: dict, context: AuditContext
    ) -> SideChannelResult:
        if assigned_to.get("user_name"):
            description = f"Atribuida ao operador {assigned_to['user_name']}"
        elif assigned_to.get("third_party_name"):
            description = f"Atribuida ao terceiro {assigned_to['third_party_name']}"
        else:
            description = "Atribuicao realizada"
        return self.log(db, work_order_id, AuditAction.ASSIGNED, context, new_value=assigned_to, description=description)

    def log_execution_started(self, db: Session, work_order_id: str, context: AuditContext) -> SideChannelResult:
        return self.log(
            db,
            work_order_id,
            AuditAction.EXECUTION_STARTED,
            context,
            new_value={"started_at": _now_iso()},
            description="Execucao iniciada",
        )

    def log_execution_paused(
        self,
        db: Session,
        work_order_id: str,
        reason: Optional[str] = None,
        context: Optional[AuditContext] = None,
    ) -> SideChannelResult:
        return self.log(
            db,
            work_order_id,
            AuditAction.EXECUTION_PAUSED,
            context or AuditContext.system(),
            new_value={"paused_at": _now_iso(), "reason": reason},
            description=f"Execucao pausada: {reason}" if reason else "Execucao pausada",
        )

    def log_execution_resumed(self, db: Session, work_order_id: str, context: AuditContext) -> SideChannelResult:
        return self.log(
            db,
            work_order_id,
            AuditAction.EXECUTION_RESUMED,
            context,
            new_value={"resumed_at": _now_iso()},
            description="Execucao retomada",
        )

    def log_completed(
        self, db: Session, work_order_id: str, completion_data: dict, context: AuditContext
    ) -> SideChannelResult:
        return self.log(
            db,
            work_order_id,
            AuditAction.COMPLETED,
            context,
            new_value={"completed_at": _now_iso(), **completion_data},
            description="Ordem de servico concluida",
        )

    def log_evaluated(
        self, db: Session, work_order_id: str, evaluation: dict, context: AuditContext
    ) -> SideChannelResult:
        rating = evaluation.get("rating")
        return self.log(
            db,
            work_order_id,
            AuditAction.EVALUATED,
            context,
            new_value=evaluation,
            description=f"Avaliada com nota {rating}/10" if rating else "Avaliacao registrada",
        )

    def log_commented(
        self,
        db: Session,
        work_order_id: str,
        text: str,
        context: AuditContext,
        is_reopen_request: bool = False,
    ) -> SideChannelResult:
        return self.log(
            db,
            work_order_id,
            AuditAction.COMMENTED,
            context,
            new_value={"comment": text[:200], "is_reopen_request": is_reopen_request},
            description="Solicitacao de reabertura enviada" if is_reopen_request else "Comentario adicionado",
        )

    def log_reopened(self, db: Session, work_order_id: str, reason: str, context: AuditContext) -> SideChannelResult:
        return self.log(
            db,
            work_order_id,
            AuditAction.REOPENED,
            context,
            new_value={"reason": reason, "reopened_at": _now_iso()},
            description=f"Ordem de servico reaberta: {reason[:100]}",
        )

    def log_cancelled(
        self,
        db: Session,
        work_order_id: str,
        reason: Optional[str] = None,
        context: Optional[AuditContext] = None,
    ) -> SideChannelResult:
        return self.log(
            db,
            work_order_id,
            AuditAction.CANCELLED,
            context or AuditContext.system(),
            new_value={"cancelled_at": _now_iso(), "reason": reason},
            description=f"Cancelada: {reason}" if reason else "Ordem de servico cancelada",
        )

    def log_approved(
        self, db: Session, work_order_id: str, approval_type: str, context: AuditContext
    ) -> SideChannelResult:
        return self.log(
            db,
            work_order_id,
            AuditAction.APPROVED,
            context,
            new_value={"approval_type": approval_type, "approved_at": _now_iso()},
            description=f"Aprovacao: {approval_type}",
        )

    def log_rejected(
        self,
        db: Session,
        work_order_id: str,
        rejection_type: str,
        reason: Optional[str] = None,
        context: Optional[AuditContext] = None,
    ) -> SideChannelResult:
        return self.log(
            db,
            work_order_id,
            AuditAction.REJECTED,
            context or AuditContext.system(),
            new_value={"rejection_type": rejection_type, "reason": reason, "rejected_at": _now_iso()},
            description=(
                f"Recusado ({rejection_type}): {reason}" if reason else f"Recusado: {rejection_type}"
            ),
        )

    def log_attachment_added(
        self, db: Session, work_order_id: str, attachment: dict, context: AuditContext
    ) -> SideChannelResult:
        file_name = attachment.get("file_name")
        return self.log(
            db,
            work_order_id,
            AuditAction.ATTACHMENT_ADDED,
            context,
            new_value=attachment,
            description=f"Anexo adicionado: {file_name}" if file_name else "Anexo adicionado",
        )


work_order_audit_service = WorkOrderAuditService()
