import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from facility_ops.core.enums import ThirdPartyRole
from facility_ops.db import models
from facility_ops.services.push import PushClient, push_client
from facility_ops.services.side_channel import SideChannelResult, side_channel

logger = logging.getLogger("facility_ops.notifications")

LEADER_ROLES = (ThirdPartyRole.MANAGER.value, ThirdPartyRole.TEAM_LEADER.value)
OPERATOR_ROLES = (ThirdPartyRole.OPERATOR.value,)


class NotificationType(str, Enum):
    MAINTENANCE_PLAN_APPROVED = "MAINTENANCE_PLAN_APPROVED"
    MAINTENANCE_PLAN_REJECTED = "MAINTENANCE_PLAN_REJECTED"
    WORK_ORDER_ASSIGNED_TO_TEAM = "WORK_ORDER_ASSIGNED_TO_TEAM"
    WORK_ORDER_ASSIGNED_TO_OPERATOR = "WORK_ORDER_ASSIGNED_TO_OPERATOR"
    WORK_ORDER_OVERDUE = "WORK_ORDER_OVERDUE"


@dataclass
class NotificationPayload:
    type: NotificationType
    title: str
    message: str
    data: dict = field(default_factory=dict)


class ThirdPartyNotificationService:
    def __init__(self, push: Optional[PushClient] = None) -> None:
        self.push = push or push_client

    def _company_users(self, db: Session, company_id: str, roles: Iterable[str]) -> list[models.User]:
        return (
            db.query(models.User)
            .filter(
                models.User.third_party_company_id == company_id,
                models.User.third_party_role.in_(list(roles)),
                models.User.is_active.is_(True),
            )
            .all()
        )

    def _create_notification(self, db: Session, user: models.User, payload: NotificationPayload) -> models.Notification:
        notification = models.Notification(
            id=str(uuid.uuid4()),
            user_id=user.id,
            type=NotificationType(payload.type).value,
            title=payload.title,
            message=payload.message,
            data=payload.data or None,
        )
        with db.begin_nested():
            db.add(notification)
        self.push.send(user, payload.title, payload.message, payload.data)
        return notification

    def _fan_out(self, db: Session, recipients: list[models.User], payload: NotificationPayload) -> int:
        sent = 0
        for user in recipients:
            self._create_notification(db, user, payload)
            sent += 1
        return sent

    @side_channel(logger, "notifications.team_leaders")
    def notify_team_leaders(self, db: Session, company_id: str, payload: NotificationPayload) -> int:
        leaders = self._company_users(db, company_id, LEADER_ROLES)
        sent = self._fan_out(db, leaders, payload)
        logger.info("%s enviado para %s lideres da empresa %s", payload.type.value, sent, company_id)
        return sent

    @side_channel(logger, "notifications.team_operators")
    def notify_team_operators(self, db: Session, company_id: str, payload: NotificationPayload) -> int:
        operators = self._company_users(db, company_id, OPERATOR_ROLES)
        sent = self._fan_out(db, operators, payload)
        logger.info("%s enviado para %s operadores da empresa %s", payload.type.value, sent, company_id)
        return sent

    @side_channel(logger, "notifications.operator")
    def notify_operator(self, db: Session, operator_id: str, payload: NotificationPayload) -> int:
        operator = db.query(models.User).filter(models.User.id == operator_id).first()
        if not operator:
            logger.warning("Operador %s nao encontrado para %s", operator_id, payload.type.value)
            return 0
        self._create_notification(db, operator, payload)
        logger.info("%s enviado para operador %s", payload.type.value, operator_id)
        return 1

    def on_maintenance_plan_approved(
        self, db: Session, plan_id: str, plan_name: str, company_id: str
    ) -> SideChannelResult:
        return self.notify_team_leaders(
            db,
            company_id,
            NotificationPayload(
                type=NotificationType.MAINTENANCE_PLAN_APPROVED,
                title="Plano de Manutencao Aprovado",
                message=f'O plano "{plan_name}" foi aprovado e esta ativo.',
                data={"maintenance_plan_id": plan_id},
            ),
        )

    def on_maintenance_plan_rejected(
        self,
        db: Session,
        plan_id: str,
        plan_name: str,
        company_id: str,
        reason: Optional[str] = None,
    ) -> SideChannelResult:
        message = (
            f'O plano "{plan_name}" foi rejeitado: {reason}' if reason else f'O plano "{plan_name}" foi rejeitado.'
        )
        return self.notify_team_leaders(
            db,
            company_id,
            NotificationPayload(
                type=NotificationType.MAINTENANCE_PLAN_REJECTED,
                title="Plano de Manutencao Rejeitado",
                message=message,
                data={"maintenance_plan_id": plan_id, "reason": reason},
            ),
        )

    def on_work_order_assigned_to_team(
        self,
        db: Session,
        work_order_id: str,
        work_order_code: str,
        company_id: str,
        operator_id: Optional[str] = None,
    ) -> list[SideChannelResult]:
        data = {"work_order_id": work_order_id, "work_order_code": work_order_code}
        results = [
            self.notify_team_leaders(
                db,
                company_id,
                NotificationPayload(
                    type=NotificationType.WORK_ORDER_ASSIGNED_TO_TEAM,
                    title="Nova OS Atribuida a Equipe",
                    message=f"A ordem de servico {work_order_code} foi atribuida a sua equipe.",
                    data=data,
                ),
            ),
            self.notify_team_operators(
                db,
                company_id,
                NotificationPayload(
                    type=NotificationType.WORK_ORDER_ASSIGNED_TO_TEAM,
                    title="Nova OS para a Equipe",
                    message=f"A ordem de servico {work_order_code} foi atribuida a equipe.",
                    data=data,
                ),
            ),
        ]
        if operator_id:
            results.append(self.on_work_order_assigned_to_operator(db, work_order_id, work_order_code, operator_id))
        return results

    def on_work_order_assigned_to_operator(
        self, db: Session, work_order_id: str, work_order_code: str, operator_id: str
    ) -> SideChannelResult:
        return self.notify_operator(
            db,
            operator_id,
            NotificationPayload(
                type=NotificationType.WORK_ORDER_ASSIGNED_TO_OPERATOR,
                title="OS Atribuida a Voce",
                message=f"A ordem de servico {work_order_code} foi atribuida diretamente a voce.",
                data={"work_order_id": work_order_id, "work_order_code": work_order_code},
            ),
        )

    def on_work_order_overdue(
        self, db: Session, work_order_id: str, work_order_code: str, company_id: str
    ) -> SideChannelResult:
        return self.notify_team_leaders(
            db,
            company_id,
            NotificationPayload(
                type=NotificationType.WORK_ORDER_OVERDUE,
                title="OS em Atraso",
                message=f"A ordem de servico {work_order_code} esta em atraso e requer atencao imediata.",
                data={"work_order_id": work_order_id, "work_order_code": work_order_code},
            ),
        )


third_party_notification_service = ThirdPartyNotificationService()
