"""Third-party company lifecycle: active -> inactive -> active.

Deactivating a company cancels its open work orders (with one audit entry
each) and deactivates its users before flipping the company status.
Reactivation only flips the status back; cancelled work orders and
deactivated users stay as they are and must be restored manually.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from facility_ops.core.enums import CompanyStatus, OPEN_WORK_ORDER_STATUSES, WorkOrderStatus
from facility_ops.core.errors import CleanupError
from facility_ops.db import models
from facility_ops.services.audit import AuditContext, WorkOrderAuditService, work_order_audit_service

logger = logging.getLogger("facility_ops.cleanup")

CLEANUP_USER_AGENT = "ThirdPartyCleanupService"


@dataclass
class Performer:
    id: Optional[str]
    name: str
    user_type: Optional[str] = None

    @classmethod
    def from_user(cls, user: models.User) -> "Performer":
        return cls(id=user.id, name=user.name, user_type=user.user_type)


@dataclass
class CleanupResult:
    cancelled_work_orders: int = 0
    deactivated_users: int = 0
    third_party_company_id: Optional[str] = None
    customer_id: Optional[str] = None
    failed_company_ids: list[str] = field(default_factory=list)


class ThirdPartyCleanupService:
    def __init__(self, audit: Optional[WorkOrderAuditService] = None) -> None:
        self.audit = audit or work_order_audit_service

    def _audit_context(self, performed_by: Performer) -> AuditContext:
        return AuditContext(
            user_id=performed_by.id,
            user_name=performed_by.name,
            user_type=performed_by.user_type,
            ip_address="system",
            user_agent=CLEANUP_USER_AGENT,
            source="system",
        )

    def _open_work_orders(self, db: Session, company_id: str) -> list[models.WorkOrder]:
        return (
            db.query(models.WorkOrder)
            .filter(
                models.WorkOrder.third_party_company_id == company_id,
                models.WorkOrder.status.in_(OPEN_WORK_ORDER_STATUSES),
            )
            .all()
        )

    def _cancel_work_orders(self, db: Session, company_id: str, reason: str) -> int:
        now = datetime.utcnow()
        return (
            db.query(models.WorkOrder)
            .filter(
                models.WorkOrder.third_party_company_id == company_id,
                models.WorkOrder.status.in_(OPEN_WORK_ORDER_STATUSES),
            )
            .update(
                {
                    models.WorkOrder.status: WorkOrderStatus.CANCELADA.value,
                    models.WorkOrder.cancelled_at: now,
                    models.WorkOrder.cancellation_reason: reason,
                    models.WorkOrder.updated_at: now,
                },
                synchronize_session=False,
            )
        )

    def _deactivate_users(self, db: Session, company_id: str) -> int:
        count = (
            db.query(models.User)
            .filter(models.User.third_party_company_id == company_id)
            .update(
                {models.User.is_active: False, models.User.updated_at: datetime.utcnow()},
                synchronize_session=False,
            )
        )
        logger.info("%s usuarios desativados da empresa %s", count, company_id)
        return count

    def _cleanup_company(
        self, db: Session, company_id: str, performed_by: Performer, reason: str
    ) -> tuple[int, int]:
        context = self._audit_context(performed_by)
        for work_order in self._open_work_orders(db, company_id):
            self.audit.log_status_change(
                db,
                work_order.id,
                work_order.status or WorkOrderStatus.ABERTA.value,
                WorkOrderStatus.CANCELADA.value,
                context,
                description=f"Terceiro desativado: {reason}",
            )
        cancelled = self._cancel_work_orders(db, company_id, reason)
        deactivated = self._deactivate_users(db, company_id)
        return cancelled, deactivated

    def deactivate_company(
        self, db: Session, company_id: str, performed_by: Performer, reason: str
    ) -> CleanupResult:
        logger.info("Iniciando desativacao da empresa %s", company_id)
        company = db.query(models.ThirdPartyCompany).filter(models.ThirdPartyCompany.id == company_id).first()
        if not company:
            raise CleanupError(f"Third party company {company_id} not found")

        try:
            cancelled, deactivated = self._cleanup_company(
                db, company_id, performed_by, f"Empresa terceira desativada: {reason}"
            )
            company.status = CompanyStatus.INACTIVE.value
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            raise

        logger.info(
            "Empresa %s desativada. %s OS canceladas, %s usuarios desativados",
            company_id,
            cancelled,
            deactivated,
        )
        return CleanupResult(
            cancelled_work_orders=cancelled,
            deactivated_users=deactivated,
            third_party_company_id=company_id,
            customer_id=company.customer_id,
        )

    def deactivate_module(
        self, db: Session, customer_id: str, performed_by: Performer, reason: str
    ) -> CleanupResult:
        logger.info("Desabilitando modulo de terceiros para o cliente %s", customer_id)
        customer = db.query(models.Customer).filter(models.Customer.id == customer_id).first()
        if not customer:
            raise CleanupError(f"Customer {customer_id} not found")

        company_ids = [
            company_id
            for (company_id,) in db.query(models.ThirdPartyCompany.id)
            .filter(models.ThirdPartyCompany.customer_id == customer_id)
            .all()
        ]
        result = CleanupResult(customer_id=customer_id)
        for company_id in company_ids:
            try:
                cancelled, deactivated = self._cleanup_company(
                    db,
                    company_id,
                    performed_by,
                    f"Modulo de terceiros desabilitado para o cliente: {reason}",
                )
                (
                    db.query(models.ThirdPartyCompany)
                    .filter(
                        models.ThirdPartyCompany.id == company_id,
                        models.ThirdPartyCompany.status == CompanyStatus.ACTIVE.value,
                    )
                    .update({models.ThirdPartyCompany.status: CompanyStatus.INACTIVE.value}, synchronize_session=False)
                )
                db.commit()
            except SQLAlchemyError:
                db.rollback()
                logger.exception("Falha na limpeza da empresa %s", company_id)
                result.failed_company_ids.append(company_id)
                continue
            result.cancelled_work_orders += cancelled
            result.deactivated_users += deactivated

        if result.failed_company_ids:
            logger.error(
                "Modulo de terceiros mantido para o cliente %s: %s empresas com falha",
                customer_id,
                len(result.failed_company_ids),
            )
        else:
            customer = db.query(models.Customer).filter(models.Customer.id == customer_id).first()
            customer.third_party_enabled = False
            db.commit()

        logger.info(
            "Modulo desabilitado para o cliente %s. Total: %s OS canceladas, %s usuarios desativados",
            customer_id,
            result.cancelled_work_orders,
            result.deactivated_users,
        )
        return result

    def reactivate_company(self, db: Session, company_id: str) -> models.ThirdPartyCompany:
        logger.info("Reativando empresa %s", company_id)
        company = db.query(models.ThirdPartyCompany).filter(models.ThirdPartyCompany.id == company_id).first()
        if not company:
            raise CleanupError(f"Third party company {company_id} not found")
        company.status = CompanyStatus.ACTIVE.value
        db.commit()
        db.refresh(company)
        logger.info("Empresa %s reativada", company_id)
        return company


third_party_cleanup_service = ThirdPartyCleanupService()
