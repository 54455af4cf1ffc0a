import logging
from datetime import datetime
from typing import Optional, Union

from sqlalchemy.orm import Session

from facility_ops.core.enums import ProposalStatus
from facility_ops.db import models
from facility_ops.services.notifications import (
    ThirdPartyNotificationService,
    third_party_notification_service,
)

logger = logging.getLogger("facility_ops.proposals")

Proposal = Union[models.MaintenancePlanProposal, models.ThirdPartyProposal]

PLAN_FIELDS = ("name", "description", "frequency", "site_id", "zone_id", "equipment_ids")


class ProposalAlreadyReviewed(ValueError):
    pass


def _ensure_pending(proposal: Proposal) -> None:
    if proposal.status != ProposalStatus.EM_ESPERA.value:
        raise ProposalAlreadyReviewed(f"Proposta ja analisada: {proposal.status}")


def _plan_from_proposal(proposal: Proposal) -> models.MaintenancePlan:
    plan = models.MaintenancePlan(
        customer_id=proposal.customer_id,
        **{field: getattr(proposal, field) for field in PLAN_FIELDS},
    )
    if isinstance(proposal, models.ThirdPartyProposal):
        plan.third_party_company_id = proposal.third_party_company_id
    else:
        plan.supplier_id = proposal.supplier_id
    return plan


def approve_proposal(
    db: Session,
    proposal: Proposal,
    reviewer: models.User,
    notifications: ThirdPartyNotificationService = third_party_notification_service,
) -> models.MaintenancePlan:
    _ensure_pending(proposal)
    plan = _plan_from_proposal(proposal)
    db.add(plan)
    db.flush()

    proposal.status = ProposalStatus.APROVADO.value
    proposal.reviewed_by = reviewer.id
    proposal.reviewed_at = datetime.utcnow()
    proposal.maintenance_plan_id = plan.id
    db.flush()

    if isinstance(proposal, models.ThirdPartyProposal):
        notifications.on_maintenance_plan_approved(db, plan.id, plan.name, proposal.third_party_company_id)
    db.commit()
    db.refresh(plan)
    logger.info("Proposta %s aprovada, plano %s criado", proposal.id, plan.id)
    return plan


def reject_proposal(
    db: Session,
    proposal: Proposal,
    reviewer: models.User,
    reason: Optional[str] = None,
    notifications: ThirdPartyNotificationService = third_party_notification_service,
) -> Proposal:
    _ensure_pending(proposal)
    proposal.status = ProposalStatus.RECUSADO.value
    proposal.rejection_reason = reason
    proposal.reviewed_by = reviewer.id
    proposal.reviewed_at = datetime.utcnow()
    db.flush()

    if isinstance(proposal, models.ThirdPartyProposal):
        notifications.on_maintenance_plan_rejected(
            db, proposal.id, proposal.name, proposal.third_party_company_id, reason
        )
    db.commit()
    db.refresh(proposal)
    logger.info("Proposta %s recusada", proposal.id)
    return proposal
