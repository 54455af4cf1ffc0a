from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response
from sqlalchemy.orm import Session

from facility_ops.core.authorization import enforce_customer_scope, require_customer
from facility_ops.core.enums import UserType
from facility_ops.core.security import require_user_types
from facility_ops.db import models
from facility_ops.db.session import get_db
from facility_ops.services import sla

router = APIRouter(tags=["Reports"])

require_report_viewer = require_user_types(UserType.INTERNAL, UserType.CUSTOMER)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _check_period(start_date: Optional[datetime], end_date: Optional[datetime]) -> None:
    if start_date and end_date and start_date > end_date:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Periodo invalido")


def _customer_for(db: Session, user: models.User, customer_id: str) -> models.Customer:
    customer = require_customer(db, customer_id)
    enforce_customer_scope(db, user, customer_id)
    return customer


@router.get("/customers/{customer_id}/sla", response_model=sla.CustomerDashboardSummary)
def customer_sla_dashboard(
    customer_id: str,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    module: Optional[str] = None,
    current_user: models.User = Depends(require_report_viewer),
    db: Session = Depends(get_db),
):
    _customer_for(db, current_user, customer_id)
    _check_period(start_date, end_date)
    return sla.get_customer_third_party_dashboard_summary(db, customer_id, start_date, end_date, module)


@router.get("/customers/{customer_id}/sla/general", response_model=sla.SLAMetrics)
def customer_general_sla(
    customer_id: str,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    module: Optional[str] = None,
    current_user: models.User = Depends(require_report_viewer),
    db: Session = Depends(get_db),
):
    _customer_for(db, current_user, customer_id)
    _check_period(start_date, end_date)
    return sla.get_customer_general_sla(db, customer_id, start_date, end_date, module)


@router.get("/customers/{customer_id}/sla/by-third-party", response_model=List[sla.ThirdPartySLAReport])
def customer_sla_by_third_party(
    customer_id: str,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    module: Optional[str] = None,
    current_user: models.User = Depends(require_report_viewer),
    db: Session = Depends(get_db),
):
    _customer_for(db, current_user, customer_id)
    _check_period(start_date, end_date)
    return sla.get_customer_sla_by_third_party(db, customer_id, start_date, end_date, module)


@router.get(
    "/customers/{customer_id}/sla/internal-vs-third-party",
    response_model=sla.InternalVsThirdPartySLA,
)
def customer_internal_vs_third_party(
    customer_id: str,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    module: Optional[str] = None,
    current_user: models.User = Depends(require_report_viewer),
    db: Session = Depends(get_db),
):
    _customer_for(db, current_user, customer_id)
    _check_period(start_date, end_date)
    return sla.get_customer_internal_vs_third_party_sla(db, customer_id, start_date, end_date, module)


@router.get("/customers/{customer_id}/sla/export")
def export_customer_sla(
    customer_id: str,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    module: Optional[str] = None,
    current_user: models.User = Depends(require_report_viewer),
    db: Session = Depends(get_db),
):
    customer = _customer_for(db, current_user, customer_id)
    _check_period(start_date, end_date)
    summary = sla.get_customer_third_party_dashboard_summary(db, customer_id, start_date, end_date, module)
    content, filename = sla.build_sla_workbook(summary, customer.name)
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@router.get("/third-party-companies/{company_id}/sla", response_model=sla.ThirdPartyDashboardSummary)
def third_party_company_sla(
    company_id: str,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    module: Optional[str] = None,
    current_user: models.User = Depends(require_report_viewer),
    db: Session = Depends(get_db),
):
    company = db.query(models.ThirdPartyCompany).filter(models.ThirdPartyCompany.id == company_id).first()
    if not company:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Empresa terceira nao encontrada")
    enforce_customer_scope(db, current_user, company.customer_id)
    _check_period(start_date, end_date)
    return sla.get_third_party_dashboard_summary(db, company_id, start_date, end_date, module)
