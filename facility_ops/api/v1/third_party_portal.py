from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from facility_ops.core.enums import WorkOrderStatus
from facility_ops.core.isolation import (
    ThirdPartyContext,
    require_third_party_context,
    third_party_isolation,
)
from facility_ops.db.session import get_db
from facility_ops.services import sla
from facility_ops.services.scoped_queries import (
    get_filtered_equipment,
    get_filtered_sites,
    get_filtered_work_orders,
    get_filtered_zones,
)

router = APIRouter(prefix="/third-party-portal", tags=["Third Party Portal"])


class PortalContextResponse(BaseModel):
    company_id: str
    customer_id: str
    allowed_sites: List[str]
    allowed_zones: List[str]
    asset_visibility_mode: str
    role: Optional[str] = None


class SiteResponse(BaseModel):
    id: str
    name: str
    code: Optional[str] = None
    module: str
    address: Optional[str] = None

    class Config:
        from_attributes = True


class ZoneResponse(BaseModel):
    id: str
    site_id: str
    name: str
    module: str

    class Config:
        from_attributes = True


class EquipmentResponse(BaseModel):
    id: str
    zone_id: str
    name: str
    tag: Optional[str] = None

    class Config:
        from_attributes = True


class PortalWorkOrderResponse(BaseModel):
    id: str
    number: Optional[int] = None
    title: str
    status: str
    priority: Optional[str] = None
    module: str
    site_id: Optional[str] = None
    zone_id: Optional[str] = None
    equipment_id: Optional[str] = None
    third_party_team_id: Optional[str] = None
    third_party_operator_id: Optional[str] = None
    due_date: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


@router.get("/context", response_model=PortalContextResponse)
def portal_context(ctx: ThirdPartyContext = Depends(require_third_party_context)):
    return PortalContextResponse(
        company_id=ctx.company_id,
        customer_id=ctx.customer_id,
        allowed_sites=list(ctx.allowed_sites),
        allowed_zones=list(ctx.allowed_zones),
        asset_visibility_mode=ctx.asset_visibility_mode.value,
        role=ctx.role.value if ctx.role else None,
    )


@router.get("/customers/{customer_id}/sites", response_model=List[SiteResponse])
def list_sites(
    customer_id: str,
    module: Optional[str] = None,
    _: Optional[ThirdPartyContext] = Depends(third_party_isolation),
    ctx: ThirdPartyContext = Depends(require_third_party_context),
    db: Session = Depends(get_db),
):
    return get_filtered_sites(db, customer_id, ctx, module)


@router.get("/customers/{customer_id}/zones", response_model=List[ZoneResponse])
def list_zones(
    customer_id: str,
    site_id: Optional[str] = None,
    module: Optional[str] = None,
    _: Optional[ThirdPartyContext] = Depends(third_party_isolation),
    ctx: ThirdPartyContext = Depends(require_third_party_context),
    db: Session = Depends(get_db),
):
    return get_filtered_zones(db, customer_id, ctx, site_id, module)


@router.get("/customers/{customer_id}/equipment", response_model=List[EquipmentResponse])
def list_equipment(
    customer_id: str,
    site_id: Optional[str] = None,
    zone_id: Optional[str] = None,
    _: Optional[ThirdPartyContext] = Depends(third_party_isolation),
    ctx: ThirdPartyContext = Depends(require_third_party_context),
    db: Session = Depends(get_db),
):
    return get_filtered_equipment(db, customer_id, ctx, site_id, zone_id)


@router.get("/work-orders", response_model=List[PortalWorkOrderResponse])
def list_work_orders(
    status_filter: Optional[WorkOrderStatus] = None,
    ctx: ThirdPartyContext = Depends(require_third_party_context),
    db: Session = Depends(get_db),
):
    return get_filtered_work_orders(db, ctx, status_filter.value if status_filter else None)


@router.get("/sla", response_model=sla.ThirdPartyDashboardSummary)
def sla_dashboard(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    module: Optional[str] = None,
    ctx: ThirdPartyContext = Depends(require_third_party_context),
    db: Session = Depends(get_db),
):
    return sla.get_third_party_dashboard_summary(db, ctx.company_id, start_date, end_date, module)
