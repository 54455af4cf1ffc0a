from typing import Optional

from sqlalchemy.orm import Session

from facility_ops.core.enums import ExecutedByType
from facility_ops.core.isolation import (
    ThirdPartyContext,
    can_access_equipment,
    can_access_site,
    can_access_zone,
)
from facility_ops.db import models


def get_filtered_sites(
    db: Session,
    customer_id: str,
    ctx: Optional[ThirdPartyContext],
    module: Optional[str] = None,
) -> list[models.Site]:
    query = db.query(models.Site).filter(
        models.Site.customer_id == customer_id,
        models.Site.is_active.is_(True),
    )
    if module:
        query = query.filter(models.Site.module == module)
    sites = query.order_by(models.Site.name).all()
    return [site for site in sites if can_access_site(ctx, site.id)]


def get_filtered_zones(
    db: Session,
    customer_id: str,
    ctx: Optional[ThirdPartyContext],
    site_id: Optional[str] = None,
    module: Optional[str] = None,
) -> list[models.Zone]:
    site_ids = [site.id for site in get_filtered_sites(db, customer_id, ctx, module)]
    if not site_ids:
        return []
    query = db.query(models.Zone).filter(
        models.Zone.site_id.in_(site_ids),
        models.Zone.is_active.is_(True),
    )
    if site_id:
        query = query.filter(models.Zone.site_id == site_id)
    zones = query.order_by(models.Zone.name).all()
    return [zone for zone in zones if can_access_zone(ctx, zone.id)]


def get_filtered_equipment(
    db: Session,
    customer_id: str,
    ctx: Optional[ThirdPartyContext],
    site_id: Optional[str] = None,
    zone_id: Optional[str] = None,
) -> list[models.Equipment]:
    zone_ids = [zone.id for zone in get_filtered_zones(db, customer_id, ctx, site_id)]
    if not zone_ids:
        return []
    query = db.query(models.Equipment).filter(
        models.Equipment.zone_id.in_(zone_ids),
        models.Equipment.is_active.is_(True),
    )
    if zone_id:
        query = query.filter(models.Equipment.zone_id == zone_id)
    items = query.order_by(models.Equipment.name).all()
    return [item for item in items if can_access_equipment(ctx, item.contracted_third_party_ids)]


def get_filtered_work_orders(
    db: Session,
    ctx: ThirdPartyContext,
    status: Optional[str] = None,
) -> list[models.WorkOrder]:
    query = db.query(models.WorkOrder).filter(
        models.WorkOrder.customer_id == ctx.customer_id,
        models.WorkOrder.third_party_company_id == ctx.company_id,
        models.WorkOrder.executed_by_type == ExecutedByType.THIRD_PARTY.value,
    )
    if status:
        query = query.filter(models.WorkOrder.status == status)
    work_orders = query.order_by(models.WorkOrder.created_at.desc()).all()
    return [
        wo
        for wo in work_orders
        if (not wo.site_id or can_access_site(ctx, wo.site_id))
        and (not wo.zone_id or can_access_zone(ctx, wo.zone_id))
    ]
