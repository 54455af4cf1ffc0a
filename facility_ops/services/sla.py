"""SLA aggregation over work orders.

Only ``concluida`` and ``vencida`` rows count towards the on-time ratio.
``pending`` is a snapshot of open work orders and ignores the date range.
All functions are read-only.
"""

import logging
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from io import BytesIO
from typing import Any, Optional

from openpyxl import Workbook
from openpyxl.utils import get_column_letter
from pydantic import BaseModel, Field
from sqlalchemy import and_, case, extract, func, literal_column, or_
from sqlalchemy.orm import Session

from facility_ops.core.enums import (
    ExecutedByType,
    OPEN_WORK_ORDER_STATUSES,
    TERMINAL_SLA_STATUSES,
    WorkOrderStatus,
)
from facility_ops.db import models

logger = logging.getLogger("facility_ops.sla")

UNKNOWN_COMPANY_NAME = "Empresa Desconhecida"
UNKNOWN_OPERATOR_NAME = "Operador Desconhecido"


class SLAMetrics(BaseModel):
    model_config = {"populate_by_name": True}

    total: int = 0
    on_time: int = Field(default=0, alias="onTime")
    late: int = 0
    pending: int = 0
    sla_percentage: float = Field(default=100.0, alias="slaPercentage")
    avg_response_time_minutes: Optional[int] = Field(default=None, alias="avgResponseTimeMinutes")
    avg_completion_time_minutes: Optional[int] = Field(default=None, alias="avgCompletionTimeMinutes")


class ThirdPartySLAReport(BaseModel):
    model_config = {"populate_by_name": True}

    company_id: str = Field(alias="companyId")
    company_name: str = Field(alias="companyName")
    metrics: SLAMetrics


class TeamSLAReport(BaseModel):
    model_config = {"populate_by_name": True}

    team_id: str = Field(alias="teamId")
    metrics: SLAMetrics


class OperatorSLAReport(BaseModel):
    model_config = {"populate_by_name": True}

    operator_id: str = Field(alias="operatorId")
    operator_name: str = Field(alias="operatorName")
    metrics: SLAMetrics


class InternalVsThirdPartySLA(BaseModel):
    model_config = {"populate_by_name": True}

    internal: SLAMetrics
    third_party: SLAMetrics = Field(alias="thirdParty")


class ThirdPartyDashboardSummary(BaseModel):
    model_config = {"populate_by_name": True}

    general: SLAMetrics
    by_team: list[TeamSLAReport] = Field(alias="byTeam")
    by_operator: list[OperatorSLAReport] = Field(alias="byOperator")
    generated_at: datetime = Field(alias="generatedAt")


class CustomerDashboardSummary(BaseModel):
    model_config = {"populate_by_name": True}

    general: SLAMetrics
    comparison: InternalVsThirdPartySLA
    by_third_party: list[ThirdPartySLAReport] = Field(alias="byThirdParty")
    generated_at: datetime = Field(alias="generatedAt")


def calculate_sla_percentage(on_time: int, total: int) -> float:
    if total == 0:
        return 100.0
    percentage = Decimal(on_time * 100) / Decimal(total)
    return float(percentage.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def _round_minutes(value: Any) -> Optional[int]:
    if value is None:
        return None
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _minutes_between(db: Session, start, end):
    if db.bind is not None and db.bind.dialect.name == "sqlite":
        return (func.julianday(end) - func.julianday(start)) * 1440.0
    return extract("epoch", end - start) / 60.0


def _metric_columns(db: Session) -> list:
    wo = models.WorkOrder
    on_time = and_(
        wo.status == WorkOrderStatus.CONCLUIDA.value,
        or_(wo.due_date.is_(None), wo.completed_at <= wo.due_date),
    )
    late = or_(
        wo.status == WorkOrderStatus.VENCIDA.value,
        and_(
            wo.status == WorkOrderStatus.CONCLUIDA.value,
            wo.due_date.isnot(None),
            wo.completed_at > wo.due_date,
        ),
    )
    response = case(
        (wo.started_at.isnot(None), _minutes_between(db, wo.created_at, wo.started_at)),
        else_=None,
    )
    completion = case(
        (
            and_(wo.started_at.isnot(None), wo.completed_at.isnot(None)),
            _minutes_between(db, wo.started_at, wo.completed_at),
        ),
        else_=None,
    )
    return [
        func.count(wo.id).label("total"),
        func.coalesce(func.sum(case((on_time, 1), else_=0)), 0).label("on_time"),
        func.coalesce(func.sum(case((late, 1), else_=0)), 0).label("late"),
        func.avg(response).label("avg_response"),
        func.avg(completion).label("avg_completion"),
    ]


def _period_filters(
    start_date: Optional[datetime], end_date: Optional[datetime], module: Optional[str]
) -> list:
    filters = [models.WorkOrder.status.in_(TERMINAL_SLA_STATUSES)]
    if start_date:
        filters.append(models.WorkOrder.created_at >= start_date)
    if end_date:
        filters.append(models.WorkOrder.created_at <= end_date)
    if module:
        filters.append(models.WorkOrder.module == module)
    return filters


def _pending_filters(module: Optional[str]) -> list:
    filters = [models.WorkOrder.status.in_(OPEN_WORK_ORDER_STATUSES)]
    if module:
        filters.append(models.WorkOrder.module == module)
    return filters


def _to_metrics(row: Any, pending: int = 0) -> SLAMetrics:
    if row is None:
        return SLAMetrics(pending=pending)
    total = int(row.total or 0)
    on_time = int(row.on_time or 0)
    return SLAMetrics(
        total=total,
        on_time=on_time,
        late=int(row.late or 0),
        pending=pending,
        sla_percentage=calculate_sla_percentage(on_time, total),
        avg_response_time_minutes=_round_minutes(row.avg_response),
        avg_completion_time_minutes=_round_minutes(row.avg_completion),
    )


def _grouped(db: Session, key, scope: list, start_date, end_date, module) -> list:
    return (
        db.query(key.label("group_key"), *_metric_columns(db))
        .filter(*scope, key.isnot(None), *_period_filters(start_date, end_date, module))
        .group_by(key)
        .all()
    )


def _grouped_pending(db: Session, key, scope: list, module) -> dict:
    rows = (
        db.query(key, func.count(models.WorkOrder.id))
        .filter(*scope, key.isnot(None), *_pending_filters(module))
        .group_by(key)
        .all()
    )
    return {group: count for group, count in rows}


def _customer_scope(customer_id: str) -> list:
    return [models.WorkOrder.customer_id == customer_id]


def _third_party_scope(company_id: str) -> list:
    return [
        models.WorkOrder.third_party_company_id == company_id,
        models.WorkOrder.executed_by_type == ExecutedByType.THIRD_PARTY.value,
    ]


def _general(db: Session, scope: list, start_date, end_date, module) -> SLAMetrics:
    row = db.query(*_metric_columns(db)).filter(*scope, *_period_filters(start_date, end_date, module)).one()
    pending = (
        db.query(func.count(models.WorkOrder.id)).filter(*scope, *_pending_filters(module)).scalar() or 0
    )
    return _to_metrics(row, pending)


def get_customer_general_sla(
    db: Session,
    customer_id: str,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    module: Optional[str] = None,
) -> SLAMetrics:
    return _general(db, _customer_scope(customer_id), start_date, end_date, module)


def get_customer_sla_by_third_party(
    db: Session,
    customer_id: str,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    module: Optional[str] = None,
) -> list[ThirdPartySLAReport]:
    key = models.WorkOrder.third_party_company_id
    scope = _customer_scope(customer_id) + [
        models.WorkOrder.executed_by_type == ExecutedByType.THIRD_PARTY.value
    ]
    rows = _grouped(db, key, scope, start_date, end_date, module)
    pending = _grouped_pending(db, key, scope, module)

    company_ids = [row.group_key for row in rows]
    names = {}
    if company_ids:
        names = dict(
            db.query(models.ThirdPartyCompany.id, models.ThirdPartyCompany.name)
            .filter(models.ThirdPartyCompany.id.in_(company_ids))
            .all()
        )
    return [
        ThirdPartySLAReport(
            company_id=row.group_key,
            company_name=names.get(row.group_key) or UNKNOWN_COMPANY_NAME,
            metrics=_to_metrics(row, pending.get(row.group_key, 0)),
        )
        for row in rows
    ]


def get_customer_internal_vs_third_party_sla(
    db: Session,
    customer_id: str,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    module: Optional[str] = None,
) -> InternalVsThirdPartySLA:
    # rows without an executor type are internal work
    key = func.coalesce(
        models.WorkOrder.executed_by_type, literal_column(f"'{ExecutedByType.INTERNAL.value}'")
    )
    scope = _customer_scope(customer_id)
    rows = {
        row.group_key: row
        for row in _grouped(db, key, scope, start_date, end_date, module)
    }
    pending = _grouped_pending(db, key, scope, module)
    internal = ExecutedByType.INTERNAL.value
    third_party = ExecutedByType.THIRD_PARTY.value
    return InternalVsThirdPartySLA(
        internal=_to_metrics(rows.get(internal), pending.get(internal, 0)),
        third_party=_to_metrics(rows.get(third_party), pending.get(third_party, 0)),
    )


def get_third_party_general_sla(
    db: Session,
    company_id: str,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    module: Optional[str] = None,
) -> SLAMetrics:
    return _general(db, _third_party_scope(company_id), start_date, end_date, module)


def get_third_party_sla_by_team(
    db: Session,
    company_id: str,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    module: Optional[str] = None,
) -> list[TeamSLAReport]:
    key = models.WorkOrder.third_party_team_id
    scope = _third_party_scope(company_id)
    rows = _grouped(db, key, scope, start_date, end_date, module)
    pending = _grouped_pending(db, key, scope, module)
    return [
        TeamSLAReport(team_id=row.group_key, metrics=_to_metrics(row, pending.get(row.group_key, 0)))
        for row in rows
    ]


def get_third_party_sla_by_operator(
    db: Session,
    company_id: str,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    module: Optional[str] = None,
) -> list[OperatorSLAReport]:
    key = models.WorkOrder.third_party_operator_id
    scope = _third_party_scope(company_id)
    rows = _grouped(db, key, scope, start_date, end_date, module)
    pending = _grouped_pending(db, key, scope, module)

    operator_ids = [row.group_key for row in rows]
    names = {}
    if operator_ids:
        names = dict(
            db.query(models.User.id, models.User.name).filter(models.User.id.in_(operator_ids)).all()
        )
    return [
        OperatorSLAReport(
            operator_id=row.group_key,
            operator_name=names.get(row.group_key) or UNKNOWN_OPERATOR_NAME,
            metrics=_to_metrics(row, pending.get(row.group_key, 0)),
        )
        for row in rows
    ]


def get_third_party_dashboard_summary(
    db: Session,
    company_id: str,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    module: Optional[str] = None,
) -> ThirdPartyDashboardSummary:
    logger.info("SLA da empresa %s module=%s", company_id, module)
    return ThirdPartyDashboardSummary(
        general=get_third_party_general_sla(db, company_id, start_date, end_date, module),
        by_team=get_third_party_sla_by_team(db, company_id, start_date, end_date, module),
        by_operator=get_third_party_sla_by_operator(db, company_id, start_date, end_date, module),
        generated_at=datetime.utcnow(),
    )


def get_customer_third_party_dashboard_summary(
    db: Session,
    customer_id: str,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    module: Optional[str] = None,
) -> CustomerDashboardSummary:
    logger.info("SLA do cliente %s module=%s", customer_id, module)
    return CustomerDashboardSummary(
        general=get_customer_general_sla(db, customer_id, start_date, end_date, module),
        comparison=get_customer_internal_vs_third_party_sla(db, customer_id, start_date, end_date, module),
        by_third_party=get_customer_sla_by_third_party(db, customer_id, start_date, end_date, module),
        generated_at=datetime.utcnow(),
    )


METRIC_HEADERS = [
    "Total",
    "No prazo",
    "Atrasadas",
    "Pendentes",
    "SLA (%)",
    "Tempo medio de resposta (min)",
    "Tempo medio de conclusao (min)",
]


def _metric_cells(metrics: SLAMetrics) -> list:
    return [
        metrics.total,
        metrics.on_time,
        metrics.late,
        metrics.pending,
        metrics.sla_percentage,
        metrics.avg_response_time_minutes,
        metrics.avg_completion_time_minutes,
    ]


def _autosize(ws, headers: list[str]) -> None:
    for idx, header in enumerate(headers, start=1):
        ws.column_dimensions[get_column_letter(idx)].width = max(14, len(header) + 2)


def build_sla_workbook(summary: CustomerDashboardSummary, customer_name: str) -> tuple[bytes, str]:
    wb = Workbook()
    ws = wb.active
    ws.title = "Resumo"
    headers = ["Escopo", *METRIC_HEADERS]
    ws.append(headers)
    ws.append(["Geral", *_metric_cells(summary.general)])
    ws.append(["Interno", *_metric_cells(summary.comparison.internal)])
    ws.append(["Terceiros", *_metric_cells(summary.comparison.third_party)])
    _autosize(ws, headers)

    ws_companies = wb.create_sheet("Por terceiro")
    company_headers = ["Empresa", *METRIC_HEADERS]
    ws_companies.append(company_headers)
    for report in summary.by_third_party:
        ws_companies.append([report.company_name, *_metric_cells(report.metrics)])
    _autosize(ws_companies, company_headers)

    output = BytesIO()
    wb.save(output)
    filename = f"sla_{customer_name.lower().replace(' ', '_')}_{summary.generated_at:%Y%m%d}.xlsx"
    return output.getvalue(), filename
