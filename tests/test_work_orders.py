from datetime import datetime
from unittest.mock import MagicMock

import pytest

from facility_ops.core.enums import ThirdPartyRole
from facility_ops.db import models
from facility_ops.services.audit import AuditContext
from facility_ops.services.work_orders import (
    InvalidTransition,
    assign_to_third_party,
    create_work_order,
    mark_overdue_work_orders,
    transition_work_order,
    update_work_order,
    work_order_code,
)


@pytest.fixture()
def context():
    return AuditContext(user_id="u1", user_name="Ana", user_type="internal_user")


def _actions(db_session, work_order):
    rows = (
        db_session.query(models.WorkOrderAuditLog)
        .filter(models.WorkOrderAuditLog.work_order_id == work_order.id)
        .order_by(models.WorkOrderAuditLog.created_at)
        .all()
    )
    return [row.action for row in rows]


def test_create_numbers_per_customer(db_session, make, context):
    customer = make.customer()
    first = create_work_order(db_session, customer.id, {"title": "Vazamento", "status": "concluida"}, context)
    second = create_work_order(db_session, customer.id, {"title": "Lampada"}, context)
    other = create_work_order(db_session, make.customer(name="Outro").id, {"title": "Porta"}, context)

    assert (first.number, second.number, other.number) == (1, 2, 1)
    assert first.status == "aberta"
    assert first.executed_by_type == "INTERNAL"
    assert work_order_code(second) == "#2"
    assert _actions(db_session, first) == ["CREATED"]


def test_update_audits_changed_fields_only(db_session, make, context):
    work_order = make.work_order(make.customer(), title="Antigo", priority="baixa")

    update_work_order(db_session, work_order, {"title": "Novo", "priority": "baixa", "status": "cancelada"}, context)

    assert work_order.title == "Novo"
    assert work_order.status == "aberta"
    entry = db_session.query(models.WorkOrderAuditLog).one()
    assert entry.new_value == {"title": "Novo"}


def test_lifecycle_sets_timestamps(db_session, make, context):
    work_order = make.work_order(make.customer())

    transition_work_order(db_session, work_order, "start", context)
    started_at = work_order.started_at
    assert work_order.status == "em_execucao"
    assert started_at is not None

    transition_work_order(db_session, work_order, "pause", context, reason="almoco")
    assert work_order.status == "pausada"
    assert work_order.paused_at is not None

    transition_work_order(db_session, work_order, "resume", context)
    assert work_order.paused_at is None

    transition_work_order(db_session, work_order, "complete", context, completion_data={"notes": "ok"})
    assert work_order.status == "concluida"
    assert work_order.completed_at is not None
    assert work_order.started_at == started_at

    assert _actions(db_session, work_order).count("STATUS_CHANGED") == 4
    assert "EXECUTION_PAUSED" in _actions(db_session, work_order)
    assert "COMPLETED" in _actions(db_session, work_order)


def test_cancel_and_reopen(db_session, make, context):
    work_order = make.work_order(make.customer())

    transition_work_order(db_session, work_order, "cancel", context, reason="duplicada")
    assert work_order.status == "cancelada"
    assert work_order.cancellation_reason == "duplicada"

    transition_work_order(db_session, work_order, "reopen", context, reason="voltou")
    assert work_order.status == "aberta"
    assert work_order.cancelled_at is None
    assert work_order.cancellation_reason is None


@pytest.mark.parametrize(
    "status,action",
    [("aberta", "pause"), ("concluida", "start"), ("cancelada", "cancel"), ("aberta", "explode")],
)
def test_invalid_transitions(db_session, make, context, status, action):
    work_order = make.work_order(make.customer(), status=status)
    with pytest.raises(InvalidTransition):
        transition_work_order(db_session, work_order, action, context)
    assert work_order.status == status


def test_assign_to_third_party_audits_and_notifies(db_session, make, context):
    customer = make.customer()
    company = make.company(customer, name="Alfa")
    team = make.team(company)
    operator = make.third_party_user(company, name="Joao", role=ThirdPartyRole.OPERATOR)
    work_order = make.work_order(customer, number=12)
    notifications = MagicMock()

    assign_to_third_party(
        db_session, work_order, company, context, team_id=team.id, operator=operator, notifications=notifications
    )

    assert work_order.executed_by_type == "THIRD_PARTY"
    assert work_order.third_party_company_id == company.id
    assert work_order.third_party_operator_id == operator.id
    entry = db_session.query(models.WorkOrderAuditLog).one()
    assert entry.action == "ASSIGNED"
    assert entry.description == "Atribuida ao operador Joao"
    assert entry.third_party_company_name == "Alfa"
    notifications.on_work_order_assigned_to_team.assert_called_once_with(
        db_session, work_order.id, "#12", company.id, operator.id
    )


def test_mark_overdue(db_session, make):
    customer = make.customer()
    company = make.company(customer)
    late = make.work_order(customer, company=company, status="em_execucao", due_date=datetime(2026, 1, 2))
    internal_late = make.work_order(customer, status="aberta", due_date=datetime(2026, 1, 2))
    make.work_order(customer, status="aberta", due_date=datetime(2026, 3, 1))
    make.work_order(customer, status="concluida", due_date=datetime(2026, 1, 2))
    make.work_order(customer, status="aberta")
    notifications = MagicMock()

    marked = mark_overdue_work_orders(db_session, now=datetime(2026, 2, 1), notifications=notifications)

    assert sorted(marked) == sorted([late.id, internal_late.id])
    db_session.expire_all()
    assert db_session.get(models.WorkOrder, late.id).status == "vencida"
    entry = (
        db_session.query(models.WorkOrderAuditLog)
        .filter(models.WorkOrderAuditLog.work_order_id == late.id)
        .one()
    )
    assert entry.description == "Prazo expirado"
    assert entry.source == "system"
    notifications.on_work_order_overdue.assert_called_once()
    assert notifications.on_work_order_overdue.call_args.args[3] == company.id
