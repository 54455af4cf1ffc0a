from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from facility_ops.core.errors import CleanupError
from facility_ops.db import models
from facility_ops.services.cleanup import Performer, ThirdPartyCleanupService


@pytest.fixture()
def service():
    return ThirdPartyCleanupService()


@pytest.fixture()
def admin():
    return Performer(id="admin-1", name="Admin", user_type="internal_user")


def _seed_company(make, customer, open_orders, users, name="Terceira"):
    company = make.company(customer, name=name)
    statuses = ["aberta", "em_execucao", "pausada"]
    for index in range(open_orders):
        make.work_order(customer, status=statuses[index % 3], company=company)
    make.work_order(customer, status="concluida", company=company)
    for index in range(users):
        make.third_party_user(company, name=f"User {index}", email=f"{name}-{index}@example.com")
    return company


def test_deactivate_company_cascades(db_session, make, service, admin):
    customer = make.customer()
    company = _seed_company(make, customer, open_orders=3, users=2)

    result = service.deactivate_company(db_session, company.id, admin, "contrato encerrado")

    assert result.cancelled_work_orders == 3
    assert result.deactivated_users == 2
    assert result.third_party_company_id == company.id
    assert result.customer_id == customer.id

    db_session.expire_all()
    assert db_session.get(models.ThirdPartyCompany, company.id).status == "inactive"
    cancelled = db_session.query(models.WorkOrder).filter(models.WorkOrder.status == "cancelada").all()
    assert len(cancelled) == 3
    assert all(wo.cancellation_reason == "Empresa terceira desativada: contrato encerrado" for wo in cancelled)
    assert all(wo.cancelled_at is not None for wo in cancelled)
    assert db_session.query(models.WorkOrder).filter(models.WorkOrder.status == "concluida").count() == 1
    users = db_session.query(models.User).filter(models.User.third_party_company_id == company.id).all()
    assert all(not user.is_active for user in users)

    entries = db_session.query(models.WorkOrderAuditLog).all()
    assert len(entries) == 3
    for entry in entries:
        assert entry.action == "STATUS_CHANGED"
        assert entry.new_value == {"status": "cancelada"}
        assert entry.user_name == "Admin"
        assert entry.ip_address == "system"
        assert entry.user_agent == "ThirdPartyCleanupService"
        assert entry.source == "system"
        assert entry.description.startswith("Terceiro desativado: Empresa terceira desativada")


def test_deactivate_unknown_company(db_session, service, admin):
    with pytest.raises(CleanupError):
        service.deactivate_company(db_session, "missing", admin, "x")


def test_reactivate_does_not_restore(db_session, make, service, admin):
    customer = make.customer()
    company = _seed_company(make, customer, open_orders=2, users=1)
    service.deactivate_company(db_session, company.id, admin, "pausa")

    reactivated = service.reactivate_company(db_session, company.id)

    assert reactivated.status == "active"
    assert db_session.query(models.WorkOrder).filter(models.WorkOrder.status == "cancelada").count() == 2
    user = db_session.query(models.User).filter(models.User.third_party_company_id == company.id).one()
    assert user.is_active is False


def test_reactivate_unknown_company(db_session, service):
    with pytest.raises(CleanupError):
        service.reactivate_company(db_session, "missing")


def test_deactivate_module_sums_all_companies(db_session, make, service, admin):
    customer = make.customer(third_party_enabled=True)
    _seed_company(make, customer, open_orders=3, users=2, name="A")
    _seed_company(make, customer, open_orders=5, users=4, name="B")
    other_customer = make.customer(name="Outro")
    untouched = _seed_company(make, other_customer, open_orders=1, users=1, name="C")

    result = service.deactivate_module(db_session, customer.id, admin, "fim do modulo")

    assert result.cancelled_work_orders == 8
    assert result.deactivated_users == 6
    assert result.failed_company_ids == []
    db_session.expire_all()
    assert db_session.get(models.Customer, customer.id).third_party_enabled is False
    companies = db_session.query(models.ThirdPartyCompany).filter(models.ThirdPartyCompany.customer_id == customer.id)
    assert {c.status for c in companies} == {"inactive"}
    assert db_session.get(models.ThirdPartyCompany, untouched.id).status == "active"
    reasons = {
        wo.cancellation_reason
        for wo in db_session.query(models.WorkOrder).filter(models.WorkOrder.customer_id == customer.id)
        if wo.status == "cancelada"
    }
    assert reasons == {"Modulo de terceiros desabilitado para o cliente: fim do modulo"}


def test_deactivate_module_keeps_flag_when_a_company_fails(db_session, make, service, admin):
    customer = make.customer(third_party_enabled=True)
    good = _seed_company(make, customer, open_orders=2, users=1, name="A")
    bad = _seed_company(make, customer, open_orders=3, users=1, name="B")

    original = service._deactivate_users

    def flaky(db, company_id):
        if company_id == bad.id:
            raise OperationalError("UPDATE users", {}, Exception("locked"))
        return original(db, company_id)

    with patch.object(service, "_deactivate_users", side_effect=flaky):
        result = service.deactivate_module(db_session, customer.id, admin, "teste")

    assert result.failed_company_ids == [bad.id]
    assert result.cancelled_work_orders == 2
    assert result.deactivated_users == 1
    db_session.expire_all()
    assert db_session.get(models.Customer, customer.id).third_party_enabled is True
    assert db_session.get(models.ThirdPartyCompany, good.id).status == "inactive"
    assert db_session.get(models.ThirdPartyCompany, bad.id).status == "active"

    still_open = (
        db_session.query(models.WorkOrder)
        .filter(models.WorkOrder.third_party_company_id == bad.id, models.WorkOrder.status != "concluida")
        .all()
    )
    assert {wo.status for wo in still_open} == {"aberta", "em_execucao", "pausada"}
    audited = {entry.work_order_id for entry in db_session.query(models.WorkOrderAuditLog)}
    assert audited.isdisjoint(wo.id for wo in still_open)
    assert len(audited) == 2


def test_deactivate_module_unknown_customer(db_session, service, admin):
    with pytest.raises(CleanupError):
        service.deactivate_module(db_session, "missing", admin, "x")
