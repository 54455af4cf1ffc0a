import runpy
from unittest.mock import patch

import pytest

from facility_ops.core.config import settings
from facility_ops.core.enums import ThirdPartyRole, UserType
from facility_ops.db import models


@pytest.fixture(autouse=True)
def no_push():
    with patch("facility_ops.services.push.requests.post") as mock_post:
        mock_post.return_value.status_code = 200
        yield mock_post


@pytest.fixture()
def world(make):
    customer = make.customer(name="Cliente A")
    other = make.customer(name="Cliente B")
    s1 = make.site(customer, name="S1")
    s2 = make.site(customer, name="S2")
    make.zone(s1, name="Z1")
    make.zone(s2, name="Z2")
    company = make.company(customer, name="Alfa", allowed_sites=[s1.id])
    return {
        "customer": customer,
        "other": other,
        "s1": s1,
        "s2": s2,
        "company": company,
        "admin": make.user(name="Admin"),
        "customer_user": make.user(name="Gestor", user_type=UserType.CUSTOMER, customer_id=customer.id),
        "leader": make.third_party_user(company, name="Lider", role=ThirdPartyRole.TEAM_LEADER),
    }


def test_health(client):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_requires_token(client, world):
    resp = client.get(f"/api/third-party-portal/customers/{world['customer'].id}/sites")
    assert resp.status_code == 401


def test_portal_blocks_other_customer(client, auth, world):
    resp = client.get(
        f"/api/third-party-portal/customers/{world['other'].id}/sites",
        headers=auth(world["leader"]),
    )
    assert resp.status_code == 403
    body = resp.json()
    assert body["code"] == "CUSTOMER_ACCESS_DENIED"
    assert set(body) == {"error", "message", "code"}


def test_portal_lists_only_allowed_sites(client, auth, world):
    customer_id = world["customer"].id
    headers = auth(world["leader"])

    sites = client.get(f"/api/third-party-portal/customers/{customer_id}/sites", headers=headers)
    assert [s["id"] for s in sites.json()] == [world["s1"].id]

    zones = client.get(
        f"/api/third-party-portal/customers/{customer_id}/zones",
        params={"site_id": world["s2"].id},
        headers=headers,
    )
    assert zones.status_code == 200
    assert zones.json() == []


def test_inactive_company_is_refused(client, auth, make, world):
    company = make.company(world["customer"], name="Parada", status="inactive")
    user = make.third_party_user(company)

    resp = client.get("/api/third-party-portal/context", headers=auth(user))

    assert resp.status_code == 403
    assert resp.json()["code"] == "THIRD_PARTY_COMPANY_INACTIVE"


def test_portal_context_requires_third_party_user(client, auth, world):
    resp = client.get("/api/third-party-portal/context", headers=auth(world["admin"]))
    assert resp.status_code == 403
    assert resp.json()["code"] == "THIRD_PARTY_CONTEXT_MISSING"


def test_third_party_cannot_read_foreign_work_order(client, auth, make, world):
    rival = make.company(world["customer"], name="Rival")
    foreign = make.work_order(world["customer"], company=rival)
    out_of_scope = make.work_order(world["customer"], company=world["company"], site_id=world["s2"].id)
    other_customer = make.work_order(world["other"], company=world["company"])
    own = make.work_order(world["customer"], company=world["company"], site_id=world["s1"].id)
    headers = auth(world["leader"])

    foreign_resp = client.get(f"/api/work-orders/{foreign.id}", headers=headers)
    assert foreign_resp.status_code == 403
    assert foreign_resp.json()["code"] == "WORK_ORDER_ACCESS_DENIED"

    denied = client.get(f"/api/work-orders/{out_of_scope.id}", headers=headers)
    assert denied.status_code == 403
    assert denied.json() == {"error": "Acesso negado", "message": "Local nao autorizado", "code": "SITE_ACCESS_DENIED"}

    crossed = client.get(f"/api/work-orders/{other_customer.id}/audit-log", headers=headers)
    assert crossed.status_code == 403
    assert crossed.json()["code"] == "CUSTOMER_ACCESS_DENIED"

    assert client.get(f"/api/work-orders/{own.id}", headers=headers).status_code == 200


def test_third_party_work_order_list_blocks_other_customer(client, auth, make, world):
    make.work_order(world["other"], company=world["company"])
    headers = auth(world["leader"])

    resp = client.get(f"/api/customers/{world['other'].id}/work-orders", headers=headers)

    assert resp.status_code == 403
    assert resp.json()["code"] == "CUSTOMER_ACCESS_DENIED"
    assert client.get(f"/api/customers/{world['customer'].id}/work-orders", headers=headers).status_code == 200


def test_work_order_location_must_belong_to_customer(client, auth, make, world):
    headers = auth(world["admin"])
    foreign_site = make.site(world["other"], name="Fora")
    foreign_zone = make.zone(foreign_site, name="ZF")
    own_zone = make.zone(world["s1"], name="Z1b")
    url = f"/api/customers/{world['customer'].id}/work-orders"

    assert client.post(url, json={"title": "A", "zone_id": foreign_zone.id}, headers=headers).status_code == 400
    assert (
        client.post(url, json={"title": "B", "site_id": world["s2"].id, "zone_id": own_zone.id}, headers=headers)
        .status_code
        == 400
    )
    created = client.post(url, json={"title": "C", "site_id": world["s1"].id, "zone_id": own_zone.id}, headers=headers)
    assert created.status_code == 201
    work_order_id = created.json()["id"]

    moved = client.patch(f"/api/work-orders/{work_order_id}", json={"site_id": foreign_site.id}, headers=headers)
    assert moved.status_code == 400
    rezoned = client.patch(f"/api/work-orders/{work_order_id}", json={"zone_id": foreign_zone.id}, headers=headers)
    assert rezoned.status_code == 400
    renamed = client.patch(f"/api/work-orders/{work_order_id}", json={"title": "D"}, headers=headers)
    assert renamed.status_code == 200
    assert renamed.json()["zone_id"] == own_zone.id


def test_third_party_cannot_cancel(client, auth, make, world):
    work_order = make.work_order(world["customer"], company=world["company"], site_id=world["s1"].id)
    resp = client.post(
        f"/api/work-orders/{work_order.id}/status",
        json={"action": "cancel", "reason": "x"},
        headers=auth(world["leader"]),
    )
    assert resp.status_code == 403


def test_status_change_records_audit_source(client, auth, make, world):
    work_order = make.work_order(world["customer"])
    headers = {**auth(world["customer_user"]), "X-Client-Source": "mobile"}

    resp = client.post(f"/api/work-orders/{work_order.id}/status", json={"action": "start"}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["status"] == "em_execucao"

    bad = client.post(f"/api/work-orders/{work_order.id}/status", json={"action": "resume"}, headers=headers)
    assert bad.status_code == 400

    log = client.get(f"/api/work-orders/{work_order.id}/audit-log", headers=headers).json()
    assert {entry["action"] for entry in log} == {"STATUS_CHANGED", "EXECUTION_STARTED"}
    assert all(entry["source"] == "mobile" for entry in log)
    assert all(entry["user_name"] == "Gestor" for entry in log)


def test_customer_user_limited_to_own_customer(client, auth, make, world):
    work_order = make.work_order(world["other"])
    resp = client.get(f"/api/work-orders/{work_order.id}", headers=auth(world["customer_user"]))
    assert resp.status_code == 403


def test_deactivate_company_endpoint(client, auth, make, world):
    make.work_order(world["customer"], company=world["company"])
    make.work_order(world["customer"], company=world["company"], status="pausada")

    resp = client.post(
        f"/api/third-party-companies/{world['company'].id}/deactivate",
        json={"reason": "contrato encerrado"},
        headers=auth(world["customer_user"]),
    )

    assert resp.status_code == 200
    assert resp.json() == {
        "cancelledWorkOrders": 2,
        "deactivatedUsers": 1,
        "thirdPartyCompanyId": world["company"].id,
        "customerId": world["customer"].id,
        "failedCompanyIds": [],
    }
    # the deactivated leader can no longer authenticate
    portal = client.get("/api/third-party-portal/context", headers=auth(world["leader"]))
    assert portal.status_code == 403


def test_disable_module_is_internal_only(client, auth, world):
    url = f"/api/customers/{world['customer'].id}/third-party-module/disable"

    forbidden = client.post(url, json={"reason": "fim"}, headers=auth(world["customer_user"]))
    assert forbidden.status_code == 403

    resp = client.post(url, json={"reason": "fim"}, headers=auth(world["admin"]))
    assert resp.status_code == 200
    assert resp.json()["deactivatedUsers"] == 1

    create = client.post(
        f"/api/customers/{world['customer'].id}/third-party-companies",
        json={"name": "Nova"},
        headers=auth(world["admin"]),
    )
    assert create.status_code == 400


def test_sla_endpoints(client, auth, make, world):
    make.work_order(world["customer"], company=world["company"], status="vencida")
    make.work_order(world["customer"], status="concluida")
    headers = auth(world["customer_user"])
    customer_id = world["customer"].id

    general = client.get(f"/api/customers/{customer_id}/sla/general", headers=headers)
    assert general.status_code == 200
    assert general.json()["total"] == 2
    assert general.json()["slaPercentage"] == 50.0

    comparison = client.get(f"/api/customers/{customer_id}/sla/internal-vs-third-party", headers=headers).json()
    assert comparison["thirdParty"]["late"] == 1
    assert comparison["internal"]["onTime"] == 1

    invalid = client.get(
        f"/api/customers/{customer_id}/sla/general",
        params={"start_date": "2026-02-01T00:00:00", "end_date": "2026-01-01T00:00:00"},
        headers=headers,
    )
    assert invalid.status_code == 400

    foreign = client.get(f"/api/customers/{world['other'].id}/sla", headers=headers)
    assert foreign.status_code == 403


def test_sla_export(client, auth, make, world):
    make.work_order(world["customer"], company=world["company"], status="vencida")

    resp = client.get(f"/api/customers/{world['customer'].id}/sla/export", headers=auth(world["admin"]))

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith(
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    )
    assert "sla_cliente_a_" in resp.headers["content-disposition"]
    assert resp.content[:2] == b"PK"


def test_portal_sla(client, auth, make, world):
    make.work_order(world["customer"], company=world["company"], status="vencida")
    resp = client.get("/api/third-party-portal/sla", headers=auth(world["leader"]))
    assert resp.status_code == 200
    assert resp.json()["general"]["late"] == 1


def test_third_party_proposal_approval_notifies_leaders(client, auth, world):
    headers = auth(world["leader"])
    created = client.post(
        "/api/third-party-portal/proposals",
        json={"name": "Preventiva mensal", "site_id": world["s1"].id},
        headers=headers,
    )
    assert created.status_code == 201
    proposal_id = created.json()["id"]

    blocked = client.post(
        "/api/third-party-portal/proposals",
        json={"name": "Fora", "site_id": world["s2"].id},
        headers=headers,
    )
    assert blocked.status_code == 403
    assert blocked.json()["code"] == "SITE_ACCESS_DENIED"

    approved = client.post(
        f"/api/third-party-proposals/{proposal_id}/approve",
        headers=auth(world["customer_user"]),
    )
    assert approved.status_code == 200
    assert approved.json()["third_party_company_id"] == world["company"].id

    again = client.post(
        f"/api/third-party-proposals/{proposal_id}/reject",
        json={"reason": "tarde"},
        headers=auth(world["customer_user"]),
    )
    assert again.status_code == 409

    inbox = client.get("/api/notifications", headers=headers).json()
    assert [n["type"] for n in inbox] == ["MAINTENANCE_PLAN_APPROVED"]


def test_notification_inbox(client, auth, db_session, world):
    user = world["leader"]
    for index in range(3):
        db_session.add(
            models.Notification(user_id=user.id, type="WORK_ORDER_OVERDUE", title=f"T{index}", message="M")
        )
    db_session.commit()
    headers = auth(user)

    first_id = client.get("/api/notifications", headers=headers).json()[0]["id"]
    assert client.post(f"/api/notifications/{first_id}/read", headers=headers).json()["is_read"] is True
    assert len(client.get("/api/notifications", params={"unread_only": True}, headers=headers).json()) == 2

    assert client.post("/api/notifications/read-all", headers=headers).json() == {"updated": 2}
    assert client.get("/api/notifications", params={"unread_only": True}, headers=headers).json() == []

    push = client.put("/api/me/push", json={"push_token": "ExponentPushToken[x]"}, headers=headers)
    assert push.json() == {"push_enabled": True}


def test_module_entrypoint_starts_uvicorn():
    with patch("uvicorn.run") as run:
        runpy.run_module("facility_ops.main", run_name="__main__")
    run.assert_called_once()
    assert run.call_args.kwargs["port"] == settings.PORT
    assert run.call_args.kwargs["host"] == settings.HOST
