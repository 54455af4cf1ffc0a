from unittest.mock import MagicMock, patch

import pytest
import requests

from facility_ops.core.enums import ThirdPartyRole
from facility_ops.db import models
from facility_ops.services.notifications import (
    NotificationPayload,
    NotificationType,
    ThirdPartyNotificationService,
)
from facility_ops.services.push import PushClient, build_push_message


@pytest.fixture()
def crew(make):
    company = make.company(make.customer())
    manager = make.third_party_user(company, name="Gerente", role=ThirdPartyRole.MANAGER)
    leader = make.third_party_user(
        company, name="Lider", role=ThirdPartyRole.TEAM_LEADER, push_token="ExponentPushToken[l]", push_enabled=True
    )
    operator = make.third_party_user(company, name="Operador", role=ThirdPartyRole.OPERATOR)
    make.third_party_user(company, name="Inativo", role=ThirdPartyRole.TEAM_LEADER, is_active=False)
    return {"company": company, "manager": manager, "leader": leader, "operator": operator}


def _inbox(db_session, user):
    return db_session.query(models.Notification).filter(models.Notification.user_id == user.id).all()


def test_build_push_message():
    assert build_push_message("tok", "T", "B", {"k": 1}) == {
        "to": "tok",
        "sound": "default",
        "title": "T",
        "body": "B",
        "data": {"k": 1},
    }


@patch("facility_ops.services.push.requests.post")
def test_plan_approved_notifies_active_leaders(mock_post, db_session, crew):
    mock_post.return_value.status_code = 200
    service = ThirdPartyNotificationService(push=PushClient(gateway_url="http://push.test"))

    result = service.on_maintenance_plan_approved(db_session, "plan-1", "Preventiva", crew["company"].id)
    db_session.commit()

    assert result.ok
    assert result.value == 2
    notification = _inbox(db_session, crew["leader"])[0]
    assert notification.type == NotificationType.MAINTENANCE_PLAN_APPROVED.value
    assert notification.data == {"maintenance_plan_id": "plan-1"}
    assert len(_inbox(db_session, crew["manager"])) == 1
    assert _inbox(db_session, crew["operator"]) == []

    # only the leader has a push token
    mock_post.assert_called_once()
    assert mock_post.call_args.kwargs["json"]["to"] == "ExponentPushToken[l]"


@patch("facility_ops.services.push.requests.post")
def test_assignment_fans_out_to_leaders_operators_and_direct_operator(mock_post, db_session, crew):
    mock_post.return_value.status_code = 200
    service = ThirdPartyNotificationService()

    results = service.on_work_order_assigned_to_team(
        db_session, "wo-1", "#7", crew["company"].id, crew["operator"].id
    )
    db_session.commit()

    assert [r.value for r in results] == [2, 1, 1]
    types = sorted(n.type for n in _inbox(db_session, crew["operator"]))
    assert types == ["WORK_ORDER_ASSIGNED_TO_OPERATOR", "WORK_ORDER_ASSIGNED_TO_TEAM"]


@patch("facility_ops.services.push.requests.post")
def test_push_failure_is_logged_not_raised(mock_post, db_session, crew):
    mock_post.side_effect = requests.ConnectionError("gateway down")
    service = ThirdPartyNotificationService()

    result = service.on_work_order_overdue(db_session, "wo-1", "#9", crew["company"].id)
    db_session.commit()

    assert result.ok
    assert len(_inbox(db_session, crew["leader"])) == 1


@patch("facility_ops.services.push.requests.post")
def test_push_non_2xx_is_a_failed_result(mock_post, crew):
    mock_post.return_value.status_code = 500
    mock_post.return_value.text = "boom"

    result = PushClient().send(crew["leader"], "T", "B")

    assert result.ok is False
    assert result.error == "BAD_STATUS"


@patch("facility_ops.services.push.requests.post")
def test_push_skipped_without_token(mock_post, crew):
    result = PushClient().send(crew["operator"], "T", "B")
    assert result.value == "skipped"
    mock_post.assert_not_called()


def test_missing_operator_sends_nothing(db_session):
    result = ThirdPartyNotificationService().notify_operator(
        db_session,
        "missing",
        NotificationPayload(type=NotificationType.WORK_ORDER_ASSIGNED_TO_OPERATOR, title="T", message="M"),
    )
    assert result.ok
    assert result.value == 0


def test_storage_failure_is_swallowed(db_session, crew):
    broken = MagicMock(wraps=db_session)
    broken.begin_nested.side_effect = RuntimeError("db gone")

    result = ThirdPartyNotificationService().on_maintenance_plan_rejected(
        broken, "plan-1", "Preventiva", crew["company"].id, "custo alto"
    )

    assert result.ok is False
