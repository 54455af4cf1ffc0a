import pytest

from facility_ops.core.enums import AssetVisibilityMode, ThirdPartyRole, UserType
from facility_ops.core.errors import IsolationError
from facility_ops.core.isolation import (
    ResourceRef,
    ThirdPartyContext,
    can_access_equipment,
    load_third_party_context,
    resolve_requested_id,
    validate_customer_access,
    validate_site_access,
    validate_third_party_data_access,
    validate_zone_access,
)


def _ctx(**overrides):
    fields = {"company_id": "A", "customer_id": "C"}
    fields.update(overrides)
    return ThirdPartyContext(**fields)


def test_context_is_none_for_internal_user(db_session, make):
    user = make.user(user_type=UserType.INTERNAL)
    assert load_third_party_context(db_session, user) is None


def test_context_loads_company_scope(db_session, make):
    customer = make.customer()
    company = make.company(customer, allowed_sites=["S1"], allowed_zones=["Z1"], mode="CONTRACT_ONLY")
    user = make.third_party_user(company, role=ThirdPartyRole.TEAM_LEADER)

    ctx = load_third_party_context(db_session, user)

    assert ctx.company_id == company.id
    assert ctx.customer_id == customer.id
    assert ctx.allowed_sites == ("S1",)
    assert ctx.allowed_zones == ("Z1",)
    assert ctx.asset_visibility_mode is AssetVisibilityMode.CONTRACT_ONLY
    assert ctx.role is ThirdPartyRole.TEAM_LEADER


def test_context_missing_company_is_forbidden(db_session, make):
    user = make.user(
        user_type=UserType.THIRD_PARTY,
        third_party_company_id="does-not-exist",
        third_party_role=ThirdPartyRole.OPERATOR.value,
    )
    with pytest.raises(IsolationError) as exc:
        load_third_party_context(db_session, user)
    assert exc.value.status_code == 403
    assert exc.value.code == "THIRD_PARTY_COMPANY_NOT_FOUND"


def test_context_inactive_company_is_forbidden(db_session, make):
    company = make.company(make.customer(), status="inactive")
    user = make.third_party_user(company)
    with pytest.raises(IsolationError) as exc:
        load_third_party_context(db_session, user)
    assert exc.value.status_code == 403
    assert exc.value.code == "THIRD_PARTY_COMPANY_INACTIVE"


def test_unknown_visibility_mode_falls_back_to_contract_only(db_session, make):
    company = make.company(make.customer(), mode="SOMETHING")
    user = make.third_party_user(company)
    ctx = load_third_party_context(db_session, user)
    assert ctx.asset_visibility_mode is AssetVisibilityMode.CONTRACT_ONLY


def test_requested_id_precedence_is_path_body_query():
    assert resolve_requested_id("customer_id", {"customer_id": "p"}, {"customerId": "b"}, {"customerId": "q"}) == "p"
    assert resolve_requested_id("customer_id", {}, {"customerId": "b"}, {"customerId": "q"}) == "b"
    assert resolve_requested_id("customer_id", {}, {}, {"customer_id": "q"}) == "q"
    assert resolve_requested_id("zone_id", {}, {}, {}) is None


class TestCustomerAccess:
    def setup_method(self):
        self.ctx = _ctx()

    def _user(self, make):
        company = make.company(make.customer())
        return make.third_party_user(company)

    def test_rejects_other_customer(self, make):
        with pytest.raises(IsolationError) as exc:
            validate_customer_access(self._user(make), self.ctx, "OTHER")
        assert exc.value.status_code == 403
        assert exc.value.code == "CUSTOMER_ACCESS_DENIED"
        assert exc.value.to_dict()["error"] == "Acesso negado"

    def test_passes_when_equal_or_absent(self, make):
        user = self._user(make)
        validate_customer_access(user, self.ctx, "C")
        validate_customer_access(user, self.ctx, None)

    def test_non_third_party_users_pass(self, make):
        user = make.user(user_type=UserType.CUSTOMER)
        validate_customer_access(user, None, "ANY")

    def test_missing_context(self, make):
        with pytest.raises(IsolationError) as exc:
            validate_customer_access(self._user(make), None, "C")
        assert exc.value.code == "THIRD_PARTY_CONTEXT_MISSING"


def test_site_and_zone_allow_lists(make):
    user = make.third_party_user(make.company(make.customer()))
    ctx = _ctx(allowed_sites=("S1",), allowed_zones=("Z1",))

    validate_site_access(user, ctx, "S1")
    validate_zone_access(user, ctx, "Z1")
    with pytest.raises(IsolationError) as site_exc:
        validate_site_access(user, ctx, "S2")
    assert site_exc.value.code == "SITE_ACCESS_DENIED"
    with pytest.raises(IsolationError) as zone_exc:
        validate_zone_access(user, ctx, "Z2")
    assert zone_exc.value.code == "ZONE_ACCESS_DENIED"


def test_empty_allow_lists_are_unrestricted(make):
    user = make.third_party_user(make.company(make.customer()))
    ctx = _ctx()
    validate_site_access(user, ctx, "ANY-SITE")
    validate_zone_access(user, ctx, "ANY-ZONE")


def test_contract_only_equipment_rule():
    ctx = _ctx(asset_visibility_mode=AssetVisibilityMode.CONTRACT_ONLY)
    assert can_access_equipment(ctx, ["A"]) is True
    assert can_access_equipment(ctx, ["B"]) is False
    assert can_access_equipment(ctx, []) is False
    assert can_access_equipment(ctx, None) is False
    assert can_access_equipment(_ctx(), []) is True


def test_data_access_reasons(make):
    user = make.third_party_user(make.company(make.customer()))
    ctx = _ctx(allowed_sites=("S1",), asset_visibility_mode=AssetVisibilityMode.CONTRACT_ONLY)

    assert validate_third_party_data_access(user, None, ResourceRef()).reason == "Contexto de terceiro nao carregado"
    assert validate_third_party_data_access(user, ctx, ResourceRef(customer_id="X")).reason == "Cliente nao autorizado"
    assert validate_third_party_data_access(user, ctx, ResourceRef(site_id="S2")).reason == "Local nao autorizado"
    denied = validate_third_party_data_access(
        user, ctx, ResourceRef(site_id="S1", equipment_contracted_ids=[], check_equipment=True)
    )
    assert denied.allowed is False
    assert denied.reason == "Ativo nao autorizado (fora do contrato)"
    assert denied.code == "EQUIPMENT_ACCESS_DENIED"
    assert validate_third_party_data_access(user, ctx, ResourceRef(site_id="S2")).code == "SITE_ACCESS_DENIED"
    assert validate_third_party_data_access(user, ctx, ResourceRef(customer_id="C", site_id="S1")).allowed


def test_data_access_for_internal_user_is_allowed(make):
    user = make.user(user_type=UserType.INTERNAL)
    assert validate_third_party_data_access(user, None, ResourceRef(customer_id="X")).allowed
