from enum import Enum


class UserType(str, Enum):
    INTERNAL = "internal_user"
    CUSTOMER = "customer_user"
    THIRD_PARTY = "third_party_user"
    SUPPLIER = "supplier_user"


class ThirdPartyRole(str, Enum):
    MANAGER = "third_party_manager"
    TEAM_LEADER = "third_party_team_leader"
    OPERATOR = "third_party_operator"


class AssetVisibilityMode(str, Enum):
    ALL = "ALL"
    CONTRACT_ONLY = "CONTRACT_ONLY"


class CompanyStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class ExecutedByType(str, Enum):
    INTERNAL = "INTERNAL"
    THIRD_PARTY = "THIRD_PARTY"


class WorkOrderStatus(str, Enum):
    ABERTA = "aberta"
    EM_EXECUCAO = "em_execucao"
    PAUSADA = "pausada"
    VENCIDA = "vencida"
    CONCLUIDA = "concluida"
    CANCELADA = "cancelada"


class ProposalStatus(str, Enum):
    EM_ESPERA = "em_espera"
    APROVADO = "aprovado"
    RECUSADO = "recusado"


OPEN_WORK_ORDER_STATUSES = (
    WorkOrderStatus.ABERTA.value,
    WorkOrderStatus.EM_EXECUCAO.value,
    WorkOrderStatus.PAUSADA.value,
)
TERMINAL_SLA_STATUSES = (
    WorkOrderStatus.CONCLUIDA.value,
    WorkOrderStatus.VENCIDA.value,
)


def parse_user_type(value: str | None) -> UserType | None:
    if not value:
        return None
    try:
        return UserType(value)
    except ValueError:
        return None
