"""Third-party tenant isolation.

Third-party users (contractor staff) only see the customer that hired their
company and, inside it, the sites / zones / equipment the company scope
allows. The scope is loaded once per request into an immutable
``ThirdPartyContext`` and handed to handlers through FastAPI dependencies.

Scope conventions:

* an empty ``allowed_sites`` / ``allowed_zones`` list means unrestricted,
  kept for companies created before scoping existed;
* ``CONTRACT_ONLY`` equipment visibility is the opposite: equipment without
  contracted company ids is hidden.
"""

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional

from fastapi import Depends, Request, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from facility_ops.core.enums import AssetVisibilityMode, CompanyStatus, ThirdPartyRole
from facility_ops.core.errors import IsolationError
from facility_ops.core.security import get_current_user, is_third_party_user
from facility_ops.db import models
from facility_ops.db.session import get_db

logger = logging.getLogger("facility_ops.isolation")

_PARAM_ALIASES = {
    "customer_id": ("customer_id", "customerId"),
    "site_id": ("site_id", "siteId"),
    "zone_id": ("zone_id", "zoneId"),
}


@dataclass(frozen=True)
class ThirdPartyContext:
    company_id: str
    customer_id: str
    allowed_sites: tuple[str, ...] = ()
    allowed_zones: tuple[str, ...] = ()
    asset_visibility_mode: AssetVisibilityMode = AssetVisibilityMode.ALL
    role: Optional[ThirdPartyRole] = None

    @classmethod
    def from_company(
        cls, company: models.ThirdPartyCompany, role: str | None
    ) -> "ThirdPartyContext":
        try:
            mode = AssetVisibilityMode(company.asset_visibility_mode or AssetVisibilityMode.ALL.value)
        except ValueError:
            # unknown modes fall back to the restrictive reading
            mode = AssetVisibilityMode.CONTRACT_ONLY
        try:
            parsed_role = ThirdPartyRole(role) if role else None
        except ValueError:
            parsed_role = None
        return cls(
            company_id=company.id,
            customer_id=company.customer_id,
            allowed_sites=tuple(company.allowed_sites or ()),
            allowed_zones=tuple(company.allowed_zones or ()),
            asset_visibility_mode=mode,
            role=parsed_role,
        )


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: Optional[str] = None
    code: Optional[str] = None


@dataclass
class ResourceRef:
    customer_id: Optional[str] = None
    site_id: Optional[str] = None
    zone_id: Optional[str] = None
    equipment_contracted_ids: Optional[list[str]] = None
    check_equipment: bool = False


def load_third_party_context(db: Session, user: models.User | None) -> Optional[ThirdPartyContext]:
    if not user or not is_third_party_user(user) or not user.third_party_company_id:
        return None

    try:
        company = (
            db.query(models.ThirdPartyCompany)
            .filter(models.ThirdPartyCompany.id == user.third_party_company_id)
            .first()
        )
    except SQLAlchemyError:
        logger.exception("Erro ao carregar contexto de terceiro user_id=%s", user.id)
        raise IsolationError(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Erro interno",
            "Erro ao carregar configuracoes de terceiro.",
        )

    if not company:
        logger.error("Empresa terceira nao encontrada company_id=%s", user.third_party_company_id)
        raise IsolationError(
            status.HTTP_403_FORBIDDEN,
            "Empresa de terceiro nao encontrada",
            "Sua empresa de terceiros nao foi encontrada no sistema.",
            "THIRD_PARTY_COMPANY_NOT_FOUND",
        )

    if company.status != CompanyStatus.ACTIVE.value:
        logger.warning("Empresa terceira inativa company_id=%s", company.id)
        raise IsolationError(
            status.HTTP_403_FORBIDDEN,
            "Empresa inativa",
            "Sua empresa de terceiros esta inativa. Entre em contato com o administrador.",
            "THIRD_PARTY_COMPANY_INACTIVE",
        )

    ctx = ThirdPartyContext.from_company(company, user.third_party_role)
    logger.info(
        "Contexto de terceiro carregado user_id=%s company_id=%s sites=%s zones=%s asset_mode=%s",
        user.id,
        company.id,
        len(ctx.allowed_sites),
        len(ctx.allowed_zones),
        ctx.asset_visibility_mode.value,
    )
    return ctx


def get_third_party_context(
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Optional[ThirdPartyContext]:
    return load_third_party_context(db, user)


def resolve_requested_id(
    name: str,
    path_params: Mapping[str, Any] | None = None,
    body: Mapping[str, Any] | None = None,
    query_params: Mapping[str, Any] | None = None,
) -> Optional[str]:
    """Look up ``name`` in path, then body, then query parameters."""
    aliases = _PARAM_ALIASES.get(name, (name,))
    for source in (path_params, body, query_params):
        if not source:
            continue
        for key in aliases:
            value = source.get(key)
            if value:
                return str(value)
    return None


async def _read_body(request: Request) -> dict:
    if request.method in {"GET", "HEAD", "DELETE", "OPTIONS"}:
        return {}
    try:
        payload = await request.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}


def _context_missing() -> IsolationError:
    return IsolationError(
        status.HTTP_403_FORBIDDEN,
        "Contexto nao carregado",
        "O contexto de terceiro nao foi carregado corretamente.",
        "THIRD_PARTY_CONTEXT_MISSING",
    )


def validate_customer_access(
    user: models.User | None, ctx: Optional[ThirdPartyContext], requested_customer_id: Optional[str]
) -> None:
    if not is_third_party_user(user):
        return
    if ctx is None:
        raise _context_missing()
    if requested_customer_id and requested_customer_id != ctx.customer_id:
        logger.warning(
            "Acesso a cliente nao autorizado user_id=%s requested=%s allowed=%s",
            user.id,
            requested_customer_id,
            ctx.customer_id,
        )
        raise IsolationError(
            status.HTTP_403_FORBIDDEN,
            "Acesso negado",
            "Voce nao tem permissao para acessar dados deste cliente.",
            "CUSTOMER_ACCESS_DENIED",
        )


def validate_site_access(
    user: models.User | None, ctx: Optional[ThirdPartyContext], requested_site_id: Optional[str]
) -> None:
    if not is_third_party_user(user):
        return
    if ctx is None:
        raise _context_missing()
    if requested_site_id and not can_access_site(ctx, requested_site_id):
        logger.warning(
            "Acesso a site nao autorizado user_id=%s requested=%s allowed=%s",
            user.id,
            requested_site_id,
            list(ctx.allowed_sites),
        )
        raise IsolationError(
            status.HTTP_403_FORBIDDEN,
            "Acesso negado",
            "Voce nao tem permissao para acessar este local.",
            "SITE_ACCESS_DENIED",
        )


def validate_zone_access(
    user: models.User | None, ctx: Optional[ThirdPartyContext], requested_zone_id: Optional[str]
) -> None:
    if not is_third_party_user(user):
        return
    if ctx is None:
        raise _context_missing()
    if requested_zone_id and not can_access_zone(ctx, requested_zone_id):
        logger.warning(
            "Acesso a zona nao autorizada user_id=%s requested=%s allowed=%s",
            user.id,
            requested_zone_id,
            list(ctx.allowed_zones),
        )
        raise IsolationError(
            status.HTTP_403_FORBIDDEN,
            "Acesso negado",
            "Voce nao tem permissao para acessar esta zona.",
            "ZONE_ACCESS_DENIED",
        )


async def third_party_isolation(
    request: Request,
    user: models.User = Depends(get_current_user),
    ctx: Optional[ThirdPartyContext] = Depends(get_third_party_context),
) -> Optional[ThirdPartyContext]:
    body = await _read_body(request)
    requested = resolve_requested_id("customer_id", request.path_params, body, request.query_params)
    validate_customer_access(user, ctx, requested)
    return ctx


async def full_third_party_isolation(
    request: Request,
    user: models.User = Depends(get_current_user),
    ctx: Optional[ThirdPartyContext] = Depends(get_third_party_context),
) -> Optional[ThirdPartyContext]:
    body = await _read_body(request)
    sources = (request.path_params, body, request.query_params)
    validate_customer_access(user, ctx, resolve_requested_id("customer_id", *sources))
    validate_site_access(user, ctx, resolve_requested_id("site_id", *sources))
    validate_zone_access(user, ctx, resolve_requested_id("zone_id", *sources))
    return ctx


def require_third_party_context(
    user: models.User = Depends(get_current_user),
    ctx: Optional[ThirdPartyContext] = Depends(get_third_party_context),
) -> ThirdPartyContext:
    if not is_third_party_user(user) or ctx is None:
        raise _context_missing()
    return ctx


def can_access_site(ctx: Optional[ThirdPartyContext], site_id: str) -> bool:
    if ctx is None or not ctx.allowed_sites:
        return True
    return site_id in ctx.allowed_sites


def can_access_zone(ctx: Optional[ThirdPartyContext], zone_id: str) -> bool:
    if ctx is None or not ctx.allowed_zones:
        return True
    return zone_id in ctx.allowed_zones


def can_access_equipment(
    ctx: Optional[ThirdPartyContext], contracted_ids: Optional[Iterable[str]]
) -> bool:
    if ctx is None:
        return True
    if ctx.asset_visibility_mode is AssetVisibilityMode.ALL:
        return True
    contracted = list(contracted_ids or [])
    if not contracted:
        return False
    return ctx.company_id in contracted


def validate_third_party_data_access(
    user: models.User | None,
    ctx: Optional[ThirdPartyContext],
    resource: ResourceRef,
) -> AccessDecision:
    if not is_third_party_user(user):
        return AccessDecision(allowed=True)
    if ctx is None:
        return AccessDecision(
            allowed=False, reason="Contexto de terceiro nao carregado", code="THIRD_PARTY_CONTEXT_MISSING"
        )
    if resource.customer_id and resource.customer_id != ctx.customer_id:
        return AccessDecision(allowed=False, reason="Cliente nao autorizado", code="CUSTOMER_ACCESS_DENIED")
    if resource.site_id and not can_access_site(ctx, resource.site_id):
        return AccessDecision(allowed=False, reason="Local nao autorizado", code="SITE_ACCESS_DENIED")
    if resource.zone_id and not can_access_zone(ctx, resource.zone_id):
        return AccessDecision(allowed=False, reason="Zona nao autorizada", code="ZONE_ACCESS_DENIED")
    if resource.check_equipment and not can_access_equipment(ctx, resource.equipment_contracted_ids):
        return AccessDecision(
            allowed=False, reason="Ativo nao autorizado (fora do contrato)", code="EQUIPMENT_ACCESS_DENIED"
        )
    return AccessDecision(allowed=True)


def access_denied(decision: AccessDecision) -> IsolationError:
    return IsolationError(
        status.HTTP_403_FORBIDDEN,
        "Acesso negado",
        decision.reason or "Acesso negado",
        decision.code,
    )
