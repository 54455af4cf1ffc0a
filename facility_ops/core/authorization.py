from typing import Optional

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from facility_ops.core.enums import UserType
from facility_ops.core.isolation import ThirdPartyContext
from facility_ops.core.security import user_type_of
from facility_ops.db import models


def _deny(detail: str = "Cliente nao autorizado para este recurso.") -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


def enforce_customer_scope(
    db: Session,
    user: models.User,
    customer_id: str | None,
    ctx: Optional[ThirdPartyContext] = None,
) -> None:
    user_type = user_type_of(user)
    if user_type is UserType.INTERNAL:
        return
    if user_type is UserType.CUSTOMER:
        if not user.customer_id or user.customer_id != customer_id:
            raise _deny()
        return
    if user_type is UserType.THIRD_PARTY:
        if ctx is None or ctx.customer_id != customer_id:
            raise _deny()
        return
    if user_type is UserType.SUPPLIER:
        supplier = (
            db.query(models.Supplier).filter(models.Supplier.id == user.supplier_id).first()
            if user.supplier_id
            else None
        )
        if not supplier or supplier.customer_id != customer_id:
            raise _deny()
        return
    raise _deny("Tipo de usuario nao suportado.")


def require_customer(db: Session, customer_id: str) -> models.Customer:
    customer = db.query(models.Customer).filter(models.Customer.id == customer_id).first()
    if not customer:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Cliente nao encontrado")
    return customer
