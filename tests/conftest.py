from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from facility_ops.core.enums import ThirdPartyRole, UserType
from facility_ops.core.security import create_access_token
from facility_ops.db import models
from facility_ops.db.session import enable_sqlite_savepoints, get_db
from facility_ops.main import app


class Factory:
    def __init__(self, db):
        self.db = db

    def _save(self, obj):
        self.db.add(obj)
        self.db.commit()
        self.db.refresh(obj)
        return obj

    def customer(self, name="Cliente", third_party_enabled=True):
        return self._save(models.Customer(name=name, third_party_enabled=third_party_enabled))

    def site(self, customer, name="Site", module="maintenance", is_active=True):
        return self._save(models.Site(customer_id=customer.id, name=name, module=module, is_active=is_active))

    def zone(self, site, name="Zona", is_active=True):
        return self._save(models.Zone(site_id=site.id, name=name, module=site.module, is_active=is_active))

    def equipment(self, zone, customer, name="Ativo", contracted=None):
        return self._save(
            models.Equipment(
                customer_id=customer.id,
                zone_id=zone.id,
                name=name,
                contracted_third_party_ids=contracted or [],
            )
        )

    def company(self, customer, name="Terceira", allowed_sites=None, allowed_zones=None, mode="ALL", status="active"):
        return self._save(
            models.ThirdPartyCompany(
                customer_id=customer.id,
                name=name,
                allowed_sites=allowed_sites or [],
                allowed_zones=allowed_zones or [],
                asset_visibility_mode=mode,
                status=status,
            )
        )

    def team(self, company, name="Equipe"):
        return self._save(models.ThirdPartyTeam(third_party_company_id=company.id, name=name))

    def user(self, name="Usuario", user_type=UserType.INTERNAL, **kwargs):
        return self._save(models.User(name=name, user_type=user_type.value, **kwargs))

    def third_party_user(self, company, name="Terceiro", role=ThirdPartyRole.OPERATOR, **kwargs):
        return self.user(
            name=name,
            user_type=UserType.THIRD_PARTY,
            customer_id=company.customer_id,
            third_party_company_id=company.id,
            third_party_role=role.value,
            **kwargs,
        )

    def work_order(self, customer, title="OS", status="aberta", company=None, **kwargs):
        fields = {"created_at": datetime(2026, 1, 1, 8, 0)}
        if company is not None:
            fields.update(executed_by_type="THIRD_PARTY", third_party_company_id=company.id)
        fields.update(kwargs)
        return self._save(models.WorkOrder(customer_id=customer.id, title=title, status=status, **fields))


@pytest.fixture()
def db_session():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_savepoints(engine)
    models.Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = SessionLocal()
    yield db
    db.close()
    engine.dispose()


@pytest.fixture()
def make(db_session):
    return Factory(db_session)


@pytest.fixture()
def client(db_session):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.pop(get_db, None)


@pytest.fixture()
def auth():
    def _headers(user):
        return {"Authorization": f"Bearer {create_access_token({'sub': user.id})}"}

    return _headers
