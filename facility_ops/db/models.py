import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, JSON, String, UniqueConstraint
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


class Customer(Base):
    __tablename__ = "customers"

    id = Column(String, primary_key=True, default=_uuid)
    name = Column(String, nullable=False)
    document = Column(String, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    third_party_enabled = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    sites = relationship("Site", back_populates="customer", cascade="all, delete-orphan")
    third_party_companies = relationship(
        "ThirdPartyCompany", back_populates="customer", cascade="all, delete-orphan"
    )


class ThirdPartyCompany(Base):
    __tablename__ = "third_party_companies"

    id = Column(String, primary_key=True, default=_uuid)
    customer_id = Column(String, ForeignKey("customers.id"), nullable=False)
    name = Column(String, nullable=False)
    document = Column(String, nullable=True)
    email = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    status = Column(String, nullable=False, default="active")
    allowed_sites = Column(JSON, nullable=True, default=list)
    allowed_zones = Column(JSON, nullable=True, default=list)
    asset_visibility_mode = Column(String, nullable=False, default="ALL")
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    customer = relationship("Customer", back_populates="third_party_companies")
    teams = relationship("ThirdPartyTeam", back_populates="company", cascade="all, delete-orphan")


class ThirdPartyTeam(Base):
    __tablename__ = "third_party_teams"

    id = Column(String, primary_key=True, default=_uuid)
    third_party_company_id = Column(String, ForeignKey("third_party_companies.id"), nullable=False)
    name = Column(String, nullable=False)
    leader_user_id = Column(String, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    company = relationship("ThirdPartyCompany", back_populates="teams")


class Supplier(Base):
    __tablename__ = "suppliers"

    id = Column(String, primary_key=True, default=_uuid)
    customer_id = Column(String, ForeignKey("customers.id"), nullable=False)
    name = Column(String, nullable=False)
    document = Column(String, nullable=True)
    email = Column(String, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class User(Base):
    __tablename__ = "users"
    __table_args__ = (UniqueConstraint("email", name="uq_user_email"),)

    id = Column(String, primary_key=True, default=_uuid)
    name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    user_type = Column(String, nullable=False, default="internal_user")
    customer_id = Column(String, ForeignKey("customers.id"), nullable=True)
    third_party_company_id = Column(String, ForeignKey("third_party_companies.id"), nullable=True)
    third_party_role = Column(String, nullable=True)
    supplier_id = Column(String, ForeignKey("suppliers.id"), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    push_token = Column(String, nullable=True)
    push_enabled = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class Site(Base):
    __tablename__ = "sites"

    id = Column(String, primary_key=True, default=_uuid)
    customer_id = Column(String, ForeignKey("customers.id"), nullable=False)
    name = Column(String, nullable=False)
    code = Column(String, nullable=True)
    module = Column(String, nullable=False, default="maintenance")
    address = Column(String, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    customer = relationship("Customer", back_populates="sites")
    zones = relationship("Zone", back_populates="site", cascade="all, delete-orphan")


class Zone(Base):
    __tablename__ = "zones"

    id = Column(String, primary_key=True, default=_uuid)
    site_id = Column(String, ForeignKey("sites.id"), nullable=False)
    name = Column(String, nullable=False)
    module = Column(String, nullable=False, default="maintenance")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    site = relationship("Site", back_populates="zones")
    equipment = relationship("Equipment", back_populates="zone", cascade="all, delete-orphan")


class Equipment(Base):
    __tablename__ = "equipment"

    id = Column(String, primary_key=True, default=_uuid)
    customer_id = Column(String, ForeignKey("customers.id"), nullable=False)
    zone_id = Column(String, ForeignKey("zones.id"), nullable=False)
    name = Column(String, nullable=False)
    tag = Column(String, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    contracted_third_party_ids = Column(JSON, nullable=True, default=list)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    zone = relationship("Zone", back_populates="equipment")


class WorkOrder(Base):
    __tablename__ = "work_orders"

    id = Column(String, primary_key=True, default=_uuid)
    number = Column(Integer, nullable=True)
    customer_id = Column(String, ForeignKey("customers.id"), nullable=False)
    site_id = Column(String, ForeignKey("sites.id"), nullable=True)
    zone_id = Column(String, ForeignKey("zones.id"), nullable=True)
    equipment_id = Column(String, ForeignKey("equipment.id"), nullable=True)
    title = Column(String, nullable=False)
    description = Column(String, nullable=True)
    module = Column(String, nullable=False, default="maintenance")
    status = Column(String, nullable=False, default="aberta")
    priority = Column(String, nullable=True)
    executed_by_type = Column(String, nullable=True, default="INTERNAL")
    third_party_company_id = Column(String, ForeignKey("third_party_companies.id"), nullable=True)
    third_party_team_id = Column(String, ForeignKey("third_party_teams.id"), nullable=True)
    third_party_operator_id = Column(String, ForeignKey("users.id"), nullable=True)
    assigned_user_id = Column(String, ForeignKey("users.id"), nullable=True)
    due_date = Column(DateTime, nullable=True)
    started_at = Column(DateTime, nullable=True)
    paused_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    cancellation_reason = Column(String, nullable=True)
    rating = Column(Integer, nullable=True)
    evaluation_comment = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    customer = relationship("Customer")
    third_party_company = relationship("ThirdPartyCompany")
    comments = relationship("WorkOrderComment", back_populates="work_order", cascade="all, delete-orphan")
    attachments = relationship(
        "WorkOrderAttachment", back_populates="work_order", cascade="all, delete-orphan"
    )


class WorkOrderComment(Base):
    __tablename__ = "work_order_comments"

    id = Column(String, primary_key=True, default=_uuid)
    work_order_id = Column(String, ForeignKey("work_orders.id"), nullable=False)
    user_id = Column(String, ForeignKey("users.id"), nullable=True)
    text = Column(String, nullable=False)
    is_reopen_request = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    work_order = relationship("WorkOrder", back_populates="comments")


class WorkOrderAttachment(Base):
    __tablename__ = "work_order_attachments"

    id = Column(String, primary_key=True, default=_uuid)
    work_order_id = Column(String, ForeignKey("work_orders.id"), nullable=False)
    file_name = Column(String, nullable=False)
    url = Column(String, nullable=True)
    mime = Column(String, nullable=True)
    size = Column(Integer, nullable=True)
    created_by = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    work_order = relationship("WorkOrder", back_populates="attachments")


class WorkOrderAuditLog(Base):
    __tablename__ = "work_order_audit_log"

    id = Column(String, primary_key=True, default=_uuid)
    work_order_id = Column(String, ForeignKey("work_orders.id"), nullable=False)
    action = Column(String, nullable=False)
    user_id = Column(String, nullable=True)
    user_type = Column(String, nullable=True)
    user_name = Column(String, nullable=False)
    customer_id = Column(String, nullable=True)
    customer_name = Column(String, nullable=True)
    third_party_company_id = Column(String, nullable=True)
    third_party_company_name = Column(String, nullable=True)
    previous_value = Column(JSON, nullable=True)
    new_value = Column(JSON, nullable=True)
    description = Column(String, nullable=False)
    ip_address = Column(String, nullable=True)
    user_agent = Column(String, nullable=True)
    source = Column(String, nullable=False, default="web")
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String, primary_key=True, default=_uuid)
    user_id = Column(String, ForeignKey("users.id"), nullable=False)
    type = Column(String, nullable=False)
    title = Column(String, nullable=False)
    message = Column(String, nullable=False)
    data = Column(JSON, nullable=True)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class MaintenancePlan(Base):
    __tablename__ = "maintenance_plans"

    id = Column(String, primary_key=True, default=_uuid)
    customer_id = Column(String, ForeignKey("customers.id"), nullable=False)
    name = Column(String, nullable=False)
    description = Column(String, nullable=True)
    frequency = Column(String, nullable=True)
    site_id = Column(String, ForeignKey("sites.id"), nullable=True)
    zone_id = Column(String, ForeignKey("zones.id"), nullable=True)
    equipment_ids = Column(JSON, nullable=True, default=list)
    supplier_id = Column(String, ForeignKey("suppliers.id"), nullable=True)
    third_party_company_id = Column(String, ForeignKey("third_party_companies.id"), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class MaintenancePlanProposal(Base):
    __tablename__ = "maintenance_plan_proposals"

    id = Column(String, primary_key=True, default=_uuid)
    customer_id = Column(String, ForeignKey("customers.id"), nullable=False)
    supplier_id = Column(String, ForeignKey("suppliers.id"), nullable=False)
    name = Column(String, nullable=False)
    description = Column(String, nullable=True)
    frequency = Column(String, nullable=True)
    site_id = Column(String, ForeignKey("sites.id"), nullable=True)
    zone_id = Column(String, ForeignKey("zones.id"), nullable=True)
    equipment_ids = Column(JSON, nullable=True, default=list)
    estimated_value = Column(Integer, nullable=True)
    status = Column(String, nullable=False, default="em_espera")
    rejection_reason = Column(String, nullable=True)
    reviewed_by = Column(String, nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    maintenance_plan_id = Column(String, ForeignKey("maintenance_plans.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class ThirdPartyProposal(Base):
    __tablename__ = "third_party_proposals"

    id = Column(String, primary_key=True, default=_uuid)
    customer_id = Column(String, ForeignKey("customers.id"), nullable=False)
    third_party_company_id = Column(String, ForeignKey("third_party_companies.id"), nullable=False)
    name = Column(String, nullable=False)
    description = Column(String, nullable=True)
    frequency = Column(String, nullable=True)
    site_id = Column(String, ForeignKey("sites.id"), nullable=True)
    zone_id = Column(String, ForeignKey("zones.id"), nullable=True)
    equipment_ids = Column(JSON, nullable=True, default=list)
    status = Column(String, nullable=False, default="em_espera")
    rejection_reason = Column(String, nullable=True)
    submitted_by = Column(String, nullable=True)
    reviewed_by = Column(String, nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    maintenance_plan_id = Column(String, ForeignKey("maintenance_plans.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
