"""
Clientes y proyectos

Solo los campos que necesita el motor financiero: la fecha de inicio del
proyecto ancla el calendario de pagos y el cliente agrupa los ingresos para
la concentración.
"""

from cashflow.database.database import Base
from sqlalchemy import Column, String, ForeignKey, Date, Enum, Uuid
from sqlalchemy.orm import relationship
from datetime import date
from cashflow.common.mixins import BaseMixin
import enum


class ClientStatus(enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class ProjectStatus(enum.Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Client(Base, BaseMixin):
    __tablename__ = "clients"

    name = Column(String(200), nullable=False, index=True)
    status = Column(Enum(ClientStatus), nullable=False, default=ClientStatus.ACTIVE)

    projects = relationship("Project", back_populates="client", cascade="all, delete-orphan")


class Project(Base, BaseMixin):
    __tablename__ = "projects"

    client_id = Column(Uuid, ForeignKey("clients.id"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    start_date = Column(Date, nullable=False, default=date.today)
    status = Column(Enum(ProjectStatus), nullable=False, default=ProjectStatus.ACTIVE)

    client = relationship("Client", back_populates="projects")
    payment_plan = relationship("PaymentPlan", back_populates="project", uselist=False, cascade="all, delete-orphan")
    payments = relationship("Payment", back_populates="project", cascade="all, delete-orphan")
