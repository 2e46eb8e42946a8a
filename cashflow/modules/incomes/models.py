from cashflow.database.database import Base
from sqlalchemy import Column, String, ForeignKey, Numeric, Date, Boolean, Uuid
from cashflow.common.mixins import BaseMixin


class Income(Base, BaseMixin):
    """
    Ingreso registrado

    Los aportes de socios cuentan en el flujo de caja pero no en el ingreso
    operacional que usa el margen de utilidad.
    """
    __tablename__ = "incomes"

    description = Column(String(255), nullable=False)
    date = Column(Date, nullable=False, index=True)
    amount = Column(Numeric(15, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="COP")
    type = Column(String(100), nullable=True)
    client_id = Column(Uuid, ForeignKey("clients.id"), nullable=True, index=True)
    project_id = Column(Uuid, ForeignKey("projects.id"), nullable=True)
    is_recurring = Column(Boolean, nullable=False, default=False)
    is_partner_contribution = Column(Boolean, nullable=False, default=False)
