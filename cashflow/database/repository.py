"""
Acceso a datos del motor financiero

Consultas de solo lectura que alimentan a los generadores y al motor de
métricas. Todas retornan registros ORM con montos Decimal y fechas de
calendario; los rangos de fechas son inclusivos.
"""

from datetime import date
from typing import Dict, Iterable, List, Set
from uuid import UUID

from sqlalchemy.orm import Session

from cashflow.modules.payments.models import Payment, PaymentStatus, PaymentKind
from cashflow.modules.expenses.models import (
    RecurringExpense, AccruedExpense, AccruedStatus, Expense, SourceType
)
from cashflow.modules.incomes.models import Income
from cashflow.modules.projects.models import Client, ClientStatus, Project, ProjectStatus


class FinanceRepository:

    def __init__(self, db: Session):
        self.db = db

    def list_payments(self, project_id: UUID) -> List[Payment]:
        return self.db.query(Payment).filter(
            Payment.project_id == project_id
        ).order_by(Payment.scheduled_date, Payment.kind, Payment.period_index).all()

    def list_paid_payments(self, start: date, end: date) -> List[Payment]:
        """Pagos cobrados cuya fecha de pago cae en el rango"""
        return self.db.query(Payment).filter(
            Payment.status == PaymentStatus.PAID,
            Payment.paid_date >= start,
            Payment.paid_date <= end
        ).order_by(Payment.paid_date).all()

    def list_paid_recurring_payments(self, start: date, end: date) -> List[Payment]:
        return [p for p in self.list_paid_payments(start, end) if p.kind == PaymentKind.RECURRING]

    def list_accrued_expenses(self, source_id: UUID) -> List[AccruedExpense]:
        return self.db.query(AccruedExpense).filter(
            AccruedExpense.source_id == source_id
        ).order_by(AccruedExpense.period_index).all()

    def list_accrued_between(self, start: date, end: date, include_voided: bool = False) -> List[AccruedExpense]:
        query = self.db.query(AccruedExpense).filter(
            AccruedExpense.due_date >= start,
            AccruedExpense.due_date <= end
        )
        if not include_voided:
            query = query.filter(AccruedExpense.status != AccruedStatus.VOIDED)
        return query.order_by(AccruedExpense.due_date).all()

    def list_incomes(self, start: date, end: date) -> List[Income]:
        return self.db.query(Income).filter(
            Income.date >= start,
            Income.date <= end
        ).order_by(Income.date).all()

    def list_expenses(self, start: date, end: date) -> List[Expense]:
        return self.db.query(Expense).filter(
            Expense.date >= start,
            Expense.date <= end
        ).order_by(Expense.date).all()

    def count_active_clients(self) -> int:
        return self.db.query(Client).filter(Client.status == ClientStatus.ACTIVE).count()

    def count_active_projects(self) -> int:
        return self.db.query(Project).filter(Project.status == ProjectStatus.ACTIVE).count()

    def list_recurring_expenses(self, active_only: bool = True) -> List[RecurringExpense]:
        query = self.db.query(RecurringExpense)
        if active_only:
            query = query.filter(RecurringExpense.is_active == True)
        return query.order_by(RecurringExpense.created_at).all()

    def accrued_period_keys(self, source_ids: Iterable[UUID]) -> Dict[UUID, Set[int]]:
        """
        Índices de periodo ya materializados por gasto recurrente.
        Incluye ocurrencias anuladas: una ocurrencia anulada no se vuelve a generar.
        """
        source_ids = list(source_ids)
        keys: Dict[UUID, Set[int]] = {source_id: set() for source_id in source_ids}
        if not source_ids:
            return keys

        rows = self.db.query(AccruedExpense.source_id, AccruedExpense.period_index).filter(
            AccruedExpense.source_type == SourceType.RECURRING,
            AccruedExpense.source_id.in_(source_ids)
        ).all()
        for source_id, period_index in rows:
            keys.setdefault(source_id, set()).add(period_index)
        return keys
