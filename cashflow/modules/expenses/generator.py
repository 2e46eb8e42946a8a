"""
Generador de gastos causados

Materializa las ocurrencias de un gasto recurrente hasta la fecha de corte más
el horizonte. Cada ocurrencia se identifica por (gasto, índice de periodo); los
índices ya materializados se omiten, así la generación se puede repetir sin
duplicar.

Si la regla del gasto cambió, solo se emiten los periodos desde
series_start_index y cada índice se desplaza period_offset posiciones.
"""

from datetime import date
from typing import Dict, Iterable, List, Optional, Set, Tuple
from uuid import UUID
import logging

from dateutil.relativedelta import relativedelta

from cashflow.core.exceptions import UnknownFrequencyError
from cashflow.modules.recurrence import parse_frequency, occurrences_until
from cashflow.modules.expenses.schemas import AccruedDraft, AccrualBatchResult, AccrualFailure

logger = logging.getLogger(__name__)

DEFAULT_HORIZON_MONTHS = 3


class AccrualGenerator:

    def __init__(self, horizon_months: int = DEFAULT_HORIZON_MONTHS):
        if horizon_months < 0:
            raise ValueError("horizon_months no puede ser negativo")
        self.horizon_months = horizon_months

    def generate_up_to(
        self,
        expense,
        already_generated: Iterable[int],
        as_of: date,
        horizon_months: Optional[int] = None
    ) -> List[AccruedDraft]:
        """
        Ocurrencias faltantes de un gasto recurrente

        Args:
            expense: Gasto recurrente (frequency, start_date, end_date, is_active,
                series_start_index, period_offset, amount...)
            already_generated: Índices de periodo ya materializados
            as_of: Fecha de corte
            horizon_months: Meses hacia adelante desde as_of; por defecto el del generador

        Returns:
            Ocurrencias nuevas ordenadas por fecha

        Raises:
            UnknownFrequencyError: si la frecuencia del gasto no es válida
        """
        if not expense.is_active:
            return []

        frequency = parse_frequency(expense.frequency)
        months = self.horizon_months if horizon_months is None else horizon_months

        limit = as_of + relativedelta(months=months)
        if expense.end_date is not None and expense.end_date < limit:
            limit = expense.end_date

        first = expense.series_start_index or 0
        offset = expense.period_offset or 0

        skip: Set[int] = set(already_generated)
        drafts = []
        for n, due_date in occurrences_until(expense.start_date, frequency, limit, start=first):
            period_index = n + offset
            if period_index in skip:
                continue
            drafts.append(AccruedDraft(
                source_id=expense.id,
                period_index=period_index,
                due_date=due_date,
                amount=expense.amount,
                currency=expense.currency,
                description=expense.description,
                category=expense.category,
                payment_method=expense.payment_method,
            ))
        return drafts

    @staticmethod
    def restart_series(expense, already_generated: Iterable[int], as_of: date) -> Tuple[int, int]:
        """
        Primer periodo y desplazamiento de una serie cuya regla cambió

        La serie nueva solo emite periodos posteriores a as_of y sus índices
        continúan después del mayor ya materializado, así no se repiten
        meses ya causados ni se rellenan periodos pasados.

        Returns:
            (series_start_index, period_offset)

        Raises:
            UnknownFrequencyError: si la frecuencia del gasto no es válida
        """
        existing = set(already_generated)
        if not existing:
            return 0, 0

        frequency = parse_frequency(expense.frequency)
        first = sum(1 for _ in occurrences_until(expense.start_date, frequency, as_of))
        return first, max(existing) + 1 - first

    def generate_batch(
        self,
        expenses: Iterable,
        existing_by_source: Dict[UUID, Set[int]],
        as_of: date,
        horizon_months: Optional[int] = None
    ) -> AccrualBatchResult:
        """
        Generar para varios gastos aislando los que fallan

        Un gasto con frecuencia desconocida queda en failures y los demás se
        generan normalmente.
        """
        result = AccrualBatchResult()
        for expense in expenses:
            try:
                result.drafts.extend(self.generate_up_to(
                    expense,
                    existing_by_source.get(expense.id, set()),
                    as_of,
                    horizon_months,
                ))
            except UnknownFrequencyError as e:
                logger.warning(f"Gasto recurrente {expense.id} omitido: {e}")
                result.failures.append(AccrualFailure(
                    expense_id=expense.id,
                    frequency=str(expense.frequency) if expense.frequency is not None else None,
                    reason=str(e),
                ))
        return result


def generate_accruals(
    expense,
    horizon_months: int,
    existing: Iterable[int],
    as_of: date
) -> List[AccruedDraft]:
    """Punto de entrada funcional del generador de gastos causados"""
    return AccrualGenerator(horizon_months).generate_up_to(expense, existing, as_of)
