"""
Módulo de Gastos

- Gastos recurrentes: definición con frecuencia, fecha de inicio y fin opcional
- Gastos causados: ocurrencias materializadas con llave única (gasto, periodo)
- Gastos variables: registrados manualmente

ESTADOS DE GASTO CAUSADO:
- pending: Pendiente de pago
- paid: Pagado
- voided: Anulado (conserva su llave y no se vuelve a generar)
"""

from .generator import AccrualGenerator, generate_accruals

__all__ = ["AccrualGenerator", "generate_accruals"]
