"""
Módulo de Planes de Pago

Un proyecto tiene un único plan de pagos con dos posibles componentes:
- Fee de implementación: total dividido en cuotas mensuales iguales
- Fee recurrente: cobro periódico con periodos de gracia y de descuento

TIPOS DE PLAN:
- single_fee: una sola cuota de implementación
- installment_fee: implementación en cuotas
- recurring_subscription: solo cobro recurrente
- mixed: implementación y cobro recurrente

ESTADOS DE PAGO:
- pending: Pendiente
- paid: Pagado
- overdue: Vencido (derivado al leer, nunca se guarda)
"""

from .generator import PaymentScheduleGenerator, generate_payment_schedule, validate_plan, plan_from_record

__all__ = ["PaymentScheduleGenerator", "generate_payment_schedule", "validate_plan", "plan_from_record"]
