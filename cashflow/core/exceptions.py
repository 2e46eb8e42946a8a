"""
Errores del motor financiero

Los errores de cálculo puro (InvalidPlanError, UnknownFrequencyError) se lanzan
antes de cualquier inserción. DuplicateOccurrenceError es esperado en la capa
de persistencia y el llamador simplemente descarta el duplicado.
"""


class CashflowError(Exception):
    """Base para todos los errores del motor"""


class InvalidPlanError(CashflowError):
    """El plan de pagos no tiene la estructura requerida por su tipo"""

    def __init__(self, plan_type, missing: str):
        self.plan_type = plan_type
        self.missing = missing
        super().__init__(f"Plan '{plan_type}' requiere '{missing}'")


class UnknownFrequencyError(CashflowError):
    """Frecuencia de recurrencia no reconocida"""

    def __init__(self, frequency):
        self.frequency = frequency
        super().__init__(f"Frecuencia desconocida: {frequency!r}")


class CurrencyMismatchError(CashflowError):
    """
    Se intentó sumar montos en monedas distintas sin convertir.
    Es una violación de contrato del llamador, no un error recuperable.
    """

    def __init__(self, expected, found):
        self.expected = expected
        self.found = found
        super().__init__(f"Monto en {found} sumado a un total en {expected} sin conversión")


class DuplicateOccurrenceError(CashflowError):
    """Ya existe una ocurrencia para la llave (source_id, period_index)"""

    def __init__(self, source_id, period_index: int):
        self.source_id = source_id
        self.period_index = period_index
        super().__init__(f"Ocurrencia duplicada para {source_id} período {period_index}")
