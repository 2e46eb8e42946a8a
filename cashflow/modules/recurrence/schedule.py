"""
Calendario de recurrencias

Calcula la fecha de la n-ésima ocurrencia para las siete clases de frecuencia.
La aritmética de meses se hace en un solo paso desde la fecha ancla
(ancla + n·k meses) para que un día 31 no se desplace mes a mes.
"""

import calendar
from datetime import date, timedelta
from enum import Enum
from typing import Iterator, Optional, Tuple, Union

from dateutil.relativedelta import relativedelta

from cashflow.core.exceptions import UnknownFrequencyError


class Frequency(str, Enum):
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    BIMONTHLY = "bimonthly"
    QUARTERLY = "quarterly"
    SEMIANNUAL = "semiannual"
    ANNUAL = "annual"


_DAY_STEPS = {
    Frequency.WEEKLY: 7,
    Frequency.BIWEEKLY: 14,
}

_MONTH_STEPS = {
    Frequency.MONTHLY: 1,
    Frequency.BIMONTHLY: 2,
    Frequency.QUARTERLY: 3,
    Frequency.SEMIANNUAL: 6,
    Frequency.ANNUAL: 12,
}

# Etiquetas usadas por los formularios y registros heredados
_ALIASES = {
    "semanal": Frequency.WEEKLY,
    "quincenal": Frequency.BIWEEKLY,
    "mensual": Frequency.MONTHLY,
    "bimensual": Frequency.BIMONTHLY,
    "trimestral": Frequency.QUARTERLY,
    "semestral": Frequency.SEMIANNUAL,
    "anual": Frequency.ANNUAL,
    "yearly": Frequency.ANNUAL,
}


def parse_frequency(value: Union[Frequency, str, None]) -> Frequency:
    """
    Normalizar una frecuencia

    Acepta el valor del enum o las etiquetas en español (Semanal, Quincenal,
    Mensual, Bimensual, Trimestral, Semestral, Anual).

    Raises:
        UnknownFrequencyError: si el valor no corresponde a ninguna clase
    """
    if isinstance(value, Frequency):
        return value
    if not isinstance(value, str):
        raise UnknownFrequencyError(value)

    key = value.strip().lower()
    try:
        return Frequency(key)
    except ValueError:
        pass
    if key in _ALIASES:
        return _ALIASES[key]
    raise UnknownFrequencyError(value)


def is_month_based(frequency: Frequency) -> bool:
    return frequency in _MONTH_STEPS


def _clamp_day(value: date, day: int) -> date:
    last_day = calendar.monthrange(value.year, value.month)[1]
    return value.replace(day=min(day, last_day))


def nth_occurrence(
    anchor: date,
    frequency: Union[Frequency, str],
    day_of_charge: Optional[int] = None,
    n: int = 0
) -> date:
    """
    Fecha de la n-ésima ocurrencia (n=0 es el periodo de la fecha ancla)

    Args:
        anchor: Fecha de inicio
        frequency: Clase de frecuencia
        day_of_charge: Día del mes de cobro (1-31). Solo aplica a frecuencias
            mensuales o mayores; se recorta al último día válido del mes.
        n: Índice del periodo, n >= 0

    Returns:
        Fecha de la ocurrencia
    """
    if n < 0:
        raise ValueError("n debe ser mayor o igual a 0")

    frequency = parse_frequency(frequency)

    if not is_month_based(frequency):
        return anchor + timedelta(days=_DAY_STEPS[frequency] * n)

    # relativedelta recorta al último día del mes (31-ene + 1 mes = 29-feb)
    result = anchor + relativedelta(months=_MONTH_STEPS[frequency] * n)
    if day_of_charge is not None:
        result = _clamp_day(result, day_of_charge)
    return result


def occurrences_until(
    anchor: date,
    frequency: Union[Frequency, str],
    until: date,
    day_of_charge: Optional[int] = None,
    start: int = 0
) -> Iterator[Tuple[int, date]]:
    """
    Generar pares (n, fecha) mientras la fecha no supere `until` (inclusive)

    `start` es el primer índice emitido; las fechas siguen calculándose desde el ancla.
    """
    n = start
    while True:
        occurrence = nth_occurrence(anchor, frequency, day_of_charge, n)
        if occurrence > until:
            return
        yield n, occurrence
        n += 1
