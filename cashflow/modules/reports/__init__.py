"""
Reports Module

Métricas financieras y proyecciones de flujo de caja. No crea tablas: agrega
por mes los ingresos, pagos y gastos de los demás módulos y los entrega al
motor de métricas.

Funcionalidades principales:
- MRR, ARR, burn rate, runway y margen de utilidad
- Concentración de ingresos por cliente con alerta de riesgo
- Movimiento de MRR (nuevo, perdido, neto)
- Proyecciones por escenario: optimista, conservador, pesimista y reducción de costos
- Exportación CSV

Architecture Pattern: Service Layer
- engine.py -> Cálculo puro sobre agregados mensuales
- services/ -> Construcción de agregados desde la base de datos
- routers/ -> Endpoints FastAPI
- schemas/ -> Modelos Pydantic
- utils/ -> Exportación CSV
"""

from .engine import FinancialMetricsEngine, compute_metrics, project_scenario

__all__ = ["FinancialMetricsEngine", "compute_metrics", "project_scenario"]
