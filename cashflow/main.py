from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
import logging

# Import database components
from cashflow.database.database import engine, Base

# Import routers
from cashflow.modules.payments.router import projects_router, payments_router
from cashflow.modules.expenses.router import expenses_router
from cashflow.modules.reports.routers import financial_router

# Import models for table creation
import cashflow.modules.projects.models
import cashflow.modules.payments.models
import cashflow.modules.expenses.models
import cashflow.modules.incomes.models

from cashflow.core.config import settings

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.ENVIRONMENT == "production" else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# FastAPI app
app = FastAPI(
    title="Cashflow API",
    description="Generación de calendarios de pago, gastos causados, métricas y proyecciones financieras",
    version="1.0.0",
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None
)

app.add_middleware(GZipMiddleware, minimum_size=1000)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Add your frontend URLs
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(projects_router)
app.include_router(payments_router)
app.include_router(expenses_router)
app.include_router(financial_router)


@app.get("/health")
def health_check():
    return {
        "status": "healthy",
        "environment": settings.ENVIRONMENT,
        "reporting_currency": settings.REPORTING_CURRENCY,
    }


@app.on_event("startup")
def startup_event():
    logger.info("Cashflow API starting up...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Exchange rate: {settings.EXCHANGE_RATE_COP_PER_USD} COP/USD, reporting in {settings.REPORTING_CURRENCY}")

    # Create database tables (only for development - use migrations in production)
    if settings.ENVIRONMENT == "development":
        try:
            Base.metadata.create_all(bind=engine)
        except Exception as e:
            logger.warning(f"Table creation skipped or failed: {e}")


@app.on_event("shutdown")
def shutdown_event():
    logger.info("Cashflow API shutting down...")
