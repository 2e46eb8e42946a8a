"""
Background tasks for recurring expenses
"""
from cashflow.core.celery import celery_app
from cashflow.core.config import settings
from cashflow.database.database import SessionLocal
from cashflow.modules.expenses.service import AccrualService
from cashflow.modules.expenses.generator import AccrualGenerator
from sqlalchemy.exc import OperationalError
from datetime import date
import logging

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, max_retries=3)
def sync_recurring_expenses(self, as_of: str = None, horizon_months: int = None):
    """
    Periodic task to materialize accrued expenses for every active recurring expense

    Safe to run concurrently with a manual sync: duplicates are discarded by
    the unique key. Only infrastructure errors are retried.
    """
    run_date = date.fromisoformat(as_of) if as_of else date.today()
    db = SessionLocal()
    try:
        service = AccrualService(db, AccrualGenerator(settings.ACCRUAL_HORIZON_MONTHS))
        result = service.sync(run_date, horizon_months)
        return result.model_dump(mode="json")
    except OperationalError as e:
        logger.error(f"Recurring expense sync failed, retrying: {str(e)}")
        raise self.retry(exc=e, countdown=60)
    finally:
        db.close()
