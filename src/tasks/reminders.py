"""Celery tasks for reminder delivery."""

import logging

from sqlalchemy.orm import Session

from src.celery_app import app as celery_app
from src.database import SessionLocal
from src.services.delivery_trigger import DeliveryTrigger
from src.utils.time import utc_now

logger = logging.getLogger(__name__)


@celery_app.task
def sweep_due_reminders() -> dict:
    """Deliver all due reminders to their owners' devices.

    This task runs every minute via celery-beat. Overlapping runs (a slow sweep
    still going when the next tick fires, or a retried job) are safe: each
    reminder is claimed before delivery.

    Returns:
        dict with sweep statistics
    """
    db: Session = SessionLocal()

    try:
        result = DeliveryTrigger(db).sweep(utc_now())
        return result.to_dict()

    except Exception as e:
        logger.error(f"Error sweeping due reminders: {e}", exc_info=True)
        db.rollback()
        return {"error": str(e)}

    finally:
        db.close()
