# backend/provider_calendar/tasks/automation.py
"""
Celery task that runs one automation tick.

Beat triggers it every ``automation_interval_minutes``; overlapping runs are
safe because each reservation is claimed and flagged before dispatch.
"""

from typing import Any, Dict

from celery.utils.log import get_task_logger

from ..schemas.job_schedule import AutomationRunResponse
from ..services.automation_scheduler import AutomationScheduler
from .celery_app import celery_app

logger = get_task_logger(__name__)


@celery_app.task(name="provider_calendar.tasks.automation.run_scheduling_automation", max_retries=0)
def run_scheduling_automation() -> Dict[str, Any]:
    """
    Send due job start reminders and lateness alerts.

    Returns:
        Summary of the run, JSON-serializable for the result backend
    """
    result = AutomationScheduler().tick()
    if result.errors:
        logger.warning("Scheduling automation finished with errors: %s", "; ".join(result.errors))
    return AutomationRunResponse.model_validate(result).model_dump(mode="json")
