# backend/provider_calendar/tasks/beat_schedule.py
"""
Celery Beat schedule for the provider calendar worker.
"""

from datetime import timedelta
from typing import Any, Dict

from ..core.config import settings

AUTOMATION_TASK = "provider_calendar.tasks.automation.run_scheduling_automation"


def get_beat_schedule(environment: str = "production") -> Dict[str, Dict[str, Any]]:
    """
    Get the beat schedule for the specified environment.

    Args:
        environment: The environment name; production routes to the dedicated queue

    Returns:
        Mapping of entry name to Celery beat configuration dict
    """
    schedule: Dict[str, Dict[str, Any]] = {
        "run-scheduling-automation": {
            "task": AUTOMATION_TASK,
            "schedule": timedelta(minutes=settings.automation_interval_minutes),
            "options": {
                "queue": "automation" if environment == "production" else "celery",
                # Drop ticks that waited longer than one interval
                "expires": settings.automation_interval_minutes * 60,
            },
        },
    }
    return schedule
