# backend/provider_calendar/tasks/__init__.py
"""
Celery tasks package for the provider calendar core.

Importing the package registers every task with the app.
"""

from .automation import run_scheduling_automation
from .celery_app import celery_app

__all__ = ["celery_app", "run_scheduling_automation"]
