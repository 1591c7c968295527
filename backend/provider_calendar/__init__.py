"""
Provider calendar and job scheduling core.

Reserves time on provider calendars, detects overlapping commitments,
negotiates reschedules and drives job reminder and lateness notifications.
"""

__version__ = "0.1.0"
