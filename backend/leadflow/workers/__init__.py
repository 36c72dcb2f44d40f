"""
Workers Package
Background workers for booking reminders
"""
from leadflow.workers.reminder_worker import ReminderWorker

__all__ = [
    "ReminderWorker"
]
