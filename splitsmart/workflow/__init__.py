"""Reminder and settlement workflow package."""

from splitsmart.workflow.reminders import ReminderResult, ReminderWorkflow

__all__ = ["ReminderResult", "ReminderWorkflow"]
