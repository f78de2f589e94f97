"""Notification dispatch and reminder scheduling for the task bot."""

__version__ = "0.1.0"
