"""Notification job scheduling and delivery tracking engine."""

__version__ = "1.0.0"
