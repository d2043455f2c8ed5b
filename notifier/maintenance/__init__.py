"""Periodic maintenance: batch recalculation and orphaned-job reconciliation."""

from .service import RECALCULATE_JOB_ID, RECONCILE_JOB_ID, MaintenanceRunner
from .tasks import MaintenanceTasks

__all__ = ["MaintenanceTasks", "MaintenanceRunner", "RECALCULATE_JOB_ID", "RECONCILE_JOB_ID"]
