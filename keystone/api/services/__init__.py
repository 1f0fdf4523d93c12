"""Shared services for KEYSTONE API."""

from keystone.api.services.background_tasks import SessionSweepWorker, WorkerStats

__all__ = [
    "SessionSweepWorker",
    "WorkerStats",
]
