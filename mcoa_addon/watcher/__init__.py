"""Watching of the hub API and reconciliation of addon installations.

Watch events are mapped to reconcile requests by the `EventMapper`, queued
in a de-duplicating `WorkQueue` and processed by the `AddonReconciler`.
"""

from .controller import AddonReconciler, envelope_name
from .mapper import EventMapper
from .queue import WorkQueue
from .request import Request, Result

__all__ = [
    "AddonReconciler",
    "EventMapper",
    "Request",
    "Result",
    "WorkQueue",
    "envelope_name",
]
