"""Scheduling of the periodic interrupted-job recovery check."""

from .service import RecoveryScheduler

__all__ = [
    "RecoveryScheduler",
]
