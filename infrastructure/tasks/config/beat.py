"""Celery beat schedule configuration (optional).

Pending Payme transactions expire lazily, so nothing needs a schedule by
default. To run the Billz remediation sweep periodically, add:

    "billz-redispatch-unsynced": {
        "task": "billz.redispatch_unsynced",
        "schedule": 600,
    },
"""
from __future__ import annotations

CELERY_BEAT_SCHEDULE: dict = {}
