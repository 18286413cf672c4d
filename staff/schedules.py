"""
Default working week for newly added technicians.

New staff start on 09:00-18:00, Monday to Saturday, with Sunday off.
Existing rows are never overwritten.
"""

import logging
from datetime import time

from .models import StaffSchedule

logger = logging.getLogger(__name__)

DEFAULT_OPEN = time(9, 0)
DEFAULT_CLOSE = time(18, 0)
DAYS_OFF = (0,)  # Sunday


def ensure_default_week(staff) -> int:
    """Create missing weekday rows for `staff`. Returns how many were created."""
    existing = set(StaffSchedule.objects.filter(staff=staff).values_list("day_of_week", flat=True))
    rows = [
        StaffSchedule(
            staff=staff,
            day_of_week=day,
            start_time=DEFAULT_OPEN,
            end_time=DEFAULT_CLOSE,
            is_available=day not in DAYS_OFF,
        )
        for day in range(7)
        if day not in existing
    ]
    if rows:
        StaffSchedule.objects.bulk_create(rows)
        logger.info("Created %d default schedule day(s) for staff #%s", len(rows), staff.pk)
    return len(rows)
