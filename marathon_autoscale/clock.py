# Functions for working with timestamps in the controller's zone

import os
from datetime import datetime, timezone
from zoneinfo import ZoneInfo


TZ = ZoneInfo(os.environ.get("AUTOSCALE_TZ", "UTC"))

def now_dt():
    return datetime.now(TZ)

def to_iso(dt):
    if dt is None:
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(TZ).isoformat()
