from __future__ import annotations

from datetime import datetime, timezone
from typing import Tuple


def now_stamps() -> Tuple[int, str]:
    """
    Current UTC time as (epoch milliseconds, ISO-8601 with a trailing Z).
    """
    now = datetime.now(tz=timezone.utc)
    return int(now.timestamp() * 1000), now.isoformat().replace("+00:00", "Z")
