from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Optional, Sequence

from .event_log import event_instant, parse_timestamp
from .models import ProcessEvent


def filter_by_case_ids(events: Iterable[ProcessEvent], case_ids: Sequence[str]) -> List[ProcessEvent]:
    wanted = set(map(str, case_ids))
    return [event for event in events if str(event.case_id) in wanted]


def filter_by_activity(events: Iterable[ProcessEvent], activities: Sequence[str]) -> List[ProcessEvent]:
    wanted = set(activities)
    return [event for event in events if event.activity in wanted]


def filter_by_time_range(
    events: Iterable[ProcessEvent], start: Optional[datetime] = None, end: Optional[datetime] = None
) -> List[ProcessEvent]:
    """Keep events inside the inclusive [start, end] window. Naive bounds are read as UTC."""
    lower = parse_timestamp(start) if start is not None else None
    upper = parse_timestamp(end) if end is not None else None
    subset = []
    for event in events:
        instant = event_instant(event)
        if lower is not None and instant < lower:
            continue
        if upper is not None and instant > upper:
            continue
        subset.append(event)
    return subset
