from datetime import datetime, timedelta
from typing import Callable, List, Tuple

import pytest

from bottleneck_miner.models import ProcessEvent
from bottleneck_miner.sample_log import sample_events

T0 = datetime(2024, 1, 1, 9, 0)


def make_events(rows: List[Tuple[str, str, int]]) -> List[ProcessEvent]:
    """Build events from (case_id, activity, minutes after T0) rows."""
    return [ProcessEvent(case_id, activity, T0 + timedelta(minutes=minutes)) for case_id, activity, minutes in rows]


@pytest.fixture
def events_from_rows() -> Callable[[List[Tuple[str, str, int]]], List[ProcessEvent]]:
    return make_events


@pytest.fixture
def order_log() -> List[ProcessEvent]:
    return sample_events()
