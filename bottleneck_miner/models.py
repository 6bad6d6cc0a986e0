from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date, datetime
from typing import Any, Dict, Union

import pandas as pd

TimestampLike = Union[str, datetime, pd.Timestamp]


@dataclass(frozen=True)
class ProcessEvent:
    """A single log entry: one activity of one case at one instant."""

    case_id: str
    activity: str
    timestamp: TimestampLike


@dataclass(frozen=True)
class ActivityStats:
    """
    Duration statistics for the transitions that land on an activity.

    `transition_frequency` counts arrivals at the activity, not occurrences.
    An activity that only ever starts cases is reported with a frequency of 1
    and zero duration.
    """

    activity: str
    avg_duration: float  # minutes
    transition_frequency: int
    total_duration: float  # minutes

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ProcessLink:
    source: str
    target: str
    frequency: int
    avg_duration: float  # minutes

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ProcessNode:
    id: str
    activity: str
    occurrence_frequency: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class DailyKPI:
    date: date
    avg_case_duration: float  # hours
    case_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "avg_case_duration": self.avg_case_duration,
            "case_count": self.case_count,
        }
