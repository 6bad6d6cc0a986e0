from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

import pandas as pd
from lxml import etree
from pandas.errors import EmptyDataError, ParserError
from pm4py.objects.conversion.log import converter as log_converter
from pm4py.objects.log.exporter.xes import exporter as xes_exporter
from pm4py.objects.log.importer.xes import importer as xes_importer
from pm4py.objects.log.obj import EventLog
from pm4py.objects.log.util import sorting

from .models import ProcessEvent, TimestampLike
from .settings import (
    ACTIVITY_CANDIDATES,
    ACTIVITY_COL,
    CASE_ID_CANDIDATES,
    CASE_ID_COL,
    POSITION_COL,
    TIMESTAMP_CANDIDATES,
    TIMESTAMP_COL,
    XES_ACTIVITY_KEY,
    XES_CASE_KEY,
    XES_TIMESTAMP_KEY,
)

logger = logging.getLogger(__name__)

TRANSITION_COLUMNS = [CASE_ID_COL, "source", "target", "duration_minutes"]


class EventLogError(Exception):
    """Base class for errors raised while reading or aggregating an event log."""


class InvalidTimestamp(EventLogError, ValueError):
    """Raised when an event's timestamp cannot be turned into an instant."""

    def __init__(self, value: object, case_id: Optional[str] = None, activity: Optional[str] = None):
        self.value = value
        self.case_id = case_id
        self.activity = activity
        location = f" (case {case_id!r}, activity {activity!r})" if case_id is not None else ""
        super().__init__(f"Cannot parse timestamp {value!r}{location}")


class NegativeDuration(EventLogError):
    """Raised when two adjacent events of a sorted case go backwards in time."""

    def __init__(self, case_id: str, source: str, target: str, minutes: float):
        self.case_id = case_id
        self.source = source
        self.target = target
        self.minutes = minutes
        super().__init__(
            f"Negative duration of {minutes:.2f} minutes from {source!r} to {target!r} in case {case_id!r}"
        )


class LogFormatError(EventLogError):
    """Raised when an event log cannot be parsed or converted."""


def parse_timestamp(value: TimestampLike) -> pd.Timestamp:
    """
    Parse a raw timestamp into a UTC instant.

    Naive values are read as UTC, aware values are converted to UTC.
    """
    try:
        parsed = pd.Timestamp(value)
    except (ValueError, TypeError, OverflowError) as exc:
        raise InvalidTimestamp(value) from exc
    if pd.isna(parsed):
        raise InvalidTimestamp(value)
    if parsed.tzinfo is None:
        return parsed.tz_localize("UTC")
    return parsed.tz_convert("UTC")


def event_instant(event: ProcessEvent) -> pd.Timestamp:
    try:
        return parse_timestamp(event.timestamp)
    except InvalidTimestamp as exc:
        raise InvalidTimestamp(event.timestamp, case_id=event.case_id, activity=event.activity) from exc


def _group_positions(events: Sequence[ProcessEvent]) -> Dict[str, List[int]]:
    groups: Dict[str, List[int]] = {}
    for position, event in enumerate(events):
        groups.setdefault(str(event.case_id), []).append(position)
    return groups


def group_by_case(events: Iterable[ProcessEvent]) -> Dict[str, List[ProcessEvent]]:
    """Partition a flat event sequence into per-case event lists, keeping input order."""
    events = list(events)
    return {case_id: [events[p] for p in positions] for case_id, positions in _group_positions(events).items()}


def sort_case_events(events: Sequence[ProcessEvent]) -> List[ProcessEvent]:
    """Order one case's events by timestamp. Equal timestamps keep their input order."""
    instants = [event_instant(event) for event in events]
    order = sorted(range(len(events)), key=instants.__getitem__)
    return [events[i] for i in order]


@dataclass(frozen=True)
class CaseLog:
    """
    Grouped and chronologically sorted view of an event log, built once and shared read-only.

    The dataframe uses `case_id`, `activity`, `timestamp` (UTC) and `position` as canonical
    columns. Rows are ordered by case (first-seen order) and then by time; `position` is the
    event's index in the original input and breaks timestamp ties.
    """

    df: pd.DataFrame

    @classmethod
    def from_events(cls, events: Iterable[ProcessEvent]) -> "CaseLog":
        events = list(events)
        instants = [event_instant(event) for event in events]

        rows: List[Tuple[str, str, pd.Timestamp, int]] = []
        for case_id, positions in _group_positions(events).items():
            for position in sorted(positions, key=instants.__getitem__):
                rows.append((case_id, str(events[position].activity), instants[position], position))

        df = pd.DataFrame(rows, columns=[CASE_ID_COL, ACTIVITY_COL, TIMESTAMP_COL, POSITION_COL])
        df[TIMESTAMP_COL] = pd.to_datetime(df[TIMESTAMP_COL], utc=True)
        df[POSITION_COL] = df[POSITION_COL].astype("int64")
        logger.debug("Grouped %d events into %d cases", len(df), df[CASE_ID_COL].nunique())
        return cls(df=df)

    @classmethod
    def coerce(cls, source: Union["CaseLog", Iterable[ProcessEvent]]) -> "CaseLog":
        if isinstance(source, CaseLog):
            return source
        return cls.from_events(source)

    @property
    def is_empty(self) -> bool:
        return self.df.empty

    @property
    def case_ids(self) -> List[str]:
        return pd.unique(self.df[CASE_ID_COL]).tolist()

    @property
    def activities(self) -> List[str]:
        """Distinct activities in the order they first appear in the input."""
        in_input_order = self.df.sort_values(POSITION_COL, kind="mergesort")[ACTIVITY_COL]
        return pd.unique(in_input_order).tolist()

    def first_activities(self) -> List[str]:
        if self.is_empty:
            return []
        return self.df.groupby(CASE_ID_COL, sort=False)[ACTIVITY_COL].first().tolist()

    def transitions(self) -> pd.DataFrame:
        """
        One row per pair of consecutive events within a case.

        Raises `NegativeDuration` when a pair runs backwards in time.
        """
        if self.is_empty:
            return pd.DataFrame(columns=TRANSITION_COLUMNS)

        df = self.df
        previous = df.groupby(CASE_ID_COL, sort=False)[[ACTIVITY_COL, TIMESTAMP_COL]].shift(1)
        mask = previous[TIMESTAMP_COL].notna()
        walked = pd.DataFrame(
            {
                CASE_ID_COL: df.loc[mask, CASE_ID_COL],
                "source": previous.loc[mask, ACTIVITY_COL],
                "target": df.loc[mask, ACTIVITY_COL],
                "duration_minutes": (df.loc[mask, TIMESTAMP_COL] - previous.loc[mask, TIMESTAMP_COL]).dt.total_seconds()
                / 60,
            },
            columns=TRANSITION_COLUMNS,
        ).reset_index(drop=True)

        negative = walked[walked["duration_minutes"] < 0]
        if not negative.empty:
            row = negative.iloc[0]
            raise NegativeDuration(row[CASE_ID_COL], row["source"], row["target"], float(row["duration_minutes"]))

        logger.debug("Walked %d transitions", len(walked))
        return walked

    def to_pm4py_dataframe(self) -> pd.DataFrame:
        """Copy of the log with the default XES keys pm4py expects."""
        df = self.df.drop(columns=[POSITION_COL]).copy()
        df[XES_CASE_KEY] = df[CASE_ID_COL]
        df[XES_ACTIVITY_KEY] = df[ACTIVITY_COL]
        df[XES_TIMESTAMP_KEY] = df[TIMESTAMP_COL]
        return df

    def to_event_log(self) -> EventLog:
        parameters = {
            log_converter.Variants.TO_EVENT_LOG.value.Parameters.CASE_ID_KEY: XES_CASE_KEY,
            log_converter.Variants.TO_EVENT_LOG.value.Parameters.CASE_ATTRIBUTE_PREFIX: "case:",
        }
        event_log = log_converter.apply(
            self.to_pm4py_dataframe(), variant=log_converter.Variants.TO_EVENT_LOG, parameters=parameters
        )
        sorting.sort_timestamp(event_log)
        return event_log

    def to_xes_bytes(self) -> bytes:
        """Export the current log snapshot to an XES byte string."""
        xes_string = xes_exporter.serialize(self.to_event_log())
        if isinstance(xes_string, bytes):
            return xes_string
        return xes_string.encode("utf-8")


def events_from_dataframe(
    df: pd.DataFrame,
    case_id_col: str = CASE_ID_COL,
    activity_col: str = ACTIVITY_COL,
    timestamp_col: str = TIMESTAMP_COL,
) -> List[ProcessEvent]:
    """
    Turn a tabular log into events. Timestamps are passed through unparsed.
    """
    missing = {case_id_col, activity_col, timestamp_col} - set(df.columns)
    if missing:
        raise LogFormatError(f"Missing required columns: {', '.join(sorted(missing))}")

    blank = df[case_id_col].isna() | df[activity_col].isna()
    if blank.any():
        rows = ", ".join(str(index) for index in df.index[blank][:5])
        raise LogFormatError(f"Missing case id or activity in rows: {rows}")

    return [
        ProcessEvent(case_id=case_id, activity=activity, timestamp=timestamp)
        for case_id, activity, timestamp in zip(
            df[case_id_col].astype(str), df[activity_col].astype(str), df[timestamp_col]
        )
    ]


def try_auto_detect_columns(df: pd.DataFrame) -> tuple[str, str, str]:
    """
    Best-effort detection of case/activity/timestamp columns for CSV uploads.
    """
    lowered = {str(col).lower(): col for col in df.columns}

    def pick(options: Iterable[str]) -> Optional[str]:
        for option in options:
            if option in lowered:
                return lowered[option]
        return None

    case_id_col = pick(CASE_ID_CANDIDATES)
    activity_col = pick(ACTIVITY_CANDIDATES)
    timestamp_col = pick(TIMESTAMP_CANDIDATES)

    if not all([case_id_col, activity_col, timestamp_col]):
        raise LogFormatError("Could not auto-detect case/activity/timestamp columns.")

    return case_id_col, activity_col, timestamp_col


def load_events_from_csv(
    file_bytes: bytes,
    case_id_col: Optional[str] = None,
    activity_col: Optional[str] = None,
    timestamp_col: Optional[str] = None,
) -> List[ProcessEvent]:
    """
    Load a CSV file that contains an event log in tabular form.

    Columns that are not given are auto-detected from the header.
    """
    buffer = io.BytesIO(file_bytes)
    try:
        df = pd.read_csv(buffer)
    except (ParserError, EmptyDataError):
        buffer.seek(0)
        try:
            df = pd.read_csv(buffer, sep=None, engine="python")
        except (ParserError, EmptyDataError) as exc_second:
            raise LogFormatError(
                "Unable to parse CSV content. Ensure the file uses a consistent delimiter (e.g., comma or semicolon) "
                "and that embedded commas are quoted."
            ) from exc_second

    if not all([case_id_col, activity_col, timestamp_col]):
        detected = try_auto_detect_columns(df)
        case_id_col = case_id_col or detected[0]
        activity_col = activity_col or detected[1]
        timestamp_col = timestamp_col or detected[2]

    events = events_from_dataframe(df, case_id_col, activity_col, timestamp_col)
    logger.info("Loaded %d events from CSV", len(events))
    return events


def load_events_from_xes(file_bytes: bytes) -> List[ProcessEvent]:
    """
    Load an XES file through pm4py and flatten it into events.
    """
    try:
        xes_string = file_bytes.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise LogFormatError("XES content is not valid UTF-8.") from exc
    try:
        event_log = xes_importer.deserialize(xes_string)
    except etree.XMLSyntaxError as exc:
        raise LogFormatError(f"Unable to parse XES content: {exc}") from exc
    df = log_converter.apply(event_log, variant=log_converter.Variants.TO_DATA_FRAME)
    events = events_from_dataframe(df, XES_CASE_KEY, XES_ACTIVITY_KEY, XES_TIMESTAMP_KEY)
    logger.info("Loaded %d events from XES", len(events))
    return events
