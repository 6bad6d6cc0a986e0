from __future__ import annotations

LOG_NAME = "bottleneck_miner"

CASE_ID_COL = "case_id"
ACTIVITY_COL = "activity"
TIMESTAMP_COL = "timestamp"
POSITION_COL = "position"

# pm4py default XES keys.
XES_CASE_KEY = "case:concept:name"
XES_ACTIVITY_KEY = "concept:name"
XES_TIMESTAMP_KEY = "time:timestamp"

# Calendar day boundaries for the daily KPI timeline.
REPORTING_TIMEZONE = "UTC"

CASE_ID_CANDIDATES = ("case:concept:name", "case_id", "case", "caseid", "case concept name")
ACTIVITY_CANDIDATES = ("concept:name", "activity", "event", "task")
TIMESTAMP_CANDIDATES = ("time:timestamp", "timestamp", "time", "datetime")
