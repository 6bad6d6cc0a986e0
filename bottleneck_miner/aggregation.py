from __future__ import annotations

import concurrent.futures
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Union

import networkx as nx
import pandas as pd

from .event_log import CaseLog
from .models import ActivityStats, DailyKPI, ProcessEvent, ProcessLink, ProcessNode
from .settings import ACTIVITY_COL, CASE_ID_COL, REPORTING_TIMEZONE, TIMESTAMP_COL

logger = logging.getLogger(__name__)

LogSource = Union[CaseLog, Iterable[ProcessEvent]]


@dataclass(frozen=True)
class ProcessViews:
    activity_stats: List[ActivityStats]
    links: List[ProcessLink]
    nodes: List[ProcessNode]
    daily_kpis: List[DailyKPI]

    def to_payload(self) -> Dict[str, Any]:
        """JSON-ready representation consumed by chart and graph renderers."""
        metadata = {
            "total_activities": len(self.nodes),
            "total_links": len(self.links),
            "total_days": len(self.daily_kpis),
            "max_link_frequency": max((link.frequency for link in self.links), default=0),
            "max_link_duration": max((link.avg_duration for link in self.links), default=0),
            "max_activity_duration": max((stat.avg_duration for stat in self.activity_stats), default=0),
        }
        return {
            "activity_stats": [stat.to_dict() for stat in self.activity_stats],
            "links": [link.to_dict() for link in self.links],
            "nodes": [node.to_dict() for node in self.nodes],
            "daily_kpis": [kpi.to_dict() for kpi in self.daily_kpis],
            "metadata": metadata,
        }


def list_activities(events: LogSource) -> List[str]:
    return CaseLog.coerce(events).activities


def compute_activity_stats(events: LogSource) -> List[ActivityStats]:
    """
    Average time spent reaching each activity from the step before it, slowest first.

    Every event after the first in its case attributes the gap since its predecessor to
    its own activity. Activities that only ever open a case still appear, with a single
    zero-length occurrence. Ties keep the order in which activities were first reached.
    """
    case_log = CaseLog.coerce(events)
    if case_log.is_empty:
        return []

    grouped = (
        case_log.transitions()
        .groupby("target", sort=False)["duration_minutes"]
        .agg(frequency="size", total_duration="sum")
    )
    totals = {row.Index: (int(row.frequency), float(row.total_duration)) for row in grouped.itertuples()}

    for activity in case_log.first_activities():
        totals.setdefault(activity, (1, 0.0))

    stats = [
        ActivityStats(
            activity=activity,
            avg_duration=total / frequency,
            transition_frequency=frequency,
            total_duration=total,
        )
        for activity, (frequency, total) in totals.items()
    ]
    return sorted(stats, key=lambda stat: stat.avg_duration, reverse=True)


def compute_process_links(events: LogSource) -> List[ProcessLink]:
    """
    Directly-follows relation with frequency and mean gap in minutes per ordered pair.
    """
    case_log = CaseLog.coerce(events)
    if case_log.is_empty:
        return []

    grouped = (
        case_log.transitions()
        .groupby(["source", "target"], sort=False)["duration_minutes"]
        .agg(frequency="size", total_duration="sum")
    )
    links = []
    for row in grouped.itertuples():
        source, target = row.Index
        frequency = int(row.frequency)
        links.append(
            ProcessLink(
                source=source,
                target=target,
                frequency=frequency,
                avg_duration=float(row.total_duration) / frequency,
            )
        )
    return links


def compute_process_nodes(events: LogSource) -> List[ProcessNode]:
    case_log = CaseLog.coerce(events)
    if case_log.is_empty:
        return []

    counts = case_log.df[ACTIVITY_COL].value_counts()
    return [
        ProcessNode(id=activity, activity=activity, occurrence_frequency=int(counts[activity]))
        for activity in case_log.activities
    ]


def compute_daily_kpis(events: LogSource, tz: str = REPORTING_TIMEZONE) -> List[DailyKPI]:
    """
    Mean case duration in hours and case count per calendar day of case completion.

    A case completes on the day of its last event, taken in `tz`. Cases with a single
    event have no duration and are left out.
    """
    case_log = CaseLog.coerce(events)
    if case_log.is_empty:
        return []

    per_case = case_log.df.groupby(CASE_ID_COL, sort=False)[TIMESTAMP_COL].agg(
        start="first", end="last", events="size"
    )
    per_case = per_case[per_case["events"] >= 2]
    if per_case.empty:
        return []

    completed = pd.DataFrame(
        {
            "date": per_case["end"].dt.tz_convert(tz).dt.date,
            "duration_hours": (per_case["end"] - per_case["start"]).dt.total_seconds() / 3600,
        }
    )
    daily = completed.groupby("date", sort=True)["duration_hours"].agg(avg_case_duration="mean", case_count="size")
    return [
        DailyKPI(date=row.Index, avg_case_duration=float(row.avg_case_duration), case_count=int(row.case_count))
        for row in daily.itertuples()
    ]


def compute_all(
    events: LogSource, max_workers: Optional[int] = None, tz: str = REPORTING_TIMEZONE
) -> ProcessViews:
    """
    Build the case log once and derive all four views from it.

    With `max_workers` above one the aggregations run concurrently; none of them
    writes to the shared case log, so the result does not depend on scheduling.
    """
    case_log = CaseLog.coerce(events)
    jobs: Dict[str, Callable[[], List[Any]]] = {
        "activity_stats": lambda: compute_activity_stats(case_log),
        "links": lambda: compute_process_links(case_log),
        "nodes": lambda: compute_process_nodes(case_log),
        "daily_kpis": lambda: compute_daily_kpis(case_log, tz=tz),
    }

    if max_workers and max_workers > 1:
        with concurrent.futures.ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = {name: executor.submit(job) for name, job in jobs.items()}
            results = {name: future.result() for name, future in futures.items()}
    else:
        results = {name: job() for name, job in jobs.items()}

    views = ProcessViews(**results)
    logger.info(
        "Computed views for %d cases: %d activities, %d links, %d days",
        len(case_log.case_ids),
        len(views.nodes),
        len(views.links),
        len(views.daily_kpis),
    )
    return views


def build_process_graph(nodes: Sequence[ProcessNode], links: Sequence[ProcessLink]) -> nx.DiGraph:
    """
    Assemble nodes and links into a directed graph for node-link renderers.
    """
    graph = nx.DiGraph()
    for node in nodes:
        graph.add_node(node.id, activity=node.activity, occurrence_frequency=node.occurrence_frequency)

    for link in links:
        missing = [endpoint for endpoint in (link.source, link.target) if endpoint not in graph]
        if missing:
            raise ValueError(f"Link {link.source!r} -> {link.target!r} references unknown activities: {missing}")
        graph.add_edge(link.source, link.target, frequency=link.frequency, avg_duration=link.avg_duration)
    return graph
