"""
Aggregation tests for the four derived views.

Covers the documented scenarios, the cross-view invariants (every transition
counted once per view, links only between known nodes), purity, and the
figures of the order-to-cash sample log.
"""

from datetime import date

import pm4py
import pytest

from bottleneck_miner.aggregation import (
    ProcessViews,
    build_process_graph,
    compute_activity_stats,
    compute_all,
    compute_daily_kpis,
    compute_process_links,
    compute_process_nodes,
    list_activities,
)
from bottleneck_miner.event_log import CaseLog, InvalidTimestamp
from bottleneck_miner.models import ProcessEvent, ProcessLink, ProcessNode


def stats_by_activity(stats):
    return {stat.activity: stat for stat in stats}


def links_by_pair(links):
    return {(link.source, link.target): link for link in links}


class TestActivityStats:

    def test_single_transition(self, events_from_rows):
        events = events_from_rows([("X", "A", 0), ("X", "B", 30)])
        stats = stats_by_activity(compute_activity_stats(events))

        assert stats["A"].avg_duration == 0
        assert stats["A"].transition_frequency == 1
        assert stats["A"].total_duration == 0
        assert stats["B"].avg_duration == 30
        assert stats["B"].transition_frequency == 1

    def test_sorted_slowest_first(self, events_from_rows):
        events = events_from_rows([("X", "A", 0), ("X", "B", 5), ("X", "C", 65), ("X", "D", 85)])
        assert [stat.activity for stat in compute_activity_stats(events)] == ["C", "D", "B", "A"]

    def test_ties_keep_first_reached_order(self, events_from_rows):
        events = events_from_rows([("X", "S", 0), ("X", "Q", 10), ("Y", "S", 0), ("Y", "P", 10)])
        assert [stat.activity for stat in compute_activity_stats(events)] == ["Q", "P", "S"]

    def test_start_activity_reached_later_is_not_double_counted(self, events_from_rows):
        events = events_from_rows([("X", "A", 0), ("X", "B", 10), ("Y", "B", 0), ("Y", "A", 40)])
        stats = stats_by_activity(compute_activity_stats(events))

        assert stats["A"].transition_frequency == 1
        assert stats["A"].avg_duration == 40
        assert stats["B"].transition_frequency == 1
        assert stats["B"].avg_duration == 10

    def test_start_activity_of_many_cases_is_entered_once(self, events_from_rows):
        events = events_from_rows([("X", "A", 0), ("Y", "A", 5), ("Z", "A", 10), ("Z", "B", 20)])
        stats = stats_by_activity(compute_activity_stats(events))

        assert stats["A"].transition_frequency == 1
        assert stats["A"].avg_duration == 0
        assert stats["B"].transition_frequency == 1

    def test_average_over_arrivals(self, events_from_rows):
        events = events_from_rows([("X", "A", 0), ("X", "B", 10), ("Y", "A", 0), ("Y", "B", 20)])
        stats = stats_by_activity(compute_activity_stats(events))
        assert stats["B"].total_duration == 30
        assert stats["B"].avg_duration == 15


class TestProcessLinks:

    def test_single_transition(self, events_from_rows):
        events = events_from_rows([("X", "A", 0), ("X", "B", 30)])
        assert compute_process_links(events) == [ProcessLink("A", "B", frequency=1, avg_duration=30.0)]

    def test_same_pair_across_cases(self, events_from_rows):
        events = events_from_rows([("X", "A", 0), ("X", "B", 10), ("Y", "A", 100), ("Y", "B", 120)])
        assert compute_process_links(events) == [ProcessLink("A", "B", frequency=2, avg_duration=15.0)]

    def test_self_loops_are_links(self, events_from_rows):
        events = events_from_rows([("X", "A", 0), ("X", "A", 6), ("X", "A", 10)])
        assert compute_process_links(events) == [ProcessLink("A", "A", frequency=2, avg_duration=5.0)]

    def test_events_are_ordered_before_pairing(self, events_from_rows):
        events = events_from_rows([("X", "C", 20), ("X", "A", 0), ("X", "B", 5)])
        pairs = links_by_pair(compute_process_links(events))
        assert set(pairs) == {("A", "B"), ("B", "C")}
        assert pairs[("B", "C")].avg_duration == 15

    def test_equal_timestamps_pair_in_input_order(self, events_from_rows):
        events = events_from_rows([("X", "B", 0), ("X", "A", 0)])
        assert compute_process_links(events) == [ProcessLink("B", "A", frequency=1, avg_duration=0.0)]

    def test_links_never_cross_cases(self, events_from_rows):
        events = events_from_rows([("X", "A", 0), ("Y", "B", 10)])
        assert compute_process_links(events) == []


class TestProcessNodes:

    def test_counts_every_occurrence(self, events_from_rows):
        events = events_from_rows([("X", "A", 0), ("X", "B", 10), ("X", "A", 20), ("Y", "A", 0)])
        assert compute_process_nodes(events) == [
            ProcessNode(id="A", activity="A", occurrence_frequency=3),
            ProcessNode(id="B", activity="B", occurrence_frequency=1),
        ]

    def test_differs_from_transition_frequency_for_start_activities(self, events_from_rows):
        events = events_from_rows([("X", "A", 0), ("X", "B", 10), ("Y", "A", 0), ("Y", "B", 5)])
        nodes = {node.activity: node for node in compute_process_nodes(events)}
        stats = stats_by_activity(compute_activity_stats(events))

        assert nodes["A"].occurrence_frequency == 2
        assert stats["A"].transition_frequency == 1

    def test_invalid_timestamp_is_still_reported(self):
        with pytest.raises(InvalidTimestamp):
            compute_process_nodes([ProcessEvent("X", "A", "not a time")])


class TestDailyKpis:

    def test_case_attributed_to_day_of_last_event(self):
        events = [
            ProcessEvent("X", "A", "2024-01-01T08:00:00"),
            ProcessEvent("X", "B", "2024-01-02T08:00:00"),
        ]
        kpis = compute_daily_kpis(events)
        assert len(kpis) == 1
        assert kpis[0].date == date(2024, 1, 2)
        assert kpis[0].avg_case_duration == 24
        assert kpis[0].case_count == 1

    def test_single_event_cases_are_excluded(self, events_from_rows):
        assert compute_daily_kpis(events_from_rows([("X", "A", 0), ("Y", "A", 10)])) == []

    def test_days_in_ascending_order(self):
        events = [
            ProcessEvent("late", "A", "2024-01-05T08:00:00"),
            ProcessEvent("late", "B", "2024-01-05T10:00:00"),
            ProcessEvent("early", "A", "2024-01-01T08:00:00"),
            ProcessEvent("early", "B", "2024-01-01T09:00:00"),
        ]
        assert [kpi.date for kpi in compute_daily_kpis(events)] == [date(2024, 1, 1), date(2024, 1, 5)]

    def test_reporting_timezone_moves_the_day(self):
        events = [
            ProcessEvent("X", "A", "2024-01-01T20:00:00-05:00"),
            ProcessEvent("X", "B", "2024-01-01T23:30:00-05:00"),
        ]
        assert compute_daily_kpis(events)[0].date == date(2024, 1, 2)
        assert compute_daily_kpis(events, tz="America/New_York")[0].date == date(2024, 1, 1)


class TestEmptyLog:

    def test_all_views_are_empty(self):
        assert compute_activity_stats([]) == []
        assert compute_process_links([]) == []
        assert compute_process_nodes([]) == []
        assert compute_daily_kpis([]) == []
        assert compute_all([]) == ProcessViews([], [], [], [])


class TestSingleEventCase:

    def test_contributes_only_a_node_and_a_start_entry(self, events_from_rows):
        events = events_from_rows([("solo", "A", 0)])

        assert compute_process_links(events) == []
        assert compute_daily_kpis(events) == []
        assert compute_process_nodes(events) == [ProcessNode("A", "A", 1)]
        [stat] = compute_activity_stats(events)
        assert (stat.activity, stat.avg_duration, stat.transition_frequency) == ("A", 0, 1)


class TestSampleLog:

    @pytest.fixture
    def views(self, order_log):
        return compute_all(order_log)

    def test_node_frequencies(self, views):
        nodes = {node.activity: node.occurrence_frequency for node in views.nodes}
        assert nodes == {
            "Order Created": 8,
            "Payment Received": 8,
            "Order Shipped": 7,
            "Order Delivered": 7,
            "Payment Issue": 1,
            "Order Cancelled": 1,
            "Return Requested": 1,
            "Return Processed": 1,
        }

    def test_payment_link(self, views):
        link = links_by_pair(views.links)[("Order Created", "Payment Received")]
        assert link.frequency == 7
        assert link.avg_duration == pytest.approx(800 / 7)

    def test_rework_link(self, views):
        pairs = links_by_pair(views.links)
        assert pairs[("Payment Issue", "Payment Received")].avg_duration == 1110
        assert pairs[("Payment Received", "Payment Issue")].avg_duration == 30

    def test_order_created_only_starts_cases(self, views):
        stats = stats_by_activity(views.activity_stats)
        assert stats["Order Created"].transition_frequency == 1
        assert stats["Order Created"].avg_duration == 0
        assert views.activity_stats[-1].activity == "Order Created"

    def test_daily_kpis(self, views):
        assert [(kpi.date, kpi.case_count) for kpi in views.daily_kpis] == [
            (date(2024, 1, 3), 3),
            (date(2024, 1, 4), 1),
            (date(2024, 1, 5), 1),
            (date(2024, 1, 6), 1),
            (date(2024, 1, 7), 1),
            (date(2024, 1, 8), 1),
        ]
        assert views.daily_kpis[0].avg_case_duration == pytest.approx(101 / 3)
        assert views.daily_kpis[-1].avg_case_duration == 76

    def test_activities_in_first_seen_order(self, order_log):
        assert list_activities(order_log)[:4] == [
            "Order Created",
            "Payment Received",
            "Order Shipped",
            "Order Delivered",
        ]


class TestInvariants:

    def test_each_transition_counted_once(self, order_log):
        case_log = CaseLog.from_events(order_log)
        starters = set(case_log.first_activities()) - set(case_log.transitions()["target"])
        non_first = [s for s in compute_activity_stats(case_log) if s.activity not in starters]
        transitions = len(order_log) - len(case_log.case_ids)

        assert sum(link.frequency for link in compute_process_links(case_log)) == transitions
        assert sum(stat.transition_frequency for stat in non_first) == transitions

    def test_node_frequency_matches_raw_count(self, order_log):
        for node in compute_process_nodes(order_log):
            assert node.occurrence_frequency == sum(1 for e in order_log if e.activity == node.activity)

    def test_links_only_between_known_nodes(self, order_log):
        activities = {node.activity for node in compute_process_nodes(order_log)}
        for link in compute_process_links(order_log):
            assert link.source in activities
            assert link.target in activities

    def test_recomputation_is_identical(self, order_log):
        assert compute_all(order_log) == compute_all(list(order_log))

    def test_parallel_matches_sequential(self, order_log):
        assert compute_all(order_log, max_workers=4) == compute_all(order_log)

    def test_input_order_does_not_change_links(self, order_log):
        shuffled = list(reversed(order_log))
        assert links_by_pair(compute_process_links(shuffled)) == links_by_pair(compute_process_links(order_log))

    def test_links_agree_with_pm4py_dfg(self, order_log):
        df = CaseLog.from_events(order_log).to_pm4py_dataframe()
        dfg, _, _ = pm4py.discover_dfg(
            df, activity_key="concept:name", timestamp_key="time:timestamp", case_id_key="case:concept:name"
        )
        assert {pair: link.frequency for pair, link in links_by_pair(compute_process_links(order_log)).items()} == dict(
            dfg
        )


class TestPayloadAndGraph:

    def test_payload_is_json_ready(self, order_log):
        payload = compute_all(order_log).to_payload()

        assert payload["daily_kpis"][0] == {
            "date": "2024-01-03",
            "avg_case_duration": pytest.approx(101 / 3),
            "case_count": 3,
        }
        assert payload["metadata"]["total_activities"] == 8
        assert payload["metadata"]["max_link_frequency"] == 7
        assert set(payload["nodes"][0]) == {"id", "activity", "occurrence_frequency"}

    def test_graph_mirrors_views(self, order_log):
        views = compute_all(order_log)
        graph = build_process_graph(views.nodes, views.links)

        assert graph.number_of_nodes() == len(views.nodes)
        assert graph.number_of_edges() == len(views.links)
        assert graph.nodes["Order Created"]["occurrence_frequency"] == 8
        assert graph.edges["Order Created", "Order Cancelled"]["avg_duration"] == 60

    def test_graph_rejects_dangling_links(self):
        with pytest.raises(ValueError, match="unknown activities"):
            build_process_graph([ProcessNode("A", "A", 1)], [ProcessLink("A", "B", 1, 5.0)])
