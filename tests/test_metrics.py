from __future__ import annotations

from order_assistant.services.metrics import MetricsService


def test_snapshot_aggregates_counters():
    metrics = MetricsService()
    metrics.record_resolution("ambiguous")
    metrics.record_resolution("ambiguous")
    metrics.record_resolution("no_match")
    metrics.record_slot_prompt()
    metrics.record_slot_success()
    metrics.record_slot_success()
    metrics.record_slot_success()
    metrics.record_order_committed(shortfalls=2)
    metrics.record_sessions_evicted(0)

    snapshot = metrics.snapshot()

    assert snapshot.resolution_outcomes == {"ambiguous": 2, "no_match": 1}
    assert snapshot.slot_filling_success_rate == 0.75
    assert snapshot.orders_committed == 1
    assert snapshot.stock_shortfalls == 2
    assert snapshot.sessions_evicted == 0


def test_latency_average_uses_recent_samples_only():
    metrics = MetricsService()
    metrics._max_latency_samples = 2
    for latency in (100.0, 10.0, 30.0):
        metrics.record_response_latency(latency)

    assert metrics.snapshot().avg_response_latency_ms == 20.0
