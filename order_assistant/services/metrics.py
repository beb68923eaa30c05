from __future__ import annotations

from dataclasses import dataclass, field
from threading import Lock
from typing import Dict, List


@dataclass
class MetricsSnapshot:
    messages_total: int
    resolution_outcomes: Dict[str, int]
    ambiguity_prompts: int
    slot_prompts: int
    slot_success: int
    slot_filling_success_rate: float
    orders_committed: int
    commit_failures: int
    notification_failures: int
    extraction_calls: int
    extraction_fallbacks: int
    sessions_evicted: int
    avg_response_latency_ms: float = 0.0
    stock_shortfalls: int = 0
    transitions: Dict[str, int] = field(default_factory=dict)


class MetricsService:
    def __init__(self) -> None:
        self._lock = Lock()
        self._messages_total = 0
        self._resolution_outcomes: Dict[str, int] = {}
        self._ambiguity_prompts = 0
        self._slot_prompts = 0
        self._slot_success = 0
        self._orders_committed = 0
        self._commit_failures = 0
        self._notification_failures = 0
        self._extraction_calls = 0
        self._extraction_fallbacks = 0
        self._sessions_evicted = 0
        self._stock_shortfalls = 0
        self._transitions: Dict[str, int] = {}
        self._response_latencies: List[float] = []
        self._max_latency_samples = 1000

    def record_message(self) -> None:
        with self._lock:
            self._messages_total += 1

    def record_resolution(self, outcome: str) -> None:
        """outcome: no_match / single_match / ambiguous"""
        with self._lock:
            self._resolution_outcomes[outcome] = self._resolution_outcomes.get(outcome, 0) + 1

    def record_ambiguity_prompt(self) -> None:
        with self._lock:
            self._ambiguity_prompts += 1

    def record_slot_prompt(self) -> None:
        with self._lock:
            self._slot_prompts += 1

    def record_slot_success(self) -> None:
        with self._lock:
            self._slot_success += 1

    def record_transition(self, source: str, target: str) -> None:
        key = f"{source}->{target}"
        with self._lock:
            self._transitions[key] = self._transitions.get(key, 0) + 1

    def record_order_committed(self, *, shortfalls: int = 0) -> None:
        with self._lock:
            self._orders_committed += 1
            self._stock_shortfalls += shortfalls

    def record_commit_failure(self) -> None:
        with self._lock:
            self._commit_failures += 1

    def record_notification_failure(self) -> None:
        with self._lock:
            self._notification_failures += 1

    def record_extraction(self, *, fallback: bool) -> None:
        """Record an NLU call; fallback=True when it degraded to the unknown intent."""
        with self._lock:
            self._extraction_calls += 1
            if fallback:
                self._extraction_fallbacks += 1

    def record_sessions_evicted(self, count: int) -> None:
        if count <= 0:
            return
        with self._lock:
            self._sessions_evicted += count

    def record_response_latency(self, latency_ms: float) -> None:
        """Record response latency in milliseconds."""
        with self._lock:
            self._response_latencies.append(latency_ms)
            # Keep only recent samples
            if len(self._response_latencies) > self._max_latency_samples:
                self._response_latencies = self._response_latencies[-self._max_latency_samples:]

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            slot_total = self._slot_success + self._slot_prompts
            slot_rate = (self._slot_success / slot_total) if slot_total else 0.0
            avg_latency = (
                sum(self._response_latencies) / len(self._response_latencies)
                if self._response_latencies else 0.0
            )
            return MetricsSnapshot(
                messages_total=self._messages_total,
                resolution_outcomes=dict(self._resolution_outcomes),
                ambiguity_prompts=self._ambiguity_prompts,
                slot_prompts=self._slot_prompts,
                slot_success=self._slot_success,
                slot_filling_success_rate=slot_rate,
                orders_committed=self._orders_committed,
                commit_failures=self._commit_failures,
                notification_failures=self._notification_failures,
                extraction_calls=self._extraction_calls,
                extraction_fallbacks=self._extraction_fallbacks,
                sessions_evicted=self._sessions_evicted,
                avg_response_latency_ms=avg_latency,
                stock_shortfalls=self._stock_shortfalls,
                transitions=dict(self._transitions),
            )


_metrics_service = MetricsService()


def get_metrics_service() -> MetricsService:
    return _metrics_service
