"""
Performance metrics aggregation for cloud-storage operations.

Counters and duration samples are kept per (provider, operation, hour) in
the shared store; summaries, health scores and alerts are derived from the
hourly buckets covering the requested window.
"""
import json
import logging
import math
from datetime import timedelta
from typing import Any

from .config import MetricsConfig
from .store import BaseStore, make_key
from .types import Clock, ErrorKind, MetricEvent, MetricsSink, utc_now

logger = logging.getLogger(__name__)

NAMESPACE = "metrics"
HOUR_FORMAT = "%Y-%m-%d-%H"

SUCCESS_RATE_TARGET = 95.0
RESPONSE_TIME_TARGET_MS = 2000.0
MAX_RESPONSE_TIME_DEDUCTION = 20.0
ERROR_RATE_TARGET = 5.0

ALERT_SUCCESS_RATE = 90.0
ALERT_ERROR_RATE = 10.0


def percentile_95(samples: list[float]) -> float | None:
    """95th percentile by nearest rank; [100, 200, ..., 1000] gives 900."""
    if not samples:
        return None
    ordered = sorted(samples)
    index = max(math.floor(0.95 * len(ordered)) - 1, 0)
    return ordered[index]


def calculate_health_score(
    success_rate: float,
    avg_response_time_ms: float,
    error_rate: float = 0.0
) -> tuple[float, list[str]]:
    """Score a provider from 0 to 100.

    Returns the score and the human readable factors that reduced it.
    """
    score = 100.0
    factors = []

    if success_rate < SUCCESS_RATE_TARGET:
        deduction = (SUCCESS_RATE_TARGET - success_rate) * 2
        score -= deduction
        factors.append(f"Success rate: {success_rate:g}% (-{deduction:g} points)")

    if avg_response_time_ms > RESPONSE_TIME_TARGET_MS:
        deduction = min(MAX_RESPONSE_TIME_DEDUCTION, (avg_response_time_ms - RESPONSE_TIME_TARGET_MS) / 100)
        score -= deduction
        factors.append(f"Avg response time: {avg_response_time_ms:g}ms (-{deduction:g} points)")

    if error_rate > ERROR_RATE_TARGET:
        deduction = (error_rate - ERROR_RATE_TARGET) * 3
        score -= deduction
        factors.append(f"Error rate: {error_rate:g}% (-{deduction:g} points)")

    return min(100.0, max(0.0, score)), factors


def health_grade(score: float) -> str:
    if score >= 95:
        return "A"
    if score >= 85:
        return "B"
    if score >= 75:
        return "C"
    if score >= 65:
        return "D"
    return "F"


class LoggingMetricsSink:
    """MetricsSink writing one JSON line per event to a dedicated logger."""

    def __init__(self, logger_name: str = "connection_recovery.metrics"):
        self.logger = logging.getLogger(logger_name)

    def record(self, event: MetricEvent) -> None:
        self.logger.info(json.dumps(event.to_dict(), default=str))


class MetricsAggregator:
    """Tracks operation counts, durations and derived health per provider."""

    def __init__(
        self,
        store: BaseStore,
        config: MetricsConfig | None = None,
        sink: MetricsSink | None = None,
        clock: Clock = utc_now
    ):
        self.store = store
        self.config = config or MetricsConfig()
        self.sink = sink
        self.clock = clock

    # Recording

    def record_operation(
        self,
        provider: str,
        operation: str,
        duration_ms: float,
        success: bool,
        principal_id: str | int | None = None,
        error_kind: ErrorKind | None = None,
        metadata: dict[str, Any] | None = None
    ) -> None:
        """Record the outcome and duration of one provider operation."""
        hour = self._hour()

        self._increment(provider, operation, "total", hour)
        if success:
            self._increment(provider, operation, "successful", hour)
        else:
            self._increment(provider, operation, "failed", hour)
            if error_kind is not None:
                self._increment(provider, operation, "errors", hour, error_kind.value)

        self._append_sample(provider, operation, "durations", hour, duration_ms)
        self._remember_operation(provider, operation)

        if duration_ms > self.config.slow_operation_ms:
            logger.warning(
                f"Slow {provider} {operation}: {duration_ms:.0f}ms "
                f"(threshold {self.config.slow_operation_ms:.0f}ms)"
            )

        if self.sink is not None:
            self.sink.record(MetricEvent(
                timestamp=self.clock(),
                provider=provider,
                principal_id=principal_id,
                operation=operation,
                error_kind=error_kind,
                duration_ms=duration_ms,
                outcome="success" if success else "failure",
                details=dict(metadata or {}),
            ))

    def record_file_operation(
        self,
        provider: str,
        operation: str,
        file_size_bytes: int,
        duration_ms: float,
        success: bool,
        principal_id: str | int | None = None,
        error_kind: ErrorKind | None = None
    ) -> None:
        """Record a transfer; successful ones also feed throughput and size samples."""
        self.record_operation(
            provider,
            operation,
            duration_ms,
            success,
            principal_id=principal_id,
            error_kind=error_kind,
            metadata={"file_size_bytes": file_size_bytes},
        )
        if success and duration_ms > 0:
            hour = self._hour()
            throughput_bps = file_size_bytes / (duration_ms / 1000)
            self._append_sample(provider, operation, "throughput", hour, throughput_bps)
            self._append_sample(provider, operation, "sizes", hour, file_size_bytes)

    def record_batch_run(self, summary: dict[str, Any]) -> None:
        """Fold a finished batch refresh run into the batch counters."""
        hour = self._hour()
        ttl = self.config.metrics_ttl_seconds
        for name in ("processed", "successful", "failed"):
            self.store.increment(
                make_key(NAMESPACE, "batch", name, hour), int(summary.get(name, 0)), ttl
            )
        self.store.increment(make_key(NAMESPACE, "batch", "runs", hour), 1, ttl)
        if summary.get("circuit_broken"):
            self.store.increment(make_key(NAMESPACE, "batch", "circuit_broken", hour), 1, ttl)
        self.store.put(make_key(NAMESPACE, "batch", "last_run"), summary, ttl)

        if self.sink is not None:
            self.sink.record(MetricEvent(
                timestamp=self.clock(),
                provider="all",
                operation="batch_refresh",
                outcome="circuit_broken" if summary.get("circuit_broken") else "completed",
                duration_ms=summary.get("processing_time_ms"),
                details={
                    "batch_id": summary.get("batch_id"),
                    "processed": summary.get("processed", 0),
                    "failed": summary.get("failed", 0),
                },
            ))

    # Queries

    def get_operation_metrics(self, provider: str, operation: str, hours: int = 24) -> dict[str, Any]:
        hours_in_window = self._hours(hours)
        total = sum(self._counter(provider, operation, "total", hour) for hour in hours_in_window)
        successful = sum(self._counter(provider, operation, "successful", hour) for hour in hours_in_window)
        failed = sum(self._counter(provider, operation, "failed", hour) for hour in hours_in_window)

        metrics = {
            "operation": operation,
            "total_operations": total,
            "successful_operations": successful,
            "failed_operations": failed,
            "success_rate": (successful / total * 100) if total else 0.0,
            "avg_throughput_bps": self._average(self._samples(provider, operation, "throughput", hours_in_window)),
            "error_types": self._error_types(provider, operation, hours_in_window),
        }
        metrics.update(self.get_response_time_statistics(provider, operation, hours))
        return metrics

    def get_response_time_statistics(self, provider: str, operation: str, hours: int = 24) -> dict[str, Any]:
        durations = self._samples(provider, operation, "durations", self._hours(hours))
        if not durations:
            return {
                "avg_response_time_ms": 0.0,
                "min_response_time_ms": None,
                "max_response_time_ms": None,
                "p95_response_time_ms": None,
            }
        return {
            "avg_response_time_ms": round(sum(durations) / len(durations), 2),
            "min_response_time_ms": min(durations),
            "max_response_time_ms": max(durations),
            "p95_response_time_ms": percentile_95(durations),
        }

    def get_performance_summary(self, provider: str, hours: int = 24) -> dict[str, Any]:
        end = self.clock()
        summary = {
            "provider": provider,
            "time_range": {
                "start": (end - timedelta(hours=hours)).isoformat(),
                "end": end.isoformat(),
                "hours": hours,
            },
            "operations": {},
            "overall": {
                "total_operations": 0,
                "successful_operations": 0,
                "failed_operations": 0,
                "classified_errors": 0,
                "success_rate": 0.0,
                "error_rate": 0.0,
                "avg_response_time_ms": 0.0,
                "error_distribution": {},
            },
        }
        overall = summary["overall"]
        all_durations: list[float] = []

        for operation in self._operations(provider):
            metrics = self.get_operation_metrics(provider, operation, hours)
            summary["operations"][operation] = metrics
            overall["total_operations"] += metrics["total_operations"]
            overall["successful_operations"] += metrics["successful_operations"]
            overall["failed_operations"] += metrics["failed_operations"]
            for kind, count in metrics["error_types"].items():
                overall["error_distribution"][kind] = overall["error_distribution"].get(kind, 0) + count
            all_durations.extend(self._samples(provider, operation, "durations", self._hours(hours)))

        overall["classified_errors"] = sum(overall["error_distribution"].values())
        if overall["total_operations"]:
            overall["success_rate"] = overall["successful_operations"] / overall["total_operations"] * 100
            overall["error_rate"] = overall["classified_errors"] / overall["total_operations"] * 100
        overall["avg_response_time_ms"] = self._average(all_durations)
        return summary

    def get_provider_health_score(self, provider: str, hours: int = 24) -> dict[str, Any]:
        summary = self.get_performance_summary(provider, hours)
        overall = summary["overall"]
        if overall["total_operations"]:
            score, factors = calculate_health_score(
                overall["success_rate"], overall["avg_response_time_ms"], overall["error_rate"]
            )
        else:
            score, factors = 100.0, ["No operations recorded"]

        return {
            "provider": provider,
            "health_score": round(score, 1),
            "grade": health_grade(score),
            "factors": factors,
            "metrics_summary": summary,
            "calculated_at": self.clock().isoformat(),
        }

    def get_performance_alerts(self, provider: str, hours: int = 24) -> list[dict[str, Any]]:
        overall = self.get_performance_summary(provider, hours)["overall"]
        alerts = []
        if not overall["total_operations"]:
            return alerts

        if overall["success_rate"] < ALERT_SUCCESS_RATE:
            alerts.append({
                "type": "low_success_rate",
                "severity": "high",
                "message": f"Success rate is {overall['success_rate']:.1f}% (below {ALERT_SUCCESS_RATE:g}% threshold)",
                "value": overall["success_rate"],
                "threshold": ALERT_SUCCESS_RATE,
            })

        if overall["avg_response_time_ms"] > self.config.slow_operation_ms:
            alerts.append({
                "type": "high_response_time",
                "severity": "medium",
                "message": (
                    f"Average response time is {overall['avg_response_time_ms']:.0f}ms "
                    f"(above {self.config.slow_operation_ms:g}ms threshold)"
                ),
                "value": overall["avg_response_time_ms"],
                "threshold": self.config.slow_operation_ms,
            })

        if overall["error_rate"] > ALERT_ERROR_RATE:
            alerts.append({
                "type": "high_error_rate",
                "severity": "high",
                "message": f"Error rate is {overall['error_rate']:.1f}% (above {ALERT_ERROR_RATE:g}% threshold)",
                "value": overall["error_rate"],
                "threshold": ALERT_ERROR_RATE,
            })

        return alerts

    def get_batch_metrics(self, hours: int = 24) -> dict[str, Any]:
        totals = {}
        for name in ("runs", "processed", "successful", "failed", "circuit_broken"):
            totals[name] = sum(
                int(self.store.get(make_key(NAMESPACE, "batch", name, hour), 0))
                for hour in self._hours(hours)
            )
        totals["success_rate"] = (
            totals["successful"] / totals["processed"] * 100 if totals["processed"] else 0.0
        )
        totals["last_run"] = self.store.get(make_key(NAMESPACE, "batch", "last_run"))
        return totals

    # Store helpers

    def _hour(self) -> str:
        return self.clock().strftime(HOUR_FORMAT)

    def _hours(self, hours: int) -> list[str]:
        """Hour buckets from ``hours`` ago through the current hour."""
        now = self.clock()
        return [(now - timedelta(hours=offset)).strftime(HOUR_FORMAT) for offset in range(hours, -1, -1)]

    def _key(self, provider: str, operation: str, metric: str, hour: str, *extra: str) -> str:
        return make_key(NAMESPACE, provider, operation, metric, *extra, hour)

    def _increment(self, provider: str, operation: str, metric: str, hour: str, *extra: str) -> None:
        self.store.increment(
            self._key(provider, operation, metric, hour, *extra), 1, self.config.metrics_ttl_seconds
        )

    def _counter(self, provider: str, operation: str, metric: str, hour: str) -> int:
        return int(self.store.get(self._key(provider, operation, metric, hour), 0))

    def _append_sample(self, provider: str, operation: str, metric: str, hour: str, value: float) -> None:
        key = self._key(provider, operation, metric, hour)
        samples = self.store.get(key, [])
        samples.append(value)
        if len(samples) > self.config.max_duration_samples:
            samples = samples[-self.config.max_duration_samples:]
        self.store.put(key, samples, self.config.metrics_ttl_seconds)

    def _samples(self, provider: str, operation: str, metric: str, hours: list[str]) -> list[float]:
        samples: list[float] = []
        for hour in hours:
            samples.extend(self.store.get(self._key(provider, operation, metric, hour), []))
        return samples

    def _error_types(self, provider: str, operation: str, hours: list[str]) -> dict[str, int]:
        counts: dict[str, int] = {}
        for kind in ErrorKind:
            total = sum(
                int(self.store.get(self._key(provider, operation, "errors", hour, kind.value), 0))
                for hour in hours
            )
            if total:
                counts[kind.value] = total
        return counts

    def _remember_operation(self, provider: str, operation: str) -> None:
        if operation in self.config.tracked_operations:
            return
        key = make_key(NAMESPACE, provider, "operations")
        seen = self.store.get(key, [])
        if operation not in seen:
            seen.append(operation)
            self.store.put(key, seen, self.config.metrics_ttl_seconds)

    def _operations(self, provider: str) -> list[str]:
        extra = self.store.get(make_key(NAMESPACE, provider, "operations"), [])
        return list(self.config.tracked_operations) + [op for op in extra if op not in self.config.tracked_operations]

    @staticmethod
    def _average(values: list[float]) -> float:
        return round(sum(values) / len(values), 2) if values else 0.0
