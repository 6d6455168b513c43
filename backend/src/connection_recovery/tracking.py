"""
Error tracking and alerting for cloud-storage operations.
"""
import logging
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Any

from .config import AlertConfig
from .store import BaseStore, make_key
from .types import Clock, ErrorKind, MetricEvent, MetricsSink, Notifier, utc_now

logger = logging.getLogger(__name__)

NAMESPACE = "cloud_storage_errors"
HOUR_FORMAT = "%Y-%m-%d-%H"

CRITICAL_ERROR_KINDS = frozenset({
    ErrorKind.TOKEN_EXPIRED,
    ErrorKind.STORAGE_QUOTA_EXCEEDED,
    ErrorKind.INSUFFICIENT_PERMISSIONS,
})

TRACKED_OPERATIONS = ("upload", "download", "delete", "list", "auth")


class AlertType:
    CRITICAL_ERROR = "critical_error"
    HIGH_ERROR_RATE = "high_error_rate"
    CONSECUTIVE_FAILURES = "consecutive_failures"
    ESCALATION = "escalation"

    ALL = (CRITICAL_ERROR, HIGH_ERROR_RATE, CONSECUTIVE_FAILURES, ESCALATION)


@dataclass
class ErrorRecord:
    """One tracked provider failure. Records are never modified."""
    provider: str
    principal_id: str | int
    error_kind: ErrorKind
    operation: str
    message: str
    timestamp: datetime
    id: str = field(default_factory=lambda: f"error_{uuid.uuid4().hex}")
    context: dict[str, Any] = field(default_factory=dict)
    exception_class: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["error_kind"] = self.error_kind.value
        data["timestamp"] = self.timestamp.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ErrorRecord":
        return cls(
            id=data["id"],
            provider=data["provider"],
            principal_id=data["principal_id"],
            error_kind=ErrorKind.parse(data["error_kind"]),
            operation=data["operation"],
            message=data["message"],
            timestamp=datetime.fromisoformat(data["timestamp"]),
            context=data.get("context") or {},
            exception_class=data.get("exception_class"),
        )


class ErrorTracker:
    """Keeps hourly error counters, failure streaks and throttled alerts.

    Every tracked error is stored for analysis, counted by kind and by
    operation, extends the operation's consecutive-failure streak and is
    then checked against the alert thresholds. Each alert type is sent at
    most once per throttle window for a (provider, principal) pair.
    """

    def __init__(
        self,
        store: BaseStore,
        config: AlertConfig | None = None,
        notifier: Notifier | None = None,
        sink: MetricsSink | None = None,
        clock: Clock = utc_now
    ):
        self.store = store
        self.config = config or AlertConfig()
        self.notifier = notifier
        self.sink = sink
        self.clock = clock

    def track_error(
        self,
        provider: str,
        principal_id: str | int,
        error_kind: ErrorKind,
        operation: str,
        message: str,
        exception: BaseException | None = None,
        context: dict[str, Any] | None = None
    ) -> ErrorRecord:
        """Record a failure and fire any alerts it triggers."""
        now = self.clock()
        hour = now.strftime(HOUR_FORMAT)
        record = ErrorRecord(
            provider=provider,
            principal_id=principal_id,
            error_kind=error_kind,
            operation=operation,
            message=message,
            timestamp=now,
            context=dict(context or {}),
            exception_class=type(exception).__name__ if exception is not None else None,
        )

        logger.error(
            f"Cloud storage error tracked: {error_kind.value} during {operation} "
            f"for principal {principal_id} on {provider}: {message}"
        )

        self._store_record(record, hour)
        self._update_counters(record, hour)
        consecutive = self.store.increment(
            self._consecutive_key(provider, principal_id, operation), 1, self.config.error_ttl_seconds
        )
        self._check_alert_conditions(record, consecutive)

        if self.sink is not None:
            self.sink.record(MetricEvent(
                timestamp=now,
                provider=provider,
                principal_id=principal_id,
                operation=operation,
                error_kind=error_kind,
                outcome="failure",
                details={"error_id": record.id, "consecutive_failures": consecutive},
            ))
        return record

    def track_success(self, provider: str, principal_id: str | int, operation: str) -> None:
        """End the operation's failure streak."""
        self.store.put(
            self._consecutive_key(provider, principal_id, operation), 0, self.config.error_ttl_seconds
        )
        logger.debug(f"Tracked successful {operation} for principal {principal_id} on {provider}")

        if self.sink is not None:
            self.sink.record(MetricEvent(
                timestamp=self.clock(),
                provider=provider,
                principal_id=principal_id,
                operation=operation,
                outcome="success",
            ))

    def get_consecutive_failure_count(self, provider: str, principal_id: str | int, operation: str) -> int:
        return int(self.store.get(self._consecutive_key(provider, principal_id, operation), 0))

    def get_error_count(
        self,
        provider: str,
        principal_id: str | int,
        error_kind: ErrorKind | None = None,
        hours: int = 24
    ) -> int:
        """Errors in the hour buckets from ``hours`` ago through now."""
        dimension = ("type", error_kind.value) if error_kind is not None else ("total",)
        return sum(
            int(self.store.get(make_key(NAMESPACE, "count", provider, principal_id, *dimension, hour), 0))
            for hour in self._hours(hours)
        )

    def get_operation_error_count(self, provider: str, principal_id: str | int, operation: str, hours: int = 24) -> int:
        return sum(
            int(self.store.get(make_key(NAMESPACE, "count", provider, principal_id, "operation", operation, hour), 0))
            for hour in self._hours(hours)
        )

    def get_error_statistics(self, provider: str, principal_id: str | int, hours: int = 24) -> dict[str, Any]:
        end = self.clock()
        statistics = {
            "provider": provider,
            "principal_id": principal_id,
            "time_range": {
                "start": (end - timedelta(hours=hours)).isoformat(),
                "end": end.isoformat(),
                "hours": hours,
            },
            "total_errors": 0,
            "error_rate_per_hour": 0.0,
            "error_types": {},
            "operations": {},
            "consecutive_failures": {},
            "recent_errors": [],
        }

        for kind in ErrorKind:
            count = self.get_error_count(provider, principal_id, kind, hours)
            if count:
                statistics["error_types"][kind.value] = count
                statistics["total_errors"] += count

        if hours > 0:
            statistics["error_rate_per_hour"] = round(statistics["total_errors"] / hours, 2)

        for operation in TRACKED_OPERATIONS:
            count = self.get_operation_error_count(provider, principal_id, operation, hours)
            if count:
                statistics["operations"][operation] = count
            streak = self.get_consecutive_failure_count(provider, principal_id, operation)
            if streak:
                statistics["consecutive_failures"][operation] = streak

        statistics["recent_errors"] = [
            record.to_dict() for record in self.get_recent_errors(provider, principal_id, 10)
        ]
        return statistics

    def get_active_alerts(self, provider: str, principal_id: str | int) -> list[dict[str, Any]]:
        """Conditions currently over threshold, regardless of throttling."""
        now = self.clock().isoformat()
        alerts = []

        hourly = self.get_error_count(provider, principal_id, hours=1)
        if hourly >= self.config.error_rate_threshold:
            alerts.append({
                "type": AlertType.HIGH_ERROR_RATE,
                "severity": "medium",
                "message": f"High error rate: {hourly} errors in the last hour",
                "threshold": self.config.error_rate_threshold,
                "current_value": hourly,
                "created_at": now,
            })

        for operation in TRACKED_OPERATIONS:
            streak = self.get_consecutive_failure_count(provider, principal_id, operation)
            if streak >= self.config.consecutive_failure_threshold:
                alerts.append({
                    "type": AlertType.CONSECUTIVE_FAILURES,
                    "severity": "high",
                    "message": f"Consecutive failures in {operation}: {streak} failures",
                    "operation": operation,
                    "threshold": self.config.consecutive_failure_threshold,
                    "current_value": streak,
                    "created_at": now,
                })

        critical = sum(self.get_error_count(provider, principal_id, kind, hours=1) for kind in CRITICAL_ERROR_KINDS)
        if critical:
            alerts.append({
                "type": AlertType.CRITICAL_ERROR,
                "severity": "critical",
                "message": f"Critical errors detected: {critical} critical errors in the last hour",
                "current_value": critical,
                "created_at": now,
            })

        return alerts

    def get_recent_errors(self, provider: str, principal_id: str | int, limit: int = 10) -> list[ErrorRecord]:
        """Newest first, looking back at most 24 hours."""
        recent: list[ErrorRecord] = []
        for hour in reversed(self._hours(24)):
            for data in reversed(self.store.get(self._records_key(provider, principal_id, hour), [])):
                recent.append(ErrorRecord.from_dict(data))
                if len(recent) >= limit:
                    return recent
        return recent

    def clear_alerts(self, provider: str, principal_id: str | int, alert_type: str | None = None) -> None:
        """Forget throttles so the next occurrence alerts immediately."""
        for name in (alert_type,) if alert_type else AlertType.ALL:
            self.store.delete(self._throttle_key(provider, principal_id, name))
        logger.info(f"Alerts cleared for principal {principal_id} on {provider}: {alert_type or 'all'}")

    def send_alert(
        self,
        provider: str,
        principal_id: str | int,
        alert_type: str,
        message: str,
        details: dict[str, Any] | None = None
    ) -> bool:
        """Dispatch an alert unless one of this type went out within the throttle window."""
        if not self.config.alerts_enabled:
            return False
        if self._should_throttle(provider, principal_id, alert_type):
            logger.debug(f"Alert {alert_type} for principal {principal_id} on {provider} throttled")
            return False

        logger.warning(f"Cloud storage alert [{alert_type}] for principal {principal_id} on {provider}: {message}")
        if self.notifier is not None:
            self.notifier.send_error_alert(principal_id, provider, alert_type, message, dict(details or {}))

        self.store.put(
            self._throttle_key(provider, principal_id, alert_type),
            self.clock().isoformat(),
            self.config.throttle_seconds,
        )
        return True

    def _check_alert_conditions(self, record: ErrorRecord, consecutive: int) -> None:
        provider, principal_id = record.provider, record.principal_id

        if record.error_kind in CRITICAL_ERROR_KINDS:
            self.send_alert(
                provider, principal_id, AlertType.CRITICAL_ERROR,
                f"Critical error in {record.operation}: {record.error_kind.value}",
                record.to_dict(),
            )

        hourly = self.get_error_count(provider, principal_id, hours=1)
        if hourly >= self.config.error_rate_threshold:
            self.send_alert(
                provider, principal_id, AlertType.HIGH_ERROR_RATE,
                f"High error rate detected: {hourly} errors in the last hour",
                {"error_count": hourly},
            )

        if consecutive >= self.config.consecutive_failure_threshold:
            self.send_alert(
                provider, principal_id, AlertType.CONSECUTIVE_FAILURES,
                f"Consecutive failures in {record.operation}: {consecutive} failures",
                {"operation": record.operation, "consecutive_count": consecutive},
            )

        if hourly >= self.config.escalation_threshold:
            self.send_alert(
                provider, principal_id, AlertType.ESCALATION,
                f"Error rate requires escalation: {hourly} errors in the last hour",
                {"error_count": hourly},
            )

    def _should_throttle(self, provider: str, principal_id: str | int, alert_type: str) -> bool:
        last_sent = self.store.get(self._throttle_key(provider, principal_id, alert_type))
        if not last_sent:
            return False
        elapsed = self.clock() - datetime.fromisoformat(last_sent)
        return elapsed < timedelta(seconds=self.config.throttle_seconds)

    def _store_record(self, record: ErrorRecord, hour: str) -> None:
        key = self._records_key(record.provider, record.principal_id, hour)
        records = self.store.get(key, [])
        records.append(record.to_dict())
        if len(records) > self.config.max_records_per_hour:
            records = records[-self.config.max_records_per_hour:]
        self.store.put(key, records, self.config.error_ttl_seconds)

    def _update_counters(self, record: ErrorRecord, hour: str) -> None:
        base = (NAMESPACE, "count", record.provider, record.principal_id)
        ttl = self.config.error_ttl_seconds
        self.store.increment(make_key(*base, "total", hour), 1, ttl)
        self.store.increment(make_key(*base, "type", record.error_kind.value, hour), 1, ttl)
        self.store.increment(make_key(*base, "operation", record.operation, hour), 1, ttl)

    def _hours(self, hours: int) -> list[str]:
        now = self.clock()
        return [(now - timedelta(hours=offset)).strftime(HOUR_FORMAT) for offset in range(hours, -1, -1)]

    @staticmethod
    def _records_key(provider: str, principal_id: str | int, hour: str) -> str:
        return make_key(NAMESPACE, "errors", provider, principal_id, hour)

    @staticmethod
    def _consecutive_key(provider: str, principal_id: str | int, operation: str) -> str:
        return make_key(NAMESPACE, "consecutive", provider, principal_id, operation)

    @staticmethod
    def _throttle_key(provider: str, principal_id: str | int, alert_type: str) -> str:
        return make_key(NAMESPACE, "alert_throttle", provider, principal_id, alert_type)
