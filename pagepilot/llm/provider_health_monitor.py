"""
Provider Health Monitor - per-provider circuit breaker.

Responsible for:
- Success / failure accounting and status (healthy, degraded, unhealthy)
- Circuit transitions closed -> open -> half-open -> closed
- Manual disable / enable overrides
- Health snapshots for persistence

There is no background timer. An open circuit moves to half-open lazily,
the next time ``is_provider_available`` is asked after ``next_retry_time``.
All methods are synchronous so each update is atomic with respect to the
event loop.
"""

import logging
import time
from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from ..utils.logging import log_event
from .constants import HealthMonitorDefaults

logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"
    DISABLED = "disabled"


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half-open"


@dataclass
class ProviderHealth:
    """
    Health record for one provider.

    Timestamps are seconds from the monitor's clock (``time.time`` by
    default). ``next_retry_time`` is only set while the circuit is open.
    """

    provider_id: str
    status: HealthStatus = HealthStatus.HEALTHY
    success_count: int = 0
    failure_count: int = 0
    total_requests: int = 0
    consecutive_failures: int = 0
    success_rate: float = 1.0
    circuit_state: CircuitState = CircuitState.CLOSED
    next_retry_time: Optional[float] = None
    last_success: Optional[float] = None
    last_failure: Optional[float] = None
    last_error: Optional[str] = None
    half_open_successes: int = 0
    half_open_in_flight: int = 0
    half_open_since: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        data["circuit_state"] = self.circuit_state.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProviderHealth":
        known = {f for f in cls.__dataclass_fields__}
        values = {k: v for k, v in data.items() if k in known}
        values["status"] = HealthStatus(values.get("status", HealthStatus.HEALTHY))
        values["circuit_state"] = CircuitState(
            values.get("circuit_state", CircuitState.CLOSED)
        )
        return cls(**values)


@dataclass
class HealthCheckResult:
    provider: str
    healthy: bool
    reason: Optional[str] = None
    metrics: Dict[str, Any] = field(default_factory=dict)


class ProviderHealthMonitor:
    """
    Tracks provider health and gates dispatch with a circuit breaker.

    Args:
        failure_threshold: Consecutive failures that open a closed circuit
        reset_timeout_seconds: Time an open circuit waits before half-open
        half_open_requests: Successful trials that close a half-open circuit
        degraded_threshold: Success rate below which status is degraded
        unhealthy_threshold: Success rate below which status is unhealthy
        clock: Returns the current time in seconds
    """

    def __init__(
        self,
        failure_threshold: int = HealthMonitorDefaults.FAILURE_THRESHOLD,
        reset_timeout_seconds: float = HealthMonitorDefaults.RESET_TIMEOUT_SECONDS,
        half_open_requests: int = HealthMonitorDefaults.HALF_OPEN_REQUESTS,
        degraded_threshold: float = HealthMonitorDefaults.DEGRADED_THRESHOLD,
        unhealthy_threshold: float = HealthMonitorDefaults.UNHEALTHY_THRESHOLD,
        clock: Callable[[], float] = time.time,
    ):
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        if half_open_requests < 1:
            raise ValueError("half_open_requests must be at least 1")

        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout_seconds
        self.half_open_requests = half_open_requests
        self.degraded_threshold = degraded_threshold
        self.unhealthy_threshold = unhealthy_threshold
        self._clock = clock
        self._health: Dict[str, ProviderHealth] = {}

    def _get(self, provider_id: str) -> ProviderHealth:
        health = self._health.get(provider_id)
        if health is None:
            health = ProviderHealth(provider_id=provider_id)
            self._health[provider_id] = health
        return health

    # ------------------------------------------------------------------
    # Availability
    # ------------------------------------------------------------------

    def is_provider_available(self, provider_id: str) -> bool:
        """
        Whether a request may be dispatched to this provider now.

        In half-open state this reserves one trial slot. A caller that
        then decides not to dispatch must hand it back with
        ``release_trial``.
        """
        health = self._get(provider_id)
        if not self._check_available(health):
            return False
        if health.circuit_state == CircuitState.HALF_OPEN:
            health.half_open_in_flight += 1
        return True

    def release_trial(self, provider_id: str) -> None:
        """Return a half-open trial slot reserved by ``is_provider_available``."""
        health = self._health.get(provider_id)
        if health is not None and health.circuit_state == CircuitState.HALF_OPEN:
            health.half_open_in_flight = max(0, health.half_open_in_flight - 1)

    def _check_available(self, health: ProviderHealth) -> bool:
        if health.status == HealthStatus.DISABLED:
            return False

        if health.circuit_state == CircuitState.CLOSED:
            return True

        now = self._clock()

        if health.circuit_state == CircuitState.OPEN:
            if health.next_retry_time is not None and now < health.next_retry_time:
                return False
            self._to_half_open(health, now)

        # Trial slots that were never resolved are re-armed after a full
        # reset timeout so the breaker cannot wedge
        if (
            health.half_open_in_flight
            and health.half_open_since is not None
            and now - health.half_open_since >= self.reset_timeout
        ):
            health.half_open_in_flight = 0
            health.half_open_since = now

        admitted = health.half_open_in_flight + health.half_open_successes
        return admitted < self.half_open_requests

    def _peek_available(self, health: ProviderHealth) -> bool:
        """Availability without side effects, for introspection."""
        if health.status == HealthStatus.DISABLED:
            return False
        if health.circuit_state == CircuitState.CLOSED:
            return True
        if health.circuit_state == CircuitState.OPEN:
            return (
                health.next_retry_time is None
                or self._clock() >= health.next_retry_time
            )
        admitted = health.half_open_in_flight + health.half_open_successes
        return admitted < self.half_open_requests

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record_success(self, provider_id: str) -> None:
        health = self._get(provider_id)
        health.success_count += 1
        health.total_requests += 1
        health.consecutive_failures = 0
        health.last_success = self._clock()

        if health.circuit_state == CircuitState.HALF_OPEN:
            health.half_open_in_flight = max(0, health.half_open_in_flight - 1)
            health.half_open_successes += 1
            if health.half_open_successes >= self.half_open_requests:
                self._to_closed(health)

        self._update_status(health)

    def record_failure(self, provider_id: str, error: Optional[BaseException] = None) -> None:
        health = self._get(provider_id)
        now = self._clock()
        health.failure_count += 1
        health.total_requests += 1
        health.consecutive_failures += 1
        health.last_failure = now
        if error is not None:
            health.last_error = str(error)[:500]

        if health.circuit_state == CircuitState.HALF_OPEN:
            self._to_open(health, now)
        elif (
            health.circuit_state == CircuitState.CLOSED
            and health.consecutive_failures >= self.failure_threshold
        ):
            self._to_open(health, now)

        self._update_status(health)

    def _update_status(self, health: ProviderHealth) -> None:
        if health.total_requests:
            health.success_rate = health.success_count / health.total_requests

        if health.status == HealthStatus.DISABLED:
            return

        if health.success_rate >= self.degraded_threshold:
            health.status = HealthStatus.HEALTHY
        elif health.success_rate >= self.unhealthy_threshold:
            health.status = HealthStatus.DEGRADED
        else:
            health.status = HealthStatus.UNHEALTHY

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _to_open(self, health: ProviderHealth, now: float) -> None:
        previous = health.circuit_state
        health.circuit_state = CircuitState.OPEN
        health.next_retry_time = now + self.reset_timeout
        health.half_open_successes = 0
        health.half_open_in_flight = 0
        health.half_open_since = None

        log_event(
            "circuit_opened",
            {
                "provider_id": health.provider_id,
                "from_state": previous.value,
                "consecutive_failures": health.consecutive_failures,
                "retry_in_seconds": self.reset_timeout,
            },
            level=logging.WARNING,
        )

    def _to_half_open(self, health: ProviderHealth, now: float) -> None:
        health.circuit_state = CircuitState.HALF_OPEN
        health.next_retry_time = None
        health.half_open_successes = 0
        health.half_open_in_flight = 0
        health.half_open_since = now

        log_event("circuit_half_open", {"provider_id": health.provider_id})

    def _to_closed(self, health: ProviderHealth) -> None:
        health.circuit_state = CircuitState.CLOSED
        health.next_retry_time = None
        health.consecutive_failures = 0
        health.half_open_successes = 0
        health.half_open_in_flight = 0
        health.half_open_since = None

        log_event("circuit_closed", {"provider_id": health.provider_id})

    # ------------------------------------------------------------------
    # Manual overrides
    # ------------------------------------------------------------------

    def disable_provider(self, provider_id: str) -> None:
        """Take a provider out of rotation until ``enable_provider``."""
        health = self._get(provider_id)
        health.status = HealthStatus.DISABLED
        log_event("provider_disabled", {"provider_id": provider_id}, logging.WARNING)

    def enable_provider(self, provider_id: str) -> None:
        """Return a provider to rotation with a closed circuit."""
        health = self._get(provider_id)
        health.status = HealthStatus.HEALTHY
        health.circuit_state = CircuitState.CLOSED
        health.consecutive_failures = 0
        health.next_retry_time = None
        health.half_open_successes = 0
        health.half_open_in_flight = 0
        health.half_open_since = None
        log_event("provider_enabled", {"provider_id": provider_id})

    def reset_provider(self, provider_id: str) -> None:
        self._health.pop(provider_id, None)
        log_event("provider_health_reset", {"provider_id": provider_id})

    def reset_all(self) -> None:
        self._health.clear()
        log_event("provider_health_reset", {"provider_id": "*"})

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_provider_health(self, provider_id: str) -> ProviderHealth:
        return replace(self._get(provider_id))

    def get_all_provider_health(self) -> List[ProviderHealth]:
        return [replace(h) for h in self._health.values()]

    def get_healthy_providers(self) -> List[str]:
        return [
            provider_id
            for provider_id, health in self._health.items()
            if self._peek_available(health) and health.status == HealthStatus.HEALTHY
        ]

    def perform_health_check(self, provider_id: str) -> HealthCheckResult:
        """Describe whether a provider is usable right now and why not."""
        health = self._get(provider_id)
        available = self._peek_available(health)
        reason: Optional[str] = None

        if not available:
            if health.status == HealthStatus.DISABLED:
                reason = "Provider manually disabled"
            elif health.circuit_state == CircuitState.OPEN:
                wait = max(0.0, (health.next_retry_time or 0) - self._clock())
                reason = f"Circuit breaker open, retry in {int(wait + 0.999)}s"
            else:
                reason = "Half-open trial in progress"
        elif health.status == HealthStatus.UNHEALTHY:
            reason = f"Low success rate: {health.success_rate * 100:.1f}%"
        elif health.status == HealthStatus.DEGRADED:
            reason = f"Degraded performance: {health.success_rate * 100:.1f}%"

        return HealthCheckResult(
            provider=provider_id,
            healthy=available and health.status != HealthStatus.UNHEALTHY,
            reason=reason,
            metrics=health.to_dict(),
        )

    def get_metrics_summary(self) -> Dict[str, int]:
        providers = list(self._health.values())
        return {
            "total_providers": len(providers),
            "healthy": sum(p.status == HealthStatus.HEALTHY for p in providers),
            "degraded": sum(p.status == HealthStatus.DEGRADED for p in providers),
            "unhealthy": sum(p.status == HealthStatus.UNHEALTHY for p in providers),
            "disabled": sum(p.status == HealthStatus.DISABLED for p in providers),
            "circuit_open": sum(p.circuit_state == CircuitState.OPEN for p in providers),
        }

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def export_health_data(self) -> Dict[str, Dict[str, Any]]:
        return {pid: health.to_dict() for pid, health in self._health.items()}

    def import_health_data(self, data: Dict[str, Dict[str, Any]]) -> int:
        """
        Load records produced by ``export_health_data``.

        Invalid entries are skipped. In-flight trial reservations are not
        carried across restarts.

        Returns:
            Number of records imported
        """
        imported = 0
        for provider_id, raw in data.items():
            try:
                health = ProviderHealth.from_dict({**raw, "provider_id": provider_id})
            except (TypeError, ValueError) as e:
                log_event(
                    "health_import_skipped",
                    {"provider_id": provider_id, "error": str(e)},
                    level=logging.WARNING,
                )
                continue
            health.half_open_in_flight = 0
            self._health[provider_id] = health
            imported += 1

        log_event("health_data_imported", {"providers": imported})
        return imported

    def __repr__(self) -> str:
        return f"ProviderHealthMonitor(providers={len(self._health)})"
