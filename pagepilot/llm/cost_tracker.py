"""
Cost Tracker - token usage, estimated spend and free-tier quotas.

Responsible for:
- Accumulating usage per provider/model pair
- Estimating cost from the pricing table
- Gating requests against quota ceilings
- Raising quota alerts, at most one per provider per suppression window

Costs are estimates. Token counts may themselves be estimates when the
backend did not report usage; rows count how many requests that applies to.
"""

import calendar
import logging
import time
from dataclasses import asdict, dataclass, replace
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional

from ..utils.logging import log_event
from .constants import QuotaDefaults
from .pricing import DEFAULT_PRICING, ProviderPricing, pricing_key
from .types import TokenUsage

logger = logging.getLogger(__name__)


class AlertLevel(str, Enum):
    WARNING = "warning"
    CRITICAL = "critical"
    EXCEEDED = "exceeded"


@dataclass
class ProviderUsage:
    """Cumulative usage for one provider/model pair."""

    provider: str
    model: str
    total_prompt_tokens: int = 0
    total_completion_tokens: int = 0
    total_tokens: int = 0
    estimated_cost: float = 0.0
    request_count: int = 0
    estimated_requests: int = 0
    last_used: Optional[float] = None
    quota_used: Optional[float] = None
    quota_remaining: Optional[int] = None
    period_start: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProviderUsage":
        known = set(cls.__dataclass_fields__)
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass
class QuotaAlert:
    provider: str
    model: str
    level: AlertLevel
    quota_used: int
    quota_limit: int
    message: str
    timestamp: float

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["level"] = self.level.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QuotaAlert":
        known = set(cls.__dataclass_fields__)
        values = {k: v for k, v in data.items() if k in known}
        values["level"] = AlertLevel(values["level"])
        return cls(**values)


@dataclass(frozen=True)
class CostEstimate:
    prompt_cost: float
    completion_cost: float
    total_cost: float
    currency: str
    is_estimate: bool = True


@dataclass(frozen=True)
class CostSummary:
    """
    Aggregated totals across all usage rows.

    ``total_cost`` is an estimate derived from list prices, never a
    billing figure.
    """

    total_cost: float
    total_requests: int
    total_tokens: int
    provider_count: int
    active_alerts: int
    currency: str = QuotaDefaults.CURRENCY
    is_estimate: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class CostTracker:
    """
    In-memory usage and quota accounting.

    All methods are synchronous; each update completes without yielding
    to the event loop.

    Args:
        pricing: Initial pricing entries (defaults to the built-in table)
        warning_threshold: Quota fraction that raises a warning alert
        critical_threshold: Quota fraction that raises a critical alert
        alert_suppression_seconds: Minimum gap between alerts for one provider
        clock: Returns the current time in seconds
    """

    def __init__(
        self,
        pricing: Optional[Iterable[ProviderPricing]] = None,
        warning_threshold: float = QuotaDefaults.WARNING_THRESHOLD,
        critical_threshold: float = QuotaDefaults.CRITICAL_THRESHOLD,
        alert_suppression_seconds: float = QuotaDefaults.ALERT_SUPPRESSION_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.warning_threshold = warning_threshold
        self.critical_threshold = critical_threshold
        self.alert_suppression = alert_suppression_seconds
        self._clock = clock

        self._pricing: Dict[str, ProviderPricing] = {}
        self._usage: Dict[str, ProviderUsage] = {}
        self._alerts: List[QuotaAlert] = []

        for entry in DEFAULT_PRICING if pricing is None else pricing:
            self._pricing[entry.key] = entry

    # ------------------------------------------------------------------
    # Pricing
    # ------------------------------------------------------------------

    def add_pricing(self, pricing: ProviderPricing) -> None:
        self._pricing[pricing.key] = pricing
        log_event(
            "pricing_added",
            {"provider": pricing.provider, "model": pricing.model},
            level=logging.DEBUG,
        )

    def get_pricing(self, provider: str, model: str) -> Optional[ProviderPricing]:
        return self._pricing.get(pricing_key(provider, model))

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record_usage(self, provider: str, model: str, usage: TokenUsage) -> ProviderUsage:
        """
        Add one request's usage to the matching row.

        Returns:
            A copy of the updated row
        """
        key = pricing_key(provider, model)
        pricing = self._pricing.get(key)
        row = self._current_row(key, provider, model, pricing)

        row.total_prompt_tokens += usage.prompt_tokens
        row.total_completion_tokens += usage.completion_tokens
        row.total_tokens += usage.total_tokens
        row.request_count += 1
        if usage.estimated:
            row.estimated_requests += 1
        row.last_used = self._clock()

        cost = 0.0
        if pricing is not None:
            cost = pricing.cost(usage.prompt_tokens, usage.completion_tokens)
            row.estimated_cost += cost
            if pricing.quota_limit:
                row.quota_used = row.request_count / pricing.quota_limit * 100
                row.quota_remaining = max(0, pricing.quota_limit - row.request_count)
                self._check_quota_alerts(row, pricing)

        self._usage[key] = row

        log_event(
            "usage_recorded",
            {
                "provider_id": provider,
                "model": model,
                "total_tokens": usage.total_tokens,
                "tokens_estimated": usage.estimated,
                "cost": round(cost, 6),
                "priced": pricing is not None,
            },
            level=logging.DEBUG,
        )
        return replace(row)

    def _current_row(
        self,
        key: str,
        provider: str,
        model: str,
        pricing: Optional[ProviderPricing],
    ) -> ProviderUsage:
        row = self._usage.get(key)
        period = self._period_start(pricing)
        if row is None:
            return ProviderUsage(provider=provider, model=model, period_start=period)

        if period is not None and (row.period_start is None or row.period_start < period):
            log_event(
                "quota_period_reset",
                {"provider_id": provider, "model": model, "period_start": period},
            )
            self._clear_alerts_for(provider, model)
            row = ProviderUsage(provider=provider, model=model, period_start=period)
            self._usage[key] = row
        return row

    def _period_start(self, pricing: Optional[ProviderPricing]) -> Optional[str]:
        """ISO date of the most recent quota reset day, if the entry has one."""
        if pricing is None or pricing.quota_reset_day is None:
            return None

        today = datetime.fromtimestamp(self._clock()).date()
        year, month = today.year, today.month
        reset = _clamped_day(year, month, pricing.quota_reset_day)
        if today < reset:
            year, month = (year - 1, 12) if month == 1 else (year, month - 1)
            reset = _clamped_day(year, month, pricing.quota_reset_day)
        return reset.isoformat()

    def _check_quota_alerts(self, row: ProviderUsage, pricing: ProviderPricing) -> None:
        quota_limit = pricing.quota_limit
        if not quota_limit:
            return

        now = self._clock()
        if any(
            a.provider == row.provider and a.timestamp > now - self.alert_suppression
            for a in self._alerts
        ):
            return

        fraction = row.request_count / quota_limit
        if fraction >= 1.0:
            level = AlertLevel.EXCEEDED
            message = (
                f"Quota exceeded for {row.provider}/{row.model}. "
                f"{row.request_count}/{quota_limit} requests used."
            )
        elif fraction >= self.critical_threshold:
            level = AlertLevel.CRITICAL
            message = f"Critical: {fraction * 100:.1f}% of quota used for {row.provider}/{row.model}"
        elif fraction >= self.warning_threshold:
            level = AlertLevel.WARNING
            message = f"Warning: {fraction * 100:.1f}% of quota used for {row.provider}/{row.model}"
        else:
            return

        alert = QuotaAlert(
            provider=row.provider,
            model=row.model,
            level=level,
            quota_used=row.request_count,
            quota_limit=quota_limit,
            message=message,
            timestamp=now,
        )
        self._alerts.append(alert)

        log_event(
            "quota_alert",
            {
                "provider_id": row.provider,
                "model": row.model,
                "level": level.value,
                "quota_used": row.request_count,
                "quota_limit": quota_limit,
                "message": message,
            },
            level=logging.ERROR if level == AlertLevel.EXCEEDED else logging.WARNING,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_within_quota(self, provider: str, model: str) -> bool:
        """True when no quota applies or fewer requests than the limit were made."""
        key = pricing_key(provider, model)
        pricing = self._pricing.get(key)
        if pricing is None or not pricing.quota_limit:
            return True

        row = self._usage.get(key)
        if row is None:
            return True
        row = self._current_row(key, provider, model, pricing)
        return row.request_count < pricing.quota_limit

    def get_remaining_quota(self, provider: str, model: str) -> Optional[int]:
        key = pricing_key(provider, model)
        pricing = self._pricing.get(key)
        if pricing is None or not pricing.quota_limit:
            return None

        used = 0
        if key in self._usage:
            used = self._current_row(key, provider, model, pricing).request_count
        return max(0, pricing.quota_limit - used)

    def get_usage(self, provider: str, model: str) -> Optional[ProviderUsage]:
        row = self._usage.get(pricing_key(provider, model))
        return replace(row) if row is not None else None

    def get_all_usage(self) -> List[ProviderUsage]:
        return [replace(row) for row in self._usage.values()]

    def estimate_cost(
        self, provider: str, model: str, usage: TokenUsage
    ) -> Optional[CostEstimate]:
        pricing = self.get_pricing(provider, model)
        if pricing is None:
            return None
        prompt_cost = (usage.prompt_tokens / 1000) * pricing.prompt_token_cost
        completion_cost = (usage.completion_tokens / 1000) * pricing.completion_token_cost
        return CostEstimate(
            prompt_cost=prompt_cost,
            completion_cost=completion_cost,
            total_cost=prompt_cost + completion_cost,
            currency=pricing.currency,
        )

    def get_total_cost(self) -> float:
        return sum(row.estimated_cost for row in self._usage.values())

    def get_recent_alerts(self, hours: float = QuotaDefaults.RECENT_ALERT_HOURS) -> List[QuotaAlert]:
        cutoff = self._clock() - hours * 3600
        return [a for a in self._alerts if a.timestamp >= cutoff]

    def get_summary(self) -> CostSummary:
        rows = list(self._usage.values())
        return CostSummary(
            total_cost=self.get_total_cost(),
            total_requests=sum(r.request_count for r in rows),
            total_tokens=sum(r.total_tokens for r in rows),
            provider_count=len(rows),
            active_alerts=len(self.get_recent_alerts()),
        )

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def clear_alerts(self, provider: Optional[str] = None) -> int:
        """
        Drop alerts for one provider, or all alerts.

        Returns:
            Number of alerts removed
        """
        before = len(self._alerts)
        if provider is None:
            self._alerts = []
        else:
            self._alerts = [a for a in self._alerts if a.provider != provider]
        removed = before - len(self._alerts)
        log_event("quota_alerts_cleared", {"provider_id": provider, "removed": removed})
        return removed

    def _clear_alerts_for(self, provider: str, model: str) -> None:
        self._alerts = [
            a for a in self._alerts if not (a.provider == provider and a.model == model)
        ]

    def reset_usage(self, provider: str, model: Optional[str] = None) -> int:
        """
        Forget usage for one provider/model, or every model of a provider.

        Returns:
            Number of usage rows removed
        """
        keys = [
            key
            for key, row in self._usage.items()
            if row.provider == provider and (model is None or row.model == model)
        ]
        for key in keys:
            row = self._usage.pop(key)
            self._clear_alerts_for(row.provider, row.model)

        log_event(
            "usage_reset",
            {"provider_id": provider, "model": model, "rows_removed": len(keys)},
        )
        return len(keys)

    def reset_all(self) -> None:
        self._usage.clear()
        self._alerts = []
        log_event("usage_reset", {"provider_id": "*"})

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def export_data(self) -> Dict[str, Any]:
        return {
            "usage": {key: row.to_dict() for key, row in self._usage.items()},
            "alerts": [a.to_dict() for a in self._alerts],
        }

    def import_data(self, data: Dict[str, Any]) -> None:
        """Merge usage rows and replace alerts from ``export_data`` output."""
        for key, raw in (data.get("usage") or {}).items():
            try:
                self._usage[key] = ProviderUsage.from_dict(raw)
            except (TypeError, ValueError) as e:
                log_event(
                    "usage_import_skipped",
                    {"key": key, "error": str(e)},
                    level=logging.WARNING,
                )

        alerts: List[QuotaAlert] = []
        for raw in data.get("alerts") or []:
            try:
                alerts.append(QuotaAlert.from_dict(raw))
            except (KeyError, TypeError, ValueError) as e:
                log_event(
                    "alert_import_skipped", {"error": str(e)}, level=logging.WARNING
                )
        self._alerts = alerts

        log_event(
            "usage_data_imported",
            {"rows": len(self._usage), "alerts": len(self._alerts)},
        )


def _clamped_day(year: int, month: int, day: int) -> date:
    return date(year, month, min(day, calendar.monthrange(year, month)[1]))
