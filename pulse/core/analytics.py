"""
Analytics Aggregation Engine

Turns stored trace rows into cost, latency, error and token summaries:
- Scalar totals (cost, requests, sessions, tokens, latency, error rate)
- Cost over time, per provider and per model breakdowns
- Latency buckets and p50/p95/p99 percentiles
- Derived ratios (cost per request, cost per 1k tokens, ...)

Aggregates come from an AnalyticsStore. The engine fans out every
aggregate concurrently and assembles the result once they all complete.
"""

from __future__ import annotations
import asyncio
import logging
import math
from collections import defaultdict
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any, Protocol, Tuple

from pulse.core.config import TOP_MODELS_LIMIT
from pulse.core.models import TraceRecord
from pulse.core.storage import InMemoryStorage
from pulse.core.validation import GroupBy

logger = logging.getLogger("pulse.analytics")


# Lower bounds (ms) of the latency histogram; the last bucket is open-ended
LATENCY_BUCKET_BOUNDS = [0, 200, 400, 600, 800, 1000, 1500, 2000]


# =============================================================================
# RESULT ENTITIES
# =============================================================================

@dataclass
class DateRange:
    """Inclusive analytics window."""
    date_from: datetime
    date_to: datetime


@dataclass
class TokenTotals:
    input: int = 0
    output: int = 0

    @property
    def total(self) -> int:
        return self.input + self.output

    def to_dict(self) -> Dict[str, int]:
        return {"input": self.input, "output": self.output, "total": self.total}


@dataclass
class CostDataPoint:
    period: str
    costCents: float
    provider: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"period": self.period, "costCents": self.costCents}
        if self.provider is not None:
            data["provider"] = self.provider
        return data


@dataclass
class CostByProvider:
    provider: str
    costCents: float
    requests: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class StatsByModel:
    provider: str
    model: str
    requests: int
    costCents: float
    avgLatency: float
    totalTokens: int
    errorRate: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class LatencyBucket:
    bucket: str
    count: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class LatencyPercentiles:
    p50: float = 0.0
    p95: float = 0.0
    p99: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass
class ComputedMetrics:
    """Ratios derived from the scalar totals."""
    costPerRequest: float = 0.0
    tokensPerRequest: float = 0.0
    costPer1kTokens: float = 0.0
    tracesPerSession: float = 0.0
    avgInputTokens: float = 0.0
    avgOutputTokens: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass
class AnalyticsResult:
    totalCost: float
    totalRequests: int
    totalSessions: int
    totalTokens: TokenTotals
    avgLatency: float
    errorRate: float
    costOverTime: List[CostDataPoint] = field(default_factory=list)
    costByProvider: List[CostByProvider] = field(default_factory=list)
    topModels: List[StatsByModel] = field(default_factory=list)
    computed: ComputedMetrics = field(default_factory=ComputedMetrics)
    latencyDistribution: Optional[List[LatencyBucket]] = None
    latencyPercentiles: Optional[LatencyPercentiles] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "totalCost": self.totalCost,
            "totalRequests": self.totalRequests,
            "totalSessions": self.totalSessions,
            "totalTokens": self.totalTokens.to_dict(),
            "avgLatency": self.avgLatency,
            "errorRate": self.errorRate,
            "costOverTime": [p.to_dict() for p in self.costOverTime],
            "costByProvider": [p.to_dict() for p in self.costByProvider],
            "topModels": [m.to_dict() for m in self.topModels],
            "computed": self.computed.to_dict(),
        }
        if self.latencyDistribution is not None:
            data["latencyDistribution"] = [b.to_dict() for b in self.latencyDistribution]
        if self.latencyPercentiles is not None:
            data["latencyPercentiles"] = self.latencyPercentiles.to_dict()
        return data


# =============================================================================
# HELPERS
# =============================================================================

def safe_divide(numerator: float, denominator: float) -> float:
    """Divide, returning 0 when the denominator is 0."""
    if denominator == 0:
        return 0.0
    return numerator / denominator


def percentile_cont(sorted_values: List[float], fraction: float) -> float:
    """
    Continuous percentile with linear interpolation between closest ranks.

    Matches SQL percentile_cont. Returns 0 for an empty list.
    """
    if not sorted_values:
        return 0.0
    if len(sorted_values) == 1:
        return float(sorted_values[0])

    rank = fraction * (len(sorted_values) - 1)
    lower = math.floor(rank)
    upper = math.ceil(rank)
    if lower == upper:
        return float(sorted_values[lower])
    weight = rank - lower
    return sorted_values[lower] + (sorted_values[upper] - sorted_values[lower]) * weight


def bucket_label(latency_ms: float) -> str:
    """Histogram bucket for a latency; lower bounds are inclusive."""
    for lower, upper in zip(LATENCY_BUCKET_BOUNDS, LATENCY_BUCKET_BOUNDS[1:]):
        if lower <= latency_ms < upper:
            return f"{lower}-{upper}"
    return f"{LATENCY_BUCKET_BOUNDS[-1]}+"


def _bucket_labels() -> List[str]:
    labels = [f"{lo}-{hi}" for lo, hi in zip(LATENCY_BUCKET_BOUNDS, LATENCY_BUCKET_BOUNDS[1:])]
    labels.append(f"{LATENCY_BUCKET_BOUNDS[-1]}+")
    return labels


def truncate_period(ts: datetime, unit: str) -> str:
    """Truncate a timestamp to the UTC day or hour, as an ISO string."""
    ts = ts.astimezone(timezone.utc)
    if unit == "hour":
        ts = ts.replace(minute=0, second=0, microsecond=0)
    else:
        ts = ts.replace(hour=0, minute=0, second=0, microsecond=0)
    return ts.isoformat()


def compute_metrics(
    total_cost: float,
    total_requests: int,
    total_sessions: int,
    tokens: TokenTotals,
) -> ComputedMetrics:
    return ComputedMetrics(
        costPerRequest=safe_divide(total_cost, total_requests),
        tokensPerRequest=safe_divide(tokens.total, total_requests),
        costPer1kTokens=safe_divide(total_cost, tokens.total) * 1000,
        tracesPerSession=safe_divide(total_requests, total_sessions),
        avgInputTokens=safe_divide(tokens.input, total_requests),
        avgOutputTokens=safe_divide(tokens.output, total_requests),
    )


# =============================================================================
# STORE PROTOCOL
# =============================================================================

class AnalyticsStore(Protocol):
    """Typed aggregate queries over a project's traces in a date range."""

    async def total_cost(self, project_id: str, date_range: DateRange) -> float: ...

    async def total_requests(self, project_id: str, date_range: DateRange) -> int: ...

    async def total_sessions(self, project_id: str, date_range: DateRange) -> int: ...

    async def total_tokens(self, project_id: str, date_range: DateRange) -> TokenTotals: ...

    async def avg_latency(self, project_id: str, date_range: DateRange) -> float: ...

    async def error_rate(self, project_id: str, date_range: DateRange) -> float: ...

    async def cost_over_time(
        self, project_id: str, date_range: DateRange, group_by: Optional[GroupBy] = None
    ) -> List[CostDataPoint]: ...

    async def cost_by_provider(self, project_id: str, date_range: DateRange) -> List[CostByProvider]: ...

    async def stats_by_model(
        self, project_id: str, date_range: DateRange, limit: int = TOP_MODELS_LIMIT
    ) -> List[StatsByModel]: ...

    async def latency_distribution(self, project_id: str, date_range: DateRange) -> List[LatencyBucket]: ...

    async def latency_percentiles(self, project_id: str, date_range: DateRange) -> LatencyPercentiles: ...


class InMemoryAnalyticsStore:
    """
    AnalyticsStore computed over the rows held by InMemoryStorage.

    Every aggregate reads a fresh snapshot of the range; nothing is cached.
    """

    def __init__(self, storage: InMemoryStorage):
        self._storage = storage

    async def _rows(self, project_id: str, date_range: DateRange) -> List[TraceRecord]:
        return await self._storage.traces_in_range(
            project_id, date_range.date_from, date_range.date_to
        )

    # =========================================================================
    # SCALARS
    # =========================================================================

    async def total_cost(self, project_id: str, date_range: DateRange) -> float:
        rows = await self._rows(project_id, date_range)
        return float(sum(r.cost_cents or 0 for r in rows))

    async def total_requests(self, project_id: str, date_range: DateRange) -> int:
        return len(await self._rows(project_id, date_range))

    async def total_sessions(self, project_id: str, date_range: DateRange) -> int:
        rows = await self._rows(project_id, date_range)
        return len({r.session_id for r in rows if r.session_id})

    async def total_tokens(self, project_id: str, date_range: DateRange) -> TokenTotals:
        rows = await self._rows(project_id, date_range)
        return TokenTotals(
            input=sum(r.input_tokens or 0 for r in rows),
            output=sum(r.output_tokens or 0 for r in rows),
        )

    async def avg_latency(self, project_id: str, date_range: DateRange) -> float:
        rows = await self._rows(project_id, date_range)
        return safe_divide(sum(r.latency_ms for r in rows), len(rows))

    async def error_rate(self, project_id: str, date_range: DateRange) -> float:
        rows = await self._rows(project_id, date_range)
        errors = sum(1 for r in rows if r.is_error)
        return safe_divide(errors, len(rows)) * 100

    # =========================================================================
    # BREAKDOWNS
    # =========================================================================

    async def cost_over_time(
        self,
        project_id: str,
        date_range: DateRange,
        group_by: Optional[GroupBy] = None,
    ) -> List[CostDataPoint]:
        """
        Cost series.

        day/hour (default day): one point per (period, provider), ordered by
        period then provider. model/provider: one point per key.
        """
        rows = await self._rows(project_id, date_range)

        if group_by in (GroupBy.MODEL, GroupBy.PROVIDER):
            totals: Dict[str, float] = defaultdict(float)
            for r in rows:
                key = r.model_requested if group_by == GroupBy.MODEL else r.provider
                totals[key] += r.cost_cents or 0
            return [
                CostDataPoint(period=key, costCents=cost)
                for key, cost in sorted(totals.items())
            ]

        unit = "hour" if group_by == GroupBy.HOUR else "day"
        per_period: Dict[Tuple[str, str], float] = defaultdict(float)
        for r in rows:
            per_period[(truncate_period(r.timestamp, unit), r.provider)] += r.cost_cents or 0

        return [
            CostDataPoint(period=period, costCents=cost, provider=provider)
            for (period, provider), cost in sorted(per_period.items())
        ]

    async def cost_by_provider(self, project_id: str, date_range: DateRange) -> List[CostByProvider]:
        rows = await self._rows(project_id, date_range)

        costs: Dict[str, float] = defaultdict(float)
        counts: Dict[str, int] = defaultdict(int)
        for r in rows:
            costs[r.provider] += r.cost_cents or 0
            counts[r.provider] += 1

        result = [
            CostByProvider(provider=p, costCents=costs[p], requests=counts[p])
            for p in counts
        ]
        result.sort(key=lambda c: c.costCents, reverse=True)
        return result

    async def stats_by_model(
        self,
        project_id: str,
        date_range: DateRange,
        limit: int = TOP_MODELS_LIMIT,
    ) -> List[StatsByModel]:
        """Per (provider, model) stats, busiest first."""
        rows = await self._rows(project_id, date_range)

        groups: Dict[Tuple[str, str], List[TraceRecord]] = defaultdict(list)
        for r in rows:
            groups[(r.provider, r.model_requested)].append(r)

        stats = []
        for (provider, model), group in groups.items():
            requests = len(group)
            errors = sum(1 for r in group if r.is_error)
            stats.append(StatsByModel(
                provider=provider,
                model=model,
                requests=requests,
                costCents=float(sum(r.cost_cents or 0 for r in group)),
                avgLatency=safe_divide(sum(r.latency_ms for r in group), requests),
                totalTokens=sum(r.total_tokens for r in group),
                errorRate=safe_divide(errors, requests) * 100,
            ))

        stats.sort(key=lambda s: s.requests, reverse=True)
        return stats[:limit]

    # =========================================================================
    # LATENCY
    # =========================================================================

    async def latency_distribution(self, project_id: str, date_range: DateRange) -> List[LatencyBucket]:
        rows = await self._rows(project_id, date_range)

        counts = {label: 0 for label in _bucket_labels()}
        for r in rows:
            counts[bucket_label(r.latency_ms)] += 1
        return [LatencyBucket(bucket=label, count=n) for label, n in counts.items()]

    async def latency_percentiles(self, project_id: str, date_range: DateRange) -> LatencyPercentiles:
        rows = await self._rows(project_id, date_range)
        latencies = sorted(r.latency_ms for r in rows)
        return LatencyPercentiles(
            p50=percentile_cont(latencies, 0.50),
            p95=percentile_cont(latencies, 0.95),
            p99=percentile_cont(latencies, 0.99),
        )


# =============================================================================
# ENGINE
# =============================================================================

async def get_analytics(
    project_id: str,
    date_range: DateRange,
    store: AnalyticsStore,
    group_by: Optional[GroupBy] = None,
    include_latency: bool = False,
) -> AnalyticsResult:
    """
    Get analytics for a project within an inclusive date range.

    All aggregates run concurrently; derived metrics are computed from the
    totals after every aggregate has completed.
    """
    (
        total_cost,
        total_requests,
        total_sessions,
        tokens,
        avg_latency,
        error_rate,
        cost_over_time,
        cost_by_provider,
        top_models,
    ) = await asyncio.gather(
        store.total_cost(project_id, date_range),
        store.total_requests(project_id, date_range),
        store.total_sessions(project_id, date_range),
        store.total_tokens(project_id, date_range),
        store.avg_latency(project_id, date_range),
        store.error_rate(project_id, date_range),
        store.cost_over_time(project_id, date_range, group_by),
        store.cost_by_provider(project_id, date_range),
        store.stats_by_model(project_id, date_range, TOP_MODELS_LIMIT),
    )

    result = AnalyticsResult(
        totalCost=total_cost,
        totalRequests=total_requests,
        totalSessions=total_sessions,
        totalTokens=tokens,
        avgLatency=avg_latency,
        errorRate=error_rate,
        costOverTime=cost_over_time,
        costByProvider=cost_by_provider,
        topModels=top_models,
        computed=compute_metrics(total_cost, total_requests, total_sessions, tokens),
    )

    if include_latency:
        distribution, percentiles = await asyncio.gather(
            store.latency_distribution(project_id, date_range),
            store.latency_percentiles(project_id, date_range),
        )
        result.latencyDistribution = distribution
        result.latencyPercentiles = percentiles

    logger.debug(
        f"Analytics for project {project_id}: {total_requests} requests, "
        f"{total_cost:.4f} cents"
    )
    return result


__all__ = [
    "DateRange",
    "TokenTotals",
    "CostDataPoint",
    "CostByProvider",
    "StatsByModel",
    "LatencyBucket",
    "LatencyPercentiles",
    "ComputedMetrics",
    "AnalyticsResult",
    "AnalyticsStore",
    "InMemoryAnalyticsStore",
    "safe_divide",
    "percentile_cont",
    "bucket_label",
    "truncate_period",
    "get_analytics",
]
