"""Service-specific metrics for Result Engine Service."""

from __future__ import annotations

from typing import Any, Dict, Optional

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Histogram


class ResultEngineMetrics:
    """Business metrics for marks ingestion, recompute and publication."""

    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        registry = registry if registry is not None else REGISTRY

        # Marks ingestion
        self.marks_recorded_total = Counter(
            "res_marks_recorded_total",
            "Subject marks accepted",
            ["path"],  # path: components, assessment, bulk
            registry=registry,
        )
        self.marks_rejected_total = Counter(
            "res_marks_rejected_total",
            "Subject marks rejected at input",
            ["error_code"],
            registry=registry,
        )

        # Cohort recompute
        self.recomputes_total = Counter(
            "res_cohort_recomputes_total",
            "Cohort recompute passes by outcome",
            ["outcome"],  # outcome: success, conflict_exhausted, error
            registry=registry,
        )
        self.recompute_conflicts_total = Counter(
            "res_cohort_recompute_conflicts_total",
            "Version conflicts detected while writing a recompute",
            registry=registry,
        )
        self.recompute_duration = Histogram(
            "res_cohort_recompute_duration_seconds",
            "Duration of a full cohort recompute including retries",
            registry=registry,
        )
        self.results_excluded_total = Counter(
            "res_results_excluded_from_ranking_total",
            "Incomplete results excluded from ranking",
            registry=registry,
        )

        # Publication
        self.results_published_total = Counter(
            "res_results_published_total", "Term results published", registry=registry
        )
        self.results_unpublished_total = Counter(
            "res_results_unpublished_total", "Term results unpublished", registry=registry
        )
        self.publish_blocked_total = Counter(
            "res_publish_blocked_total",
            "Publish attempts blocked",
            ["reason"],
            registry=registry,
        )

    def get_all_metrics(self) -> Dict[str, Any]:
        return {
            "marks_recorded_total": self.marks_recorded_total,
            "marks_rejected_total": self.marks_rejected_total,
            "recomputes_total": self.recomputes_total,
            "recompute_conflicts_total": self.recompute_conflicts_total,
            "recompute_duration": self.recompute_duration,
            "results_excluded_total": self.results_excluded_total,
            "results_published_total": self.results_published_total,
            "results_unpublished_total": self.results_unpublished_total,
            "publish_blocked_total": self.publish_blocked_total,
        }
