from __future__ import annotations

from prometheus_client import CollectorRegistry

from services.result_engine_service.metrics import ResultEngineMetrics


def test_metrics_register_on_given_registry() -> None:
    registry = CollectorRegistry()
    metrics = ResultEngineMetrics(registry=registry)

    metrics.marks_recorded_total.labels(path="components").inc()
    metrics.publish_blocked_total.labels(reason="not_ranked").inc(2)
    metrics.recompute_duration.observe(0.25)

    assert registry.get_sample_value("res_marks_recorded_total", {"path": "components"}) == 1.0
    assert registry.get_sample_value("res_publish_blocked_total", {"reason": "not_ranked"}) == 2.0
    assert registry.get_sample_value("res_cohort_recompute_duration_seconds_count") == 1.0


def test_separate_registries_do_not_collide() -> None:
    first = ResultEngineMetrics(registry=CollectorRegistry())
    second = ResultEngineMetrics(registry=CollectorRegistry())

    assert set(first.get_all_metrics()) == set(second.get_all_metrics())
    assert len(first.get_all_metrics()) == 9
