"""
Semantic test: best-effort metrics delivery.

Invariant:
Without a Pushgateway URL the metrics client is disabled and pushing a solver
profile does nothing; a malformed grouping key is ignored.
"""

from __future__ import annotations

import pytest

from idle_planner.runtime.prometheus_metrics import PrometheusMetricsClient
from idle_planner.solver.profiler import SolverProfile, push_solver_profile


def test_client_disabled_without_url(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("PROMETHEUS_PUSHGATEWAY_URL", raising=False)
    client = PrometheusMetricsClient()

    assert not client.is_enabled()
    client.push_gauge(name="idle_planner_test", value=1.0, labels={})
    client.push_all(job="test")


def test_grouping_key_parsing(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PROMETHEUS_PUSHGATEWAY_GROUPING_KEY_JSON", '{"run_id": "r1", "n": 3}')
    assert PrometheusMetricsClient("http://localhost:9091").grouping_key == {"run_id": "r1"}

    monkeypatch.setenv("PROMETHEUS_PUSHGATEWAY_GROUPING_KEY_JSON", "not json")
    assert PrometheusMetricsClient("http://localhost:9091").grouping_key == {}


class _RecordingClient(PrometheusMetricsClient):
    def __init__(self) -> None:
        super().__init__("http://localhost:9091")
        self.pushed: list[str] = []
        self.jobs: list[str] = []

    def push_gauge(self, *, name: str, value: float, labels: dict[str, str]) -> None:
        self.pushed.append(name)

    def push_all(self, *, job: str) -> None:
        self.jobs.append(job)
        raise OSError("gateway down")


def test_profile_push_is_best_effort(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("PROMETHEUS_PUSHGATEWAY_GROUPING_KEY_JSON", raising=False)
    profile = SolverProfile(expanded_nodes=12)
    with profile.phase("search"):
        pass
    client = _RecordingClient()

    push_solver_profile(profile, client, job="idle_planner_solve")

    assert "idle_planner_solver_expanded_nodes" in client.pushed
    assert "idle_planner_solver_search_seconds" in client.pushed
    assert client.jobs == ["idle_planner_solve"]


def test_profile_push_skipped_when_disabled(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("PROMETHEUS_PUSHGATEWAY_URL", raising=False)
    client = PrometheusMetricsClient()

    push_solver_profile(SolverProfile(), client, job="idle_planner_solve")
