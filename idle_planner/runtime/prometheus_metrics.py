from __future__ import annotations

import json
import logging
import os

from prometheus_client import CollectorRegistry, Gauge, push_to_gateway

LOGGER = logging.getLogger(__name__)


class PrometheusMetricsClient:
    """Pushgateway client for one-shot planner runs.

    Expected environment:
    - PROMETHEUS_PUSHGATEWAY_URL: URL to the Pushgateway.
      Example: http://pushgateway:9091

    Optional:
    - PROMETHEUS_PUSHGATEWAY_GROUPING_KEY_JSON: JSON object of string labels
      used as the grouping key, e.g. {"run_id": "nightly-42"}. Without it,
      runs pushed under the same job name overwrite each other.

    Delivery is best-effort. Solver statistics are reporting only, so a
    failed push must never turn a successful plan into a failed run.
    """

    def __init__(self, pushgateway_url: str | None = None) -> None:
        self._pushgateway_url = pushgateway_url or os.environ.get("PROMETHEUS_PUSHGATEWAY_URL")
        self._grouping_key = self._load_grouping_key()
        self._registry = CollectorRegistry()
        self._gauges: dict[str, Gauge] = {}

    def is_enabled(self) -> bool:
        return self._pushgateway_url is not None

    @property
    def grouping_key(self) -> dict[str, str]:
        return dict(self._grouping_key)

    @staticmethod
    def _load_grouping_key() -> dict[str, str]:
        raw = os.environ.get("PROMETHEUS_PUSHGATEWAY_GROUPING_KEY_JSON")
        if not raw:
            return {}

        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            LOGGER.warning("Invalid PROMETHEUS_PUSHGATEWAY_GROUPING_KEY_JSON; ignoring")
            return {}

        if not isinstance(data, dict):
            return {}

        return {
            key: value
            for key, value in data.items()
            if isinstance(key, str) and isinstance(value, str)
        }

    def push_gauge(
        self,
        *,
        name: str,
        value: float,
        labels: dict[str, str],
    ) -> None:
        if not self._pushgateway_url:
            return

        # A registry rejects duplicate metric names, so gauges are reused.
        gauge = self._gauges.get(name)
        if gauge is None:
            gauge = Gauge(
                name,
                documentation=name,
                labelnames=sorted(labels),
                registry=self._registry,
            )
            self._gauges[name] = gauge

        if labels:
            gauge.labels(**labels).set(value)
        else:
            gauge.set(value)

    def push_all(self, *, job: str) -> None:
        if not self._pushgateway_url:
            return

        push_to_gateway(
            gateway=self._pushgateway_url,
            job=job,
            registry=self._registry,
            grouping_key=self._grouping_key,
        )

        LOGGER.info(
            "Prometheus metrics pushed",
            extra={"job": job, "grouping_key": self._grouping_key},
        )
