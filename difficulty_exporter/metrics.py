import logging
from typing import Dict, Optional

from prometheus_client import CollectorRegistry, Gauge, push_to_gateway

from .errors import PushError

logger = logging.getLogger(__name__)


class MetricsExporter:
    """Pushes the latest block difficulty to a Prometheus Pushgateway."""

    def __init__(
        self,
        gateway: str,
        namespace: str = "quai_network",
        job: str = "quai",
        grouping: Optional[Dict[str, str]] = None,
        timeout: float = 10,
    ):
        self.gateway = gateway
        self.job = job
        self.grouping = dict(grouping or {})
        self.timeout = timeout
        # Dedicated registry keeps process metrics out of the push.
        self.registry = CollectorRegistry()
        self.metric_name = f"{namespace}_block_difficulty"
        self.gauge = Gauge(
            self.metric_name,
            "Difficulty of the most recently recorded block",
            registry=self.registry,
        )

    @property
    def value(self) -> float:
        return self.registry.get_sample_value(self.metric_name)

    def set_gauge(self, value):
        self.gauge.set(float(value))

    def push(self):
        try:
            push_to_gateway(
                self.gateway,
                job=self.job,
                registry=self.registry,
                grouping_key=self.grouping,
                timeout=self.timeout,
            )
        except Exception as e:
            raise PushError(f"Failed to push metrics to {self.gateway}: {e}") from e
        logger.debug(f"Pushed metrics successfully: {self.metric_name} = {self.value}")
