from datetime import datetime
from typing import Any, Dict, Optional, Tuple

import prometheus_client as prom
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest


class MonitoringService:
    """Prometheus metrics for gateway tasks, kept in a private registry."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()
        self.start_time = datetime.now()
        self.metrics = {
            'task_requests': prom.Counter(
                'gateway_task_requests_total', 'Task requests by outcome',
                ['task', 'provider', 'status'], registry=self.registry,
            ),
            'task_errors': prom.Counter(
                'gateway_task_errors_total', 'Failed task requests',
                ['task', 'provider', 'error_type'], registry=self.registry,
            ),
            'task_latency': prom.Histogram(
                'gateway_task_latency_seconds', 'Task latency including the backend call',
                ['task', 'provider'], registry=self.registry,
            ),
            'tokens': prom.Counter(
                'gateway_tokens_total', 'Tokens reported by backends',
                ['task', 'provider', 'direction'], registry=self.registry,
            ),
            'service_health': prom.Gauge(
                'gateway_service_health', 'Last observed provider availability (1 = up)',
                ['provider'], registry=self.registry,
            ),
        }

    def log_request(self, task: str, provider: str, duration: float, status: str = 'success'):
        """Records one finished task request."""
        self.metrics['task_requests'].labels(task=task, provider=provider, status=status).inc()
        self.metrics['task_latency'].labels(task=task, provider=provider).observe(duration)

    def log_error(self, task: str, provider: str, error: BaseException):
        """Records a failed task request."""
        self.metrics['task_errors'].labels(task=task, provider=provider, error_type=type(error).__name__).inc()

    def log_usage(self, task: str, provider: str, usage: Dict[str, int]):
        """Adds public-shape token counts ({input_tokens, output_tokens})."""
        for direction, key in (('input', 'input_tokens'), ('output', 'output_tokens')):
            count = usage.get(key) or 0
            if count:
                self.metrics['tokens'].labels(task=task, provider=provider, direction=direction).inc(count)

    def set_service_health(self, provider: str, available: bool):
        self.metrics['service_health'].labels(provider=provider).set(1 if available else 0)

    def health_check(self) -> Dict[str, Any]:
        """Liveness payload for the health endpoint."""
        return {
            'status': 'OK',
            'uptime_seconds': round((datetime.now() - self.start_time).total_seconds(), 1),
        }

    def render(self) -> Tuple[bytes, str]:
        """Exposition body and content type for the metrics endpoint."""
        return generate_latest(self.registry), CONTENT_TYPE_LATEST
