from prometheus_client import (
    Counter,
    Summary,
    Gauge,
    CollectorRegistry,
    generate_latest,
    CONTENT_TYPE_LATEST
)

registry = CollectorRegistry()

REQUEST_COUNT = Counter(
    "proxy_requests_total",
    "Total number of proxied API requests",
    ["method", "namespace", "status"],
    registry=registry
)

OUTCOME_COUNT = Counter(
    "proxy_outcomes_total",
    "Proxied requests by outcome class",
    ["outcome"],
    registry=registry
)

REQUEST_DURATION = Summary(
    "proxy_request_duration_seconds",
    "Time spent forwarding a request upstream, in seconds",
    ["namespace"],
    registry=registry
)

ACTIVE_REQUESTS = Gauge(
    "proxy_concurrent_requests",
    "Current number of requests waiting on an upstream",
    registry=registry
)


def render_prometheus_metrics() -> tuple[bytes, str]:
    return generate_latest(registry), CONTENT_TYPE_LATEST
