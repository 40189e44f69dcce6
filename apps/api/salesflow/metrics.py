from __future__ import annotations

import re

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.requests import Request


http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)

pipeline_conversions_total = Counter(
    "pipeline_conversions_total",
    "Total pipeline conversions by kind and outcome",
    ["conversion", "outcome"],
)

pipeline_conversion_duration_seconds = Histogram(
    "pipeline_conversion_duration_seconds",
    "Pipeline conversion duration in seconds",
    ["conversion"],
)

pipeline_field_denials_total = Counter(
    "pipeline_field_denials_total",
    "Total field updates denied by the field permission policy",
    ["domain", "field"],
)

pipeline_visibility_denied_total = Counter(
    "pipeline_visibility_denied_total",
    "Total list operations refused by visibility scoping",
    ["domain"],
)

pipeline_transitions_total = Counter(
    "pipeline_transitions_total",
    "Total applied status transitions",
    ["phase", "target"],
)


UNMATCHED_ROUTE = "<unmatched>"
_PATH_PARAM_RE = re.compile(r"\{[^{}]+\}")


def route_label(request: Request) -> str:
    """Route template with every path parameter collapsed to ``{id}``.

    Requests that match no route share one label so raw URLs never become
    label values.
    """

    route = request.scope.get("route")
    template = getattr(route, "path_format", None) or getattr(route, "path", None)
    if isinstance(template, str) and template:
        return _PATH_PARAM_RE.sub("{id}", template)
    return UNMATCHED_ROUTE


def observe_http_request(method: str, path: str, status: int, duration: float) -> None:
    status_str = str(status)
    http_requests_total.labels(method=method, path=path, status=status_str).inc()
    http_request_duration_seconds.labels(method=method, path=path).observe(duration)


def observe_conversion(conversion: str, outcome: str, duration: float | None = None) -> None:
    pipeline_conversions_total.labels(conversion=conversion, outcome=outcome).inc()
    if duration is not None:
        pipeline_conversion_duration_seconds.labels(conversion=conversion).observe(duration)


def observe_field_denied(domain: str, field: str) -> None:
    pipeline_field_denials_total.labels(domain=domain, field=field).inc()


def observe_visibility_denied(domain: str) -> None:
    pipeline_visibility_denied_total.labels(domain=domain).inc()


def observe_transition(phase: str, target: str) -> None:
    pipeline_transitions_total.labels(phase=phase, target=target).inc()


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
