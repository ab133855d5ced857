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

boaz_jobs_total = Counter(
    "boaz_jobs_total",
    "Total background jobs by status",
    ["job_type", "status"],
)

boaz_job_duration_seconds = Histogram(
    "boaz_job_duration_seconds",
    "Background job duration in seconds",
    ["job_type"],
)

survey_responses_total = Counter(
    "survey_responses_total",
    "Total survey responses by program type and source",
    ["program_type", "source"],
)

scheduler_bookings_total = Counter(
    "scheduler_bookings_total",
    "Public booking attempts by outcome",
    ["outcome"],
)

api_key_auth_failures_total = Counter(
    "api_key_auth_failures_total",
    "API key authentication failures by reason",
    ["reason"],
)


_OBJECT_ID_RE = re.compile(r"\b[0-9a-fA-F]{8}-?[0-9a-fA-F]{4}-?[0-9a-fA-F]{4}-?[0-9a-fA-F]{4}-?[0-9a-fA-F]{12}\b")
_INT_RE = re.compile(r"/\d+\b")
_PATH_PARAM_RE = re.compile(r"\{[^{}]+\}")


def _normalize_route_template(path: str) -> str:
    return _PATH_PARAM_RE.sub("{id}", path)


def _sanitize_path(path: str) -> str:
    without_ids = _OBJECT_ID_RE.sub("{id}", path)
    return _INT_RE.sub("/{id}", without_ids)


def resolve_http_path_label(request: Request) -> str:
    route = request.scope.get("route")
    if route is not None:
        path_format = getattr(route, "path_format", None)
        if isinstance(path_format, str) and path_format:
            return _normalize_route_template(path_format)
        route_path = getattr(route, "path", None)
        if isinstance(route_path, str) and route_path:
            return _normalize_route_template(route_path)
    return _sanitize_path(request.url.path)


def observe_http_request(method: str, path: str, status: int, duration: float) -> None:
    status_str = str(status)
    http_requests_total.labels(method=method, path=path, status=status_str).inc()
    http_request_duration_seconds.labels(method=method, path=path).observe(duration)


def observe_job(job_type: str, status: str, duration: float) -> None:
    boaz_jobs_total.labels(job_type=job_type, status=status).inc()
    boaz_job_duration_seconds.labels(job_type=job_type).observe(duration)


def observe_survey_response(program_type: str, source: str) -> None:
    survey_responses_total.labels(program_type=program_type, source=source).inc()


def observe_booking(outcome: str) -> None:
    scheduler_bookings_total.labels(outcome=outcome).inc()


def observe_api_key_failure(reason: str) -> None:
    api_key_auth_failures_total.labels(reason=reason).inc()


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
