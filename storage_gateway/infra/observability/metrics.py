from prometheus_client import Counter, Histogram, make_asgi_app

# Route label is the route template (e.g. /example/search/object/{key:path}),
# never the concrete path, to keep cardinality bounded.
REQUESTS = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "route", "status"],
)

LATENCY = Histogram(
    "http_request_duration_seconds",
    "Request latency in seconds",
    ["method", "route"],
)

STORAGE_REQUESTS = Counter(
    "storage_requests_total",
    "Object store calls issued by the gateway",
    ["operation", "outcome"],
)

STORAGE_LATENCY = Histogram(
    "storage_request_duration_seconds",
    "Object store call latency in seconds",
    ["operation"],
)

MULTIPART_SESSIONS = Counter(
    "storage_multipart_sessions_total",
    "Multipart upload sessions by final state",
    ["outcome"],
)

metrics_app = make_asgi_app()
