from prometheus_client import Counter, Histogram

# Session-level metrics
SESSIONS_STARTED = Counter(
    "letter_stream_sessions_started_total", "Generation sessions started"
)
SESSIONS_FINISHED = Counter(
    "letter_stream_sessions_finished_total",
    "Generation sessions that reached a terminal state",
    ["state"],
)
FRAGMENTS_RECEIVED = Counter(
    "letter_stream_fragments_received_total", "Stream fragments received"
)

# Template cache
TEMPLATE_CACHE_LOOKUPS = Counter(
    "letter_stream_template_cache_lookups_total",
    "Template cache lookups",
    ["result"],
)

# Persistence
PERSIST_LATENCY_SECONDS = Histogram(
    "letter_stream_persist_latency_seconds",
    "Document create/update latency seconds",
    ["op"],
)

_enabled = True


def configure_metrics(enabled: bool) -> None:
    global _enabled
    _enabled = enabled


def record_session_started() -> None:
    if _enabled:
        SESSIONS_STARTED.inc()


def record_session_finished(state: str) -> None:
    if _enabled:
        SESSIONS_FINISHED.labels(state=state).inc()


def record_fragment() -> None:
    if _enabled:
        FRAGMENTS_RECEIVED.inc()


def record_cache_lookup(hit: bool) -> None:
    if _enabled:
        TEMPLATE_CACHE_LOOKUPS.labels(result="hit" if hit else "miss").inc()


def observe_persist(op: str, seconds: float) -> None:
    """Record how long a create/update call took."""
    if _enabled:
        PERSIST_LATENCY_SECONDS.labels(op=op).observe(max(0.0, float(seconds)))
