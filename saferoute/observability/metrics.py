"""
Metrics definitions for SafeRoute.

This module defines Prometheus metrics for monitoring
the proximity alert engine and its connections.
"""

from prometheus_client import Counter, Histogram, Gauge

# 카운터 메트릭
positions_received = Counter(
    "positions_received_total",
    "Number of position updates received from connections"
)

hazards_ingested = Counter(
    "hazards_ingested_total",
    "Number of hazard readings stored as alerts",
    ["kind", "source"]
)

hazards_collapsed = Counter(
    "hazards_collapsed_total",
    "Number of repeated hazard readings collapsed into an existing alert",
    ["kind"]
)

alerts_triggered = Counter(
    "alerts_triggered_total",
    "Number of alerts that transitioned to triggered",
    ["kind", "severity"]
)

alerts_escalated = Counter(
    "alerts_escalated_total",
    "Number of alert severity upgrades",
    ["kind"]
)

events_published = Counter(
    "events_published_total",
    "Outbound events delivered to connections",
    ["event"]
)

events_dropped = Counter(
    "events_dropped_total",
    "Outbound events dropped because a connection queue was full",
    ["event"]
)

inbound_rejected = Counter(
    "inbound_rejected_total",
    "Inbound events rejected at the handler boundary",
    ["event", "reason"]
)

auth_rejected = Counter(
    "auth_rejected_total",
    "Connections rejected during authentication",
    ["reason"]
)

fetch_failures = Counter(
    "external_fetch_failures_total",
    "External weather/traffic fetch failures",
    ["source"]
)

store_failures = Counter(
    "hazard_store_failures_total",
    "Hazard store operations that failed after retries",
    ["operation"]
)

presence_evicted = Counter(
    "presence_evicted_total",
    "Presence records evicted by the staleness sweep"
)

# 히스토그램 메트릭
evaluate_seconds = Histogram(
    "evaluate_proximity_duration_seconds",
    "Time spent evaluating proximity for one position",
    buckets=[0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5]
)

ingest_seconds = Histogram(
    "ingest_hazard_duration_seconds",
    "Time spent normalizing and persisting one hazard",
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0]
)

# 게이지 메트릭
connections_active = Gauge(
    "connections_active",
    "Currently active connections"
)

presence_size = Gauge(
    "presence_records",
    "Current number of presence records"
)

geo_index_size = Gauge(
    "geo_index_alerts",
    "Current number of alerts held in the geo index"
)

uptime_seconds = Gauge(
    "uptime_seconds",
    "Service uptime in seconds"
)
