"""Prometheus metrics for the Secretsbeam Operator."""

from prometheus_client import Counter, Gauge, Histogram

# Reconciliation metrics
reconcile_total = Counter(
    "secretsbeam_operator_reconcile_total",
    "Total number of reconciliations",
    ["kind", "result"],
)

reconcile_duration_seconds = Histogram(
    "secretsbeam_operator_reconcile_duration_seconds",
    "Duration of reconciliations in seconds",
    ["kind"],
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)

error_total = Counter(
    "secretsbeam_operator_error_total",
    "Total number of reconciliation errors",
    ["kind", "error_type"],
)

# Backend operation metrics
backend_operations_total = Counter(
    "secretsbeam_operator_backend_operations_total",
    "Total number of secret and access operations against a backend",
    ["operation", "result"],
)

secret_rotations_total = Counter(
    "secretsbeam_operator_secret_rotations_total",
    "Total number of generated secret values rotated",
    ["provider"],
)

policy_versions_pruned_total = Counter(
    "secretsbeam_operator_policy_versions_pruned_total",
    "Total number of access policy versions deleted to relieve version pressure",
    ["provider"],
)

# Configuration drift detection metrics
drift_detected_total = Counter(
    "secretsbeam_operator_drift_detected_total",
    "Total number of out-of-band backend changes detected",
    ["kind", "provider"],
)

# Provider registry metrics
provider_registrations_total = Counter(
    "secretsbeam_operator_provider_registrations_total",
    "Provider registration attempts",
    ["provider_type", "result"],
)

registered_providers = Gauge(
    "secretsbeam_operator_registered_providers",
    "Number of providers currently registered",
)

# API call metrics
api_call_total = Counter(
    "secretsbeam_operator_api_call_total",
    "Total number of API calls",
    ["api_type", "operation", "result"],
)

api_call_duration_seconds = Histogram(
    "secretsbeam_operator_api_call_duration_seconds",
    "Duration of API calls in seconds",
    ["api_type", "operation"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0],
)

rate_limit_hits_total = Counter(
    "secretsbeam_operator_rate_limit_hits_total",
    "Total number of calls delayed by a rate limiter",
    ["api_type"],
)
