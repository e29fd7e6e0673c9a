"""Prometheus metrics for the Metal Device Operator."""

from prometheus_client import Counter, Histogram

# Reconciliation metrics
reconcile_total = Counter(
    "metal_device_operator_reconcile_total",
    "Total number of reconciliations",
    ["kind", "result"],
)

reconcile_duration_seconds = Histogram(
    "metal_device_operator_reconcile_duration_seconds",
    "Duration of reconciliations in seconds",
    ["kind"],
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)

error_total = Counter(
    "metal_device_operator_error_total",
    "Total number of reconciliation errors",
    ["kind", "error_type"],
)

resource_status_total = Counter(
    "metal_device_operator_resource_status_total",
    "Resource status observations",
    ["kind", "status"],
)

# Device operation metrics
device_operations_total = Counter(
    "metal_device_operator_device_operations_total",
    "Total number of device operations",
    ["operation", "result"],
)

# Provider config credential validation
provider_config_validation_total = Counter(
    "metal_device_operator_provider_config_validation_total",
    "ProviderConfig credential validation results",
    ["provider_config", "status"],
)

# Configuration drift detection metrics
drift_detected_total = Counter(
    "metal_device_operator_drift_detected_total",
    "Total number of configuration drift detections",
    ["kind", "field"],
)

# API call metrics
api_call_total = Counter(
    "metal_device_operator_api_call_total",
    "Total number of API calls",
    ["api_type", "operation", "result"],
)

api_call_duration_seconds = Histogram(
    "metal_device_operator_api_call_duration_seconds",
    "Duration of API calls in seconds",
    ["api_type", "operation"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0],
)

rate_limit_hits_total = Counter(
    "metal_device_operator_rate_limit_hits_total",
    "Total number of rate limit hits",
    ["api_type"],
)
