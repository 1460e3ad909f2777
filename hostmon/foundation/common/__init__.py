from .metrics_factory import (
    get_mapping_store,
    get_metric_value,
    get_or_create_counter,
    get_or_create_gauge,
    reset_metrics,
    set_test_value,
)

__all__ = [
    "get_mapping_store",
    "get_metric_value",
    "get_or_create_counter",
    "get_or_create_gauge",
    "reset_metrics",
    "set_test_value",
]
