"""Series validation and partitioning utilities."""

from traffic_core.forecasting.data.preparation import build_series, make_partition, validate_series

__all__ = ["build_series", "make_partition", "validate_series"]
