"""Capacity, SLA and kept-rate reporting."""

from .metrics import MetricsAggregator, UnescalatedBreach

__all__ = ["MetricsAggregator", "UnescalatedBreach"]
