"""Declarative metric groups with counters, gauges, histograms and families, encoded as text."""

__version__ = "0.1.0"

__all__ = ["metrics", "registry", "traits", "validation", "wrappers"]