"""SplitStats: statistical analysis engine for A/B/n conversion experiments."""

__version__ = "0.1.0"
