"""Live scoring aggregation and tabulation for judged exhibitions."""

__version__ = "1.0.0"
