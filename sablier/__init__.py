"""Start workloads on demand and stop them after a period of inactivity."""

__version__ = "1.0.0"