"""Query layer over time-partitioned, sharded series blocks."""

__version__ = "0.1.0"

__all__ = [
    "block",
    "db",
    "encoding",
    "errcapture",
    "iterators",
    "limits",
    "metrics",
    "model",
    "notices",
    "seriesset",
    "tracing",
    "util",
]