"""Analytics: fire-and-forget recording of orchestration outcomes."""

from .sink import AnalyticsSink

__all__ = ["AnalyticsSink"]
