"""Smart router entry point and analytics emission."""

from plansearch.services.retrieval.router.analytics_logger import QueryAnalyticsEvent, QueryAnalyticsLogger
from plansearch.services.retrieval.router.smart_router import SmartRouter

__all__ = ["QueryAnalyticsEvent", "QueryAnalyticsLogger", "SmartRouter"]
