"""
Query Understanding

- Ordered rule table mapping question patterns to query types
- Item, size, station, sheet and system extraction
- Visual-inspection eligibility and task parameters
"""

from plansearch.services.retrieval.query_understanding.query_classifier import QueryClassifier
from plansearch.services.retrieval.query_understanding.visual_analysis import build_visual_request

__all__ = ["QueryClassifier", "build_visual_request"]
