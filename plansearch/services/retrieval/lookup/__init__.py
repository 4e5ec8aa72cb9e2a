"""Direct lookups against extracted quantities and termination points."""

from plansearch.services.retrieval.lookup.direct_lookup import DirectLookupService

__all__ = ["DirectLookupService"]
