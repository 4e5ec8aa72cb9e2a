"""
Plan-Set Retrieval Services

Query classification, structured lookups, station-aware vector search and
complete-system retrieval, coordinated by the smart router.
"""
