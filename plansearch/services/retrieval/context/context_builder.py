from typing import Dict, List, Optional

from plansearch.schemas.query import (
    CompleteSystemData,
    DirectLookupResult,
    EnhancedSearchResult,
    VisualAnalysisRequest,
)

MAX_VECTOR_CONTENT_CHARS = 1500


def dedupe_vector_results(
    results: List[EnhancedSearchResult],
    exclude_chunk_ids: Optional[set] = None,
) -> List[EnhancedSearchResult]:
    """Keep the best-scoring hit per chunk, dropping chunks already in context."""
    exclude_chunk_ids = exclude_chunk_ids or set()
    best: Dict[str, EnhancedSearchResult] = {}
    for result in results:
        key = str(result.chunk_id)
        if key in exclude_chunk_ids:
            continue
        if key not in best or result.boosted_score > best[key].boosted_score:
            best[key] = result
    return sorted(best.values(), key=lambda r: r.boosted_score, reverse=True)


def format_direct_lookup_context(result: DirectLookupResult) -> str:
    if not result.found:
        return ""

    lines = ["## Structured Data (Direct Lookup)"]
    if result.answer:
        lines.append(f"**Answer**: {result.answer}")
    if result.source:
        lines.append(f"**Source**: {result.source}")
    lines.append(f"**Method**: {result.method} | **Confidence**: {result.confidence:.2f}")
    if result.estimated:
        lines.append("**Note**: END station not found; length estimated to the furthest station in the drawings.")
    if "index_sheet" in result.source_flags:
        lines.append("**Warning**: Value comes from an index sheet and may be incomplete. Verify against plan sheets.")
    if result.sheet_numbers:
        lines.append(f"**Sheets**: {', '.join(result.sheet_numbers)}")
    return "\n".join(lines)


def format_vector_context(results: List[EnhancedSearchResult]) -> str:
    if not results:
        return ""

    sections = ["## Relevant Plan Text (Semantic Search)"]
    for index, result in enumerate(results, start=1):
        header = f"### [{index}] Sheet {result.sheet_number or 'N/A'}"
        if result.sheet_type:
            header += f" ({result.sheet_type})"
        if result.page_number is not None:
            header += f", Page {result.page_number}"
        content = result.content
        if len(content) > MAX_VECTOR_CONTENT_CHARS:
            content = content[:MAX_VECTOR_CONTENT_CHARS] + "..."
        sections.append(f"{header}\n**Score**: {result.boosted_score:.3f}\n{content}")
    return "\n\n".join(sections)


def format_complete_data_context(data: CompleteSystemData) -> str:
    """All chunks of a system grouped under sheet headings, in sheet order."""
    if not data.chunks:
        return ""

    title = data.system_name or "All Systems"
    sections = [
        f"## Complete Data: {title}",
        (
            f"{data.total_chunks} chunks across {len(data.sheets)} sheets "
            f"({data.callout_chunks} callout boxes). Count every item listed; do not sample."
        ),
    ]
    if data.coverage.truncated:
        sections.append("**Warning**: Result was truncated at the chunk limit; counts may be low.")

    current_sheet: Optional[str] = None
    for chunk in data.chunks:
        sheet = chunk.get("sheet_number") or "Unknown"
        if sheet != current_sheet:
            sections.append(f"### Sheet {sheet}")
            current_sheet = sheet
        sections.append(chunk["content"].strip())
    return "\n\n".join(sections)


def format_visual_request_context(request: VisualAnalysisRequest) -> str:
    lines = [
        "## Visual Inspection Required",
        f"**Task**: {request.task_type.value}",
    ]
    if request.component_type:
        lines.append(f"**Component**: {request.component_type}")
    if request.size_filter:
        lines.append(f"**Size**: {request.size_filter}")
    if request.utility_name:
        lines.append(f"**Utility**: {request.utility_name}")
    if request.sheet_number:
        lines.append(f"**Sheet**: {request.sheet_number}")
    return "\n".join(lines)


def build_context(
    direct_lookup: Optional[DirectLookupResult] = None,
    vector_results: Optional[List[EnhancedSearchResult]] = None,
    complete_data: Optional[CompleteSystemData] = None,
    visual_request: Optional[VisualAnalysisRequest] = None,
) -> str:
    """
    Assemble the context handed to answer generation.

    Order is by trust: structured records, then visual task parameters,
    then the complete system listing, then semantic-search text.
    """
    sections = []
    if direct_lookup:
        sections.append(format_direct_lookup_context(direct_lookup))
    if visual_request:
        sections.append(format_visual_request_context(visual_request))
    if complete_data:
        sections.append(format_complete_data_context(complete_data))
    if vector_results:
        sections.append(format_vector_context(vector_results))

    sections = [s for s in sections if s]
    if not sections:
        return "No relevant context found."
    return "\n\n".join(sections)
