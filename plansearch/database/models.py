"""SQLAlchemy models for plan documents, chunks and extracted records."""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    TIMESTAMP,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship
from pgvector.sqlalchemy import Vector

from plansearch.core.database import Base


class Document(Base):
    """Plan set registered by the application layer."""

    __tablename__ = "documents"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    project_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    filename: Mapped[str] = mapped_column(String, nullable=False)
    file_path: Mapped[str] = mapped_column(String, nullable=False)
    mime_type: Mapped[str | None] = mapped_column(String, nullable=True)
    page_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    processing_status: Mapped[str] = mapped_column(
        String, nullable=False, default="pending"
    )  # pending | processing | completed | failed

    vision_status: Mapped[str] = mapped_column(
        String, nullable=False, default="pending"
    )  # pending | processing | completed | failed | skipped
    vision_processed_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    vision_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    vision_sheets_processed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    vision_quantities_extracted: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    vision_cost_usd: Mapped[Decimal] = mapped_column(Numeric(10, 4), nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()"
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()", onupdate=datetime.utcnow
    )

    chunks: Mapped[list["DocumentChunk"]] = relationship(
        "DocumentChunk", back_populates="document", cascade="all, delete-orphan"
    )


class DocumentChunk(Base):
    """Text chunk of a plan page with sheet metadata and vision enrichment."""

    __tablename__ = "document_chunks"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False
    )
    project_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    chunk_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    page_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    sheet_number: Mapped[str | None] = mapped_column(String, nullable=True)
    sheet_type: Mapped[str | None] = mapped_column(String, nullable=True)
    chunk_type: Mapped[str] = mapped_column(
        String, nullable=False, default="text"
    )  # text | callout_box

    # Callout metadata
    contains_components: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    component_list: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    system_name: Mapped[str | None] = mapped_column(String, nullable=True)
    station: Mapped[str | None] = mapped_column(String, nullable=True)
    stations: Mapped[list | None] = mapped_column(JSONB, nullable=True)

    # Vision enrichment
    vision_data: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    is_critical_sheet: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    extracted_quantities: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    vision_processed_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    vision_model_version: Mapped[str | None] = mapped_column(String, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()"
    )

    document: Mapped["Document"] = relationship("Document", back_populates="chunks")
    embedding: Mapped["ChunkEmbedding | None"] = relationship(
        "ChunkEmbedding", back_populates="chunk", uselist=False, cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_document_chunks_project_sheet", "project_id", "sheet_number"),
    )


class ChunkEmbedding(Base):
    """pgvector embedding for a document chunk."""

    __tablename__ = "chunk_embeddings"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    chunk_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("document_chunks.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    project_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    embedding_model: Mapped[str] = mapped_column(String, nullable=False)
    embedding: Mapped[list[float]] = mapped_column(Vector(384), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()"
    )

    chunk: Mapped["DocumentChunk"] = relationship("DocumentChunk", back_populates="embedding")


class ProjectQuantity(Base):
    """Quantity item extracted from a plan sheet."""

    __tablename__ = "project_quantities"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    project_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False
    )
    chunk_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("document_chunks.id", ondelete="SET NULL"), nullable=True
    )
    item_name: Mapped[str] = mapped_column(String, nullable=False)
    item_number: Mapped[str | None] = mapped_column(String, nullable=True)
    item_type: Mapped[str | None] = mapped_column(String, nullable=True)
    quantity: Mapped[float | None] = mapped_column(Float, nullable=True)
    unit: Mapped[str | None] = mapped_column(String, nullable=True)
    size: Mapped[str | None] = mapped_column(String, nullable=True)
    station_from: Mapped[str | None] = mapped_column(String, nullable=True)
    station_to: Mapped[str | None] = mapped_column(String, nullable=True)
    sheet_number: Mapped[str | None] = mapped_column(String, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    source_type: Mapped[str] = mapped_column(String, nullable=False, default="vision")
    source_context: Mapped[str] = mapped_column(
        String, nullable=False, default="drawing_label"
    )  # index_list | quantity_table | drawing_label
    confidence: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    extra_metadata: Mapped[dict | None] = mapped_column("metadata", JSONB, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()"
    )

    __table_args__ = (
        Index("ix_project_quantities_document_source", "document_id", "source_type"),
    )


class UtilityTerminationPoint(Base):
    """BEGIN/END/TIE-IN/TERMINUS marker bounding a utility run."""

    __tablename__ = "utility_termination_points"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    project_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False
    )
    chunk_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("document_chunks.id", ondelete="SET NULL"), nullable=True
    )
    utility_name: Mapped[str] = mapped_column(String, nullable=False)
    utility_type: Mapped[str | None] = mapped_column(String, nullable=True)
    termination_type: Mapped[str] = mapped_column(String, nullable=False)
    station: Mapped[str] = mapped_column(String, nullable=False)
    station_numeric: Mapped[float | None] = mapped_column(Float, nullable=True)
    sheet_number: Mapped[str | None] = mapped_column(String, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    source_type: Mapped[str] = mapped_column(String, nullable=False, default="vision")
    confidence: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()"
    )


class UtilityCrossing(Base):
    """A different utility system crossing the one drawn on the sheet."""

    __tablename__ = "utility_crossings"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    project_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False
    )
    chunk_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("document_chunks.id", ondelete="SET NULL"), nullable=True
    )
    crossing_utility: Mapped[str] = mapped_column(String, nullable=False)
    utility_full_name: Mapped[str | None] = mapped_column(String, nullable=True)
    station: Mapped[str | None] = mapped_column(String, nullable=True)
    station_numeric: Mapped[float | None] = mapped_column(Float, nullable=True)
    elevation: Mapped[float | None] = mapped_column(Float, nullable=True)
    is_existing: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_proposed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    size: Mapped[str | None] = mapped_column(String, nullable=True)
    sheet_number: Mapped[str | None] = mapped_column(String, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    source_type: Mapped[str] = mapped_column(String, nullable=False, default="vision")
    confidence: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()"
    )


class QueryAnalytics(Base):
    """One row per routed query."""

    __tablename__ = "query_analytics"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    project_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    query_text: Mapped[str] = mapped_column(Text, nullable=False)
    query_type: Mapped[str] = mapped_column(String, nullable=False)
    query_classification: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    response_method: Mapped[str] = mapped_column(String, nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    latency_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    vector_search_results: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    direct_lookup_results: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    vision_calls_made: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    extra_metadata: Mapped[dict | None] = mapped_column("metadata", JSONB, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()"
    )
