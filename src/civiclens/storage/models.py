"""SQLAlchemy ORM models for complaint, enrichment, and pgvector tables."""

from pgvector.sqlalchemy import Vector
from sqlalchemy import BigInteger, Column, DateTime, Float, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import DeclarativeBase

# Both nv-embedqa-e5-v5 and nvclip produce 1024-dimensional vectors
EMBEDDING_DIM = 1024


class Base(DeclarativeBase):
    pass


class Complaint(Base):
    """A raw complaint row. Loaded by the ingestion boundary, read-only here."""

    __tablename__ = "complaints"

    complaint_id = Column(String(64), primary_key=True)
    category = Column(String(200), nullable=False, index=True)
    resolution = Column(Text)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
    latitude = Column(Float)
    longitude = Column(Float)


class ComplaintExtraction(Base):
    """Structured JSON fields generated from a complaint's resolution text."""

    __tablename__ = "complaint_extractions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    complaint_id = Column(String(64), ForeignKey("complaints.complaint_id"), nullable=False, index=True)
    issue_category = Column(String(200), nullable=False)
    severity = Column(Integer)
    summary = Column(Text)
    raw_response = Column(Text, nullable=False)
    prompt_version = Column(String(20))
    extracted_at = Column(DateTime(timezone=True), server_default=func.now())


class ExtractionReject(Base):
    """Generation outputs excluded from complaint_extractions, with the reason."""

    __tablename__ = "extraction_rejects"

    id = Column(Integer, primary_key=True, autoincrement=True)
    complaint_id = Column(String(64), ForeignKey("complaints.complaint_id"), nullable=False, index=True)
    raw_response = Column(Text)
    reason = Column(String(200), nullable=False)
    rejected_at = Column(DateTime(timezone=True), server_default=func.now())


class ComplaintEmbedding(Base):
    """Storage-side text embedding of a complaint resolution."""

    __tablename__ = "complaint_embeddings"

    complaint_id = Column(String(64), ForeignKey("complaints.complaint_id"), primary_key=True)
    embedding = Column(Vector(EMBEDDING_DIM), nullable=False)
    task_type = Column(String(40), nullable=False)
    model = Column(String(200), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class ImageObject(Base):
    """An evidence photo listed from the object catalog."""

    __tablename__ = "image_objects"

    uri = Column(String(1024), primary_key=True)
    content_type = Column(String(100), nullable=False)
    size_bytes = Column(BigInteger, default=0)
    updated_at = Column(DateTime(timezone=True))


class ImageEmbedding(Base):
    """Storage-side multimodal embedding of an evidence photo."""

    __tablename__ = "image_embeddings"

    uri = Column(String(1024), ForeignKey("image_objects.uri"), primary_key=True)
    embedding = Column(Vector(EMBEDDING_DIM), nullable=False)
    task_type = Column(String(40), nullable=False)
    model = Column(String(200), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
