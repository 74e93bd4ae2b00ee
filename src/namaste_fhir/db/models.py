"""
Database models for NAMASTE FHIR Gateway.

SQLAlchemy models for concepts, mappings, users, and audit logging.
"""

from datetime import datetime
from typing import Optional, Dict, Any
from sqlalchemy import String, Text, DateTime, JSON, Float, Integer, Boolean, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from namaste_fhir.db.session import Base


class Concept(Base):
    """
    Model for storing terminology concepts from various systems.

    Holds NAMASTE (ayurveda, siddha, unani) and ICD-11 concepts; identity is
    the (system, code) pair.
    """
    __tablename__ = "concepts"
    __table_args__ = (
        UniqueConstraint("system", "code", name="uq_concepts_system_code"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    system: Mapped[str] = mapped_column(String(100), index=True, nullable=False)
    code: Mapped[str] = mapped_column(String(100), index=True, nullable=False)
    display: Mapped[str] = mapped_column(String(500), nullable=False)
    definition: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    language: Mapped[str] = mapped_column(String(10), default="en", nullable=False)
    properties: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20),
        default="active",
        nullable=False,
        comment="Lifecycle status: active, inactive, deprecated"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<Concept(system='{self.system}', code='{self.code}', display='{self.display}')>"


class Mapping(Base):
    """
    Model for storing concept mappings between different terminology systems.

    Maps concepts from source systems (e.g., Ayurveda) to target systems (e.g., ICD-11).
    Rows are retired rather than deleted.
    """
    __tablename__ = "mappings"
    __table_args__ = (
        UniqueConstraint(
            "source_system", "source_code", "target_system", "target_code",
            name="uq_mappings_pair"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    source_system: Mapped[str] = mapped_column(String(100), index=True, nullable=False)
    source_code: Mapped[str] = mapped_column(String(100), index=True, nullable=False)
    target_system: Mapped[str] = mapped_column(String(100), index=True, nullable=False)
    target_code: Mapped[str] = mapped_column(String(100), index=True, nullable=False)
    target_display: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    equivalence: Mapped[str] = mapped_column(
        String(40),
        default="related-to",
        nullable=False,
        comment="equivalent, source-is-narrower-than-target, source-is-broader-than-target, related-to, not-related-to"
    )
    confidence: Mapped[float] = mapped_column(
        Float,
        default=0.5,
        nullable=False,
        comment="Confidence score between 0.0 and 1.0"
    )
    comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20),
        default="active",
        index=True,
        nullable=False,
        comment="draft, active, retired, review"
    )
    origin: Mapped[str] = mapped_column(
        String(20),
        default="curated",
        nullable=False,
        comment="curated, ai-generated, fallback"
    )
    curator: Mapped[Optional[str]] = mapped_column(
        String(200),
        nullable=True,
        comment="Person or system that created/validated the mapping"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        onupdate=func.now(),
        nullable=True
    )

    def __repr__(self) -> str:
        return f"<Mapping({self.source_system}:{self.source_code} -> {self.target_system}:{self.target_code})>"


class User(Base):
    """ABHA-authenticated user known to the service."""
    __tablename__ = "users"

    abha_id: Mapped[str] = mapped_column(String(100), primary_key=True)
    abha_number: Mapped[str] = mapped_column(String(14), unique=True, index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(200), index=True, nullable=True)
    mobile: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    gender: Mapped[Optional[str]] = mapped_column(String(1), nullable=True)
    date_of_birth: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    address: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    profile: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    last_login: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        onupdate=func.now(),
        nullable=True
    )

    def __repr__(self) -> str:
        return f"<User(abha_id='{self.abha_id}', name='{self.name}')>"


class AuditLog(Base):
    """
    Model for audit logging of all operations.

    Tracks who performed what action on which resource for compliance and debugging.
    """
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    actor: Mapped[str] = mapped_column(String(200), index=True, nullable=False)
    action: Mapped[str] = mapped_column(String(50), index=True, nullable=False)
    resource_type: Mapped[Optional[str]] = mapped_column(String(100), index=True, nullable=True)
    resource_id: Mapped[Optional[str]] = mapped_column(String(200), index=True, nullable=True)
    detail: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        index=True
    )

    def __repr__(self) -> str:
        return f"<AuditLog(actor='{self.actor}', action='{self.action}', resource='{self.resource_type}:{self.resource_id}')>"
