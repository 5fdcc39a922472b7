"""
Audit Log Model.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, BigIntId, utcnow


class AuditLog(Base):
    """
    Append-only record of every mutation.

    `changes` holds the JSON payload {"description", "data"} or
    {"description", "before", "after"}; readers go through the
    ChangeSummary projection instead of parsing it themselves.
    Rows are never updated.
    """

    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenant.id"), nullable=False, index=True)

    # Who made the change (None for system-driven recalculations)
    user_id: Mapped[Optional[int]] = mapped_column(BigInteger, index=True)
    user_email: Mapped[Optional[str]] = mapped_column(String(255))

    # What was changed
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    entity_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    action: Mapped[str] = mapped_column(String(20), nullable=False)
    changes: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_audit_log_tenant_entity", "tenant_id", "entity_type", "entity_id"),
        Index("ix_audit_log_tenant_created", "tenant_id", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<AuditLog(id={self.id}, {self.action} {self.entity_type}:{self.entity_id})>"
        )
