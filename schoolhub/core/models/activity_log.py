"""
Activity log: who did what to which module. Written alongside every mutating student
lifecycle operation and on login.
"""

import uuid

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Index, String, Text, Uuid

from schoolhub.db.session import Base, utcnow


class ActivityLog(Base):
    __tablename__ = "activity_logs"
    __table_args__ = (Index("ix_activity_logs_module_action", "module", "action"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    user_role = Column(String(50), nullable=True)
    action = Column(String(50), nullable=False)
    module = Column(String(50), nullable=False)
    description = Column(Text, nullable=False)
    ip_address = Column(String(64), nullable=True)
    # "metadata" is reserved on declarative classes
    extra = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
