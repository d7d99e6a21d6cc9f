import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, String, Text, Uuid

from schoolhub.db.session import Base, utcnow


class Notification(Base):
    """In-app notification for one user (promotion, graduation, transfer notices)."""

    __tablename__ = "notifications"
    __table_args__ = (Index("ix_notifications_user_read", "user_id", "is_read"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(String(20), nullable=False, default="info")  # info | warning | success | error
    is_read = Column(Boolean, nullable=False, default=False)
    link = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
