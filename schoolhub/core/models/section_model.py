"""Sections (e.g. A, B, C) under a class. Section name is unique per class."""
import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from schoolhub.db.session import Base, utcnow


class Section(Base):
    """
    Fixed-capacity subdivision of a class. current_strength is a denormalized
    count of active students whose section_id references this row; it is only
    changed through the conditional updates in sections.service.
    """

    __tablename__ = "sections"
    __table_args__ = (
        UniqueConstraint("class_id", "name", name="uq_section_class_name"),
        CheckConstraint("current_strength >= 0", name="ck_section_strength_non_negative"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    class_id = Column(Uuid, ForeignKey("classes.id"), nullable=False)
    name = Column(String(50), nullable=False)
    capacity = Column(Integer, nullable=False)
    current_strength = Column(Integer, nullable=False, default=0)
    class_teacher_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    room = Column(String(50), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    school_class = relationship("SchoolClass", backref="sections", foreign_keys=[class_id])
