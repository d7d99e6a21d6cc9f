"""Classes (e.g. Grade 1, Grade 10). Model named SchoolClass to avoid Python 'class' keyword."""
import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import relationship

from schoolhub.db.session import Base, utcnow


class SchoolClass(Base):
    """Class master for an academic year. Sections hang off a class."""

    __tablename__ = "classes"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(50), nullable=False)
    level = Column(Integer, nullable=False)
    capacity = Column(Integer, nullable=False)
    academic_year_id = Column(
        Uuid,
        ForeignKey("academic_years.id", ondelete="RESTRICT"),
        nullable=False,
    )
    class_teacher_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    academic_year = relationship("AcademicYear", backref="classes", foreign_keys=[academic_year_id])
