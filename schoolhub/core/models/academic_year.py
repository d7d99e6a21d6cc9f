import uuid

from sqlalchemy import Boolean, Column, Date, DateTime, String, Uuid

from schoolhub.db.session import Base, utcnow


class AcademicYear(Base):
    """
    Academic year (e.g. "2024-2025"). Only one row can be is_current = true;
    switching the current year unsets all others in the same transaction.
    """

    __tablename__ = "academic_years"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(50), nullable=False, unique=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    is_current = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
