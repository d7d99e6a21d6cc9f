import uuid

from sqlalchemy import JSON, Column, Date, DateTime, ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import relationship

from schoolhub.db.session import Base, utcnow


class Student(Base):
    """
    Student profile linked to a login account (users row with role=student).
    status: active | inactive | graduated | transferred. graduated and transferred are terminal.
    """

    __tablename__ = "students"
    __table_args__ = (
        Index("ix_students_class_section", "class_id", "section_id"),
        Index("ix_students_status", "status"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    admission_number = Column(String(50), nullable=False, unique=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    date_of_birth = Column(Date, nullable=False)
    gender = Column(String(10), nullable=False)
    blood_group = Column(String(10), nullable=True)
    religion = Column(String(50), nullable=True)
    nationality = Column(String(100), nullable=False)
    address = Column(Text, nullable=False)
    phone = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    class_id = Column(Uuid, ForeignKey("classes.id"), nullable=False)
    section_id = Column(Uuid, ForeignKey("sections.id"), nullable=False)
    roll_number = Column(Integer, nullable=False)
    admission_date = Column(Date, nullable=False)
    # List of parent identifiers (strings)
    parent_ids = Column(JSON, nullable=False, default=list)
    # {"allergies": [...], "medications": [...], "conditions": [...]}
    medical_info = Column(JSON, nullable=True)
    previous_school = Column(String(255), nullable=True)
    status = Column(String(20), nullable=False, default="active")
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    user = relationship("User", foreign_keys=[user_id])
    school_class = relationship("SchoolClass", foreign_keys=[class_id])
    section = relationship("Section", foreign_keys=[section_id])
