from schoolhub.core.models.academic_year import AcademicYear
from schoolhub.core.models.activity_log import ActivityLog
from schoolhub.core.models.class_model import SchoolClass
from schoolhub.core.models.notification import Notification
from schoolhub.core.models.section_model import Section
from schoolhub.core.models.student import Student

__all__ = [
    "AcademicYear",
    "ActivityLog",
    "Notification",
    "SchoolClass",
    "Section",
    "Student",
]
