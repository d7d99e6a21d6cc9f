from enum import Enum


class UserRole(str, Enum):
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    PRINCIPAL = "principal"
    TEACHER = "teacher"
    STUDENT = "student"
    PARENT = "parent"
    ACCOUNTANT = "accountant"
    LIBRARIAN = "librarian"
    RECEPTIONIST = "receptionist"


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"


class StudentStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    GRADUATED = "graduated"
    TRANSFERRED = "transferred"


# Terminal: no transition out of these
TERMINAL_STUDENT_STATUSES = (StudentStatus.GRADUATED.value, StudentStatus.TRANSFERRED.value)


class NotificationType(str, Enum):
    INFO = "info"
    WARNING = "warning"
    SUCCESS = "success"
    ERROR = "error"
