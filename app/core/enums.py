from enum import Enum


class Gender(str, Enum):
    MALE = "MALE"
    FEMALE = "FEMALE"
    OTHER = "OTHER"


class ImportErrorSeverity(str, Enum):
    ERROR = "ERROR"
    WARNING = "WARNING"


class WriteFailureReason(str, Enum):
    """Why a validated row could not be written during commit."""

    DUPLICATE_ADMISSION_NUMBER = "DUPLICATE_ADMISSION_NUMBER"
    CLASS_NOT_FOUND = "CLASS_NOT_FOUND"
    CONSTRAINT_VIOLATION = "CONSTRAINT_VIOLATION"
    WRITE_ERROR = "WRITE_ERROR"


class EnrollmentStatus(str, Enum):
    ACTIVE = "ACTIVE"
    PROMOTED = "PROMOTED"
    LEFT = "LEFT"
