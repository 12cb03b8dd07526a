from app.core.models.tenant import Tenant
from app.core.models.academic_year import AcademicYear
from app.core.models.class_model import SchoolClass
from app.core.models.student import Student
from app.core.models.guardian import Guardian
from app.core.models.student_academic_record import StudentAcademicRecord

__all__ = [
    "AcademicYear",
    "Guardian",
    "SchoolClass",
    "Student",
    "StudentAcademicRecord",
    "Tenant",
]
