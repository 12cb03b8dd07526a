"""
Business-rule validation for parsed student rows.

Every check runs against a ReferenceSnapshot supplied by the caller; nothing
here reads the database, so preview and commit share this exact code path.
"""
import re
from collections import Counter
from datetime import date
from typing import List, Optional, Sequence

from email_validator import EmailNotValidError, validate_email

from app.core.enums import ImportErrorSeverity

from .schemas import CandidateRow, ImportRowError, ReferenceSnapshot, ValidationResult


_PHONE_PATTERN = re.compile(r"^[\d\s+\-()]+$")

# (field, error field, label, min length, max length); max is the width of the column the value is stored in
_LENGTH_LIMITS = (
    ("student_id", "studentId", "Admission number", 3, 50),
    ("first_name", "firstName", "First name", 2, 100),
    ("last_name", "lastName", "Last name", 2, 100),
    ("parent_name", "parentName", "Parent name", 0, 255),
    ("parent_email", "parentEmail", "Parent email", 0, 255),
    ("parent_phone", "parentPhone", "Parent phone", 0, 50),
)


def _error(row: CandidateRow, field: str, message: str) -> ImportRowError:
    return ImportRowError(
        row_number=row.row_number, field=field, message=message, severity=ImportErrorSeverity.ERROR
    )


def _warning(row: CandidateRow, field: str, message: str) -> ImportRowError:
    return ImportRowError(
        row_number=row.row_number, field=field, message=message, severity=ImportErrorSeverity.WARNING
    )


def _is_valid_email(value: str) -> bool:
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def _length_errors(row: CandidateRow) -> List[ImportRowError]:
    errors: List[ImportRowError] = []
    for attr, field, label, min_length, max_length in _LENGTH_LIMITS:
        value = (getattr(row, attr) or "").strip()
        if not value:
            continue
        if len(value) < min_length:
            errors.append(_error(row, field, f"{label} must be at least {min_length} characters"))
        elif len(value) > max_length:
            errors.append(_error(row, field, f"{label} must be at most {max_length} characters"))
    return errors


def _check_row(
    row: CandidateRow,
    snapshot: ReferenceSnapshot,
    batch_counts: Counter,
    today: date,
) -> List[ImportRowError]:
    errors: List[ImportRowError] = []
    class_name = row.class_name.strip()
    admission_number = row.student_id.strip()

    errors.extend(_length_errors(row))

    if class_name not in snapshot.existing_class_names:
        errors.append(_error(row, "className", f'Class "{class_name}" does not exist in this school'))

    if admission_number in snapshot.existing_admission_numbers:
        errors.append(
            _error(row, "studentId", f'Admission number "{admission_number}" already exists in this school')
        )

    if batch_counts[admission_number] > 1:
        errors.append(
            _error(
                row,
                "studentId",
                f'Duplicate admission number "{admission_number}" in import batch '
                f"({batch_counts[admission_number]} rows)",
            )
        )

    if row.parent_email and not _is_valid_email(row.parent_email.strip()):
        errors.append(_warning(row, "parentEmail", f'Invalid email format: "{row.parent_email}"'))

    if row.parent_phone and not _PHONE_PATTERN.match(row.parent_phone.strip()):
        errors.append(_warning(row, "parentPhone", f'Invalid phone format: "{row.parent_phone}"'))

    if row.date_of_birth:
        try:
            dob = date.fromisoformat(row.date_of_birth)
        except ValueError:
            errors.append(_error(row, "dateOfBirth", f'Invalid date of birth: "{row.date_of_birth}"'))
        else:
            if dob > today:
                errors.append(_error(row, "dateOfBirth", "Date of birth cannot be in the future"))

    if (
        snapshot.academic_year_name
        and row.academic_year
        and row.academic_year.strip() != snapshot.academic_year_name
    ):
        errors.append(
            _warning(
                row,
                "academicYear",
                f'Row academic year "{row.academic_year}" differs from the selected year '
                f'"{snapshot.academic_year_name}"; the student will be enrolled in "{snapshot.academic_year_name}"',
            )
        )

    return errors


def validate_student_rows(
    rows: Sequence[CandidateRow],
    snapshot: ReferenceSnapshot,
    today: Optional[date] = None,
) -> ValidationResult:
    """
    Validate all rows, collecting every problem instead of stopping at the first.
    A row is accepted when it has no ERROR entries; WARNINGs are reported but never block.
    Rows sharing an admission number are all rejected, not only the later ones.
    """
    today = today or date.today()
    batch_counts = Counter(row.student_id.strip() for row in rows)

    result = ValidationResult(total_rows=len(rows))
    for row in rows:
        errors = _check_row(row, snapshot, batch_counts, today)
        if errors:
            result.errors_by_row[row.row_number] = errors
        if any(e.severity == ImportErrorSeverity.ERROR for e in errors):
            result.invalid_count += 1
        else:
            result.valid_rows.append(
                row.model_copy(
                    update={
                        "student_id": row.student_id.strip(),
                        "class_name": row.class_name.strip(),
                    }
                )
            )
            result.valid_count += 1
    return result
