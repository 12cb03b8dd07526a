from datetime import date
from typing import Optional

from app.api.v1.student_imports.schemas import CandidateRow, ReferenceSnapshot
from app.api.v1.student_imports.validator import validate_student_rows
from app.core.enums import ImportErrorSeverity


TODAY = date(2025, 3, 1)

SNAPSHOT = ReferenceSnapshot(
    existing_class_names=frozenset({"Grade 5A", "Grade 5B"}),
    existing_admission_numbers=frozenset({"2024-017"}),
    academic_year_name="2025",
)


def make_row(row_number: int, student_id: str, class_name: str = "Grade 5A", **extra) -> CandidateRow:
    return CandidateRow(
        row_number=row_number,
        student_id=student_id,
        first_name="Tariro",
        last_name="Moyo",
        class_name=class_name,
        **extra,
    )


def fields_for(result, row_number: int, severity: Optional[ImportErrorSeverity] = None):
    return [
        e.field
        for e in result.errors_by_row.get(row_number, [])
        if severity is None or e.severity == severity
    ]


def test_valid_rows_pass() -> None:
    rows = [make_row(1, "2025-001"), make_row(2, "2025-002", "Grade 5B")]

    result = validate_student_rows(rows, SNAPSHOT, today=TODAY)

    assert result.total_rows == 2
    assert result.valid_count == 2
    assert result.invalid_count == 0
    assert result.errors_by_row == {}
    assert [r.row_number for r in result.valid_rows] == [1, 2]


def test_unknown_class_is_error() -> None:
    result = validate_student_rows([make_row(1, "2025-001", "Grade 9Z")], SNAPSHOT, today=TODAY)

    assert result.invalid_count == 1
    assert result.valid_rows == []
    error = result.errors_by_row[1][0]
    assert error.field == "className"
    assert error.severity == ImportErrorSeverity.ERROR
    assert "Grade 9Z" in error.message


def test_class_match_is_exact() -> None:
    result = validate_student_rows([make_row(1, "2025-001", "grade 5a")], SNAPSHOT, today=TODAY)

    assert fields_for(result, 1) == ["className"]


def test_existing_admission_number_is_error() -> None:
    result = validate_student_rows([make_row(1, "2024-017")], SNAPSHOT, today=TODAY)

    assert result.invalid_count == 1
    assert fields_for(result, 1, ImportErrorSeverity.ERROR) == ["studentId"]
    assert "already exists" in result.errors_by_row[1][0].message


def test_duplicate_within_batch_marks_every_row() -> None:
    rows = [
        make_row(1, "2025-001"),
        make_row(2, "2025-002"),
        make_row(3, "2025-001"),
    ]

    result = validate_student_rows(rows, SNAPSHOT, today=TODAY)

    assert result.valid_count == 1
    assert result.invalid_count == 2
    assert [r.row_number for r in result.valid_rows] == [2]
    assert fields_for(result, 1) == ["studentId"]
    assert fields_for(result, 3) == ["studentId"]
    assert "in import batch" in result.errors_by_row[1][0].message


def test_invalid_email_is_warning_only() -> None:
    row = make_row(1, "2025-001", parent_email="rudo.moyo@")

    result = validate_student_rows([row], SNAPSHOT, today=TODAY)

    assert result.valid_count == 1
    assert result.invalid_count == 0
    assert fields_for(result, 1, ImportErrorSeverity.WARNING) == ["parentEmail"]


def test_valid_email_has_no_warning() -> None:
    row = make_row(1, "2025-001", parent_email="rudo.moyo@gmail.com")

    result = validate_student_rows([row], SNAPSHOT, today=TODAY)

    assert result.errors_by_row == {}


def test_invalid_phone_is_warning_only() -> None:
    row = make_row(1, "2025-001", parent_phone="call me maybe")

    result = validate_student_rows([row], SNAPSHOT, today=TODAY)

    assert result.valid_count == 1
    assert fields_for(result, 1, ImportErrorSeverity.WARNING) == ["parentPhone"]


def test_future_date_of_birth_is_error() -> None:
    rows = [
        make_row(1, "2025-001", date_of_birth="2025-03-02"),
        make_row(2, "2025-002", date_of_birth="2025-03-01"),
    ]

    result = validate_student_rows(rows, SNAPSHOT, today=TODAY)

    assert fields_for(result, 1, ImportErrorSeverity.ERROR) == ["dateOfBirth"]
    assert [r.row_number for r in result.valid_rows] == [2]


def test_academic_year_mismatch_is_warning() -> None:
    row = make_row(1, "2025-001", academic_year="2024")

    result = validate_student_rows([row], SNAPSHOT, today=TODAY)

    assert result.valid_count == 1
    assert fields_for(result, 1, ImportErrorSeverity.WARNING) == ["academicYear"]


def test_all_problems_on_a_row_are_collected_in_order() -> None:
    row = make_row(1, "2024-017", "Grade 9Z", parent_email="nope", date_of_birth="2030-01-01")

    result = validate_student_rows([row], SNAPSHOT, today=TODAY)

    assert fields_for(result, 1) == ["className", "studentId", "parentEmail", "dateOfBirth"]
    assert result.invalid_count == 1


def test_accounting_adds_up() -> None:
    rows = [
        make_row(1, "2025-001"),
        make_row(2, "2025-002", "Grade 9Z"),
        make_row(3, "2025-003", parent_email="bad"),
        make_row(4, "2024-017"),
    ]

    result = validate_student_rows(rows, SNAPSHOT, today=TODAY)

    assert result.valid_count + result.invalid_count == result.total_rows == 4
    assert result.valid_count == 2


def test_validation_is_repeatable() -> None:
    rows = [make_row(1, "2025-001"), make_row(2, "2025-001"), make_row(3, "2025-003", "Grade 9Z")]

    first = validate_student_rows(rows, SNAPSHOT, today=TODAY)
    second = validate_student_rows(rows, SNAPSHOT, today=TODAY)

    assert first.model_dump() == second.model_dump()


def test_accepted_rows_are_trimmed() -> None:
    row = CandidateRow(
        row_number=1,
        student_id=" 2025-001 ",
        first_name="Tariro",
        last_name="Moyo",
        class_name="Grade 5A ",
    )

    result = validate_student_rows([row], SNAPSHOT, today=TODAY)

    assert result.valid_rows[0].student_id == "2025-001"
    assert result.valid_rows[0].class_name == "Grade 5A"


def test_admission_number_longer_than_column_is_error() -> None:
    result = validate_student_rows([make_row(1, "X" * 51)], SNAPSHOT, today=TODAY)

    assert result.valid_count == 0
    assert fields_for(result, 1, ImportErrorSeverity.ERROR) == ["studentId"]
    assert "at most 50" in result.errors_by_row[1][0].message


def test_values_at_column_width_are_accepted() -> None:
    row = make_row(1, "X" * 50, parent_phone="1" * 50, parent_name="N" * 255)

    result = validate_student_rows([row], SNAPSHOT, today=TODAY)

    assert result.valid_count == 1
    assert result.errors_by_row == {}


def test_overlong_names_and_contacts_are_errors() -> None:
    row = CandidateRow(
        row_number=1,
        student_id="2025-001",
        first_name="T" * 101,
        last_name="M" * 101,
        class_name="Grade 5A",
        parent_email=("r" * 250) + "@gmail.com",
        parent_phone="1" * 51,
    )

    result = validate_student_rows([row], SNAPSHOT, today=TODAY)

    assert result.invalid_count == 1
    assert fields_for(result, 1, ImportErrorSeverity.ERROR) == [
        "firstName",
        "lastName",
        "parentEmail",
        "parentPhone",
    ]


def test_short_admission_number_is_error() -> None:
    result = validate_student_rows([make_row(1, "A1")], SNAPSHOT, today=TODAY)

    assert result.invalid_count == 1
    assert result.errors_by_row[1][0].field == "studentId"
    assert result.errors_by_row[1][0].message == "Admission number must be at least 3 characters"


def test_single_letter_name_is_error() -> None:
    row = CandidateRow(row_number=1, student_id="2025-001", first_name="T", last_name="Moyo", class_name="Grade 5A")

    result = validate_student_rows([row], SNAPSHOT, today=TODAY)

    assert fields_for(result, 1, ImportErrorSeverity.ERROR) == ["firstName"]
