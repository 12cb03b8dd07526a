"""
CSV parsing for student imports.

Turns uploaded text into CandidateRow objects: resolves header aliases, splits
quoted fields the way spreadsheet exports write them, trims values and
normalizes gender and date of birth. Pure: no tenant or database access.
"""
import csv
import io
import re
from datetime import date, datetime
from typing import Dict, List, Optional, Sequence, Union

from dateutil import parser as dateutil_parser

from app.core.enums import Gender, ImportErrorSeverity

from .schemas import CandidateRow, ImportRowError, ParseResult


REQUIRED_FIELDS = ("student_id", "first_name", "last_name", "class_name")

# Column order of the downloadable template; also used for headerless files.
CANONICAL_COLUMNS = (
    "student_id",
    "first_name",
    "last_name",
    "class_name",
    "date_of_birth",
    "gender",
    "parent_name",
    "parent_email",
    "parent_phone",
    "address",
    "academic_year",
)

CANONICAL_HEADERS = {
    "student_id": "studentId",
    "first_name": "firstName",
    "last_name": "lastName",
    "class_name": "className",
    "date_of_birth": "dateOfBirth",
    "gender": "gender",
    "parent_name": "parentName",
    "parent_email": "parentEmail",
    "parent_phone": "parentPhone",
    "address": "address",
    "academic_year": "academicYear",
}

# Normalized header text (lowercase, whitespace removed) -> CandidateRow field
HEADER_ALIASES: Dict[str, str] = {
    "studentid": "student_id",
    "student_id": "student_id",
    "id": "student_id",
    "admissionnumber": "student_id",
    "admission_number": "student_id",
    "admissionno": "student_id",
    "firstname": "first_name",
    "first_name": "first_name",
    "lastname": "last_name",
    "last_name": "last_name",
    "surname": "last_name",
    "dateofbirth": "date_of_birth",
    "date_of_birth": "date_of_birth",
    "dob": "date_of_birth",
    "birthdate": "date_of_birth",
    "gender": "gender",
    "sex": "gender",
    "classname": "class_name",
    "class_name": "class_name",
    "class": "class_name",
    "grade": "class_name",
    "parentemail": "parent_email",
    "parent_email": "parent_email",
    "guardianemail": "parent_email",
    "email": "parent_email",
    "parentphone": "parent_phone",
    "parent_phone": "parent_phone",
    "guardianphone": "parent_phone",
    "phone": "parent_phone",
    "parentname": "parent_name",
    "parent_name": "parent_name",
    "guardianname": "parent_name",
    "guardian_name": "parent_name",
    "address": "address",
    "homeaddress": "address",
    "home_address": "address",
    "academicyear": "academic_year",
    "academic_year": "academic_year",
    "year": "academic_year",
}

GENDER_ALIASES: Dict[str, Gender] = {
    "M": Gender.MALE,
    "MALE": Gender.MALE,
    "BOY": Gender.MALE,
    "M1": Gender.MALE,
    "F": Gender.FEMALE,
    "FEMALE": Gender.FEMALE,
    "GIRL": Gender.FEMALE,
    "F1": Gender.FEMALE,
    "O": Gender.OTHER,
    "OTHER": Gender.OTHER,
}

REQUIRED_MESSAGES = {
    "student_id": "Student ID is required",
    "first_name": "First name is required",
    "last_name": "Last name is required",
    "class_name": "Class name is required",
}

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_NUMERIC_DATE = re.compile(r"^(\d{1,2})[/-](\d{1,2})[/-](\d{4})$")
# Missing components in free-form dates ("March 2012") resolve against this, not today
_FALLBACK_DEFAULT = datetime(2000, 1, 1)


def normalize_header(value: str) -> str:
    return re.sub(r"\s+", "", (value or "").strip().lower())


def normalize_gender(value: str) -> Optional[Gender]:
    return GENDER_ALIASES.get((value or "").strip().upper())


def _calendar_date(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def normalize_date(value: str) -> Optional[str]:
    """
    Normalize a date of birth to YYYY-MM-DD.
    Tries ISO, then day-first (DD/MM/YYYY, DD-MM-YYYY), then month-first (MM/DD/YYYY),
    then a generic day-first parse (two-digit years, dotted dates). Returns None when nothing yields a real calendar date.
    """
    trimmed = (value or "").strip()
    if not trimmed:
        return None

    if _ISO_DATE.match(trimmed):
        try:
            return date.fromisoformat(trimmed).isoformat()
        except ValueError:
            pass

    match = _NUMERIC_DATE.match(trimmed)
    if match:
        first, second, year = (int(g) for g in match.groups())
        parsed = _calendar_date(year, second, first) or _calendar_date(year, first, second)
        if parsed:
            return parsed.isoformat()
        return None

    try:
        return dateutil_parser.parse(trimmed, dayfirst=True, default=_FALLBACK_DEFAULT).date().isoformat()
    except (ValueError, OverflowError):
        return None


def split_csv_line(line: str) -> List[str]:
    """Split one line honouring quotes: "a, b" stays one field and "" inside quotes is a literal quote."""
    return next(csv.reader([line], skipinitialspace=False), [])


def _decode(raw: Union[str, bytes]) -> str:
    if isinstance(raw, bytes):
        # utf-8-sig drops the BOM spreadsheet tools put at the start of CSV exports
        return raw.decode("utf-8-sig")
    return raw.lstrip("\ufeff")


def _file_error(field: str, message: str) -> ImportRowError:
    return ImportRowError(row_number=0, field=field, message=message, severity=ImportErrorSeverity.ERROR)


def _resolve_header(header_values: Sequence[str]) -> List[Optional[str]]:
    mapping: List[Optional[str]] = []
    seen = set()
    for value in header_values:
        field = HEADER_ALIASES.get(normalize_header(value))
        # First column mapped to a field wins; later duplicates are ignored
        if field in seen:
            field = None
        if field:
            seen.add(field)
        mapping.append(field)
    return mapping


def _build_row(values: Sequence[str], mapping: Sequence[Optional[str]]) -> Dict[str, object]:
    row: Dict[str, object] = {}
    for value, field in zip(values, mapping):
        if not field:
            continue
        trimmed = (value or "").strip()
        if field == "gender":
            gender = normalize_gender(trimmed)
            if gender:
                row[field] = gender
        elif field == "date_of_birth":
            dob = normalize_date(trimmed)
            if dob:
                row[field] = dob
        elif trimmed:
            row[field] = trimmed
    return row


def parse_student_csv(raw: Union[str, bytes], skip_header: bool = True) -> ParseResult:
    """
    Parse student CSV content.

    File-level problems (undecodable, empty, missing required columns, no data)
    are returned as a single row-0 error with no rows. Line-level problems are
    row errors; such lines still count towards total_rows.
    """
    result = ParseResult()
    try:
        content = _decode(raw)
    except UnicodeDecodeError:
        result.errors.append(_file_error("file", "File must be UTF-8 encoded text"))
        return result

    lines = [line for line in re.split(r"\r?\n", content) if line.strip()]
    if not lines:
        result.errors.append(_file_error("file", "CSV file is empty"))
        return result

    if skip_header:
        header_values = split_csv_line(lines[0])
        mapping = _resolve_header(header_values)
        missing = [f for f in REQUIRED_FIELDS if f not in mapping]
        if missing:
            result.errors.append(
                _file_error(
                    "header",
                    "Missing required columns: " + ", ".join(CANONICAL_HEADERS[f] for f in missing),
                )
            )
            return result
        expected_width = len(header_values)
        data_lines = lines[1:]
    else:
        expected_width = len(split_csv_line(lines[0]))
        if expected_width < len(REQUIRED_FIELDS):
            result.errors.append(
                _file_error(
                    "header",
                    "Files without a header must start with the columns: "
                    + ", ".join(CANONICAL_HEADERS[f] for f in REQUIRED_FIELDS),
                )
            )
            return result
        mapping = list(CANONICAL_COLUMNS[:expected_width])
        mapping += [None] * (expected_width - len(mapping))
        data_lines = lines

    if not data_lines:
        result.errors.append(_file_error("file", "CSV file has no data rows"))
        return result

    for row_number, line in enumerate(data_lines, start=1):
        result.total_rows += 1
        try:
            values = split_csv_line(line)
        except csv.Error as e:
            result.errors.append(
                ImportRowError(row_number=row_number, field="row", message=f"Failed to parse row: {e}")
            )
            result.skipped_row_numbers.append(row_number)
            continue

        if len(values) != expected_width:
            result.errors.append(
                ImportRowError(
                    row_number=row_number,
                    field="row",
                    message=f"Column count mismatch: expected {expected_width}, got {len(values)}",
                )
            )
            result.skipped_row_numbers.append(row_number)
            continue

        row = _build_row(values, mapping)
        missing_values = [f for f in REQUIRED_FIELDS if not row.get(f)]
        if missing_values:
            for field in missing_values:
                result.errors.append(
                    ImportRowError(
                        row_number=row_number,
                        field=CANONICAL_HEADERS[field],
                        message=REQUIRED_MESSAGES[field],
                    )
                )
            result.rejected_row_numbers.append(row_number)
            continue

        result.rows.append(CandidateRow(row_number=row_number, **row))

    return result


def format_rows_csv(rows: Sequence[CandidateRow], include_header: bool = True) -> str:
    """Write rows back out in canonical column order; parse_student_csv reads this back unchanged."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    if include_header:
        writer.writerow([CANONICAL_HEADERS[c] for c in CANONICAL_COLUMNS])
    for row in rows:
        values = []
        for column in CANONICAL_COLUMNS:
            value = getattr(row, column)
            if isinstance(value, Gender):
                value = value.value
            values.append("" if value is None else str(value))
        writer.writerow(values)
    return buffer.getvalue()
