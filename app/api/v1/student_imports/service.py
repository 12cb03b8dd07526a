"""
Student CSV import: preview (read-only dry run) and commit (re-validate, then write).

Commit never trusts a previous preview. It re-parses the uploaded file and
validates every row against a freshly read snapshot of the tenant's classes and
admission numbers before anything is written.
"""
import logging
from typing import List, Optional, Union
from uuid import UUID

from fastapi import UploadFile, status

from app.core.config import settings
from app.core.enums import ImportErrorSeverity
from app.core.exceptions import ImportParseError, ServiceError

from .parser import format_rows_csv, parse_student_csv
from .repository import StudentImportRepository
from .schemas import (
    CandidateRow,
    CommitRejectedSummary,
    CommitSummary,
    ImportRowError,
    ParseResult,
    PreviewSummary,
    StudentImportCommitRejected,
    StudentImportCommitResponse,
    StudentImportPreviewResponse,
)
from .validator import validate_student_rows
from .writer import commit_rows

logger = logging.getLogger(__name__)

CSV_CONTENT_TYPES = ("text/csv", "application/csv")
TEMPLATE_EXAMPLE_ROW = CandidateRow(
    row_number=1,
    student_id="2025-001",
    first_name="Tariro",
    last_name="Moyo",
    class_name="Grade 5A",
    date_of_birth="2014-05-15",
    gender="FEMALE",
    parent_name="Rudo Moyo",
    parent_email="rudo.moyo@gmail.com",
    parent_phone="+263 77 123 4567",
    address="12 Samora Machel Ave, Harare",
    academic_year="2025",
)


async def read_import_upload(file: UploadFile) -> bytes:
    """Check type and size of an uploaded CSV and return its bytes. Runs before any parsing."""
    filename = (file.filename or "").lower()
    content_type = (file.content_type or "").split(";")[0].strip().lower()
    if not filename.endswith(".csv") and content_type not in CSV_CONTENT_TYPES:
        raise ServiceError("Only CSV files are allowed", status.HTTP_400_BAD_REQUEST)

    max_bytes = settings.student_import_max_file_bytes
    # Read one byte past the limit so oversize files are detected without loading them whole
    content = await file.read(max_bytes + 1)
    if len(content) > max_bytes:
        raise ServiceError(
            f"Maximum file size is {max_bytes // (1024 * 1024)}MB",
            status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
        )
    if not content:
        raise ServiceError("File is empty", status.HTTP_400_BAD_REQUEST)
    return content


def _parse_or_raise(content: Union[str, bytes]) -> ParseResult:
    parsed = parse_student_csv(content, skip_header=True)
    if parsed.file_errors:
        raise ImportParseError(parsed.file_errors[0].message, parse_errors=parsed.file_errors)
    return parsed


def _sorted_errors(errors: List[ImportRowError]) -> List[ImportRowError]:
    # Stable: keeps per-row check order
    return sorted(errors, key=lambda e: e.row_number)


async def preview_student_import(
    repository: StudentImportRepository,
    tenant_id: UUID,
    content: Union[str, bytes],
) -> StudentImportPreviewResponse:
    """
    Parse and validate without writing. Only the first STUDENT_IMPORT_MAX_PREVIEW_ROWS
    candidate rows are validated; summary.limited says when the file had more.
    """
    parsed = _parse_or_raise(content)

    max_rows = settings.student_import_max_preview_rows
    limited = len(parsed.rows) > max_rows
    rows_to_process = parsed.rows[:max_rows]
    # Parser rejections beyond the last processed candidate fall outside the preview window
    cutoff: Optional[int] = rows_to_process[-1].row_number if limited else None

    def _in_window(row_number: int) -> bool:
        return cutoff is None or row_number <= cutoff

    snapshot = await repository.fetch_reference_snapshot(tenant_id)
    validation = validate_student_rows(rows_to_process, snapshot)

    parse_row_errors = [e for e in parsed.row_errors if _in_window(e.row_number)]
    rejected = [n for n in parsed.rejected_row_numbers if _in_window(n)]
    skipped = [n for n in parsed.skipped_row_numbers if _in_window(n)]

    invalid_rows = validation.invalid_count + len(rejected)
    summary = PreviewSummary(
        total_rows=parsed.total_rows,
        processed_rows=len(rows_to_process),
        valid_rows=validation.valid_count,
        invalid_rows=invalid_rows,
        skipped_rows=len(skipped),
        limited=limited,
    )
    can_import = validation.valid_count > 0 and invalid_rows == 0 and not skipped

    logger.info(
        "Student import preview for tenant %s: total=%s valid=%s invalid=%s skipped=%s limited=%s",
        tenant_id,
        summary.total_rows,
        summary.valid_rows,
        summary.invalid_rows,
        summary.skipped_rows,
        limited,
    )
    return StudentImportPreviewResponse(
        success=True,
        summary=summary,
        preview=validation.valid_rows[: settings.student_import_preview_sample_size],
        validation_errors=validation.flattened_errors(),
        parse_errors=parse_row_errors or None,
        can_import=can_import,
    )


async def commit_student_import(
    repository: StudentImportRepository,
    tenant_id: UUID,
    academic_year_id: UUID,
    content: Union[str, bytes],
) -> Union[StudentImportCommitResponse, StudentImportCommitRejected]:
    """
    Re-validate the whole file against fresh tenant data, then write it.

    The validation gate is all-or-nothing: any ERROR on any row (including lines the
    parser skipped or rejected) refuses the commit before a single write. Past the
    gate, writing is per row and a failing row does not undo the others.
    """
    academic_year = await repository.get_academic_year(tenant_id, academic_year_id)
    if not academic_year:
        raise ServiceError(
            "Academic year not found or does not belong to this school",
            status.HTTP_404_NOT_FOUND,
        )

    parsed = _parse_or_raise(content)
    snapshot = await repository.fetch_reference_snapshot(tenant_id, academic_year_name=academic_year.name)
    validation = validate_student_rows(parsed.rows, snapshot)

    all_errors = _sorted_errors(parsed.row_errors + validation.flattened_errors())
    blocking = {e.row_number for e in all_errors if e.severity == ImportErrorSeverity.ERROR}
    if blocking:
        logger.warning(
            "Student import commit refused for tenant %s: %s of %s rows invalid",
            tenant_id,
            len(blocking),
            parsed.total_rows,
        )
        return StudentImportCommitRejected(
            message=f"Found {len(blocking)} invalid rows. Fix errors before committing.",
            summary=CommitRejectedSummary(
                total_rows=parsed.total_rows,
                success_count=0,
                failure_count=len(blocking),
            ),
            validation_errors=all_errors,
        )

    result = await commit_rows(
        repository,
        tenant_id,
        academic_year.id,
        validation.valid_rows,
        total_rows=parsed.total_rows,
    )
    warnings = [e for e in all_errors if e.severity == ImportErrorSeverity.WARNING]
    imported = result.success_count > 0
    return StudentImportCommitResponse(
        success=imported,
        imported=imported,
        summary=CommitSummary(
            total_rows=result.total_rows,
            success_count=result.success_count,
            failure_count=result.failure_count,
            duration_ms=result.duration_ms,
        ),
        errors=result.errors,
        warnings=warnings,
        successful_row_numbers=result.successful_row_numbers,
        failed_row_numbers=result.failed_row_numbers,
        completed_at=result.completed_at,
    )


def build_import_template() -> str:
    """CSV template: canonical header plus one example row."""
    return format_rows_csv([TEMPLATE_EXAMPLE_ROW], include_header=True)
