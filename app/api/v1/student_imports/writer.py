import logging
import time
from datetime import datetime, timezone
from typing import List, Optional, Sequence
from uuid import UUID

from app.core.enums import ImportErrorSeverity

from .repository import StudentImportRepository
from .schemas import CandidateRow, ImportResult, ImportRowError, RowOutcome

logger = logging.getLogger(__name__)


def build_import_result(
    outcomes: Sequence[RowOutcome],
    total_rows: int,
    duration_ms: int,
) -> ImportResult:
    errors = [
        ImportRowError(
            row_number=o.row_number,
            field="import",
            message=o.message or "Row could not be written",
            severity=ImportErrorSeverity.ERROR,
        )
        for o in outcomes
        if not o.success
    ]
    successful = [o.row_number for o in outcomes if o.success]
    failed = [o.row_number for o in outcomes if not o.success]
    return ImportResult(
        total_rows=total_rows,
        success_count=len(successful),
        failure_count=len(failed),
        duration_ms=duration_ms,
        completed_at=datetime.now(timezone.utc),
        errors=errors,
        successful_row_numbers=successful,
        failed_row_numbers=failed,
    )


async def commit_rows(
    repository: StudentImportRepository,
    tenant_id: UUID,
    academic_year_id: UUID,
    rows: Sequence[CandidateRow],
    total_rows: Optional[int] = None,
) -> ImportResult:
    """
    Write validated rows one at a time, in file order, and report per-row outcomes.
    A row that fails (e.g. an admission number taken by a concurrent import) is recorded
    and the loop moves on; rows already written stay written. The surrounding transaction
    is committed once at the end if anything succeeded.
    """
    started = time.perf_counter()
    outcomes: List[RowOutcome] = []
    for row in rows:
        outcome = await repository.write_student(tenant_id, academic_year_id, row)
        if not outcome.success:
            logger.warning(
                "Student import row %s failed for tenant %s: %s (%s)",
                outcome.row_number,
                tenant_id,
                outcome.message,
                outcome.reason.value if outcome.reason else "unknown",
            )
        outcomes.append(outcome)

    if any(o.success for o in outcomes):
        await repository.commit()
    else:
        await repository.rollback()

    duration_ms = int((time.perf_counter() - started) * 1000)
    result = build_import_result(
        outcomes,
        total_rows=len(rows) if total_rows is None else total_rows,
        duration_ms=duration_ms,
    )
    logger.info(
        "Student import wrote %s/%s rows for tenant %s in %sms",
        result.success_count,
        len(rows),
        tenant_id,
        duration_ms,
    )
    return result
