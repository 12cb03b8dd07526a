from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from fastapi.responses import JSONResponse, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.rbac import check_permission
from app.auth.schemas import CurrentUser
from app.core.exceptions import ImportParseError, ServiceError
from app.db.session import get_db

from .repository import StudentImportRepository
from .schemas import (
    ImportParseErrorResponse,
    StudentImportCommitRejected,
    StudentImportCommitResponse,
    StudentImportPreviewResponse,
)
from . import service

router = APIRouter(prefix="/api/v1/students/import", tags=["student-import"])


def _parse_error_response(e: ImportParseError) -> JSONResponse:
    body = ImportParseErrorResponse(error=e.message, parse_errors=e.parse_errors)
    return JSONResponse(
        status_code=e.status_code,
        content=body.model_dump(mode="json", by_alias=True),
    )


@router.get(
    "/template",
    dependencies=[Depends(check_permission("students", "create"))],
)
async def download_student_import_template() -> Response:
    """Download a CSV template with the canonical header and one example row."""
    return Response(
        content=service.build_import_template(),
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=student_import_template.csv"},
    )


@router.post(
    "/preview",
    response_model=StudentImportPreviewResponse,
    dependencies=[Depends(check_permission("students", "create"))],
)
async def preview_student_import(
    file: UploadFile = File(..., description="CSV with studentId, firstName, lastName, className columns"),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """
    Parse and validate a student CSV without writing anything.
    canImport is true only when every processed row is valid.
    """
    try:
        content = await service.read_import_upload(file)
        return await service.preview_student_import(
            StudentImportRepository(db), current_user.tenant_id, content
        )
    except ImportParseError as e:
        return _parse_error_response(e)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/commit",
    response_model=StudentImportCommitResponse,
    responses={status.HTTP_400_BAD_REQUEST: {"model": StudentImportCommitRejected}},
    dependencies=[Depends(check_permission("students", "create"))],
)
async def commit_student_import(
    file: UploadFile = File(..., description="The same CSV that was previewed"),
    academic_year_id: UUID = Form(..., description="Academic year to enroll the students in"),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """
    Re-validate the CSV against current school data and import it.
    Any invalid row blocks the whole commit (400, nothing written). Once validation passes,
    rows are written one by one and per-row write failures are reported, not raised.
    """
    try:
        content = await service.read_import_upload(file)
        result = await service.commit_student_import(
            StudentImportRepository(db), current_user.tenant_id, academic_year_id, content
        )
    except ImportParseError as e:
        return _parse_error_response(e)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    if isinstance(result, StudentImportCommitRejected):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=result.model_dump(mode="json", by_alias=True),
        )
    return result
