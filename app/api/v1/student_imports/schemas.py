from datetime import datetime
from typing import Dict, FrozenSet, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.core.enums import Gender, ImportErrorSeverity, WriteFailureReason


class CamelModel(BaseModel):
    """Serialized with camelCase keys (rowNumber, canImport); accepts snake_case on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ImportRowError(CamelModel):
    """One problem attached to a row. row_number 0 means the whole file (header, encoding, emptiness)."""

    row_number: int
    field: str
    message: str
    severity: ImportErrorSeverity = ImportErrorSeverity.ERROR


class CandidateRow(CamelModel):
    """A parsed, normalized but not yet validated student line."""

    row_number: int = Field(..., ge=1, description="1-based position after the header, blank lines not counted")
    student_id: str
    first_name: str
    last_name: str
    class_name: str
    date_of_birth: Optional[str] = Field(None, description="ISO 8601 date (YYYY-MM-DD)")
    gender: Optional[Gender] = None
    parent_email: Optional[str] = None
    parent_phone: Optional[str] = None
    parent_name: Optional[str] = None
    address: Optional[str] = None
    academic_year: Optional[str] = None


class ParseResult(BaseModel):
    rows: List[CandidateRow] = Field(default_factory=list)
    errors: List[ImportRowError] = Field(default_factory=list)
    total_rows: int = 0
    # Column-count mismatches: never became candidates, never validated
    skipped_row_numbers: List[int] = Field(default_factory=list)
    # Lines missing a required value
    rejected_row_numbers: List[int] = Field(default_factory=list)

    @property
    def file_errors(self) -> List[ImportRowError]:
        return [e for e in self.errors if e.row_number == 0]

    @property
    def row_errors(self) -> List[ImportRowError]:
        return [e for e in self.errors if e.row_number > 0]


class ReferenceSnapshot(BaseModel):
    """Tenant facts rows are validated against. Fetched fresh for every preview and commit."""

    model_config = ConfigDict(frozen=True)

    existing_class_names: FrozenSet[str] = frozenset()
    existing_admission_numbers: FrozenSet[str] = frozenset()
    academic_year_name: Optional[str] = None


class ValidationResult(BaseModel):
    valid_rows: List[CandidateRow] = Field(default_factory=list)
    errors_by_row: Dict[int, List[ImportRowError]] = Field(default_factory=dict)
    total_rows: int = 0
    valid_count: int = 0
    invalid_count: int = 0

    def flattened_errors(self) -> List[ImportRowError]:
        return [e for row_number in sorted(self.errors_by_row) for e in self.errors_by_row[row_number]]


class RowOutcome(BaseModel):
    """Result of writing one validated row. Failures are values, not exceptions."""

    model_config = ConfigDict(frozen=True)

    row_number: int
    success: bool
    student_id: Optional[UUID] = None
    reason: Optional[WriteFailureReason] = None
    message: Optional[str] = None

    @classmethod
    def succeeded(cls, row_number: int, student_id: UUID) -> "RowOutcome":
        return cls(row_number=row_number, success=True, student_id=student_id)

    @classmethod
    def failed(cls, row_number: int, reason: WriteFailureReason, message: str) -> "RowOutcome":
        return cls(row_number=row_number, success=False, reason=reason, message=message)


class ImportResult(CamelModel):
    """Report of a commit's write phase. Immutable once returned."""

    model_config = ConfigDict(frozen=True)

    total_rows: int
    success_count: int
    failure_count: int
    duration_ms: int
    completed_at: datetime
    errors: List[ImportRowError] = Field(default_factory=list)
    successful_row_numbers: List[int] = Field(default_factory=list)
    failed_row_numbers: List[int] = Field(default_factory=list)


# ----- Responses -----
class PreviewSummary(CamelModel):
    total_rows: int
    processed_rows: int
    valid_rows: int
    invalid_rows: int
    skipped_rows: int = 0
    limited: bool = False


class StudentImportPreviewResponse(CamelModel):
    success: bool = True
    summary: PreviewSummary
    preview: List[CandidateRow] = Field(default_factory=list)
    validation_errors: List[ImportRowError] = Field(default_factory=list)
    parse_errors: Optional[List[ImportRowError]] = None
    can_import: bool


class CommitRejectedSummary(CamelModel):
    total_rows: int
    success_count: int = 0
    failure_count: int


class StudentImportCommitRejected(CamelModel):
    """Commit refused at the validation gate; nothing was written."""

    success: bool = False
    imported: bool = False
    message: str
    summary: CommitRejectedSummary
    validation_errors: List[ImportRowError] = Field(default_factory=list)


class CommitSummary(CamelModel):
    total_rows: int
    success_count: int
    failure_count: int
    duration_ms: int


class StudentImportCommitResponse(CamelModel):
    success: bool
    imported: bool
    summary: CommitSummary
    errors: List[ImportRowError] = Field(default_factory=list)
    warnings: List[ImportRowError] = Field(default_factory=list)
    successful_row_numbers: List[int] = Field(default_factory=list)
    failed_row_numbers: List[int] = Field(default_factory=list)
    completed_at: datetime


class ImportParseErrorResponse(CamelModel):
    success: bool = False
    error: str
    parse_errors: List[ImportRowError] = Field(default_factory=list)
