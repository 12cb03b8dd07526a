from datetime import date
from typing import Dict, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import EnrollmentStatus, WriteFailureReason
from app.core.models import AcademicYear, Guardian, SchoolClass, Student, StudentAcademicRecord

from .schemas import CandidateRow, ReferenceSnapshot, RowOutcome


class StudentImportRepository:
    """
    Tenant-scoped reads and writes used by the import pipeline.
    Every method takes the tenant explicitly; nothing is cached across calls except
    class ids resolved during one commit.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db
        self._class_ids: Dict[str, Optional[UUID]] = {}

    async def get_academic_year(self, tenant_id: UUID, academic_year_id: UUID) -> Optional[AcademicYear]:
        result = await self.db.execute(
            select(AcademicYear).where(
                AcademicYear.id == academic_year_id,
                AcademicYear.tenant_id == tenant_id,
            )
        )
        return result.scalar_one_or_none()

    async def fetch_reference_snapshot(
        self,
        tenant_id: UUID,
        academic_year_name: Optional[str] = None,
    ) -> ReferenceSnapshot:
        """Read the tenant's active class names and used admission numbers."""
        classes = await self.db.execute(
            select(SchoolClass.name).where(
                SchoolClass.tenant_id == tenant_id,
                SchoolClass.is_active.is_(True),
            )
        )
        admission_numbers = await self.db.execute(
            select(Student.admission_number).where(Student.tenant_id == tenant_id)
        )
        return ReferenceSnapshot(
            existing_class_names=frozenset(name for name in classes.scalars().all() if name),
            existing_admission_numbers=frozenset(n for n in admission_numbers.scalars().all() if n),
            academic_year_name=academic_year_name,
        )

    async def _class_id_for(self, tenant_id: UUID, class_name: str) -> Optional[UUID]:
        if class_name not in self._class_ids:
            result = await self.db.execute(
                select(SchoolClass.id).where(
                    SchoolClass.tenant_id == tenant_id,
                    SchoolClass.name == class_name,
                    SchoolClass.is_active.is_(True),
                )
            )
            self._class_ids[class_name] = result.scalar_one_or_none()
        return self._class_ids[class_name]

    async def _admission_number_taken(self, tenant_id: UUID, admission_number: str) -> bool:
        result = await self.db.execute(
            select(Student.id).where(
                Student.tenant_id == tenant_id,
                Student.admission_number == admission_number,
            )
        )
        return result.first() is not None

    async def write_student(
        self,
        tenant_id: UUID,
        academic_year_id: UUID,
        row: CandidateRow,
    ) -> RowOutcome:
        """
        Write one student, its enrollment and (when any parent field is set) a guardian,
        inside a savepoint. A failure rolls back only this row. Does not commit.
        """
        class_id = await self._class_id_for(tenant_id, row.class_name)
        if class_id is None:
            return RowOutcome.failed(
                row.row_number,
                WriteFailureReason.CLASS_NOT_FOUND,
                f'Class "{row.class_name}" no longer exists in this school',
            )
        if await self._admission_number_taken(tenant_id, row.student_id):
            return RowOutcome.failed(
                row.row_number,
                WriteFailureReason.DUPLICATE_ADMISSION_NUMBER,
                f'Admission number "{row.student_id}" already exists in this school',
            )

        try:
            async with self.db.begin_nested():
                student = Student(
                    tenant_id=tenant_id,
                    admission_number=row.student_id,
                    first_name=row.first_name,
                    last_name=row.last_name,
                    date_of_birth=date.fromisoformat(row.date_of_birth) if row.date_of_birth else None,
                    gender=row.gender.value if row.gender else None,
                    email=row.parent_email,
                    phone=row.parent_phone,
                    address=row.address,
                )
                self.db.add(student)
                await self.db.flush()

                self.db.add(
                    StudentAcademicRecord(
                        tenant_id=tenant_id,
                        student_id=student.id,
                        academic_year_id=academic_year_id,
                        class_id=class_id,
                        status=EnrollmentStatus.ACTIVE.value,
                    )
                )
                if row.parent_name or row.parent_email or row.parent_phone:
                    self.db.add(
                        Guardian(
                            tenant_id=tenant_id,
                            student_id=student.id,
                            full_name=row.parent_name,
                            email=row.parent_email,
                            phone=row.parent_phone,
                            address=row.address,
                        )
                    )
                await self.db.flush()
        except IntegrityError as e:
            return RowOutcome.failed(
                row.row_number,
                WriteFailureReason.CONSTRAINT_VIOLATION,
                f"Database constraint violated while writing row: {e.orig}",
            )
        except DBAPIError as e:
            # Value too long for its column, lost connection, etc.: fail this row only
            return RowOutcome.failed(
                row.row_number,
                WriteFailureReason.WRITE_ERROR,
                f"Database error while writing row: {e.orig}",
            )
        return RowOutcome.succeeded(row.row_number, student.id)

    async def commit(self) -> None:
        await self.db.commit()

    async def rollback(self) -> None:
        await self.db.rollback()
