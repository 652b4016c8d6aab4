"""
Orphan payment recovery: successful payments whose registration never got linked
(webhook lost, session expired mid-checkout). Best-effort backfill for operators; the
steady-state flow never depends on it.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import PaymentStatus
from app.core.models import CourseStudy, NyscPayment, NyscTempSubmission, Student, StudentAcademic, StudentNysc
from app.core.models.student_nysc import SNAPSHOT_FIELDS

from .schemas import RecoveryItem, RecoveryReport

logger = logging.getLogger(__name__)

SOURCE_TEMP_BY_SESSION = "temp_submission_session"
SOURCE_TEMP_BY_STUDENT = "temp_submission_student"
SOURCE_STUDENT_PROFILE = "student_profile"


async def find_orphan_payments(db: AsyncSession, student_id: Optional[int] = None) -> List[NyscPayment]:
    stmt = select(NyscPayment).where(
        NyscPayment.status == PaymentStatus.SUCCESSFUL.value,
        NyscPayment.student_nysc_id.is_(None),
    )
    if student_id is not None:
        stmt = stmt.where(NyscPayment.student_id == student_id)
    return list((await db.execute(stmt.order_by(NyscPayment.id))).scalars().all())


def _profile_snapshot(
    student: Student,
    academic: StudentAcademic,
    course_study: Optional[CourseStudy],
) -> Dict[str, Any]:
    return {
        "fname": student.fname,
        "lname": student.lname,
        "mname": student.mname,
        "gender": student.gender,
        "dob": student.dob,
        "marital_status": student.marital_status,
        "phone": student.phone,
        "email": student.email,
        "address": student.address,
        "state": student.state,
        "lga": student.lga,
        "username": student.username or student.email,
        "matric_no": student.matric_no or academic.matric_no,
        "department": academic.department,
        "course_study": course_study.name if course_study else None,
        "level": academic.level,
        "graduation_year": academic.graduation_year,
        "cgpa": academic.cgpa,
        "jamb_no": academic.jamb_no,
        "study_mode": academic.study_mode,
        "student_id": student.id,
    }


async def recover_snapshot(
    db: AsyncSession,
    student_id: int,
    session_id: Optional[str],
) -> Optional[Tuple[str, Dict[str, Any]]]:
    """
    Registration data for an orphan payment as (source, data), trying in order: the temp
    submission of the payment's checkout session, the student's latest temp submission,
    then the student profile with the latest academic record. None when nothing usable exists.
    """
    if session_id:
        temp = (
            await db.execute(select(NyscTempSubmission).where(NyscTempSubmission.session_id == session_id))
        ).scalar_one_or_none()
        if temp is not None:
            return SOURCE_TEMP_BY_SESSION, temp.to_student_nysc_data()

    temp = (
        await db.execute(
            select(NyscTempSubmission)
            .where(NyscTempSubmission.student_id == student_id)
            .order_by(NyscTempSubmission.created_at.desc(), NyscTempSubmission.id.desc())
            .limit(1)
        )
    ).scalar_one_or_none()
    if temp is not None:
        return SOURCE_TEMP_BY_STUDENT, temp.to_student_nysc_data()

    student = await db.get(Student, student_id)
    if student is None:
        logger.warning("Student not found for orphan payment", extra={"student_id": student_id})
        return None
    academic = (
        await db.execute(
            select(StudentAcademic)
            .where(StudentAcademic.student_id == student_id)
            .order_by(StudentAcademic.created_at.desc(), StudentAcademic.id.desc())
            .limit(1)
        )
    ).scalar_one_or_none()
    if academic is None:
        logger.warning("No academic record found for student", extra={"student_id": student_id})
        return None
    course_study = await db.get(CourseStudy, academic.course_study_id) if academic.course_study_id else None
    return SOURCE_STUDENT_PROFILE, _profile_snapshot(student, academic, course_study)


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


async def _apply_recovery(
    db: AsyncSession,
    payment_id: int,
    student_id: int,
    data: Dict[str, Any],
    now: datetime,
) -> Optional[int]:
    """
    Create or gap-fill the registration, mark it paid and link the payment. Caller commits.
    Returns None when the payment was linked elsewhere first; the caller must roll back.
    """
    registration = (
        await db.execute(select(StudentNysc).where(StudentNysc.student_id == student_id).with_for_update())
    ).scalar_one_or_none()
    if registration is None:
        registration = StudentNysc(student_id=student_id, **{f: data.get(f) for f in SNAPSHOT_FIELDS})
        db.add(registration)
    else:
        # existing values always win; only empty fields are filled
        for field in SNAPSHOT_FIELDS:
            if _is_blank(getattr(registration, field)) and not _is_blank(data.get(field)):
                setattr(registration, field, data[field])

    if not registration.is_paid:
        registration.is_paid = True
        registration.is_submitted = True
        registration.submitted_at = registration.submitted_at or now
    await db.flush()

    result = await db.execute(
        update(NyscPayment)
        .where(NyscPayment.id == payment_id, NyscPayment.student_nysc_id.is_(None))
        .values(
            student_nysc_id=registration.id,
            payment_date=func.coalesce(NyscPayment.payment_date, NyscPayment.created_at),
        )
        .execution_options(synchronize_session="fetch")
    )
    if result.rowcount != 1:
        return None
    return registration.id


async def recover_orphan_payments(
    db: AsyncSession,
    dry_run: bool = False,
    student_id: Optional[int] = None,
) -> RecoveryReport:
    """Link every orphan successful payment to a registration. Each payment commits on its own."""
    orphans = [(p.id, p.student_id, p.session_id) for p in await find_orphan_payments(db, student_id)]
    report = RecoveryReport(dry_run=dry_run, total=len(orphans))
    logger.info("Orphan payment recovery started", extra={"count": len(orphans), "dry_run": dry_run})

    for payment_id, owner_id, session_id in orphans:
        try:
            found = await recover_snapshot(db, owner_id, session_id)
            if found is None:
                logger.warning(
                    "Successful payment has no recoverable registration data",
                    extra={"payment_id": payment_id, "student_id": owner_id},
                )
                report.failed += 1
                report.items.append(
                    RecoveryItem(
                        payment_id=payment_id,
                        student_id=owner_id,
                        status="failed",
                        message="Could not recover student data",
                    )
                )
                continue

            source, data = found
            if dry_run:
                report.recovered += 1
                report.items.append(
                    RecoveryItem(
                        payment_id=payment_id,
                        student_id=owner_id,
                        status="would_recover",
                        source=source,
                        message=f"Would recover {data.get('fname') or ''} {data.get('lname') or ''} ({data.get('matric_no') or 'no matric'})".strip(),
                    )
                )
                continue

            nysc_id = await _apply_recovery(db, payment_id, owner_id, data, datetime.utcnow())
            if nysc_id is None:
                await db.rollback()
                logger.info(
                    "Orphan payment linked by another process; skipped",
                    extra={"payment_id": payment_id, "student_id": owner_id},
                )
                report.skipped += 1
                report.items.append(
                    RecoveryItem(
                        payment_id=payment_id,
                        student_id=owner_id,
                        status="already_linked",
                        source=source,
                        message="Payment already linked by another process",
                    )
                )
                continue
            await db.commit()
            report.recovered += 1
            report.items.append(
                RecoveryItem(
                    payment_id=payment_id,
                    student_id=owner_id,
                    status="recovered",
                    source=source,
                    student_nysc_id=nysc_id,
                    message=f"Recovered payment {payment_id} -> NYSC record {nysc_id}",
                )
            )
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(
                "NYSC payment recovery failed",
                extra={"payment_id": payment_id, "student_id": owner_id, "error": str(e)},
            )
            report.failed += 1
            report.items.append(
                RecoveryItem(payment_id=payment_id, student_id=owner_id, status="failed", message=str(e))
            )

    logger.info(
        "Orphan payment recovery completed",
        extra={
            "total_processed": report.total,
            "recovered": report.recovered,
            "skipped": report.skipped,
            "failed": report.failed,
        },
    )
    return report
