"""Submission pipeline: validate, ingest files, persist. Plus owner-side reads and deletes."""

import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from sqlalchemy import delete, desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from models.form import Form, Submission
from schemas.form import FieldType
from services import form_service
from services.exceptions import NotFoundError
from services.file_service import FileIngestionService, IncomingFile
from services.validation_service import extract_answers, validate_submission

logger = logging.getLogger(__name__)


async def create_submission(
    db: AsyncSession,
    form_id: str,
    data: Dict[str, str],
    files: List[Dict[str, Any]],
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> Submission:
    """Single insert of answers plus the file records that reached storage."""
    db_submission = Submission(
        form_id=form_id,
        data=data,
        files=files,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    db.add(db_submission)
    try:
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    await db.refresh(db_submission)
    return db_submission


async def process_submission(
    db: AsyncSession,
    form_id: str,
    payload: Mapping[str, str],
    uploads: List[IncomingFile],
    storage,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> Tuple[Submission, Dict[str, Any]]:
    """
    Run a public submission through the pipeline.

    Returns the stored submission and the public form it belongs to; the
    caller is responsible for notifications.

    Raises:
        NotFoundError: Form missing or inactive
        MissingRequiredFieldError: First required field without an answer
    """
    form = await form_service.get_public(db, form_id)
    fields = form["fields"]

    ingestion = FileIngestionService(storage)
    # refused files must not count towards a required file field
    accepted, _ = ingestion.screen(uploads)
    validate_submission(fields, payload, accepted)

    files = await ingestion.ingest(accepted)

    stored_fields = {record["fieldName"] for record in files}
    for field in fields:
        if (
            field.get("required")
            and field.get("type") == FieldType.FILE.value
            and field["name"] not in stored_fields
        ):
            logger.warning(
                f"Required file field '{field['name']}' of form {form_id} lost its upload; saving submission without it"
            )

    try:
        submission = await create_submission(
            db,
            form_id=form_id,
            data=extract_answers(fields, payload),
            files=files,
            ip_address=ip_address,
            user_agent=user_agent,
        )
    except Exception:
        # nothing references the uploaded blobs now
        await _remove_blobs(storage, [record["path"] for record in files], f"form {form_id}")
        raise

    logger.info(f"Form submission processed: {submission.id} ({len(files)} files)")
    return submission, form


async def list_by_form(db: AsyncSession, form_id: str, caller_id: str) -> List[Submission]:
    """Submissions of an owned form, newest first."""
    await form_service.get_for_manage(db, form_id, caller_id)

    result = await db.execute(
        select(Submission)
        .where(Submission.form_id == form_id)
        .order_by(desc(Submission.created_at))
    )
    return list(result.scalars().all())


async def get_owned_submission(db: AsyncSession, submission_id: str, caller_id: str) -> Submission:
    result = await db.execute(
        select(Submission)
        .join(Form, Form.id == Submission.form_id)
        .where(Submission.id == submission_id, Form.user_id == caller_id)
    )
    submission = result.scalar_one_or_none()
    if not submission:
        raise NotFoundError("Submission not found")
    return submission


async def _remove_blobs(storage, paths: List[str], context: str) -> None:
    if not paths:
        return
    try:
        await storage.delete(paths)
    except Exception as e:
        logger.error(f"Error deleting files for {context}: {str(e)}")


async def delete_submission(db: AsyncSession, submission_id: str, caller_id: str, storage) -> None:
    """
    Delete a submission and its stored files.

    Blob deletion is best-effort: a storage failure is logged and the row is
    deleted anyway.
    """
    submission = await get_owned_submission(db, submission_id, caller_id)

    paths = [record["path"] for record in (submission.files or [])]
    await _remove_blobs(storage, paths, f"submission {submission_id}")

    owned_forms = select(Form.id).where(Form.user_id == caller_id)
    result = await db.execute(
        delete(Submission).where(
            Submission.id == submission_id,
            Submission.form_id.in_(owned_forms),
        )
    )
    if result.rowcount == 0:
        await db.rollback()
        raise NotFoundError("Submission not found")
    await db.commit()

    logger.info(f"Deleted submission {submission_id} ({len(paths)} stored files)")


async def get_file(
    db: AsyncSession,
    submission_id: str,
    file_name: str,
    caller_id: str,
    storage,
) -> Tuple[Dict[str, Any], bytes]:
    """Metadata and bytes of one stored file, for the form owner."""
    submission = await get_owned_submission(db, submission_id, caller_id)

    record = next((f for f in (submission.files or []) if f.get("name") == file_name), None)
    if not record:
        raise NotFoundError("File not found")

    content = await storage.download(record["path"])
    return record, content
