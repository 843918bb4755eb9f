from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.datastructures import UploadFile
from typing import Dict, List, Tuple
from urllib.parse import quote
import logging
import unicodedata

from config import settings
from database import get_db
from routes.auth import get_current_user
from schemas.submission import SubmissionCreatedResponse, SubmissionListResponse, SubmissionResponse
from services import submission_service
from services.email_service import get_email_service
from services.exceptions import MissingRequiredFieldError, NotFoundError, UpstreamFailure
from services.file_service import IncomingFile, get_storage
from services.notification_service import NotificationDispatcher

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/submissions", tags=["submissions"])

async def read_submission_form(request: Request) -> Tuple[Dict[str, str], List[IncomingFile]]:
    """
    Split a multipart body into text answers and file parts.

    Repeated text keys (checkbox groups) are joined with ", ". Files larger
    than the upload limit are not read; their declared size is enough to
    refuse them later.
    """
    form = await request.form()
    try:
        values: Dict[str, List[str]] = {}
        uploads: List[IncomingFile] = []

        for key, value in form.multi_items():
            if isinstance(value, UploadFile):
                if not value.filename and not value.size:
                    continue  # empty file input
                size = value.size
                if size is not None and size > settings.MAX_UPLOAD_BYTES:
                    content = b""
                else:
                    content = await value.read()
                    size = len(content)
                uploads.append(
                    IncomingFile(
                        field_name=key,
                        filename=value.filename or "upload",
                        content=content,
                        content_type=value.content_type or "application/octet-stream",
                        size=size,
                    )
                )
            else:
                values.setdefault(key, []).append(value)

        payload = {key: ", ".join(items) for key, items in values.items()}
        return payload, uploads
    finally:
        await form.close()

def content_disposition(filename: str) -> str:
    """
    Attachment header that survives any filename.

    Header values must be Latin-1, so the plain ``filename`` is an ASCII
    fallback and the exact name goes into the RFC 5987 ``filename*``.
    """
    fallback = unicodedata.normalize("NFKD", filename).encode("ascii", "ignore").decode("ascii")
    fallback = fallback.replace('"', "").replace("\\", "").strip() or "download"
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename, safe='')}"

@router.get("/form/{form_id}", response_model=SubmissionListResponse)
async def list_submissions(
    form_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user)
):
    """Submissions of one of the caller's forms, newest first"""
    try:
        submissions = await submission_service.list_by_form(db, form_id, current_user["id"])
        return SubmissionListResponse(
            submissions=[SubmissionResponse.model_validate(s) for s in submissions]
        )

    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except Exception as e:
        logger.error(f"Error fetching submissions for form {form_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error loading submissions"
        )

@router.post(
    "/submit/{form_id}",
    response_model=SubmissionCreatedResponse,
    status_code=status.HTTP_201_CREATED,
)
async def submit_form(
    form_id: str,
    request: Request,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    storage=Depends(get_storage),
    email_service=Depends(get_email_service),
):
    """
    Public submission endpoint (multipart/form-data).

    Notification emails are sent after the response and can never fail it.
    """
    try:
        payload, uploads = await read_submission_form(request)

        submission, form = await submission_service.process_submission(
            db,
            form_id=form_id,
            payload=payload,
            uploads=uploads,
            storage=storage,
            ip_address=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
        )

        dispatcher = NotificationDispatcher(email_service)
        background_tasks.add_task(
            dispatcher.dispatch,
            form["settings"].get("notificationEmails"),
            form["name"],
            form["fields"],
            submission.data,
            submission.files,
            submission.id,
        )

        return SubmissionCreatedResponse(
            message="Form submitted successfully",
            submissionId=submission.id,
        )

    except NotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Form not found or inactive")
    except MissingRequiredFieldError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    except Exception as e:
        logger.exception(f"Error submitting form {form_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error submitting form"
        )

@router.get("/file/{submission_id}/{file_name}")
async def download_file(
    submission_id: str,
    file_name: str,
    db: AsyncSession = Depends(get_db),
    storage=Depends(get_storage),
    current_user: dict = Depends(get_current_user)
):
    """Stream an uploaded file back to the form owner"""
    try:
        record, content = await submission_service.get_file(
            db, submission_id, file_name, current_user["id"], storage
        )
        return StreamingResponse(
            iter([content]),
            media_type=record.get("type") or "application/octet-stream",
            headers={"Content-Disposition": content_disposition(record["name"])},
        )
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except UpstreamFailure as e:
        logger.error(f"File download error for submission {submission_id}: {str(e)}")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File could not be downloaded")
    except Exception as e:
        logger.error(f"Error downloading file for submission {submission_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error downloading file"
        )

@router.delete("/{submission_id}")
async def delete_submission(
    submission_id: str,
    db: AsyncSession = Depends(get_db),
    storage=Depends(get_storage),
    current_user: dict = Depends(get_current_user)
):
    """Delete a submission and its uploaded files"""
    try:
        await submission_service.delete_submission(db, submission_id, current_user["id"], storage)
        return {"message": "Submission deleted successfully"}

    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except Exception as e:
        logger.error(f"Error deleting submission {submission_id}: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error deleting submission"
        )
