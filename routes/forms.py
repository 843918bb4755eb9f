from fastapi import APIRouter, Depends, HTTPException, status, Request, Response
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
import logging

from config import settings
from database import get_db, get_redis
from routes.auth import get_current_user, security
from schemas.form import (
    EmbedCodeResponse,
    FormCreate,
    FormEnvelope,
    FormListResponse,
    FormResponse,
    FormStatsResponse,
    FormSummary,
    FormUpdate,
    PublicFormEnvelope,
)
from services import form_service
from services.exceptions import NotFoundError, SchemaValidationError
from services.field_schema import compute_theme_tokens, load_settings, render_scoped_style
from services.file_service import get_storage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/forms", tags=["forms"])

PUBLIC_CACHE_CONTROL = f"public, max-age={settings.PUBLIC_FORM_CACHE_TTL}"

@router.get("", response_model=FormListResponse)
async def list_forms(
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user)
):
    """List the caller's forms with submission counts"""
    try:
        rows = await form_service.list_for_owner(db, current_user["id"])
        forms = [
            FormSummary(**FormResponse.model_validate(form).model_dump(), submission_count=count)
            for form, count in rows
        ]
        return FormListResponse(forms=forms)

    except Exception as e:
        logger.error(f"Error listing forms: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error loading forms"
        )

@router.get("/{form_id}")
async def get_form(
    form_id: str,
    request: Request,
    response: Response,
    manage: bool = False,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
    cache=Depends(get_redis),
):
    """
    Public form for embedding, or with ``?manage=true`` the owner's full view.
    """
    if manage:
        current_user = await get_current_user(credentials)
        try:
            form = await form_service.get_for_manage(db, form_id, current_user["id"])
            return FormEnvelope(form=FormResponse.model_validate(form))
        except NotFoundError as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
        except Exception as e:
            logger.error(f"Error fetching form {form_id} for management: {str(e)}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Error loading form"
            )

    try:
        payload = await form_service.get_public(db, form_id, cache)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except Exception as e:
        logger.error(f"Error fetching form {form_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error loading form"
        )

    etag = form_service.etag_for(payload)
    headers = {"Cache-Control": PUBLIC_CACHE_CONTROL, "ETag": etag}
    if form_service.etag_matches(request.headers.get("if-none-match"), etag):
        return Response(status_code=status.HTTP_304_NOT_MODIFIED, headers=headers)

    response.headers.update(headers)
    return PublicFormEnvelope(form=payload)

@router.post("", response_model=FormEnvelope, status_code=status.HTTP_201_CREATED)
async def create_form(
    form_data: FormCreate,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user)
):
    """Create a new form owned by the caller"""
    try:
        form = await form_service.create_form(db, current_user["id"], form_data)
        return FormEnvelope(form=FormResponse.model_validate(form))

    except SchemaValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    except Exception as e:
        logger.error(f"Error creating form: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error creating form"
        )

@router.put("/{form_id}", response_model=FormEnvelope)
async def update_form(
    form_id: str,
    form_update: FormUpdate,
    db: AsyncSession = Depends(get_db),
    cache=Depends(get_redis),
    current_user: dict = Depends(get_current_user)
):
    """Partially update a form; only keys present in the body change"""
    try:
        form = await form_service.update_form(db, form_id, current_user["id"], form_update, cache)
        return FormEnvelope(form=FormResponse.model_validate(form))

    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except SchemaValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    except Exception as e:
        logger.error(f"Error updating form {form_id}: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error updating form"
        )

@router.delete("/{form_id}")
async def delete_form(
    form_id: str,
    db: AsyncSession = Depends(get_db),
    cache=Depends(get_redis),
    storage=Depends(get_storage),
    current_user: dict = Depends(get_current_user)
):
    """Delete a form together with its submissions and uploaded files"""
    try:
        await form_service.delete_form(db, form_id, current_user["id"], storage, cache)
        return {"message": "Form deleted successfully"}

    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except Exception as e:
        logger.error(f"Error deleting form {form_id}: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error deleting form"
        )

@router.post("/{form_id}/duplicate", response_model=FormEnvelope, status_code=status.HTTP_201_CREATED)
async def duplicate_form(
    form_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user)
):
    """Copy a form (fields and settings) under a new id"""
    try:
        form = await form_service.duplicate_form(db, form_id, current_user["id"])
        return FormEnvelope(form=FormResponse.model_validate(form))

    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except Exception as e:
        logger.error(f"Error duplicating form {form_id}: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error duplicating form"
        )

@router.get("/{form_id}/stats", response_model=FormStatsResponse)
async def get_form_stats(
    form_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user)
):
    """Submission totals for a form"""
    try:
        stats = await form_service.form_stats(db, form_id, current_user["id"])
        return {"stats": stats}

    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except Exception as e:
        logger.error(f"Error getting stats for form {form_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error loading form statistics"
        )

@router.get("/{form_id}/embed", response_model=EmbedCodeResponse)
async def get_embed_code(
    form_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user)
):
    """Generate embed code for a form, themed from its settings"""
    try:
        form = await form_service.get_for_manage(db, form_id, current_user["id"])

        form_url = f"{settings.PUBLIC_BASE_URL.rstrip('/')}/embed/{form.id}"
        theme = compute_theme_tokens(load_settings(form.settings))

        return EmbedCodeResponse(
            form_id=form.id,
            form_name=form.name,
            direct_url=form_url,
            iframe=(
                f'<iframe id="form-{form.id}" src="{form_url}" width="100%" '
                f'height="600" frameborder="0" style="background: transparent"></iframe>'
            ),
            style=render_scoped_style(form.id, theme),
            theme=theme,
        )

    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except Exception as e:
        logger.error(f"Error generating embed code for form {form_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error generating embed code"
        )
