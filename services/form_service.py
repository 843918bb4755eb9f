"""Form access gate: public embed reads, owner-only management and the form CRUD behind them."""

import hashlib
import json
import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import case, delete, desc, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from models.base import utcnow
from models.form import Form, Submission
from schemas.form import FormCreate, FormSettings, FormUpdate, PublicFormResponse
from services.exceptions import NotFoundError, SchemaValidationError
from services.field_schema import normalize_fields

logger = logging.getLogger(__name__)

RECENT_SUBMISSION_DAYS = 30


def public_cache_key(form_id: str) -> str:
    return f"form:public:{form_id}"


def etag_for(payload: Dict[str, Any]) -> str:
    digest = hashlib.sha256(json.dumps(payload, sort_keys=True).encode("utf-8")).hexdigest()
    return f'"{digest[:32]}"'


def etag_matches(if_none_match: Optional[str], etag: str) -> bool:
    """If-None-Match check: weak comparison over a comma separated list, or ``*``."""
    if not if_none_match:
        return False
    for candidate in if_none_match.split(","):
        candidate = candidate.strip()
        if candidate == "*":
            return True
        if candidate.startswith("W/"):
            candidate = candidate[2:]
        if candidate == etag:
            return True
    return False


async def _cache_get(cache, key: str) -> Optional[Dict[str, Any]]:
    if cache is None:
        return None
    try:
        cached = await cache.get(key)
        return json.loads(cached) if cached else None
    except Exception as e:
        logger.warning(f"Form cache read failed for {key}: {str(e)}")
        return None


async def _cache_set(cache, key: str, payload: Dict[str, Any]) -> None:
    if cache is None:
        return
    try:
        await cache.setex(key, settings.PUBLIC_FORM_CACHE_TTL, json.dumps(payload))
    except Exception as e:
        logger.warning(f"Form cache write failed for {key}: {str(e)}")


async def invalidate_public_form(cache, form_id: str) -> None:
    if cache is None:
        return
    try:
        await cache.delete(public_cache_key(form_id))
    except Exception as e:
        logger.warning(f"Form cache invalidation failed for {form_id}: {str(e)}")


async def get_public(db: AsyncSession, form_id: str, cache=None) -> Dict[str, Any]:
    """
    Active form as seen by the embed, without owner-only attributes.

    Served from the short-TTL cache when possible.

    Raises:
        NotFoundError: Form missing or inactive
    """
    key = public_cache_key(form_id)
    cached = await _cache_get(cache, key)
    if cached is not None:
        return cached

    result = await db.execute(
        select(Form).where(Form.id == form_id, Form.is_active.is_(True))
    )
    form = result.scalar_one_or_none()
    if not form:
        raise NotFoundError("Form not found")

    payload = PublicFormResponse.model_validate(form).model_dump(mode="json")
    await _cache_set(cache, key, payload)
    return payload


async def get_for_manage(db: AsyncSession, form_id: str, caller_id: str) -> Form:
    """
    Full form, active or not, for its owner only.

    A form owned by someone else is reported exactly like a missing one.
    """
    result = await db.execute(
        select(Form).where(Form.id == form_id, Form.user_id == caller_id)
    )
    form = result.scalar_one_or_none()
    if not form:
        raise NotFoundError("Form not found")
    return form


async def list_for_owner(db: AsyncSession, caller_id: str) -> List[Tuple[Form, int]]:
    """Owner's forms, newest first, each with its submission count (one aggregate query)."""
    counts = (
        select(
            Submission.form_id.label("form_id"),
            func.count(Submission.id).label("submission_count"),
        )
        .join(Form, Form.id == Submission.form_id)
        .where(Form.user_id == caller_id)
        .group_by(Submission.form_id)
        .subquery()
    )
    query = (
        select(Form, func.coalesce(counts.c.submission_count, 0))
        .outerjoin(counts, counts.c.form_id == Form.id)
        .where(Form.user_id == caller_id)
        .order_by(desc(Form.created_at))
    )
    result = await db.execute(query)
    return [(form, int(count)) for form, count in result.all()]


async def create_form(db: AsyncSession, caller_id: str, form_data: FormCreate) -> Form:
    if not form_data.name or not form_data.name.strip():
        raise SchemaValidationError(["Name and fields are required"])

    db_form = Form(
        user_id=caller_id,
        name=form_data.name.strip(),
        description=form_data.description or "",
        fields=normalize_fields(form_data.fields),
        settings=(form_data.settings or FormSettings()).model_dump(by_alias=True),
        is_active=True,
    )
    db.add(db_form)
    await db.commit()
    await db.refresh(db_form)

    logger.info(f"Created form {db_form.id} for user {caller_id}")
    return db_form


async def update_form(
    db: AsyncSession,
    form_id: str,
    caller_id: str,
    form_update: FormUpdate,
    cache=None,
) -> Form:
    """
    Overwrite only the keys that were sent. Fields are replaced wholesale.

    The owner predicate is part of the UPDATE itself, so there is no window
    between an ownership check and the write.
    """
    values = {
        key: value
        for key, value in form_update.model_dump(exclude_unset=True).items()
        if value is not None
    }
    if "name" in values:
        if not values["name"].strip():
            raise SchemaValidationError(["Name must not be empty"])
        values["name"] = values["name"].strip()
    if "fields" in values:
        values["fields"] = normalize_fields(form_update.fields)
    if "settings" in values:
        values["settings"] = form_update.settings.model_dump(by_alias=True)

    if not values:
        return await get_for_manage(db, form_id, caller_id)

    values["updated_at"] = utcnow()
    result = await db.execute(
        update(Form)
        .where(Form.id == form_id, Form.user_id == caller_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await db.rollback()
        raise NotFoundError("Form not found")
    await db.commit()
    await invalidate_public_form(cache, form_id)

    logger.info(f"Updated form {form_id}")
    form = await get_for_manage(db, form_id, caller_id)
    await db.refresh(form)
    return form


async def delete_form(
    db: AsyncSession,
    form_id: str,
    caller_id: str,
    storage,
    cache=None,
) -> None:
    """Delete a form with its submissions and their stored files."""
    owned_form = select(Form.id).where(Form.id == form_id, Form.user_id == caller_id)

    result = await db.execute(
        select(Submission.files).where(Submission.form_id.in_(owned_form))
    )
    paths = [record["path"] for files in result.scalars() for record in (files or [])]
    if paths:
        try:
            await storage.delete(paths)
        except Exception as e:
            logger.error(f"Error deleting files for form {form_id}: {str(e)}")

    await db.execute(delete(Submission).where(Submission.form_id.in_(owned_form)))
    result = await db.execute(
        delete(Form).where(Form.id == form_id, Form.user_id == caller_id)
    )
    if result.rowcount == 0:
        await db.rollback()
        raise NotFoundError("Form not found")
    await db.commit()
    await invalidate_public_form(cache, form_id)

    logger.info(f"Deleted form {form_id} ({len(paths)} stored files)")


async def duplicate_form(db: AsyncSession, form_id: str, caller_id: str) -> Form:
    original = await get_for_manage(db, form_id, caller_id)

    copy = Form(
        user_id=caller_id,
        name=f"{original.name} (Copy)",
        description=original.description,
        fields=list(original.fields or []),
        settings=dict(original.settings or {}),
        is_active=True,
    )
    db.add(copy)
    await db.commit()
    await db.refresh(copy)

    logger.info(f"Duplicated form {form_id} as {copy.id}")
    return copy


async def form_stats(db: AsyncSession, form_id: str, caller_id: str) -> Dict[str, int]:
    await get_for_manage(db, form_id, caller_id)

    cutoff = utcnow() - timedelta(days=RECENT_SUBMISSION_DAYS)
    result = await db.execute(
        select(
            func.count(Submission.id),
            func.coalesce(func.sum(case((Submission.created_at >= cutoff, 1), else_=0)), 0),
        ).where(Submission.form_id == form_id)
    )
    total, recent = result.one()
    return {"total_submissions": int(total or 0), "recent_submissions": int(recent or 0)}
