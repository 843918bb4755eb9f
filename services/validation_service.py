import logging
from typing import Any, Dict, Iterable, List, Mapping

from schemas.form import FieldType
from services.exceptions import MissingRequiredFieldError

logger = logging.getLogger(__name__)


def validate_submission(
    fields: List[Dict[str, Any]],
    payload: Mapping[str, str],
    uploads: Iterable[Any],
) -> None:
    """
    Check a submission against the form's fields, in field order.

    Stops at the first required field without an answer. Only presence is
    checked: no format validation (email syntax etc.) happens here.

    Args:
        fields: The form's stored field list
        payload: Non-file answers keyed by field name
        uploads: Uploaded file descriptors, each with a ``field_name``

    Raises:
        MissingRequiredFieldError: For the first required field left empty
    """
    uploaded_field_names = {upload.field_name for upload in uploads}

    for field in fields:
        if not field.get("required"):
            continue

        if field.get("type") == FieldType.FILE.value:
            if field["name"] not in uploaded_field_names:
                raise MissingRequiredFieldError(field["label"])
        else:
            value = payload.get(field["name"])
            if value is None or not str(value).strip():
                raise MissingRequiredFieldError(field["label"])


def extract_answers(fields: List[Dict[str, Any]], payload: Mapping[str, str]) -> Dict[str, str]:
    """Answers for the form's non-file fields that were actually sent."""
    answers = {}
    for field in fields:
        if field.get("type") == FieldType.FILE.value:
            continue
        name = field["name"]
        if name in payload:
            answers[name] = payload[name]
    return answers
