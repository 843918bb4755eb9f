from .form import (
    FieldType,
    FormField,
    FormSettings,
    FormCreate,
    FormUpdate,
    PublicFormResponse,
    FormResponse,
    FormSummary,
)
from .submission import FileRecord, SubmissionResponse, SubmissionCreatedResponse

__all__ = [
    "FieldType",
    "FormField",
    "FormSettings",
    "FormCreate",
    "FormUpdate",
    "PublicFormResponse",
    "FormResponse",
    "FormSummary",
    "FileRecord",
    "SubmissionResponse",
    "SubmissionCreatedResponse",
]
