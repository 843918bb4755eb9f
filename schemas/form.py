from typing import Optional, Dict, Any, List
from datetime import datetime
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# Field schema
class FieldType(str, Enum):
    TEXT = "text"
    EMAIL = "email"
    TEXTAREA = "textarea"
    TEL = "tel"
    SELECT = "select"
    RADIO = "radio"
    CHECKBOX = "checkbox"
    FILE = "file"

CHOICE_FIELD_TYPES = {FieldType.SELECT, FieldType.RADIO, FieldType.CHECKBOX}

class FormField(BaseModel):
    id: str
    name: str
    label: str
    type: FieldType
    placeholder: Optional[str] = None
    required: bool = False
    options: Optional[List[str]] = None

    model_config = ConfigDict(use_enum_values=True)

# Settings bag. Unknown keys are rejected instead of silently ignored.
class FormSettings(BaseModel):
    submit_button_text: str = "Submit"
    success_message: str = "Thank you for your message!"
    notification_emails: str = ""
    allow_file_upload: bool = True

    # Presentation only
    primary_color: str = Field("#6366f1", pattern=r"^#[0-9A-Fa-f]{6}$")
    input_border_radius: str = "6"
    input_border_color: str = "#d1d5db"
    input_border_width: str = "1"
    input_height: str = "40"
    button_border_radius: str = "6"
    button_border_color: Optional[str] = None  # falls back to primary_color
    button_border_width: str = "0"
    button_height: str = "44"

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )

# Form schemas
class FormBase(BaseModel):
    name: str
    description: Optional[str] = ""

class FormCreate(FormBase):
    # Raw field dicts, checked and normalized by services.field_schema
    fields: List[Dict[str, Any]]
    settings: Optional[FormSettings] = None

class FormUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    fields: Optional[List[Dict[str, Any]]] = None
    settings: Optional[FormSettings] = None
    is_active: Optional[bool] = None

class PublicFormResponse(BaseModel):
    """What the embed sees: no owner, no activity flag, no timestamps."""
    id: str
    name: str
    description: Optional[str] = ""
    fields: List[Dict[str, Any]]
    settings: Dict[str, Any]

    model_config = ConfigDict(from_attributes=True)

class FormResponse(PublicFormResponse):
    is_active: bool
    created_at: datetime
    updated_at: datetime

class FormSummary(FormResponse):
    submission_count: int = 0

class PublicFormEnvelope(BaseModel):
    form: PublicFormResponse

class FormEnvelope(BaseModel):
    form: FormResponse

class FormListResponse(BaseModel):
    forms: List[FormSummary]

class FormStats(BaseModel):
    total_submissions: int
    recent_submissions: int

class FormStatsResponse(BaseModel):
    stats: FormStats

class EmbedCodeResponse(BaseModel):
    form_id: str
    form_name: str
    direct_url: str
    iframe: str
    style: str
    theme: Dict[str, str]
