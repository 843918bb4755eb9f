import pytest

from services.exceptions import MissingRequiredFieldError
from services.file_service import IncomingFile
from services.validation_service import extract_answers, validate_submission

FIELDS = [
    {"name": "name", "label": "Name", "type": "text", "required": True},
    {"name": "email", "label": "Email", "type": "email", "required": True},
    {"name": "cv", "label": "CV", "type": "file", "required": True},
    {"name": "notes", "label": "Notes", "type": "textarea", "required": False},
    {"name": "photo", "label": "Photo", "type": "file", "required": False},
]


def _upload(field_name: str) -> IncomingFile:
    return IncomingFile(field_name=field_name, filename="a.pdf", content=b"%PDF", content_type="application/pdf")


def test_complete_submission_passes():
    validate_submission(FIELDS, {"name": "Ada", "email": "ada@example.com"}, [_upload("cv")])


def test_first_missing_field_in_form_order_is_reported():
    with pytest.raises(MissingRequiredFieldError) as exc_info:
        validate_submission(FIELDS, {}, [])

    assert exc_info.value.label == "Name"
    assert str(exc_info.value) == 'Field "Name" is required'


@pytest.mark.parametrize("value", ["", "   ", "\n\t"])
def test_blank_values_count_as_missing(value):
    with pytest.raises(MissingRequiredFieldError) as exc_info:
        validate_submission(FIELDS, {"name": "Ada", "email": value}, [_upload("cv")])

    assert exc_info.value.label == "Email"


def test_required_file_needs_an_upload_under_its_own_name():
    with pytest.raises(MissingRequiredFieldError) as exc_info:
        validate_submission(FIELDS, {"name": "Ada", "email": "ada@example.com"}, [_upload("photo")])

    assert exc_info.value.label == "CV"


def test_file_field_is_not_satisfied_by_payload_value():
    with pytest.raises(MissingRequiredFieldError):
        validate_submission(FIELDS, {"name": "Ada", "email": "ada@example.com", "cv": "cv.pdf"}, [])


def test_format_is_not_checked():
    validate_submission(FIELDS, {"name": "Ada", "email": "not-an-email"}, [_upload("cv")])


def test_optional_fields_may_be_absent():
    validate_submission(FIELDS[:3], {"name": "Ada", "email": "a@b.c"}, [_upload("cv")])


def test_form_without_required_fields_accepts_empty_payload():
    validate_submission([{"name": "notes", "label": "Notes", "type": "text", "required": False}], {}, [])


def test_extract_answers_keeps_only_declared_non_file_fields():
    answers = extract_answers(
        FIELDS,
        {"name": "Ada", "email": "ada@example.com", "cv": "ignored", "unknown": "dropped"},
    )
    assert answers == {"name": "Ada", "email": "ada@example.com"}
