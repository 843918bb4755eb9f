import pytest

from schemas.form import FormSettings
from services.exceptions import SchemaValidationError
from services.field_schema import (
    compute_theme_tokens,
    derive_name,
    normalize_fields,
    render_scoped_style,
    validate_schema,
)


@pytest.mark.parametrize(
    "label, expected",
    [
        ("Full Name", "full_name"),
        ("Your E-mail Address", "your_email_address"),
        ("  Phone   number  ", "phone_number"),
        ("What's your budget? (EUR)", "whats_your_budget_eur"),
        ("already_snake", "already_snake"),
        ("", ""),
    ],
)
def test_derive_name(label, expected):
    assert derive_name(label) == expected


@pytest.mark.parametrize(
    "label",
    ["Full Name", "  Trailing  ", "Über Straße 12", "a\tb\nc", "x__y z", "!!!", "Company / Org"],
)
def test_derive_name_is_idempotent(label):
    once = derive_name(label)
    assert derive_name(once) == once
    assert derive_name(label.strip()) == once


def test_validate_schema_accepts_valid_fields():
    fields = [
        {"label": "Name", "type": "text", "required": True},
        {"label": "Topic", "type": "select", "options": []},
        {"label": "Attachment", "type": "file"},
    ]
    assert validate_schema(fields) == []


def test_validate_schema_reports_every_problem():
    fields = [
        {"label": "", "type": "text"},
        {"label": "Colour", "type": "radio"},
        {"label": "Date", "type": "date"},
        "not a field",
    ]
    errors = validate_schema(fields)

    assert "Field 1: label is required" in errors
    assert "Field 2: options must be a list of strings" in errors
    assert any(e.startswith("Field 3: type must be one of") for e in errors)
    assert "Field 4: must be an object" in errors


def test_validate_schema_rejects_non_list():
    assert validate_schema({"label": "x"}) == ["fields must be an array"]


def test_normalize_fields_derives_missing_names_only():
    fields = normalize_fields([
        {"id": "a", "label": "Full Name", "type": "text"},
        {"id": "b", "label": "Email", "name": "contact_mail", "type": "email", "required": True},
    ])

    assert fields[0]["name"] == "full_name"
    assert fields[1]["name"] == "contact_mail"
    assert fields[1]["required"] is True
    assert fields[1]["type"] == "email"


def test_normalize_fields_drops_irrelevant_attributes():
    fields = normalize_fields([
        {"label": "Upload", "type": "file", "placeholder": "ignored", "options": ["x"]},
        {"label": "Size", "type": "checkbox", "options": ["S", "M"]},
    ])

    assert fields[0]["placeholder"] is None
    assert fields[0]["options"] is None
    assert fields[0]["id"]
    assert fields[1]["options"] == ["S", "M"]


def test_normalize_fields_raises_with_errors():
    with pytest.raises(SchemaValidationError) as exc_info:
        normalize_fields([{"label": "Pick", "type": "select"}])

    assert exc_info.value.errors == ["Field 1: options must be a list of strings"]


def test_theme_tokens_from_primary_color():
    tokens = compute_theme_tokens(FormSettings(primary_color="#601033"))

    assert tokens["--form-primary-color"] == "#601033"
    assert tokens["--form-primary-hover"] == "#4c001f"
    assert tokens["--form-primary-focus"] == "rgba(96, 16, 51, 0.1)"
    assert tokens["--form-button-border-color"] == "#601033"
    assert tokens["--form-input-border-radius"] == "6px"


def test_theme_tokens_clamp_hover_at_black():
    tokens = compute_theme_tokens(FormSettings(primary_color="#0a0005"))
    assert tokens["--form-primary-hover"] == "#000000"


def test_scoped_style_only_targets_one_form():
    style = render_scoped_style("abc", compute_theme_tokens(FormSettings()))

    assert "#form-abc {" in style
    assert ":root" not in style
    for line in style.splitlines():
        if line.strip().endswith("{") and not line.strip().startswith("--"):
            assert line.strip().startswith("#form-abc")


def test_settings_reject_unknown_keys():
    with pytest.raises(ValueError):
        FormSettings.model_validate({"notifcationEmails": "typo@example.com"})


def test_settings_use_camel_case_keys():
    settings = FormSettings.model_validate({"notificationEmails": "a@x.com", "primaryColor": "#123456"})
    dumped = settings.model_dump(by_alias=True)

    assert settings.notification_emails == "a@x.com"
    assert dumped["primaryColor"] == "#123456"
    assert dumped["submitButtonText"] == "Submit"
