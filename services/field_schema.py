"""
Form shape: field names, schema checks and theme tokens.

Nothing in here touches the database or the network.
"""
import logging
import re
import uuid
from typing import Any, Dict, List, Mapping, Optional

from schemas.form import CHOICE_FIELD_TYPES, FieldType, FormField, FormSettings
from services.exceptions import SchemaValidationError

logger = logging.getLogger(__name__)

_FIELD_TYPES = {t.value for t in FieldType}
_CHOICE_TYPES = {t.value for t in CHOICE_FIELD_TYPES}

_NAME_STRIP_RE = re.compile(r"[^a-z0-9_\s]")
_WHITESPACE_RE = re.compile(r"\s+")


def derive_name(label: str) -> str:
    """
    Default storage key for a field label.

    "Your E-mail Address" -> "your_email_address". Underscores survive so that
    derive_name(derive_name(x)) == derive_name(x).
    """
    if not label:
        return ""
    name = _NAME_STRIP_RE.sub("", label.lower())
    return _WHITESPACE_RE.sub("_", name.strip())


def validate_schema(fields: Any) -> List[str]:
    """Return every schema error found in a raw field list (empty list means valid)."""
    if not isinstance(fields, list):
        return ["fields must be an array"]

    errors = []
    for index, field in enumerate(fields, start=1):
        if not isinstance(field, Mapping):
            errors.append(f"Field {index}: must be an object")
            continue

        label = field.get("label")
        if not isinstance(label, str) or not label.strip():
            errors.append(f"Field {index}: label is required")

        field_type = field.get("type")
        if field_type not in _FIELD_TYPES:
            errors.append(
                f"Field {index}: type must be one of {', '.join(sorted(_FIELD_TYPES))}"
            )

        if field_type in _CHOICE_TYPES:
            options = field.get("options")
            if not isinstance(options, list) or not all(isinstance(o, str) for o in options):
                errors.append(f"Field {index}: options must be a list of strings")

        name = field.get("name")
        if name is not None and not isinstance(name, str):
            errors.append(f"Field {index}: name must be a string")
        elif not (name or "").strip() and isinstance(label, str) and label.strip() and not derive_name(label):
            errors.append(f"Field {index}: name could not be derived from label")

    return errors


def normalize_fields(fields: Any) -> List[Dict[str, Any]]:
    """
    Validate and canonicalize a raw field list for storage.

    A user-edited name is kept as is; only a missing name is derived from the label.
    """
    errors = validate_schema(fields)
    if errors:
        raise SchemaValidationError(errors)

    normalized = []
    seen_names = set()
    for field in fields:
        field_type = field["type"]
        name = (field.get("name") or "").strip() or derive_name(field["label"])
        if name in seen_names:
            # answers are keyed by name, so the later field wins on collision
            logger.warning(f"Duplicate field name '{name}' in form schema")
        seen_names.add(name)

        normalized.append(
            FormField(
                id=str(field.get("id") or uuid.uuid4().hex),
                name=name,
                label=field["label"].strip(),
                type=field_type,
                placeholder=None if field_type == FieldType.FILE.value else field.get("placeholder"),
                required=bool(field.get("required", False)),
                options=list(field["options"]) if field_type in _CHOICE_TYPES else None,
            ).model_dump()
        )
    return normalized


def load_settings(raw: Optional[Mapping[str, Any]]) -> FormSettings:
    return FormSettings.model_validate(dict(raw or {}))


def _hex_to_rgb(color: str):
    value = color.lstrip("#")
    return int(value[0:2], 16), int(value[2:4], 16), int(value[4:6], 16)


def compute_theme_tokens(settings: FormSettings) -> Dict[str, str]:
    """CSS custom properties for one form's embed, derived only from its settings."""
    r, g, b = _hex_to_rgb(settings.primary_color)
    hover = "#{:02x}{:02x}{:02x}".format(max(0, r - 20), max(0, g - 20), max(0, b - 20))

    return {
        "--form-primary-color": settings.primary_color,
        "--form-primary-hover": hover,
        "--form-primary-focus": f"rgba({r}, {g}, {b}, 0.1)",
        "--form-input-border-radius": f"{settings.input_border_radius}px",
        "--form-input-border-color": settings.input_border_color,
        "--form-input-border-width": f"{settings.input_border_width}px",
        "--form-input-height": f"{settings.input_height}px",
        "--form-button-border-radius": f"{settings.button_border_radius}px",
        "--form-button-border-color": settings.button_border_color or settings.primary_color,
        "--form-button-border-width": f"{settings.button_border_width}px",
        "--form-button-height": f"{settings.button_height}px",
    }


def render_scoped_style(form_id: str, tokens: Dict[str, str]) -> str:
    """<style> block whose rules only match inside #form-<id>."""
    scope = f"#form-{form_id}"
    variables = "\n".join(f"    {key}: {value};" for key, value in tokens.items())
    return (
        "<style>\n"
        f"  {scope} {{\n{variables}\n  }}\n"
        f"  {scope} .form-input:focus {{\n"
        "    outline: none;\n"
        "    border-color: var(--form-primary-color);\n"
        "    box-shadow: 0 0 0 2px var(--form-primary-focus);\n"
        "  }\n"
        f"  {scope} .form-button {{ background-color: var(--form-primary-color); }}\n"
        f"  {scope} .form-button:hover:not(:disabled) {{ background-color: var(--form-primary-hover); }}\n"
        "</style>"
    )
