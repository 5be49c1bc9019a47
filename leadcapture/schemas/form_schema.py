"""
Form schema - the field list and settings stored as JSON on the Form model.
Written by the form builder (camelCase keys); snake_case is accepted too.
"""
import json
import logging
from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)


class FieldType(str, Enum):
    TEXT = "text"
    EMAIL = "email"
    PHONE = "phone"
    SELECT = "select"
    RADIO = "radio"
    CHECKBOX = "checkbox"
    TEXTAREA = "textarea"
    NUMBER = "number"
    FILE = "file"
    HIDDEN = "hidden"
    RECAPTCHA = "recaptcha"


# Never collected from the visitor, never stored on the lead
NON_INPUT_TYPES = frozenset({FieldType.HIDDEN, FieldType.RECAPTCHA})


class FormField(BaseModel):
    """
    One builder field. Parsing is lenient: stored fields written by older
    builders keep working, and only a field without an id is unusable.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    type: FieldType = FieldType.TEXT
    name: Optional[str] = None  # explicit semantic key
    label: str = ""
    required: bool = False
    options: Optional[list[str]] = None

    @field_validator("id", mode="before")
    @classmethod
    def _usable_id(cls, v: Any) -> str:
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            v = str(v)
        if not isinstance(v, str) or not v.strip():
            raise ValueError("field id is missing")
        return v

    @field_validator("type", mode="before")
    @classmethod
    def _known_type(cls, v: Any) -> FieldType:
        try:
            return FieldType(v)
        except (ValueError, TypeError):
            # Unknown types are still collected and stored like text
            return FieldType.TEXT

    @field_validator("name", mode="before")
    @classmethod
    def _name_as_text(cls, v: Any) -> Optional[str]:
        if v is None or isinstance(v, str):
            return v
        return str(v)

    @field_validator("label", mode="before")
    @classmethod
    def _label_as_text(cls, v: Any) -> str:
        if v is None:
            return ""
        return v if isinstance(v, str) else str(v)

    @field_validator("required", mode="before")
    @classmethod
    def _required_flag(cls, v: Any) -> bool:
        if v is None:
            return False
        if isinstance(v, str):
            return v.strip().lower() in ("true", "1", "yes")
        return bool(v)

    @field_validator("options", mode="before")
    @classmethod
    def _options_as_text(cls, v: Any) -> Optional[list[str]]:
        if not isinstance(v, list):
            return None
        return [o if isinstance(o, str) else str(o) for o in v if o is not None]

    @property
    def collects_input(self) -> bool:
        return self.type not in NON_INPUT_TYPES


class FormSettings(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    status: str = "PUBLIC"  # PUBLIC, PRIVATE
    description: Optional[str] = None
    redirect_url: Optional[str] = Field(default=None, alias="redirectUrl")
    recaptcha_enabled: bool = Field(default=True, alias="recaptchaEnabled")
    email_alert_enabled: bool = Field(default=True, alias="emailAlertEnabled")
    email_otp_enabled: bool = Field(default=False, alias="emailOtpEnabled")
    mobile_otp_enabled: bool = Field(default=False, alias="mobileOtpEnabled")

    @property
    def is_public(self) -> bool:
        return self.status == "PUBLIC"


class FormSchema(BaseModel):
    fields: list[FormField] = Field(default_factory=list)
    settings: FormSettings = Field(default_factory=FormSettings)

    def first_field_of_type(self, field_type: FieldType) -> Optional[FormField]:
        for field in self.fields:
            if field.type == field_type:
                return field
        return None


def _parse_fields(raw_fields: Any) -> list[FormField]:
    if not isinstance(raw_fields, list):
        return []
    fields: list[FormField] = []
    for raw in raw_fields:
        try:
            fields.append(FormField.model_validate(raw))
        except ValidationError as e:
            logger.warning("Skipping form field without a usable id %r: %s", raw, e.errors()[:1])
    return fields


def parse_form_schema(value: Any) -> FormSchema:
    """
    Parse a stored form schema. Never raises.
    Handles None/empty, JSON strings and double-encoded JSON strings.
    """
    if value is None or value == "":
        return FormSchema()

    parsed = value
    try:
        if isinstance(parsed, (str, bytes)):
            parsed = json.loads(parsed)
        # Double-encoded (a JSON string containing JSON)
        if isinstance(parsed, str):
            parsed = json.loads(parsed)
    except (json.JSONDecodeError, TypeError):
        return FormSchema()

    if not isinstance(parsed, dict):
        return FormSchema()

    raw_settings = parsed.get("settings")
    try:
        settings = (
            FormSettings.model_validate(raw_settings)
            if isinstance(raw_settings, dict)
            else FormSettings()
        )
    except ValidationError:
        settings = FormSettings()

    return FormSchema(fields=_parse_fields(parsed.get("fields")), settings=settings)
