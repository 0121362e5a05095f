"""Schemas for the multi-step signup surface."""

import re
from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    TypeAdapter,
    ValidationError as PydanticValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from leadflow.core.config import DESTINATION_REGIONS, FORM_TYPES
from leadflow.core.errors import ValidationError
from leadflow.db.enums import VerificationChannel

_UNSAFE_TEXT = re.compile(r"(https?://|www\.|[<>{}])", re.IGNORECASE)


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class StepPayloadBase(CamelModel):
    form_type: str = Field(..., min_length=1, max_length=50)
    request_id: str | None = Field(None, min_length=1, max_length=64, pattern=r"^[A-Za-z0-9._:-]+$")

    @field_validator("form_type")
    @classmethod
    def _known_form_type(cls, value: str) -> str:
        if value not in FORM_TYPES:
            raise ValueError("Unknown form type")
        return value

    @property
    def form_name(self) -> str:
        return FORM_TYPES[self.form_type]


class Step1Payload(StepPayloadBase):
    """Identity + company fields + CAPTCHA token."""

    step: Literal["1"]
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    company: str = Field(..., min_length=1, max_length=200)
    job_title: str | None = Field(None, max_length=100)
    country: str | None = Field(None, min_length=2, max_length=2)
    turnstile_token: str = Field(..., min_length=1, max_length=2048)
    campaign: str | None = Field(None, max_length=100)

    @field_validator("first_name", "last_name", "company", "job_title")
    @classmethod
    def _plain_text(cls, value: str | None) -> str | None:
        if value is not None and _UNSAFE_TEXT.search(value):
            raise ValueError("Links and markup are not allowed")
        return value


class Step2Payload(StepPayloadBase):
    """Phone + verification method, plus the code in verify mode."""

    step: Literal["2"]
    submission_id: str = Field(..., min_length=1, max_length=36)
    phone: str = Field(..., min_length=4, max_length=32)
    verification_method: VerificationChannel = VerificationChannel.SMS
    mode: Literal["request", "verify"] | None = None
    code: str | None = Field(None, pattern=r"^\d{4,10}$")

    @model_validator(mode="after")
    def _resolve_mode(self) -> "Step2Payload":
        if self.mode is None:
            self.mode = "verify" if self.code else "request"
        if self.mode == "verify" and not self.code:
            raise ValueError("code is required to verify")
        return self


class Step3Payload(StepPayloadBase):
    """Destination/region selector."""

    step: Literal["3"]
    submission_id: str = Field(..., min_length=1, max_length=36)
    region: str = Field(..., min_length=2, max_length=20)

    @field_validator("region")
    @classmethod
    def _known_region(cls, value: str) -> str:
        region = value.upper()
        if region not in DESTINATION_REGIONS:
            raise ValueError("Unknown region")
        return region


SubmitPayload = Annotated[
    Union[Step1Payload, Step2Payload, Step3Payload],
    Field(discriminator="step"),
]

_submit_adapter: TypeAdapter[SubmitPayload] = TypeAdapter(SubmitPayload)


def _error_field(loc: tuple) -> str:
    # Drop the discriminator tag pydantic prepends to union locations
    parts = [str(p) for p in loc if p not in ("1", "2", "3")]
    return ".".join(parts) or "body"


def to_validation_error(exc: PydanticValidationError) -> ValidationError:
    """Translate pydantic errors into the field-level error payload."""
    errors = [
        {"field": _error_field(err["loc"]), "message": err["msg"]}
        for err in exc.errors()
    ]
    return ValidationError("Invalid submission", errors=errors)


def parse_submit_payload(body: Any) -> Step1Payload | Step2Payload | Step3Payload:
    """Validate a raw /submit body into the typed variant for its step."""
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    data = dict(body)
    if isinstance(data.get("step"), int):
        data["step"] = str(data["step"])
    try:
        return _submit_adapter.validate_python(data)
    except PydanticValidationError as exc:
        raise to_validation_error(exc) from exc


class StepResponse(CamelModel):
    success: bool = True
    submission_id: str
    status: str
    country_type: str | None = None
    country_blocked: bool | None = None
    builder_status: str | None = None
    reference_id: str | None = None
    external_id: str | None = None
    verified_at: datetime | None = None
    completed_at: datetime | None = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
