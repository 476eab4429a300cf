"""
Template record entity: the prompt configuration that drives one generation.
"""

from typing import Any, Mapping, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictInt,
    StrictStr,
    ValidationError,
    field_validator,
)

from letter_stream.domain.exceptions import TemplateInvalidError


class TemplateRecord(BaseModel):
    """Immutable, validated template record.

    Field names follow the backend contract (``instructionBody``,
    ``roleText``, ...); the prompt-file names ``userPrompt`` and
    ``systemRole`` are accepted as well.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: StrictStr
    name: StrictStr
    instruction_body: StrictStr = Field(
        ...,
        validation_alias=AliasChoices("instructionBody", "userPrompt", "instruction_body"),
    )
    role_text: StrictStr = Field(
        ..., validation_alias=AliasChoices("roleText", "systemRole", "role_text")
    )
    temperature: float
    max_tokens: StrictInt = Field(
        ..., validation_alias=AliasChoices("maxTokens", "max_tokens")
    )
    version: str
    is_active: StrictBool = Field(
        ..., validation_alias=AliasChoices("isActive", "is_active")
    )
    category: Optional[StrictStr] = None
    description: Optional[StrictStr] = None

    @field_validator("temperature", mode="before")
    @classmethod
    def _numeric_temperature(cls, value: Any) -> float:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError("temperature must be a number")
        return float(value)

    @field_validator("version", mode="before")
    @classmethod
    def _version_text(cls, value: Any) -> str:
        if isinstance(value, bool) or not isinstance(value, (str, int)):
            raise ValueError("version must be a string")
        return str(value)

    @classmethod
    def from_payload(cls, template_id: str, payload: Any) -> "TemplateRecord":
        """
        Validate a raw backend payload into a record.

        Args:
            template_id: The id the payload was requested under
            payload: Decoded JSON object

        Returns:
            TemplateRecord: The validated record

        Raises:
            TemplateInvalidError: If fields are missing, mistyped or the
                template is inactive
        """
        if not isinstance(payload, Mapping):
            raise TemplateInvalidError(template_id, "payload is not an object")
        try:
            record = cls.model_validate(dict(payload))
        except ValidationError as e:
            fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
            raise TemplateInvalidError(
                template_id, f"bad fields: {', '.join(fields)}"
            ) from e

        if not record.is_active:
            raise TemplateInvalidError(template_id, "template is not active")
        return record
