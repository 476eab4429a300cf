"""
Generation request and wire frame entities.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field


@dataclass(frozen=True)
class GenerationRequest:
    """One generation attempt for a target. Never mutated after creation."""

    target_id: str
    template_id: str
    variables: Mapping[str, str] = field(default_factory=dict)
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        # Freeze copies so callers can't mutate the request through their dicts
        object.__setattr__(self, "variables", MappingProxyType(dict(self.variables)))
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    def with_variables(self, variables: Mapping[str, str]) -> "GenerationRequest":
        """Return a fresh request for the same target and template."""
        return GenerationRequest(
            target_id=self.target_id,
            template_id=self.template_id,
            variables=variables,
            metadata=self.metadata,
        )


@dataclass(frozen=True)
class StreamRequest:
    """Fully resolved outbound request for the generation stream."""

    prompt: str
    role_text: str
    letter_type: str
    model: str
    temperature: float
    max_tokens: int
    target_id: str

    def to_payload(self) -> Dict[str, Any]:
        """JSON body expected by the backend stream endpoint."""
        return {
            "prompt": self.prompt,
            "systemRole": self.role_text,
            "letterType": self.letter_type,
            "model": self.model,
            "temperature": self.temperature,
            "maxTokens": self.max_tokens,
            "targetId": self.target_id,
        }


class StreamFrame(BaseModel):
    """One server-pushed frame of the generation stream."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    success: bool = False
    is_complete: bool = Field(False, alias="isComplete")
    content: Optional[str] = None
    error: Optional[str] = None
