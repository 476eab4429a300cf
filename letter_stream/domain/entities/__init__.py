"""Domain entities exports."""

from .generation import GenerationRequest, StreamFrame, StreamRequest
from .session import StreamSession
from .template import TemplateRecord

__all__ = [
    "GenerationRequest",
    "StreamFrame",
    "StreamRequest",
    "StreamSession",
    "TemplateRecord",
]
