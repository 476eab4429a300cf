"""
Domain layer - generation entities, lifecycle states and error taxonomy.

Nothing here performs I/O.
"""

from .entities import (
    GenerationRequest,
    StreamFrame,
    StreamRequest,
    StreamSession,
    TemplateRecord,
)
from .value_objects import SessionState

__all__ = [
    "GenerationRequest",
    "StreamFrame",
    "StreamRequest",
    "StreamSession",
    "TemplateRecord",
    "SessionState",
]
