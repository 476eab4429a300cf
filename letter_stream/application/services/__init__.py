"""
Application services for letter generation.
"""

from .session_manager import GenerationSessionManager, NullSessionObserver
from .template_cache import TemplateCache, TemplateSourceMode
from .token_accumulator import ProgressPolicy, TokenAccumulator

__all__ = [
    "GenerationSessionManager",
    "NullSessionObserver",
    "TemplateCache",
    "TemplateSourceMode",
    "ProgressPolicy",
    "TokenAccumulator",
]
