"""
Domain value objects - immutable objects that represent concepts.
"""

from .session_state import SessionState

__all__ = ["SessionState"]
