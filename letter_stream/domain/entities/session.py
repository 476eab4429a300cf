"""
Stream session entity with lifecycle rules.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional
from uuid import uuid4

from letter_stream.domain.entities.generation import GenerationRequest
from letter_stream.domain.exceptions import (
    GenerationError,
    InvalidSessionStateError,
    PersistenceFailureError,
)
from letter_stream.domain.value_objects.session_state import SessionState


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(eq=False)
class StreamSession:
    target_id: str
    request: GenerationRequest
    session_id: str = field(default_factory=lambda: uuid4().hex)
    state: SessionState = SessionState.IDLE
    accumulated_text: str = ""
    error: Optional[GenerationError] = None
    document_id: Optional[str] = None
    created_at: datetime = field(default_factory=_now)
    updated_at: Optional[datetime] = None
    _cancel_hook: Optional[Callable[["StreamSession"], bool]] = field(
        default=None, repr=False
    )

    def __post_init__(self):
        self._finished = asyncio.Event()

    def transition_to(self, new_state: SessionState) -> None:
        """
        Transition to a new state if the lifecycle allows it.

        Raises:
            InvalidSessionStateError: If the transition is not allowed
        """
        if not self.state.can_transition_to(new_state):
            raise InvalidSessionStateError(
                f"Invalid session transition from {self.state.value} to {new_state.value}"
            )

        self.state = new_state
        self.updated_at = _now()
        if new_state.is_terminal():
            self._finished.set()
        else:
            self._finished.clear()

    def fail(self, error: GenerationError, keep_text: bool = False) -> None:
        self.error = error
        if not keep_text:
            self.accumulated_text = ""
        self.transition_to(SessionState.FAILED)

    def is_terminal(self) -> bool:
        return self.state.is_terminal()

    def can_retry_persist(self) -> bool:
        """Only a session whose save step failed keeps text worth retrying."""
        return (
            self.state is SessionState.FAILED
            and isinstance(self.error, PersistenceFailureError)
            and bool(self.accumulated_text)
        )

    def cancel(self) -> bool:
        """Cancel this session through its owning manager."""
        if self._cancel_hook is None:
            return False
        return self._cancel_hook(self)

    async def wait(self) -> SessionState:
        """Wait until the session reaches a terminal state."""
        await self._finished.wait()
        return self.state
