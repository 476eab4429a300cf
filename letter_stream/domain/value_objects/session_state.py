"""
Session state value object - lifecycle of one generation attempt.
"""

from enum import Enum


class SessionState(str, Enum):
    """
    Generation session lifecycle.

    A session moves forward through these states only. DONE, FAILED and
    CANCELLED are terminal; the single exception is FAILED -> PERSISTING,
    which retries the save step of a session whose generation succeeded.
    """

    IDLE = "idle"  # Created, nothing started yet
    STARTING = "starting"  # Resolving the template and opening the stream
    STREAMING = "streaming"  # Fragments are arriving
    PERSISTING = "persisting"  # Stream completed, create/update in flight
    DONE = "done"  # Content generated and saved
    FAILED = "failed"  # Generation or persistence failed
    CANCELLED = "cancelled"  # Cancelled by the user or replaced by a new session

    def can_transition_to(self, new_status: "SessionState") -> bool:
        """
        Define valid state transitions.

        Args:
            new_status: The state to transition to

        Returns:
            bool: Whether the transition is valid
        """
        valid_transitions = {
            self.IDLE: [self.STARTING, self.CANCELLED],
            self.STARTING: [self.STREAMING, self.FAILED, self.CANCELLED],
            self.STREAMING: [self.PERSISTING, self.FAILED, self.CANCELLED],
            self.PERSISTING: [self.DONE, self.FAILED, self.CANCELLED],
            self.DONE: [],
            self.FAILED: [self.PERSISTING],
            self.CANCELLED: [],
        }

        return new_status in valid_transitions.get(self, [])

    def is_terminal(self) -> bool:
        return self in (self.DONE, self.FAILED, self.CANCELLED)

    def is_active(self) -> bool:
        """True while the session still owns its target."""
        return not self.is_terminal()

    def can_be_cancelled(self) -> bool:
        return self in (self.IDLE, self.STARTING, self.STREAMING, self.PERSISTING)
