"""
Application ports - abstract interfaces for external collaborators.

These interfaces define the contracts the generation engine needs from the
backend, the transport and the UI, following the Dependency Inversion
Principle.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from letter_stream.domain.exceptions import GenerationError
from letter_stream.domain.value_objects.session_state import SessionState


class TemplateSourcePort(ABC):
    """Where template records come from."""

    @abstractmethod
    async def fetch_template(self, template_id: str) -> Mapping[str, Any]:
        """
        Fetch the raw template payload.

        Raises:
            TemplateNotFoundError: If the id is unknown
            TransportError: If the source could not be reached
        """
        pass

    @abstractmethod
    async def list_templates(self) -> List[Mapping[str, Any]]:
        """Fetch every raw template payload the source knows about."""
        pass


class DocumentStorePort(ABC):
    """Backend-owned persisted documents (letters)."""

    @abstractmethod
    async def create_document(self, content: str, metadata: Dict[str, Any]) -> str:
        """Create a document and return its backend id."""
        pass

    @abstractmethod
    async def update_document(
        self, document_id: str, content: str, metadata: Dict[str, Any]
    ) -> None:
        """Replace the content of an existing document."""
        pass


class CredentialProviderPort(ABC):
    """Supplies the bearer token the backend expects."""

    @abstractmethod
    async def get_token(self) -> Optional[str]:
        """Return the current token, or None when the user is not logged in."""
        pass


class StreamObserverPort(ABC):
    """Receives transport events. Callbacks must not block."""

    @abstractmethod
    def on_fragment(self, text: str) -> None:
        pass

    @abstractmethod
    def on_complete(self) -> None:
        pass

    @abstractmethod
    def on_error(self, error: GenerationError) -> None:
        pass


class StreamHandlePort(ABC):
    """An open (or opening) generation stream."""

    @abstractmethod
    def close(self) -> None:
        """Stop event delivery and release the connection. Idempotent."""
        pass

    @property
    @abstractmethod
    def closed(self) -> bool:
        pass


class StreamTransportPort(ABC):
    @abstractmethod
    async def open(
        self, endpoint: str, payload: Dict[str, Any], observer: StreamObserverPort
    ) -> StreamHandlePort:
        """
        Open a generation stream and start delivering events to ``observer``.

        A missing credential is reported through ``observer.on_error`` before
        this returns, and the returned handle is already closed.
        """
        pass


@dataclass(frozen=True)
class Snapshot:
    """Copy of the accumulated text handed to the UI."""

    session_id: str
    target_id: str
    text: str
    is_final: bool
    progress: int


@dataclass(frozen=True)
class TerminalNotice:
    """Terminal-state notification for the UI."""

    session_id: str
    target_id: str
    state: SessionState
    reason: Optional[str] = None
    error: Optional[GenerationError] = None
    document_id: Optional[str] = None


class SessionObserverPort(ABC):
    """The UI renderer side of a session."""

    @abstractmethod
    def on_snapshot(self, snapshot: Snapshot) -> None:
        pass

    @abstractmethod
    def on_terminal(self, notice: TerminalNotice) -> None:
        pass
