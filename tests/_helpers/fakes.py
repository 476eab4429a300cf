"""Fake collaborators for testing."""

import asyncio
from typing import Any, Dict, List, Mapping, Optional

from letter_stream.application.ports import (
    DocumentStorePort,
    SessionObserverPort,
    Snapshot,
    StreamHandlePort,
    StreamObserverPort,
    StreamTransportPort,
    TemplateSourcePort,
    TerminalNotice,
)
from letter_stream.domain.exceptions import (
    GenerationError,
    TemplateNotFoundError,
    TransportError,
)


def template_payload(
    template_id: str = "consultation",
    instruction: str = "Notes:\n{{transcription}}",
    version: str = "1.0.0",
    **overrides: Any,
) -> Dict[str, Any]:
    """A valid backend template record."""
    payload = {
        "id": template_id,
        "name": template_id.title(),
        "instructionBody": instruction,
        "roleText": "You are a medical letter generator.",
        "temperature": 0.7,
        "maxTokens": 1800,
        "version": version,
        "isActive": True,
    }
    payload.update(overrides)
    return payload


class FakeTemplateSource(TemplateSourcePort):
    """In-memory template source that counts fetches."""

    def __init__(self, payloads: Optional[Dict[str, Any]] = None) -> None:
        self.payloads: Dict[str, Any] = dict(payloads or {})
        self.fetches: List[str] = []
        self.gate: Optional[asyncio.Event] = None
        self.error: Optional[Exception] = None
        self.listings = 0

    async def fetch_template(self, template_id: str) -> Mapping[str, Any]:
        self.fetches.append(template_id)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        if template_id not in self.payloads:
            raise TemplateNotFoundError(template_id)
        return self.payloads[template_id]

    async def list_templates(self) -> List[Mapping[str, Any]]:
        self.listings += 1
        if self.error is not None:
            raise self.error
        return list(self.payloads.values())


class FakeStreamHandle(StreamHandlePort):
    def __init__(self) -> None:
        self.close_calls = 0

    @property
    def closed(self) -> bool:
        return self.close_calls > 0

    def close(self) -> None:
        self.close_calls += 1


class OpenedStream:
    """One call to ``FakeStreamTransport.open``; tests push events through it."""

    def __init__(
        self, endpoint: str, payload: Dict[str, Any], observer: StreamObserverPort
    ) -> None:
        self.endpoint = endpoint
        self.payload = payload
        self.observer = observer
        self.handle = FakeStreamHandle()

    def send(self, *fragments: str) -> None:
        for fragment in fragments:
            self.observer.on_fragment(fragment)

    def complete(self) -> None:
        self.observer.on_complete()

    def fail(self, error: Optional[GenerationError] = None) -> None:
        self.observer.on_error(error or TransportError("connection reset"))


class FakeStreamTransport(StreamTransportPort):
    """Records opened streams; events are driven by the test."""

    def __init__(self) -> None:
        self.opened: List[OpenedStream] = []
        self.fail_on_open: Optional[GenerationError] = None
        self.raise_on_open: Optional[Exception] = None

    @property
    def last(self) -> OpenedStream:
        return self.opened[-1]

    async def open(
        self, endpoint: str, payload: Dict[str, Any], observer: StreamObserverPort
    ) -> StreamHandlePort:
        if self.raise_on_open is not None:
            raise self.raise_on_open
        stream = OpenedStream(endpoint, payload, observer)
        self.opened.append(stream)
        if self.fail_on_open is not None:
            # Same contract as the HTTP transport: reported before returning
            stream.handle.close()
            observer.on_error(self.fail_on_open)
        return stream.handle


class FakeDocumentStore(DocumentStorePort):
    """In-memory document store recording every call."""

    def __init__(self) -> None:
        self.documents: Dict[str, str] = {}
        self.creates: List[Dict[str, Any]] = []
        self.updates: List[Dict[str, Any]] = []
        self.fail_next: Optional[Exception] = None
        self.gate: Optional[asyncio.Event] = None
        self._next_id = 1

    async def create_document(self, content: str, metadata: Dict[str, Any]) -> str:
        await self._before_call()
        document_id = f"doc-{self._next_id}"
        self._next_id += 1
        self.documents[document_id] = content
        self.creates.append({"content": content, "metadata": dict(metadata)})
        return document_id

    async def update_document(
        self, document_id: str, content: str, metadata: Dict[str, Any]
    ) -> None:
        await self._before_call()
        if document_id not in self.documents:
            raise TransportError("HTTP 404: Not Found", status_code=404)
        self.documents[document_id] = content
        self.updates.append(
            {"id": document_id, "content": content, "metadata": dict(metadata)}
        )

    async def _before_call(self) -> None:
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_next is not None:
            error, self.fail_next = self.fail_next, None
            raise error


class RecordingObserver(SessionObserverPort):
    """Collects everything the manager reports to the UI."""

    def __init__(self) -> None:
        self.snapshots: List[Snapshot] = []
        self.notices: List[TerminalNotice] = []

    def on_snapshot(self, snapshot: Snapshot) -> None:
        self.snapshots.append(snapshot)

    def on_terminal(self, notice: TerminalNotice) -> None:
        self.notices.append(notice)

    def texts(self, session_id: Optional[str] = None) -> List[str]:
        return [
            s.text
            for s in self.snapshots
            if session_id is None or s.session_id == session_id
        ]
